from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from motor.motor_asyncio import AsyncIOMotorDatabase
from typing import Optional
import logging
import re
import uuid

from bidcraft.clock import utcnow
from bidcraft.database import get_mongo_db
from bidcraft.models import UserStatus
from bidcraft.routers.auth import get_current_admin_user, user_response
from bidcraft.schemas import BanRequest, BanResponse, UserPage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/admin", tags=["Admin"])

@router.get("/users", response_model=UserPage)
async def list_users(
    page: int = Query(1),
    page_size: int = Query(10, alias="pageSize"),
    q: Optional[str] = Query(None, description="Match on email, role or status"),
    _: dict = Depends(get_current_admin_user),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    page = max(page, 1)
    page_size = min(max(page_size, 1), 100)

    query = {}
    q = (q or "").strip()
    if q:
        pattern = re.escape(q)
        query["$or"] = [
            {"email": {"$regex": pattern, "$options": "i"}},
            {"role": {"$regex": pattern, "$options": "i"}},
            {"status": {"$regex": pattern, "$options": "i"}},
        ]

    total = await db.users.count_documents(query)
    cursor = (
        db.users.find(query, {"_id": 0, "hashed_password": 0})
        .sort([("created_at", -1), ("id", 1)])
        .skip((page - 1) * page_size)
        .limit(page_size)
    )
    users = await cursor.to_list(length=page_size)

    return UserPage(
        items=[user_response(user) for user in users],
        total=total,
        page=page,
        page_size=page_size,
    )

@router.patch("/users/{user_id}/ban", response_model=BanResponse)
async def set_ban_status(
    user_id: str,
    payload: BanRequest,
    request: Request,
    _: dict = Depends(get_current_admin_user),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    try:
        uuid.UUID(user_id)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid user id"
        )

    user = await db.users.find_one({"id": user_id}, {"_id": 0, "id": 1, "email": 1, "role": 1, "status": 1})
    if not user:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found"
        )

    next_status = UserStatus.BANNED if payload.action == "BAN" else UserStatus.ACTIVE
    result = await db.users.update_one(
        {"id": user_id, "status": {"$ne": next_status.value}},
        {"$set": {"status": next_status.value, "updated_at": utcnow()}}
    )
    if result.modified_count == 0:
        # Already in the requested state
        return BanResponse(status=next_status)

    logger.info("User %s status set to %s", user_id, next_status.value)

    # Status change is committed; the mail is only advisory
    delivered = await request.app.state.notifier.account_status_changed(user, payload.action, payload.reason)
    return BanResponse(status=next_status, mail_delivered=delivered)
