"""
Reverse-auction rules for BidCraft projects.

Every write here is a single ``find_one_and_update`` whose filter carries the
whole invariant: bids must undercut every existing bid, bidding stops at the
deadline or on acceptance, and a project accepts exactly one bid. MongoDB
applies filter and update to the document indivisibly, so concurrent requests
need no locking on our side. When a conditional write matches nothing the
project is read again only to explain the rejection to the client.
"""
import datetime
import logging
import math
import re
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from .clock import to_naive_utc, utcnow
from .errors import BidConflict, Forbidden, ProjectNotFound, ValidationFailed
from .models import format_amount, is_open, lowest_bid, project_status, sorted_bids

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 50

# Wire names (camelCase, as the listing UI sends them) and document names.
SORT_KEYS = {
    "createdAt": "created_at",
    "created_at": "created_at",
    "deadline": "deadline",
    "budgetMax": "budget_max",
    "budget_max": "budget_max",
    "budgetMin": "budget_min",
    "budget_min": "budget_min",
    "bidsCount": "bids_count",
    "bids_count": "bids_count",
    "lowestBid": "lowest_bid",
    "lowest_bid": "lowest_bid",
}


@dataclass(frozen=True)
class BidPlacement:
    bids_count: int
    lowest_bid: float


@dataclass(frozen=True)
class BidAccepted:
    project_id: str
    buyer_id: str
    provider_id: str
    amount: float
    title: str
    accepted_at: datetime.datetime


AcceptHook = Callable[[BidAccepted], Awaitable[Any]]


def _valid_id(value: Any) -> bool:
    if not isinstance(value, str):
        return False
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def _check_amount(amount: Any) -> float:
    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ValidationFailed("Invalid bid amount")
    amount = float(amount)
    if not math.isfinite(amount) or amount <= 0:
        raise ValidationFailed("Invalid bid amount")
    return amount


def _required_text(value: Any, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationFailed(f"Missing required field: {field}")
    return value.strip()


def _budget(value: Any, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationFailed(f"Missing required field: {field}")
    value = float(value)
    if not math.isfinite(value) or value < 0:
        raise ValidationFailed(f"Invalid {field}")
    return value


class AuctionEngine:
    def __init__(self, db: AsyncIOMotorDatabase, clock: Callable[[], datetime.datetime] = utcnow):
        self.db = db
        self.clock = clock
        self._accept_hooks: List[AcceptHook] = []

    @property
    def projects(self):
        return self.db.projects

    def on_bid_accepted(self, hook: AcceptHook):
        """Register a coroutine run after an acceptance has been committed."""
        self._accept_hooks.append(hook)
        return hook

    def _now(self, now: Optional[datetime.datetime]) -> datetime.datetime:
        return to_naive_utc(now) if now is not None else self.clock()

    async def create_project(
        self,
        buyer_id: str,
        title: str,
        description: str,
        budget_min: float,
        budget_max: float,
        deadline: datetime.datetime,
        category: str,
        now: Optional[datetime.datetime] = None,
    ) -> Dict[str, Any]:
        now = self._now(now)
        budget_min = _budget(budget_min, "budget_min")
        budget_max = _budget(budget_max, "budget_max")
        if budget_min > budget_max:
            raise ValidationFailed("budget_min must not exceed budget_max")
        if not isinstance(deadline, datetime.datetime):
            raise ValidationFailed("Missing required field: deadline")

        project = {
            "id": str(uuid.uuid4()),
            "buyer_id": buyer_id,
            "title": _required_text(title, "title"),
            "description": _required_text(description, "description"),
            "budget_min": budget_min,
            "budget_max": budget_max,
            "deadline": to_naive_utc(deadline),
            "category": _required_text(category, "category"),
            "bids": [],
            "created_at": now,
            "updated_at": now,
        }
        await self.projects.insert_one(project)
        project.pop("_id", None)
        logger.info("Project %s created by buyer %s", project["id"], buyer_id)
        return project

    async def place_bid(
        self,
        project_id: str,
        provider_id: str,
        amount: float,
        now: Optional[datetime.datetime] = None,
    ) -> BidPlacement:
        if not _valid_id(project_id):
            raise ValidationFailed("Invalid project id")
        amount = _check_amount(amount)
        now = self._now(now)

        updated = await self.projects.find_one_and_update(
            {
                "id": project_id,
                "accepted_bid": {"$exists": False},
                "deadline": {"$gt": now},
                "buyer_id": {"$ne": provider_id},
                # no existing bid at or below this amount, so it is the new minimum
                "bids": {"$not": {"$elemMatch": {"amount": {"$lte": amount}}}},
            },
            {
                "$push": {"bids": {"provider_id": provider_id, "amount": amount, "created_at": now}},
                "$set": {"updated_at": now},
            },
            # _id must stay projected; the post-image is located by it
            projection={"bids": 1},
            return_document=ReturnDocument.AFTER,
        )

        if updated is None:
            raise await self._diagnose_rejected_bid(project_id, provider_id, amount, now)

        bids = updated.get("bids") or []
        placement = BidPlacement(bids_count=len(bids), lowest_bid=lowest_bid(bids))
        logger.info(
            "Bid of %s placed on project %s by provider %s (%d bids)",
            format_amount(amount), project_id, provider_id, placement.bids_count,
        )
        return placement

    async def _diagnose_rejected_bid(self, project_id, provider_id, amount, now) -> Exception:
        # The state may have moved again since the write; this only picks a message.
        project = await self.projects.find_one(
            {"id": project_id},
            {"_id": 0, "deadline": 1, "buyer_id": 1, "bids": 1, "accepted_bid": 1},
        )
        if not project:
            return ProjectNotFound()

        if project.get("accepted_bid"):
            reason = BidConflict("Project already has an accepted bid")
        elif project["deadline"] <= now:
            reason = BidConflict("Bidding closed (deadline passed)")
        elif project["buyer_id"] == provider_id:
            reason = Forbidden("Buyer cannot bid on own project")
        else:
            current = lowest_bid(project.get("bids"))
            if current is not None and not amount < current:
                reason = BidConflict(f"Bid must be lower than current lowest ({format_amount(current)})")
            else:
                reason = BidConflict("Unable to place bid")

        logger.info("Bid on project %s by provider %s rejected: %s", project_id, provider_id, reason)
        return reason

    async def get_bids(self, project_id: str) -> Dict[str, Any]:
        if not _valid_id(project_id):
            raise ProjectNotFound()
        project = await self.projects.find_one(
            {"id": project_id},
            {"_id": 0, "bids": 1, "deadline": 1, "accepted_bid": 1},
        )
        if not project:
            raise ProjectNotFound()
        return {
            "bids": sorted_bids(project.get("bids")),
            "deadline": project["deadline"],
            "accepted_bid": project.get("accepted_bid"),
        }

    async def accept_bid(
        self,
        project_id: str,
        buyer_id: str,
        provider_id: str,
        amount: float,
        now: Optional[datetime.datetime] = None,
    ) -> Dict[str, Any]:
        if not _valid_id(project_id):
            raise ValidationFailed("Invalid project id")
        if not _valid_id(provider_id):
            raise ValidationFailed("Invalid payload")
        try:
            amount = _check_amount(amount)
        except ValidationFailed:
            raise ValidationFailed("Invalid payload")
        now = self._now(now)

        accepted = {"provider_id": provider_id, "amount": amount}
        updated = await self.projects.find_one_and_update(
            {
                "id": project_id,
                "buyer_id": buyer_id,
                "accepted_bid": {"$exists": False},
                "deadline": {"$lte": now},
                "bids": {"$elemMatch": {"provider_id": provider_id, "amount": amount}},
            },
            {"$set": {"accepted_bid": accepted, "updated_at": now}},
            projection={"title": 1, "accepted_bid": 1},
            return_document=ReturnDocument.AFTER,
        )
        if updated is None:
            logger.info("Acceptance of %s/%s on project %s refused", provider_id, format_amount(amount), project_id)
            raise BidConflict("Cannot accept this bid. Check deadline/ownership/bid existence.")

        logger.info(
            "Project %s accepted bid %s from provider %s",
            project_id, format_amount(amount), provider_id,
        )
        await self._after_accept(BidAccepted(
            project_id=project_id,
            buyer_id=buyer_id,
            provider_id=provider_id,
            amount=amount,
            title=updated.get("title", ""),
            accepted_at=now,
        ))
        return updated["accepted_bid"]

    async def _after_accept(self, event: BidAccepted):
        for hook in self._accept_hooks:
            try:
                await hook(event)
            except Exception:
                logger.exception("Post-accept hook %r failed for project %s", hook, event.project_id)

    async def get_project(self, project_id: str, now: Optional[datetime.datetime] = None) -> Dict[str, Any]:
        if not _valid_id(project_id):
            raise ProjectNotFound()
        project = await self.projects.find_one({"id": project_id}, {"_id": 0})
        if not project:
            raise ProjectNotFound()
        view = self._summarize(project, self._now(now))
        view["bids"] = sorted_bids(project.get("bids"))
        return view

    def _summarize(self, project: Dict[str, Any], now: datetime.datetime) -> Dict[str, Any]:
        summary = {key: value for key, value in project.items() if key not in ("_id", "bids")}
        if "bids" in project:
            bids = project["bids"] or []
            summary["bids_count"] = len(bids)
            summary["lowest_bid"] = lowest_bid(bids)
        summary.update({
            "accepted_bid": project.get("accepted_bid"),
            "is_open": is_open(project, now),
            "status": project_status(project, now).value,
        })
        return summary

    async def list_overview(
        self,
        q: str = "",
        category: str = "",
        sort_key: str = "createdAt",
        sort_order: str = "descend",
        page: int = 1,
        page_size: int = 10,
        now: Optional[datetime.datetime] = None,
    ) -> Dict[str, Any]:
        now = self._now(now)
        page = max(page, 1)
        page_size = min(max(page_size, 1), MAX_PAGE_SIZE)

        key = SORT_KEYS.get(sort_key)
        if key is None:
            key, direction = "created_at", DESCENDING
        else:
            direction = ASCENDING if sort_order == "ascend" else DESCENDING

        match: Dict[str, Any] = {}
        if category:
            match["category"] = category
        q = (q or "").strip()
        if q:
            pattern = re.escape(q)
            match["$or"] = [
                {"title": {"$regex": pattern, "$options": "i"}},
                {"description": {"$regex": pattern, "$options": "i"}},
            ]

        total = await self.projects.count_documents(match)
        pipeline = [
            {"$match": match},
            {"$addFields": {
                "bids_count": {"$size": {"$ifNull": ["$bids", []]}},
                "lowest_bid": {"$min": "$bids.amount"},
            }},
            {"$project": {"_id": 0, "bids": 0}},
            {"$sort": {key: direction, "id": ASCENDING}},
            {"$skip": (page - 1) * page_size},
            {"$limit": page_size},
        ]
        docs = await self.projects.aggregate(pipeline).to_list(length=page_size)
        items = [self._summarize(doc, now) for doc in docs]

        await self._attach_buyer_emails(items)
        return {"items": items, "total": total, "page": page, "page_size": page_size}

    async def _attach_buyer_emails(self, items: List[Dict[str, Any]]):
        buyer_ids = list({item["buyer_id"] for item in items})
        if not buyer_ids:
            return
        cursor = self.db.users.find({"id": {"$in": buyer_ids}}, {"_id": 0, "id": 1, "email": 1})
        emails = {user["id"]: user["email"] for user in await cursor.to_list(length=len(buyer_ids))}
        for item in items:
            item["buyer_email"] = emails.get(item["buyer_id"])

    async def list_buyer_projects(self, buyer_id: str, now: Optional[datetime.datetime] = None) -> List[Dict[str, Any]]:
        now = self._now(now)
        cursor = self.projects.find({"buyer_id": buyer_id}, {"_id": 0}).sort("created_at", DESCENDING)
        items = []
        for project in await cursor.to_list(length=None):
            item = self._summarize(project, now)
            item["bids"] = sorted_bids(project.get("bids"))
            items.append(item)
        return items

    async def list_provider_bids(self, provider_id: str, now: Optional[datetime.datetime] = None) -> List[Dict[str, Any]]:
        now = self._now(now)
        cursor = self.projects.find({"bids.provider_id": provider_id}, {"_id": 0}).sort("created_at", DESCENDING)
        items = []
        for project in await cursor.to_list(length=None):
            mine = [bid for bid in project.get("bids") or [] if bid["provider_id"] == provider_id]
            accepted = project.get("accepted_bid")
            item = self._summarize(project, now)
            item.update({
                "my_bids": sorted_bids(mine),
                "my_lowest_bid": lowest_bid(mine),
                "won": bool(accepted and accepted["provider_id"] == provider_id),
            })
            items.append(item)
        return items
