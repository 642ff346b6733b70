from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer, OAuth2PasswordRequestForm
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError
import datetime
import logging
import uuid
import jwt
from passlib.context import CryptContext

from bidcraft.clock import utcnow
from bidcraft.database import get_mongo_db
from bidcraft.models import Role, UserStatus
from bidcraft.schemas import RegisterRequest, Token, UserOut

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["Authentication"])

# Security
ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/token")

# Helper functions
def hash_password(password: str) -> str:
    return pwd_context.hash(password)

def verify_password(password: str, hashed_password: str) -> bool:
    return pwd_context.verify(password, hashed_password)

def user_response(user: dict) -> UserOut:
    # Never hand back the password hash
    return UserOut(
        id=user["id"],
        email=user["email"],
        role=user["role"],
        status=user.get("status", UserStatus.ACTIVE.value),
        created_at=user.get("created_at"),
    )

def create_access_token(settings, data: dict, expires_delta: Optional[datetime.timedelta] = None):
    to_encode = data.copy()
    if expires_delta is None:
        expires_delta = datetime.timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    to_encode.update({"exp": datetime.datetime.now(datetime.timezone.utc) + expires_delta})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=ALGORITHM)

async def get_current_user(
    request: Request,
    token: str = Depends(oauth2_scheme),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        payload = jwt.decode(token, request.app.state.settings.JWT_SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str = payload.get("sub")
        if user_id is None:
            raise credentials_exception
    except jwt.PyJWTError:
        raise credentials_exception

    user = await db.users.find_one({"id": user_id}, {"_id": 0})
    if user is None:
        raise credentials_exception

    # Banned accounts stop here, before any route logic
    if user.get("status") == UserStatus.BANNED.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account banned"
        )

    return user

def require_role(role: Role, detail: str = "Unauthorized"):
    async def dependency(current_user: dict = Depends(get_current_user)):
        if current_user.get("role") != role.value:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=detail
            )
        return current_user
    return dependency

get_current_admin_user = require_role(Role.ADMIN)
get_current_buyer = require_role(Role.BUYER)
get_current_provider = require_role(Role.PROVIDER)

# Routes
@router.post("/register", response_model=UserOut, status_code=status.HTTP_201_CREATED)
async def register(payload: RegisterRequest, db: AsyncIOMotorDatabase = Depends(get_mongo_db)):
    # Check if email already exists
    existing_user = await db.users.find_one({"email": payload.email})
    if existing_user:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered"
        )

    now = utcnow()
    user_data = {
        "id": str(uuid.uuid4()),
        "email": payload.email,
        "hashed_password": hash_password(payload.password),
        "role": payload.role,
        "status": UserStatus.ACTIVE.value,
        "created_at": now,
        "updated_at": now,
    }
    try:
        await db.users.insert_one(user_data)
    except DuplicateKeyError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Email already registered"
        )

    logger.info("Registered %s user %s", payload.role, user_data["id"])
    return user_response(user_data)

@router.post("/token", response_model=Token)
async def login_for_access_token(
    request: Request,
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: AsyncIOMotorDatabase = Depends(get_mongo_db),
):
    # Find user by email
    user = await db.users.find_one({"email": form_data.username}, {"_id": 0})
    if not user or not verify_password(form_data.password, user["hashed_password"]):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if user.get("status") == UserStatus.BANNED.value:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account banned"
        )

    access_token = create_access_token(
        request.app.state.settings,
        data={"sub": user["id"], "role": user["role"]},
    )

    return {"access_token": access_token, "token_type": "bearer", "user": user_response(user)}

@router.get("/me", response_model=UserOut)
async def get_current_user_info(current_user: dict = Depends(get_current_user)):
    return user_response(current_user)
