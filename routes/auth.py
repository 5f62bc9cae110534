# routes/auth.py
from datetime import datetime, timedelta, timezone
from fastapi import APIRouter, HTTPException, Depends
from fastapi.security import OAuth2PasswordBearer
from pydantic import BaseModel
from motor.motor_asyncio import AsyncIOMotorClient
from jose import JWTError, jwt
from passlib.context import CryptContext
import logging

import config

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

client = AsyncIOMotorClient(config.MONGODB_URI)
db = client[config.DB_NAME]

router = APIRouter(prefix="/api/auth", tags=["auth"])
oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login/")

TOKEN_TTL = timedelta(days=7)

PROFILE_FIELDS = [
    "id", "email", "name", "role", "area", "system_role", "subscription_tier",
    "custom_daily_limit", "custom_monthly_limit", "custom_question_limit",
    "terms_accepted_at", "createdAt",
]


class LoginRequest(BaseModel):
    email: str
    password: str


def public_profile(user: dict) -> dict:
    return {field: user.get(field) for field in PROFILE_FIELDS}


def create_access_token(user: dict) -> str:
    payload = {
        "id": user["id"],
        "system_role": user.get("system_role", "user"),
        "exp": datetime.now(timezone.utc) + TOKEN_TTL,
    }
    return jwt.encode(payload, config.JWT_SECRET, algorithm="HS256")


async def get_user_by_id(user_id: str):
    user = await db.users.find_one({"id": user_id})
    if not user:
        logger.warning(f"User not found for id: {user_id}")
    return user


async def get_current_user(token: str = Depends(oauth2_scheme)):
    try:
        payload = jwt.decode(token, config.JWT_SECRET, algorithms=["HS256"])
        user_id = payload.get("id")
        if not user_id:
            logger.error("Invalid token: Missing user id")
            raise HTTPException(status_code=401, detail="Invalid token")
        user = await get_user_by_id(user_id)
        if not user:
            raise HTTPException(status_code=401, detail="User not found")
        return public_profile(user)
    except JWTError as e:
        logger.error(f"JWTError: {str(e)}")
        raise HTTPException(status_code=401, detail="Invalid token")


@router.post("/login/")
async def login(request: LoginRequest):
    logger.info(f"Login attempt for email: {request.email}")
    user = await db.users.find_one({"email": request.email.lower()})

    if not user or not pwd_context.verify(request.password, user["password"]):
        raise HTTPException(status_code=401, detail="Invalid credentials")
    if user.get("disabled"):
        raise HTTPException(status_code=403, detail="Account disabled")

    return {
        "access_token": create_access_token(user),
        "token_type": "bearer",
        "user": public_profile(user)
    }


@router.get("/current-user")
async def get_current_user_endpoint(current_user: dict = Depends(get_current_user)):
    return current_user
