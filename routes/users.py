# routes/users.py
from datetime import datetime
from fastapi import APIRouter, HTTPException, Depends
from pydantic import BaseModel, Field
from motor.motor_asyncio import AsyncIOMotorClient
from bcrypt import hashpw, gensalt
from pymongo.errors import DuplicateKeyError
from typing import Optional
import logging
import uuid

import config
from models.question import KnowledgeArea, UserRole
from models.user import UserProfile
from services.usage import get_usage
from .auth import create_access_token, get_current_user, public_profile

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

client = AsyncIOMotorClient(config.MONGODB_URI)
db = client[config.DB_NAME]

router = APIRouter(prefix="/api/users", tags=["users"])


class UserCreate(BaseModel):
    name: str = ""
    email: str
    password: str = Field(..., min_length=6)


class ProfileUpdate(BaseModel):
    role: UserRole
    area: KnowledgeArea = KnowledgeArea.NONE
    name: Optional[str] = None


@router.post("/")
async def add_user(user: UserCreate):
    email = user.email.strip().lower()
    logger.info(f"Signing up user: {email}")
    if await db.users.find_one({"email": email}):
        raise HTTPException(status_code=400, detail="Email already registered")

    user_dict = {
        "id": str(uuid.uuid4()),
        "name": user.name,
        "email": email,
        "password": hashpw(user.password.encode("utf-8"), gensalt()).decode("utf-8"),
        "role": None,
        "area": None,
        "system_role": "user",
        "subscription_tier": "free",
        "custom_daily_limit": None,
        "custom_monthly_limit": None,
        "custom_question_limit": None,
        "terms_accepted_at": None,
        "disabled": False,
        "createdAt": datetime.utcnow().isoformat()
    }
    try:
        await db.users.insert_one(user_dict)
    except DuplicateKeyError:
        raise HTTPException(status_code=400, detail="Email already registered")
    logger.info(f"User created: {user_dict['id']}")
    return {"access_token": create_access_token(user_dict), "token_type": "bearer", "user": public_profile(user_dict)}


@router.put("/me/profile")
async def update_profile(update: ProfileUpdate, current_user: dict = Depends(get_current_user)):
    # Directivos and orientadores have no subject area
    area = update.area if update.role == UserRole.DOCENTE_AULA else KnowledgeArea.NONE
    changes = {"role": update.role.value, "area": area.value}
    if update.name:
        changes["name"] = update.name
    logger.info(f"Updating profile for {current_user['id']}: {changes}")
    await db.users.update_one({"id": current_user["id"]}, {"$set": changes})
    return {**current_user, **changes}


@router.post("/me/accept-terms")
async def accept_terms(current_user: dict = Depends(get_current_user)):
    accepted_at = datetime.utcnow().isoformat()
    await db.users.update_one({"id": current_user["id"]}, {"$set": {"terms_accepted_at": accepted_at}})
    return {"terms_accepted_at": accepted_at}


@router.get("/me/usage")
async def get_my_usage(current_user: dict = Depends(get_current_user)):
    profile = UserProfile(**current_user)
    return await get_usage(db.simulations, profile)
