# routes/performance.py
from fastapi import APIRouter, Depends
from motor.motor_asyncio import AsyncIOMotorClient

import config
from services.scoring import summarize_history
from .auth import get_current_user

client = AsyncIOMotorClient(config.MONGODB_URI)
db = client[config.DB_NAME]

router = APIRouter(prefix="/api/performance", tags=["performance"])


async def load_history(user_id: str, limit: int = None) -> list:
    cursor = db.simulations.find({"user_id": user_id}).sort("date", -1)
    if limit:
        cursor = cursor.limit(limit)
    return await cursor.to_list(None)


@router.get("/me")
async def analyze_me(current_user: dict = Depends(get_current_user)):
    history = await load_history(current_user["id"])
    summary = summarize_history(history)

    # Oldest first, for charting
    trend = [
        {
            "date": h.get("date"),
            "score": round(h.get("score", 0)),
            "mode": h.get("mode"),
            "competency": h.get("targetCompetency") or "General",
        }
        for h in reversed(history)
    ]

    return {
        "userId": current_user["id"],
        **summary.model_dump(),
        "trend": trend
    }
