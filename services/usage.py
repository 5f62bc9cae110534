# services/usage.py
import logging
from datetime import datetime, timezone
from typing import Optional

import config
from models.simulation import MODE_MAX_QUESTIONS, ExamConfig
from models.user import UserProfile

# Set up logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class UsageLimitError(Exception):
    def __init__(self, message: str, status_code: int = 429):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


def daily_limit(profile: UserProfile) -> int:
    if profile.custom_daily_limit is not None:
        return profile.custom_daily_limit
    return config.DEFAULT_DAILY_LIMIT


def monthly_limit(profile: UserProfile) -> int:
    if profile.custom_monthly_limit is not None:
        return profile.custom_monthly_limit
    return config.DEFAULT_MONTHLY_LIMIT


def question_limit(profile: UserProfile) -> int:
    if profile.custom_question_limit is not None:
        return profile.custom_question_limit
    return config.PREMIUM_QUESTION_LIMIT if profile.is_premium else config.FREE_QUESTION_LIMIT


def time_budget_seconds(question_count: int) -> int:
    return question_count * config.SECONDS_PER_QUESTION


def period_starts(now: Optional[datetime] = None):
    now = now or datetime.now(timezone.utc)
    start_of_day = now.replace(hour=0, minute=0, second=0, microsecond=0)
    start_of_month = start_of_day.replace(day=1)
    return start_of_day, start_of_month


async def get_usage(simulations, profile: UserProfile, now: Optional[datetime] = None) -> dict:
    """Count the user's stored simulations for today and this month against their limits."""
    start_of_day, start_of_month = period_starts(now)
    daily_used = await simulations.count_documents({"user_id": profile.id, "date": {"$gte": start_of_day}})
    monthly_used = await simulations.count_documents({"user_id": profile.id, "date": {"$gte": start_of_month}})
    return {
        "dailyUsed": daily_used,
        "dailyLimit": daily_limit(profile),
        "monthlyUsed": monthly_used,
        "monthlyLimit": monthly_limit(profile),
        "questionLimit": question_limit(profile),
    }


def check_start_allowed(profile: UserProfile, usage: dict, exam_config: ExamConfig):
    """Raise UsageLimitError if this user may not start the requested exam."""
    mode_cap = MODE_MAX_QUESTIONS[exam_config.mode]
    if exam_config.questionCount > mode_cap:
        raise UsageLimitError(f"El modo {exam_config.mode.value} admite máximo {mode_cap} preguntas.", 400)

    if profile.is_admin:
        return

    max_questions = question_limit(profile)
    if exam_config.questionCount > max_questions:
        raise UsageLimitError(f"Tu límite actual es de {max_questions} preguntas por simulacro.", 403)
    if usage["dailyUsed"] >= usage["dailyLimit"]:
        logger.info(f"User {profile.id} reached the daily limit")
        raise UsageLimitError(f"Has alcanzado tu límite diario de {usage['dailyLimit']} simulacro(s). Vuelve mañana.")
    if usage["monthlyUsed"] >= usage["monthlyLimit"]:
        logger.info(f"User {profile.id} reached the monthly limit")
        raise UsageLimitError(f"Has alcanzado tu límite mensual de {usage['monthlyLimit']} simulacros.")


def effective_force_refresh(profile: UserProfile, exam_config: ExamConfig) -> bool:
    return exam_config.forceRefresh and profile.is_premium
