# models/user.py
from pydantic import BaseModel, Field
from typing import Literal, Optional

from models.question import KnowledgeArea, UserRole


class UserProfile(BaseModel):
    id: str
    name: Optional[str] = ""
    email: str
    role: Optional[UserRole] = None  # Set during onboarding
    area: Optional[KnowledgeArea] = None
    system_role: Literal["user", "admin"] = "user"
    subscription_tier: Literal["free", "premium"] = "free"
    custom_daily_limit: Optional[int] = Field(default=None, ge=0)
    custom_monthly_limit: Optional[int] = Field(default=None, ge=0)
    custom_question_limit: Optional[int] = Field(default=None, ge=1)
    terms_accepted_at: Optional[str] = None
    createdAt: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.system_role == "admin"

    @property
    def is_premium(self) -> bool:
        return self.subscription_tier == "premium" or self.is_admin

    @property
    def onboarded(self) -> bool:
        return self.role is not None and self.area is not None
