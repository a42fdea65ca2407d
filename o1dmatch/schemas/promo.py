from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field


PromoType = Literal["trial", "discount", "igta_verification", "membership"]
UserType = Literal["talent", "employer", "both"]


class PromoCodeCreate(BaseModel):
    code: str
    type: PromoType
    description: str | None = None
    trial_days: int | None = Field(default=None, ge=0, le=365)
    discount_percent: int | None = Field(default=None, ge=0, le=100)
    applicable_tier: str | None = None
    applicable_user_type: UserType = "both"
    max_uses: int | None = Field(default=None, ge=1)
    max_uses_per_user: int | None = Field(default=1, ge=1)
    valid_from: datetime | None = None
    valid_until: datetime | None = None


class PromoCodeToggle(BaseModel):
    is_active: bool


class PromoValidateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    user_type: Literal["talent", "employer"] | None = None
