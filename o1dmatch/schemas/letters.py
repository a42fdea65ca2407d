from typing import Literal

from pydantic import BaseModel, Field, field_validator


class LetterCreateRequest(BaseModel):
    talent_id: int
    commitment_level: str
    job_id: int | None = None
    application_id: int | None = None
    job_title: str | None = Field(default=None, max_length=255)
    department: str | None = Field(default=None, max_length=255)
    salary_min: int | None = Field(default=None, ge=0)
    salary_max: int | None = Field(default=None, ge=0)
    salary_period: Literal["hour", "month", "year"] = "year"
    salary_negotiable: bool = False
    engagement_type: Literal[
        "full_time", "part_time", "contract_w2", "consulting_1099", "project_based"
    ] = "full_time"
    work_arrangement: Literal["on_site", "hybrid", "remote", "flexible"] = "on_site"
    start_timing: str | None = Field(default=None, max_length=120)
    duration_years: int | None = Field(default=3, ge=0, le=10)
    locations: list[str] = Field(default_factory=list)
    duties_description: str | None = None
    why_o1_required: str | None = None

    @field_validator("salary_max")
    @classmethod
    def _salary_range_ordered(cls, v, info):
        low = info.data.get("salary_min")
        if v is not None and low is not None and v < low:
            raise ValueError("salary_max must be greater than or equal to salary_min")
        return v


class LetterReviewRequest(BaseModel):
    action: Literal["approve", "reject"]
    notes: str | None = Field(default=None, max_length=5000)


class SignatureForwardRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=5000)


class TalentSignatureRequest(BaseModel):
    signer_name: str = Field(min_length=1, max_length=255)
    # Typed name or data URL of a drawn signature.
    signature: str = Field(min_length=1)
    signature_type: Literal["typed", "drawn"] = "typed"


class LetterResponseRequest(BaseModel):
    action: Literal["accept", "decline"]
    message: str | None = Field(default=None, max_length=2000)
