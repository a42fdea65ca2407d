from typing import Any, Literal

from pydantic import BaseModel, Field


class ScoringSessionCreate(BaseModel):
    visa_type: Literal["O-1A", "O-1B", "P-1A", "EB-1A"] = "O-1A"
    document_type: str | None = Field(default=None, max_length=100)
    beneficiary_name: str | None = Field(default=None, max_length=255)


class ScoringWebhookPayload(BaseModel):
    # e.g. scoring.completed | scoring.failed | scoring.progress
    type: str
    data: dict[str, Any]
