from typing import Literal

from pydantic import BaseModel, Field


class DocumentVerifyRequest(BaseModel):
    document_id: int
    action: Literal["verify", "reject", "needs_review"]
    # Admin override of the advisory classification.
    category: str | None = None
    score_impact: int | None = Field(default=None, ge=0)
    notes: str | None = Field(default=None, max_length=5000)


class ScoreCalculateRequest(BaseModel):
    talent_id: int | None = None
