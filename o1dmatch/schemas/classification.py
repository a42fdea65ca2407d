from pydantic import BaseModel, Field, model_validator


class ClassifyRequest(BaseModel):
    content: str | None = None
    title: str | None = Field(default=None, max_length=255)
    description: str | None = None

    @model_validator(mode="after")
    def _needs_content_or_title(self):
        if not (self.content or "").strip() and not (self.title or "").strip():
            raise ValueError("Content or title is required")
        return self


class ClassificationResult(BaseModel):
    category: str
    category_name: str
    confidence: str
    rationale: str = ""
    score_impact: int
    provider: str | None = None
    fallback: bool = False
