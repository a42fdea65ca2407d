from sqlalchemy import Column, DateTime, Float, ForeignKey, Integer, String, Text
from sqlalchemy.sql import func

from ..database import Base


class ScoringSession(Base):
    """Session on the external petition-scoring service (not the in-house evidence engine)."""
    __tablename__ = "scoring_sessions"

    id = Column(Integer, primary_key=True, index=True)
    session_id = Column(String(120), unique=True, nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    visa_type = Column(String(20), nullable=False, default="O-1A")

    # Lifecycle: queued -> processing -> completed | failed
    status = Column(String(20), nullable=False, default="queued", index=True)
    progress = Column(Integer, nullable=False, default=0)

    # Summary fields extracted from the completed report
    overall_score = Column(Integer, nullable=True)
    overall_rating = Column(String(50), nullable=True)
    approval_probability = Column(Float, nullable=True)
    rfe_probability = Column(Float, nullable=True)
    denial_risk = Column(String(50), nullable=True)

    report_json = Column(Text, nullable=True)  # completed results, persisted verbatim
    api_response_json = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
