from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class TalentProfile(Base):
    __tablename__ = "talent_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    # Public display code shown to employers before contact reveal (e.g. O1D-4F2A9C)
    candidate_code = Column(String(20), unique=True, index=True, nullable=False)
    first_name = Column(String(120), nullable=True)
    last_name = Column(String(120), nullable=True)
    email = Column(String(255), index=True, nullable=False)
    phone = Column(String(50), nullable=True)
    linkedin_url = Column(String(500), nullable=True)
    headline = Column(String(255), nullable=True)

    # Derived by the evidence scoring engine; never written elsewhere.
    overall_score = Column(Integer, nullable=False, default=0)  # 0-100
    qualification_status = Column(String(50), nullable=False, default="early_stage")
    criteria_met_json = Column(Text, nullable=True)  # JSON list of category keys
    evidence_summary_json = Column(Text, nullable=True)  # JSON object keyed by category
    score_updated_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="talent_profile")
    documents = relationship("EvidenceDocument", back_populates="talent", cascade="all, delete-orphan")
    letters = relationship("InterestLetter", back_populates="talent")

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()
