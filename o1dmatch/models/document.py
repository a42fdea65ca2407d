from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class EvidenceDocument(Base):
    __tablename__ = "talent_documents"

    id = Column(Integer, primary_key=True, index=True)
    talent_id = Column(Integer, ForeignKey("talent_profiles.id"), nullable=False, index=True)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Relative path under UPLOAD_DIR (portable across machines)
    file_path = Column(String(500), nullable=True)
    file_name = Column(String(255), nullable=True)
    content_type = Column(String(120), nullable=True)
    size_bytes = Column(Integer, nullable=False, default=0)
    extracted_content = Column(Text, nullable=True)

    # Classification (advisory until an admin verifies the document)
    category = Column(String(50), nullable=True, index=True)
    score_impact = Column(Integer, nullable=False, default=0)
    confidence = Column(String(10), nullable=True)  # high | medium | low
    ai_rationale = Column(Text, nullable=True)

    # Lifecycle: pending -> verified | needs_review | rejected
    status = Column(String(20), nullable=False, default="pending", index=True)
    reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    reviewer_notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())

    talent = relationship("TalentProfile", back_populates="documents")
