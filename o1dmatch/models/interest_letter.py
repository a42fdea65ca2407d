from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class InterestLetter(Base):
    __tablename__ = "interest_letters"

    id = Column(Integer, primary_key=True, index=True)
    talent_id = Column(Integer, ForeignKey("talent_profiles.id"), nullable=False, index=True)
    employer_id = Column(Integer, ForeignKey("employer_profiles.id"), nullable=False, index=True)
    job_id = Column(Integer, nullable=True)
    application_id = Column(Integer, nullable=True)

    # Letter content
    commitment_level = Column(String(40), nullable=False)
    job_title = Column(String(255), nullable=True)
    department = Column(String(255), nullable=True)
    salary_min = Column(Integer, nullable=True)
    salary_max = Column(Integer, nullable=True)
    salary_period = Column(String(20), nullable=False, default="year")
    salary_negotiable = Column(Boolean, nullable=False, default=False)
    engagement_type = Column(String(40), nullable=False, default="full_time")
    work_arrangement = Column(String(40), nullable=False, default="on_site")
    start_timing = Column(String(120), nullable=True)
    duration_years = Column(Integer, nullable=True, default=3)
    locations_json = Column(Text, nullable=True)  # JSON string list
    duties_description = Column(Text, nullable=True)
    why_o1_required = Column(Text, nullable=True)

    # Review lifecycle: draft -> pending_review -> sent | rejected
    status = Column(String(32), nullable=False, default="draft", index=True)
    admin_status = Column(String(32), nullable=True)  # approved | rejected
    admin_notes = Column(Text, nullable=True)
    admin_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    admin_reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    sent_at = Column(DateTime(timezone=True), nullable=True)

    # Talent response: sent -> accepted | declined
    responded_at = Column(DateTime(timezone=True), nullable=True)
    talent_response_message = Column(Text, nullable=True)

    # Signature sub-flow:
    # none -> requested -> sent_to_signer -> viewed -> signed | declined | expired
    # signed -> admin_reviewing -> forwarded_to_employer
    signature_status = Column(String(32), nullable=False, default="none", index=True)
    signature_document_id = Column(String(120), nullable=True, index=True)
    signature_requested_at = Column(DateTime(timezone=True), nullable=True)
    signed_document_url = Column(String(1000), nullable=True)
    signature_completed_at = Column(DateTime(timezone=True), nullable=True)
    signature_data_json = Column(Text, nullable=True)
    signature_reviewed_at = Column(DateTime(timezone=True), nullable=True)
    signature_reviewed_by = Column(Integer, ForeignKey("users.id"), nullable=True)

    # Set once when the signed copy is forwarded; gates talent contact details.
    contact_revealed_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    talent = relationship("TalentProfile", back_populates="letters")
    employer = relationship("EmployerProfile", back_populates="letters")
    signature_events = relationship("SignatureEvent", back_populates="letter", cascade="all, delete-orphan")
