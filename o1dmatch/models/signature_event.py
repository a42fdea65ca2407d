from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class SignatureEvent(Base):
    """Verbatim audit trail of e-signature provider webhooks."""
    __tablename__ = "signature_events"

    id = Column(Integer, primary_key=True, index=True)
    letter_id = Column(Integer, ForeignKey("interest_letters.id"), nullable=False, index=True)
    document_id = Column(String(120), nullable=False)
    event_type = Column(String(64), nullable=False)
    signer_email = Column(String(255), nullable=True)
    signer_name = Column(String(255), nullable=True)
    payload_json = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    letter = relationship("InterestLetter", back_populates="signature_events")
