from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..database import Base


class EmployerProfile(Base):
    """Employer or staffing agency sending interest letters."""
    __tablename__ = "employer_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), unique=True, nullable=False)
    kind = Column(String(20), nullable=False, default="employer")  # employer | agency
    company_name = Column(String(255), nullable=False)
    signatory_name = Column(String(255), nullable=True)
    signatory_email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="employer_profile")
    letters = relationship("InterestLetter", back_populates="employer")
