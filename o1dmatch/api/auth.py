from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from ..database import get_db
from ..models.employer_profile import EmployerProfile
from ..models.talent_profile import TalentProfile
from ..models.user import User
from ..services.profiles import generate_candidate_code
from ..utils.jwt import create_access_token
from ..utils.security import hash_password, verify_password
from ..utils.validation import validate_email, validate_password, validate_role, validate_string_field
from ..utils.error_handlers import get_error_message, handle_database_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["Auth"])


class SignupRequest(BaseModel):
    email: str
    password: str
    role: str  # talent / employer / agency
    name: str | None = None
    company_name: str | None = None  # employer / agency only


class LoginRequest(BaseModel):
    email: str
    password: str
    role: str | None = None  # optional role gate (frontend-selected role)


def _split_name(name: str | None, email: str) -> tuple[str, str | None]:
    parts = (name or "").strip().split(None, 1)
    if not parts:
        return email.split("@", 1)[0], None
    return parts[0], (parts[1] if len(parts) > 1 else None)


def _create_profile(db: Session, *, user: User, payload: SignupRequest) -> None:
    if user.role == "talent":
        first_name, last_name = _split_name(payload.name, user.email)
        db.add(
            TalentProfile(
                user_id=user.id,
                candidate_code=generate_candidate_code(db),
                first_name=first_name,
                last_name=last_name,
                email=user.email,
            )
        )
    else:
        company = validate_string_field(payload.company_name, "Company name", max_length=255, required=False)
        db.add(
            EmployerProfile(
                user_id=user.id,
                kind=user.role,
                company_name=company or payload.name or user.email.split("@", 1)[0],
                signatory_name=payload.name,
                signatory_email=user.email,
            )
        )


@router.post("/signup")
def signup(payload: SignupRequest, db: Session = Depends(get_db)):
    email = validate_email(payload.email)
    validate_password(payload.password)
    role = validate_role(payload.role)

    try:
        existing = db.query(User).filter(User.email == email).first()
    except SQLAlchemyError as e:
        raise handle_database_error(e, "checking existing user")
    if existing:
        raise HTTPException(status_code=400, detail=get_error_message("email_exists"))

    try:
        hashed = hash_password(payload.password)
    except ValueError:
        raise HTTPException(status_code=400, detail=get_error_message("weak_password"))

    user = User(name=payload.name, email=email, password=hashed, role=role)
    try:
        db.add(user)
        db.flush()
        # User and profile are committed together so a talent never exists without a profile.
        _create_profile(db, user=user, payload=payload)
        db.commit()
        db.refresh(user)
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "creating user")

    token = create_access_token({"sub": str(user.id), "role": user.role})
    logger.info("User signed up id=%s role=%s", user.id, user.role)

    return {
        "message": "User created successfully",
        "user": {"id": user.id, "email": user.email, "role": user.role},
        "access_token": token,
        "token_type": "bearer",
    }


@router.post("/login")
def login(payload: LoginRequest, db: Session = Depends(get_db)):
    email = validate_email(payload.email)
    if not payload.password:
        raise HTTPException(status_code=400, detail="Password is required")

    try:
        user = db.query(User).filter(User.email == email).first()
    except SQLAlchemyError as e:
        raise handle_database_error(e, "login")

    if not user or not verify_password(payload.password, user.password):
        raise HTTPException(status_code=401, detail=get_error_message("invalid_credentials"))

    if payload.role and user.role != payload.role:
        raise HTTPException(
            status_code=403,
            detail="Role mismatch. Please select the correct account type.",
        )

    token = create_access_token({"sub": str(user.id), "role": user.role})
    return {
        "access_token": token,
        "token_type": "bearer",
        "user": {"id": user.id, "email": user.email, "role": user.role},
    }


@router.post("/logout")
def logout():
    return {"message": "Logged out successfully"}
