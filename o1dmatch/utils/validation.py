"""
Request field validation shared by the routers.

Every helper normalises its input and raises a 400 HTTPException with a
readable message when the value is unusable.
"""
import re
from typing import Any, Iterable
from fastapi import HTTPException

from ..services.criteria import CATEGORY_KEYS, COMMITMENT_LEVEL_KEYS

EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")
PROMO_CODE_RE = re.compile(r"^[A-Z0-9_-]{2,50}$")

SIGNUP_ROLES = ("talent", "employer", "agency")
DOCUMENT_STATUSES = ("pending", "verified", "needs_review", "rejected")


def _bad_request(detail: str) -> HTTPException:
    return HTTPException(status_code=400, detail=detail)


def _one_of(value: Any, allowed: Iterable[str], label: str, *, required: bool = True) -> str | None:
    """Lower-case `value` and require it to be one of `allowed`."""
    if not value or not isinstance(value, str):
        if required:
            raise _bad_request(f"{label} is required")
        return None

    value = value.strip().lower()
    allowed = tuple(allowed)
    if value not in allowed:
        raise _bad_request(f"Invalid {label.lower()}. Must be one of: {', '.join(allowed)}")
    return value


def validate_email(email: str) -> str:
    if not email or not isinstance(email, str):
        raise _bad_request("Email is required")

    email = email.strip().lower()
    if len(email) > 255:
        raise _bad_request("Email too long (max 255 characters)")
    if not EMAIL_RE.match(email):
        raise _bad_request("Invalid email format")
    return email


def validate_password(password: str) -> None:
    if not password or not isinstance(password, str):
        raise _bad_request("Password is required")
    if not 6 <= len(password) <= 128:
        raise _bad_request("Password must be between 6 and 128 characters")


def validate_string_field(value: Any, field_name: str, max_length: int = 1000, required: bool = True) -> str | None:
    """Strip a free-text field; blank optional values come back as None."""
    if value is not None and not isinstance(value, str):
        raise _bad_request(f"{field_name} must be a string")

    value = (value or "").strip()
    if not value:
        if required:
            raise _bad_request(f"{field_name} is required")
        return None

    if len(value) > max_length:
        raise _bad_request(f"{field_name} must not exceed {max_length} characters")
    return value


def validate_role(role: str) -> str:
    """Self-service signup roles only; admins are provisioned out of band."""
    return _one_of(role, SIGNUP_ROLES, "Role")


def validate_category(category: str | None, *, required: bool = False) -> str | None:
    return _one_of(category, CATEGORY_KEYS, "Category", required=required)


def validate_document_status(status: str | None) -> str | None:
    return _one_of(status, DOCUMENT_STATUSES, "Status", required=False)


def validate_commitment_level(level: str) -> str:
    return _one_of(level, COMMITMENT_LEVEL_KEYS, "Commitment level")


def validate_promo_code(code: str) -> str:
    """Codes are 2-50 chars of upper-case letters, digits, hyphens and underscores."""
    if not code or not isinstance(code, str):
        raise _bad_request("Code is required")

    code = code.strip()
    if not PROMO_CODE_RE.match(code):
        raise _bad_request("Code must be 2-50 characters, uppercase alphanumeric with hyphens/underscores only")
    return code


def sanitize_filename(filename: str) -> str:
    """Flatten an uploaded file name so it cannot escape the upload directory."""
    if not filename:
        raise _bad_request("Filename is required")

    for unsafe in ("/", "\\", ".."):
        filename = filename.replace(unsafe, "_")
    filename = filename.replace("\x00", "").lstrip(".")

    if not filename or filename == "_":
        raise _bad_request("Invalid filename")
    if len(filename) > 255:
        raise _bad_request("Filename too long")
    return filename
