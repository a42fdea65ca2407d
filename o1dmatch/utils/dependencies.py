from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from ..services.letter_workflow import Actor
from .error_handlers import get_error_message
from .jwt import decode_access_token

_bearer = HTTPBearer(auto_error=False)


def get_current_user(credentials: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> dict:
    """Decode the bearer token into its claims (`sub`, `role`)."""
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail=get_error_message("unauthorized"))

    payload = decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub") or not payload.get("role"):
        raise HTTPException(status_code=401, detail=get_error_message("session_expired"))
    return payload


def get_optional_user(credentials: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> dict | None:
    if credentials is None or not credentials.credentials:
        return None
    return decode_access_token(credentials.credentials)


def actor_from_user(user: dict) -> Actor:
    return Actor(user_id=int(user["sub"]), role=str(user["role"]))
