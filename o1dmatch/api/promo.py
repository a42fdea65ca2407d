from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.promo import PromoValidateRequest
from ..services.promo_codes import validate_promo
from ..utils.dependencies import get_optional_user

router = APIRouter(prefix="/promo", tags=["Promo Codes"])


@router.post("/validate")
def validate_promo_code(
    payload: PromoValidateRequest,
    db: Session = Depends(get_db),
    user=Depends(get_optional_user),
):
    """
    Check a promo code. Anonymous callers only get the verdict; a signed-in
    caller that passes also has the redemption recorded.
    """
    user_id = int(user["sub"]) if user and user.get("sub") else None
    user_type = payload.user_type
    if user_type is None and user:
        role = user.get("role")
        user_type = "employer" if role in ("employer", "agency") else role

    result = validate_promo(db, code=payload.code, user_type=user_type, user_id=user_id)
    if not result.valid:
        return {"valid": False, "error": result.error}
    return {"valid": True, "promo": result.promo}
