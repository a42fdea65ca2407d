from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..schemas.documents import ScoreCalculateRequest
from ..services.evidence_scoring import recalculate_talent_score
from ..services.profiles import get_talent_for_user, talent_self_view
from ..utils.dependencies import get_current_user
from ..utils.error_handlers import ForbiddenError, ValidationError
from ..utils.roles import talent_only

router = APIRouter(tags=["Talent"])


@router.get("/talent/me")
def get_my_profile(db: Session = Depends(get_db), user=Depends(talent_only)):
    profile = get_talent_for_user(db, user_id=int(user["sub"]))
    return {"success": True, "profile": talent_self_view(profile)}


@router.post("/scores/calculate")
def calculate_score(
    payload: ScoreCalculateRequest,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
):
    """Recompute a talent's evidence score. Admins name the talent; a talent recomputes their own."""
    if user.get("role") == "admin":
        if payload.talent_id is None:
            raise ValidationError("talent_id is required")
        talent_id = payload.talent_id
    elif user.get("role") == "talent":
        own = get_talent_for_user(db, user_id=int(user["sub"]))
        if payload.talent_id is not None and payload.talent_id != own.id:
            raise ForbiddenError("You can only recalculate your own score")
        talent_id = own.id
    else:
        raise ForbiddenError("Talent or admin access only")

    result = recalculate_talent_score(db, talent_id=talent_id)
    return {"success": True, "talent_id": talent_id, "score": result.as_dict()}


@router.get("/scores/me")
def get_my_score(db: Session = Depends(get_db), user=Depends(talent_only)):
    profile = get_talent_for_user(db, user_id=int(user["sub"]))
    view = talent_self_view(profile)
    return {
        "success": True,
        "score": {
            "overall_score": view["overall_score"],
            "qualification_status": view["qualification_status"],
            "criteria_met": view["criteria_met"],
            "evidence_summary": view["evidence_summary"],
            "score_updated_at": view["score_updated_at"],
        },
    }
