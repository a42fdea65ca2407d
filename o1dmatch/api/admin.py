from datetime import datetime, timezone
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.document import EvidenceDocument
from ..models.interest_letter import InterestLetter
from ..schemas.documents import DocumentVerifyRequest
from ..schemas.letters import LetterReviewRequest, SignatureForwardRequest
from ..schemas.promo import PromoCodeCreate, PromoCodeToggle
from ..services import letter_workflow as wf
from ..services import promo_codes
from ..services.criteria import get_category
from ..services.evidence_scoring import recalculate_talent_score
from ..services.profiles import public_document, public_letter
from ..services.side_effects import apply_transition, log_activity
from ..utils.dependencies import actor_from_user
from ..utils.error_handlers import NotFoundError, ValidationError, get_error_message, handle_database_error
from ..utils.roles import admin_only
from ..utils.validation import validate_category, validate_promo_code
from .letters import load_letter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["Admin"])

_LETTER_STATUSES = ("draft", "pending_review", "sent", "rejected", "accepted", "declined")
_DOC_ACTION_STATUS = {"verify": "verified", "reject": "rejected", "needs_review": "needs_review"}


# ---------------------------------------------------------------- documents


@router.post("/documents/verify")
def verify_document(
    payload: DocumentVerifyRequest,
    db: Session = Depends(get_db),
    user=Depends(admin_only),
):
    doc = db.query(EvidenceDocument).filter(EvidenceDocument.id == payload.document_id).first()
    if not doc:
        raise NotFoundError(get_error_message("document_not_found"))

    category_key = validate_category(payload.category) or doc.category
    if payload.action == "verify":
        category = get_category(category_key)
        if category is None:
            raise ValidationError("A category is required to verify a document")
        impact = payload.score_impact if payload.score_impact is not None else doc.score_impact
        doc.category = category.key
        doc.score_impact = max(0, min(int(impact or 0), category.max_score))
    elif category_key:
        doc.category = category_key

    doc.status = _DOC_ACTION_STATUS[payload.action]
    doc.reviewed_by = int(user["sub"])
    doc.reviewed_at = datetime.now(timezone.utc)
    doc.reviewer_notes = payload.notes
    try:
        db.commit()
        db.refresh(doc)
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "verifying document")

    # Verification status feeds the score either way (e.g. un-verifying via reject).
    result = recalculate_talent_score(db, talent_id=doc.talent_id)

    try:
        log_activity(
            db,
            user_id=int(user["sub"]),
            action=f"document_{doc.status}",
            entity_type="talent_document",
            entity_id=doc.id,
            metadata={"category": doc.category, "score_impact": doc.score_impact},
        )
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning("Failed to log review of document %s: %s", doc.id, e)

    return {"success": True, "document": public_document(doc), "score": result.as_dict()}


# ------------------------------------------------------------------ letters


@router.get("/letters")
def list_letters(status: str | None = None, db: Session = Depends(get_db), user=Depends(admin_only)):
    q = db.query(InterestLetter)
    if status:
        if status not in _LETTER_STATUSES:
            raise HTTPException(
                status_code=400,
                detail=f"Invalid status. Must be one of: {', '.join(_LETTER_STATUSES)}",
            )
        q = q.filter(InterestLetter.status == status)
    rows = q.order_by(InterestLetter.created_at.desc(), InterestLetter.id.desc()).all()
    return {"success": True, "letters": [public_letter(r, viewer_role="admin") for r in rows]}


@router.post("/letters/{letter_id}/review")
def review_letter(
    letter_id: int,
    payload: LetterReviewRequest,
    db: Session = Depends(get_db),
    user=Depends(admin_only),
):
    actor = actor_from_user(user)
    letter = load_letter(db, letter_id)
    transition = wf.review_letter(letter, actor, action=payload.action, notes=payload.notes)
    apply_transition(db, letter, transition)
    logger.info("Letter %s %sd by admin %s", letter.id, payload.action, actor.user_id)
    return {"success": True, "letter": public_letter(letter, viewer_role="admin")}


@router.post("/letters/{letter_id}/signature-review")
def begin_signature_review(letter_id: int, db: Session = Depends(get_db), user=Depends(admin_only)):
    actor = actor_from_user(user)
    letter = load_letter(db, letter_id)
    apply_transition(db, letter, wf.begin_signature_review(letter, actor))
    return {"success": True, "letter": public_letter(letter, viewer_role="admin")}


@router.post("/letters/{letter_id}/forward-signature")
def forward_signature(
    letter_id: int,
    payload: SignatureForwardRequest | None = None,
    db: Session = Depends(get_db),
    user=Depends(admin_only),
):
    actor = actor_from_user(user)
    letter = load_letter(db, letter_id)
    transition = wf.forward_to_employer(letter, actor, notes=payload.notes if payload else None)
    apply_transition(db, letter, transition)
    logger.info("Letter %s forwarded to employer by admin %s", letter.id, actor.user_id)
    return {"success": True, "letter": public_letter(letter, viewer_role="admin")}


# -------------------------------------------------------------- promo codes


@router.get("/promo-codes")
def list_promo_codes(db: Session = Depends(get_db), user=Depends(admin_only)):
    return {"success": True, "promo_codes": [promo_codes.public_promo(p) for p in promo_codes.list_promo_codes(db)]}


@router.post("/promo-codes", status_code=201)
def create_promo_code(payload: PromoCodeCreate, db: Session = Depends(get_db), user=Depends(admin_only)):
    code = validate_promo_code(payload.code)
    promo = promo_codes.create_promo_code(
        db,
        code=code,
        type=payload.type,
        description=payload.description,
        trial_days=payload.trial_days,
        discount_percent=payload.discount_percent,
        applicable_tier=payload.applicable_tier,
        applicable_user_type=payload.applicable_user_type,
        max_uses=payload.max_uses,
        max_uses_per_user=payload.max_uses_per_user,
        valid_from=payload.valid_from,
        valid_until=payload.valid_until,
    )
    return {"success": True, "promo_code": promo_codes.public_promo(promo)}


@router.patch("/promo-codes/{promo_id}")
def toggle_promo_code(
    promo_id: int,
    payload: PromoCodeToggle,
    db: Session = Depends(get_db),
    user=Depends(admin_only),
):
    promo = promo_codes.set_promo_active(db, promo_id=promo_id, is_active=payload.is_active)
    return {"success": True, "promo_code": promo_codes.public_promo(promo)}


@router.delete("/promo-codes/{promo_id}")
def delete_promo_code(promo_id: int, db: Session = Depends(get_db), user=Depends(admin_only)):
    promo_codes.delete_promo_code(db, promo_id=promo_id)
    return {"success": True}
