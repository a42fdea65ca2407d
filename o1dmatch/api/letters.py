import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.interest_letter import InterestLetter
from ..models.talent_profile import TalentProfile
from ..schemas.letters import LetterCreateRequest, LetterResponseRequest, TalentSignatureRequest
from ..services import letter_workflow as wf
from ..services import signature_client
from ..services.letter_templates import render_letter_body, render_signature_html
from ..services.profiles import get_employer_for_user, get_talent_for_user, public_letter
from ..services.side_effects import apply_transition, run_side_effects
from ..utils.dependencies import actor_from_user, get_current_user
from ..utils.error_handlers import (
    ForbiddenError,
    NotFoundError,
    ValidationError,
    get_error_message,
    handle_database_error,
)
from ..utils.roles import employer_only, talent_only
from ..utils.validation import validate_commitment_level

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/letters", tags=["Interest Letters"])

# Talent only ever sees letters an admin approved, including ones they answered.
TALENT_VISIBLE_STATUSES = ("sent", "accepted", "declined")


def load_letter(db: Session, letter_id: int) -> InterestLetter:
    letter = db.query(InterestLetter).filter(InterestLetter.id == letter_id).first()
    if not letter:
        raise NotFoundError(get_error_message("letter_not_found"))
    return letter


def _can_view(letter: InterestLetter, user: dict) -> bool:
    role = user.get("role")
    uid = int(user["sub"])
    if role == "admin":
        return True
    if role in wf.EMPLOYER_ROLES:
        return letter.employer is not None and letter.employer.user_id == uid
    if role == "talent":
        return (
            letter.talent is not None
            and letter.talent.user_id == uid
            and letter.status in TALENT_VISIBLE_STATUSES
        )
    return False


@router.post("", status_code=201)
def create_letter(
    payload: LetterCreateRequest,
    db: Session = Depends(get_db),
    user=Depends(employer_only),
):
    actor = actor_from_user(user)
    employer = get_employer_for_user(db, user_id=actor.user_id)
    talent = db.query(TalentProfile).filter(TalentProfile.id == payload.talent_id).first()

    fields = payload.model_dump(exclude={"talent_id"})
    fields["commitment_level"] = validate_commitment_level(payload.commitment_level)
    transition = wf.create_draft(actor, employer=employer, talent=talent, fields=fields)

    letter = InterestLetter(**transition.changes)
    try:
        db.add(letter)
        db.commit()
        db.refresh(letter)
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "creating interest letter")

    run_side_effects(db, transition.effects, entity_id=letter.id)
    return {"success": True, "letter": public_letter(letter, viewer_role=actor.role)}


@router.get("/mine")
def list_my_letters(db: Session = Depends(get_db), user=Depends(get_current_user)):
    role = user.get("role")
    uid = int(user["sub"])
    q = db.query(InterestLetter)
    if role in wf.EMPLOYER_ROLES:
        employer = get_employer_for_user(db, user_id=uid)
        q = q.filter(InterestLetter.employer_id == employer.id)
    elif role == "talent":
        talent = get_talent_for_user(db, user_id=uid)
        q = q.filter(
            InterestLetter.talent_id == talent.id,
            InterestLetter.status.in_(TALENT_VISIBLE_STATUSES),
        )
    else:
        raise ForbiddenError("Talent or employer access only")

    rows = q.order_by(InterestLetter.created_at.desc(), InterestLetter.id.desc()).all()
    return {"success": True, "letters": [public_letter(r, viewer_role=role) for r in rows]}


@router.get("/{letter_id}")
def get_letter(letter_id: int, db: Session = Depends(get_db), user=Depends(get_current_user)):
    letter = load_letter(db, letter_id)
    if not _can_view(letter, user):
        # Same response as a missing letter so ids can't be enumerated.
        raise NotFoundError(get_error_message("letter_not_found"))
    return {"success": True, "letter": public_letter(letter, viewer_role=user.get("role"))}


@router.post("/{letter_id}/submit")
def submit_letter(letter_id: int, db: Session = Depends(get_db), user=Depends(employer_only)):
    actor = actor_from_user(user)
    letter = load_letter(db, letter_id)
    transition = wf.submit_for_review(letter, actor)
    apply_transition(db, letter, transition)
    logger.info("Letter %s submitted for review by user %s", letter.id, actor.user_id)
    return {"success": True, "letter": public_letter(letter, viewer_role=actor.role)}


@router.post("/{letter_id}/signature")
async def request_letter_signature(letter_id: int, db: Session = Depends(get_db), user=Depends(employer_only)):
    actor = actor_from_user(user)
    letter = load_letter(db, letter_id)
    wf.assert_can_request_signature(letter, actor)

    employer = letter.employer
    talent = letter.talent
    employer_name = employer.signatory_name or employer.company_name
    employer_email = employer.signatory_email or (employer.user.email if employer.user else None)
    if not employer_email:
        raise ValidationError("Employer signatory email not configured")
    if not talent.email:
        raise ValidationError("Talent email not found")

    talent_name = talent.full_name or "Talent"
    body = render_letter_body(letter, talent_name=talent_name)
    document = await signature_client.create_document(
        letter_id=letter.id,
        title=f"Interest Letter - {letter.job_title or 'Position'}",
        html_content=render_signature_html(body=body, employer_name=employer_name, talent_name=talent_name),
        employer_name=employer_name,
        employer_email=employer_email,
        talent_name=talent_name,
        talent_email=talent.email,
    )

    transition = wf.request_signature(letter, actor, document_id=str(document["id"]))
    apply_transition(db, letter, transition)
    return {
        "success": True,
        "data": {
            "document_id": letter.signature_document_id,
            "status": letter.signature_status,
            "signers": document.get("signers") or [],
        },
    }


@router.post("/{letter_id}/talent-signature")
def sign_letter_as_talent(
    letter_id: int,
    payload: TalentSignatureRequest,
    db: Session = Depends(get_db),
    user=Depends(talent_only),
):
    actor = actor_from_user(user)
    letter = load_letter(db, letter_id)
    transition = wf.submit_talent_signature(
        letter,
        actor,
        signer_name=payload.signer_name,
        signature=payload.signature,
        signature_type=payload.signature_type,
    )
    apply_transition(db, letter, transition)
    return {"success": True, "letter": public_letter(letter, viewer_role=actor.role)}


@router.post("/{letter_id}/respond")
def answer_letter(
    letter_id: int,
    payload: LetterResponseRequest,
    db: Session = Depends(get_db),
    user=Depends(talent_only),
):
    actor = actor_from_user(user)
    letter = load_letter(db, letter_id)
    if not _can_view(letter, user):
        raise NotFoundError(get_error_message("letter_not_found"))

    transition = wf.respond_to_letter(letter, actor, action=payload.action, message=payload.message)
    apply_transition(db, letter, transition)
    logger.info("Letter %s %s by talent user %s", letter.id, letter.status, actor.user_id)
    return {"success": True, "letter": public_letter(letter, viewer_role=actor.role)}
