"""Profile lookup and the serialisers that enforce contact masking."""
import json
import secrets
from typing import Any

from sqlalchemy.orm import Session

from ..models.document import EvidenceDocument
from ..models.employer_profile import EmployerProfile
from ..models.interest_letter import InterestLetter
from ..models.talent_profile import TalentProfile
from ..utils.error_handlers import NotFoundError

_CODE_ALPHABET = "0123456789ABCDEF"


def generate_candidate_code(db: Session) -> str:
    for _ in range(10):
        code = "O1D-" + "".join(secrets.choice(_CODE_ALPHABET) for _ in range(6))
        if not db.query(TalentProfile.id).filter(TalentProfile.candidate_code == code).first():
            return code
    raise RuntimeError("Could not allocate a unique candidate code")


def get_talent_for_user(db: Session, *, user_id: int) -> TalentProfile:
    profile = db.query(TalentProfile).filter(TalentProfile.user_id == user_id).first()
    if not profile:
        raise NotFoundError("Talent profile not found")
    return profile


def get_employer_for_user(db: Session, *, user_id: int) -> EmployerProfile:
    profile = db.query(EmployerProfile).filter(EmployerProfile.user_id == user_id).first()
    if not profile:
        raise NotFoundError("Employer profile not found")
    return profile


def _loads(raw: str | None, default: Any) -> Any:
    if not raw:
        return default
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return default


def public_talent(profile: TalentProfile, *, reveal_contact: bool) -> dict[str, Any]:
    """Talent as seen by an employer; identity fields only once contact is revealed."""
    out = {
        "id": profile.id,
        "candidate_code": profile.candidate_code,
        "headline": profile.headline,
        "overall_score": profile.overall_score,
        "qualification_status": profile.qualification_status,
        "criteria_met": _loads(profile.criteria_met_json, []),
    }
    if reveal_contact:
        out.update(
            first_name=profile.first_name,
            last_name=profile.last_name,
            email=profile.email,
            phone=profile.phone,
            linkedin_url=profile.linkedin_url,
        )
    return out


def talent_self_view(profile: TalentProfile) -> dict[str, Any]:
    return {
        **public_talent(profile, reveal_contact=True),
        "evidence_summary": _loads(profile.evidence_summary_json, {}),
        "score_updated_at": profile.score_updated_at.isoformat() if profile.score_updated_at else None,
    }


def public_document(d: EvidenceDocument) -> dict[str, Any]:
    return {
        "id": d.id,
        "talent_id": d.talent_id,
        "title": d.title,
        "description": d.description,
        "file_name": d.file_name,
        "content_type": d.content_type,
        "size_bytes": d.size_bytes,
        "category": d.category,
        "score_impact": d.score_impact,
        "confidence": d.confidence,
        "ai_rationale": d.ai_rationale,
        "status": d.status,
        "reviewer_notes": d.reviewer_notes,
        "reviewed_at": d.reviewed_at.isoformat() if d.reviewed_at else None,
        "created_at": d.created_at.isoformat() if d.created_at else None,
    }


def _iso(dt) -> str | None:
    return dt.isoformat() if dt else None


def public_letter(letter: InterestLetter, *, viewer_role: str) -> dict[str, Any]:
    """
    Serialise a letter for `viewer_role`.

    Employers and agencies only see the talent's identity after the signed
    letter was forwarded (contact_revealed_at set). Admins and the talent
    always see it.
    """
    reveal = viewer_role in ("admin", "talent") or letter.contact_revealed_at is not None
    out: dict[str, Any] = {
        "id": letter.id,
        "talent_id": letter.talent_id,
        "employer_id": letter.employer_id,
        "job_id": letter.job_id,
        "application_id": letter.application_id,
        "commitment_level": letter.commitment_level,
        "job_title": letter.job_title,
        "department": letter.department,
        "salary_min": letter.salary_min,
        "salary_max": letter.salary_max,
        "salary_period": letter.salary_period,
        "salary_negotiable": bool(letter.salary_negotiable),
        "engagement_type": letter.engagement_type,
        "work_arrangement": letter.work_arrangement,
        "start_timing": letter.start_timing,
        "duration_years": letter.duration_years,
        "locations": _loads(letter.locations_json, []),
        "duties_description": letter.duties_description,
        "why_o1_required": letter.why_o1_required,
        "status": letter.status,
        "admin_status": letter.admin_status,
        "submitted_at": _iso(letter.submitted_at),
        "sent_at": _iso(letter.sent_at),
        "responded_at": _iso(letter.responded_at),
        "talent_response_message": letter.talent_response_message,
        "signature_status": letter.signature_status,
        "signature_requested_at": _iso(letter.signature_requested_at),
        "signature_completed_at": _iso(letter.signature_completed_at),
        "contact_revealed_at": _iso(letter.contact_revealed_at),
        "created_at": _iso(letter.created_at),
        "company_name": letter.employer.company_name if letter.employer else None,
    }
    if letter.talent is not None:
        out["talent"] = public_talent(letter.talent, reveal_contact=reveal)
    if reveal:
        out["signed_document_url"] = letter.signed_document_url
    if viewer_role == "admin":
        out.update(
            admin_notes=letter.admin_notes,
            admin_reviewed_at=_iso(letter.admin_reviewed_at),
            signature_document_id=letter.signature_document_id,
            signature_data=_loads(letter.signature_data_json, None),
            signature_reviewed_at=_iso(letter.signature_reviewed_at),
        )
    return out
