"""
Interest letter state machine.

Review lifecycle:    draft -> pending_review -> sent | rejected
Talent response:     sent -> accepted | declined
Signature sub-flow:  none -> requested -> sent_to_signer -> viewed -> signed | declined | expired
Admin gate:          signed -> admin_reviewing -> forwarded_to_employer (reveals contact details)

Every transition here is pure: it validates the letter's current state and
returns a Transition describing the field changes plus the side effects to run
after commit. Nothing in this module writes to the database.

`Transition.expected` holds the column values the guard saw. The writer only
applies the changes while the row still has those values, so two concurrent
requests cannot both pass the same guard.
"""
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from ..config import ADMIN_NOTIFICATION_EMAIL
from ..utils.error_handlers import (
    ForbiddenError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from .criteria import get_commitment_level

ADMIN_ROLE = "admin"
EMPLOYER_ROLES = ("employer", "agency")

# Letter statuses a signature may be requested or captured from.
SIGNABLE_LETTER_STATUSES = ("sent", "accepted")
# Signature states an in-app talent signature may be captured from.
TALENT_SIGNABLE_STATES = ("none", "requested", "sent_to_signer", "viewed", "signed")
# A letter signed or under admin review can no longer be declined.
SIGNED_STATES = ("signed", "admin_reviewing", "forwarded_to_employer")
RESPONSE_STATUS = {"accept": "accepted", "decline": "declined"}
# Provider events never move a letter out of these.
ADMIN_LOCKED_STATES = ("admin_reviewing", "forwarded_to_employer")
# Open signature states in order; provider events never regress them.
_PROGRESS_RANK = {"none": 0, "requested": 1, "sent_to_signer": 2, "viewed": 3}

_EVENT_STATUS = {
    "document.sent": "sent_to_signer",
    "document.viewed": "viewed",
    "document.completed": "signed",
    "signer.declined": "declined",
    "document.declined": "declined",
    "document.expired": "expired",
    "document.cancelled": "none",
}


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


@dataclass(frozen=True)
class SideEffect:
    kind: str  # notification | email | activity
    payload: dict[str, Any]


@dataclass
class Transition:
    changes: dict[str, Any] = field(default_factory=dict)
    effects: list[SideEffect] = field(default_factory=list)
    expected: dict[str, Any] = field(default_factory=dict)

    @property
    def is_noop(self) -> bool:
        return not self.changes


@dataclass(frozen=True)
class ProviderEvent:
    """Webhook event from the e-signature provider."""
    event_type: str
    document_id: str | None = None
    signer_email: str | None = None
    signer_name: str | None = None
    completed_pdf_url: str | None = None
    timestamp: str | None = None

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> "ProviderEvent":
        # Providers send either a flat event or {"event": {...}, "data": {...}}.
        event = payload.get("event") if isinstance(payload.get("event"), dict) else {}
        data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
        document = data.get("object") if isinstance(data.get("object"), dict) else {}
        signer = event.get("related_signer") if isinstance(event.get("related_signer"), dict) else {}
        return cls(
            event_type=_text(payload.get("event_type") or event.get("type")) or "",
            document_id=_text(payload.get("document_id") or document.get("id")),
            signer_email=_text(payload.get("signer_email") or signer.get("email")),
            signer_name=_text(payload.get("signer_name") or signer.get("name")),
            completed_pdf_url=_text(payload.get("completed_pdf_url") or document.get("completed_pdf_url")),
            timestamp=_text(payload.get("timestamp") or event.get("time")),
        )


def _text(value: Any) -> str | None:
    # Scalars only; nested objects in a malformed payload are dropped.
    if value is None or isinstance(value, (dict, list)):
        return None
    return str(value)


def notify(*, user_id: int, type: str, title: str, message: str, data: dict | None = None) -> SideEffect:
    return SideEffect("notification", {"user_id": user_id, "type": type, "title": title, "message": message, "data": data or {}})


def email(*, template: str, to: str | None, context: dict[str, Any]) -> SideEffect:
    return SideEffect("email", {"template": template, "to": to, "context": context})


def activity(*, user_id: int | None, action: str, entity_id: int | None, metadata: dict | None = None) -> SideEffect:
    return SideEffect(
        "activity",
        {"user_id": user_id, "action": action, "entity_type": "interest_letter", "entity_id": entity_id, "metadata": metadata or {}},
    )


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _require_admin(actor: Actor) -> None:
    if not actor.is_admin:
        raise ForbiddenError("Admin access only")


def _require_owner(letter: Any, actor: Actor) -> None:
    employer = getattr(letter, "employer", None)
    if actor.role not in EMPLOYER_ROLES or employer is None or employer.user_id != actor.user_id:
        raise ForbiddenError("Only the employer who created this letter can do that")


def _employer_email(employer: Any) -> str | None:
    if employer is None:
        return None
    user = getattr(employer, "user", None)
    return employer.signatory_email or (user.email if user is not None else None)


def _letter_context(letter: Any) -> dict[str, Any]:
    employer = getattr(letter, "employer", None)
    talent = getattr(letter, "talent", None)
    return {
        "letter_id": letter.id,
        "job_title": letter.job_title,
        "company_name": getattr(employer, "company_name", None),
        "candidate_code": getattr(talent, "candidate_code", None),
        "commitment_level": letter.commitment_level,
    }


def _has_signature_data(letter: Any) -> bool:
    return bool((getattr(letter, "signature_data_json", None) or "").strip())


# ------------------------------------------------------------------ review


def create_draft(actor: Actor, *, employer: Any, talent: Any, fields: dict[str, Any]) -> Transition:
    """Changes hold the column values for a new draft letter."""
    if actor.role not in EMPLOYER_ROLES:
        raise ForbiddenError("Employer access only")
    if employer is None:
        raise NotFoundError("Employer profile not found")
    if employer.user_id != actor.user_id:
        raise ForbiddenError("Employer profile does not belong to this account")
    if talent is None:
        raise NotFoundError("Talent profile not found")

    level = fields.get("commitment_level")
    if get_commitment_level(level) is None:
        raise ValidationError(f"Unknown commitment level: {level}")

    changes = dict(fields)
    locations = changes.pop("locations", None)
    changes.update(
        talent_id=talent.id,
        employer_id=employer.id,
        locations_json=json.dumps(list(locations or [])),
        status="draft",
        signature_status="none",
    )
    effects = [
        activity(
            user_id=actor.user_id,
            action="letter_drafted",
            entity_id=None,
            metadata={"talent_id": talent.id, "commitment_level": level},
        )
    ]
    return Transition(changes=changes, effects=effects)


def submit_for_review(letter: Any, actor: Actor, *, now: datetime | None = None) -> Transition:
    _require_owner(letter, actor)
    if letter.status != "draft":
        raise InvalidStateError(f"Only draft letters can be submitted (current status: {letter.status})")

    missing = [
        name
        for name in ("job_title", "duties_description", "why_o1_required")
        if not (getattr(letter, name, None) or "").strip()
    ]
    if missing:
        raise ValidationError("Missing required letter fields", details={"missing": missing})

    ctx = _letter_context(letter)
    return Transition(
        changes={"status": "pending_review", "submitted_at": now or _now()},
        effects=[
            email(template="admin_letter_review", to=ADMIN_NOTIFICATION_EMAIL, context=ctx),
            activity(user_id=actor.user_id, action="letter_submitted_for_review", entity_id=letter.id),
        ],
        expected={"status": "draft"},
    )


def review_letter(
    letter: Any,
    actor: Actor,
    *,
    action: str,
    notes: str | None = None,
    now: datetime | None = None,
) -> Transition:
    """Approve (which also sends) or reject a letter waiting for review. There is no reopen."""
    _require_admin(actor)
    if action not in ("approve", "reject"):
        raise ValidationError("Action must be 'approve' or 'reject'")
    if letter.status != "pending_review":
        raise InvalidStateError(f"Letter is not awaiting review (current status: {letter.status})")

    now = now or _now()
    changes: dict[str, Any] = {
        "admin_reviewed_at": now,
        "admin_reviewed_by": actor.user_id,
        "admin_notes": notes,
    }

    expected = {"status": "pending_review"}
    if action == "reject":
        changes.update(status="rejected", admin_status="rejected")
        return Transition(
            changes=changes,
            effects=[activity(user_id=actor.user_id, action="letter_rejected", entity_id=letter.id, metadata={"notes": notes})],
            expected=expected,
        )

    # "sent" is set together with approval; there is no separate dispatch step.
    changes.update(status="sent", admin_status="approved", sent_at=now)
    talent = letter.talent
    ctx = _letter_context(letter)
    return Transition(
        changes=changes,
        effects=[
            notify(
                user_id=talent.user_id,
                type="letter_received",
                title="New interest letter",
                message=f"{ctx['company_name'] or 'An employer'} sent you an interest letter for {letter.job_title}.",
                data={"letter_id": letter.id},
            ),
            email(template="letter_received", to=talent.email, context={**ctx, "talent_name": talent.full_name}),
            activity(user_id=actor.user_id, action="letter_approved", entity_id=letter.id),
        ],
        expected=expected,
    )


def respond_to_letter(
    letter: Any,
    actor: Actor,
    *,
    action: str,
    message: str | None = None,
    now: datetime | None = None,
) -> Transition:
    """
    Talent accepts or declines a sent letter.

    Accepting does not reveal contact details; that still waits for the
    signed copy to be forwarded.
    """
    talent = getattr(letter, "talent", None)
    if actor.role != "talent" or talent is None or talent.user_id != actor.user_id:
        raise ForbiddenError("Only the addressed talent can respond to this letter")
    new_status = RESPONSE_STATUS.get(action)
    if new_status is None:
        raise ValidationError("Action must be 'accept' or 'decline'")
    if letter.status != "sent":
        raise InvalidStateError(f"Letter has already been responded to (current status: {letter.status})")
    if new_status == "declined" and letter.signature_status in SIGNED_STATES:
        raise InvalidStateError("A signed letter cannot be declined")

    message = (message or "").strip() or None
    employer = letter.employer
    # The employer only knows the candidate code until the contact reveal.
    ctx = {**_letter_context(letter), "accepted": new_status == "accepted", "message": message}
    return Transition(
        changes={"status": new_status, "responded_at": now or _now(), "talent_response_message": message},
        effects=[
            notify(
                user_id=employer.user_id,
                type=f"letter_{new_status}",
                title=f"Interest letter {new_status}",
                message=f"Candidate {talent.candidate_code} {new_status} your interest letter for {letter.job_title}.",
                data={"letter_id": letter.id},
            ),
            email(template="letter_response", to=_employer_email(employer), context=ctx),
            activity(user_id=actor.user_id, action=f"letter_{new_status}", entity_id=letter.id),
        ],
        expected={"status": "sent", "signature_status": letter.signature_status},
    )


# --------------------------------------------------------------- signature


def assert_can_request_signature(letter: Any, actor: Actor) -> None:
    """Guard checked before calling the signature provider."""
    _require_owner(letter, actor)
    if letter.status not in SIGNABLE_LETTER_STATUSES:
        raise InvalidStateError("Only letters approved and sent can be signed")
    if letter.signature_status != "none":
        raise InvalidStateError(f"Signature already in progress (status: {letter.signature_status})")


def request_signature(
    letter: Any,
    actor: Actor,
    *,
    document_id: str,
    now: datetime | None = None,
) -> Transition:
    assert_can_request_signature(letter, actor)
    if not document_id:
        raise ValidationError("Signature provider did not return a document id")
    return Transition(
        changes={
            "signature_status": "requested",
            "signature_document_id": document_id,
            "signature_requested_at": now or _now(),
        },
        effects=[
            activity(user_id=actor.user_id, action="signature_requested", entity_id=letter.id, metadata={"document_id": document_id}),
        ],
        expected={"status": letter.status, "signature_status": "none"},
    )


def apply_signature_event(letter: Any, event: ProviderEvent, *, now: datetime | None = None) -> Transition:
    """
    Map a provider webhook event onto the letter.

    Unknown events and events for letters already in the admin gate yield an
    empty transition. A cancelled document is detached from the letter from
    any other state; every other event only moves an open signature forward.
    """
    current = letter.signature_status or "none"
    if current in ADMIN_LOCKED_STATES:
        return Transition()

    meta = {"document_id": event.document_id, "signer_email": event.signer_email, "signer_name": event.signer_name}
    expected = {"signature_status": letter.signature_status}

    if event.event_type == "signer.signed":
        # One signer done; the document may still be incomplete.
        return Transition(effects=[activity(user_id=None, action="signer_signed", entity_id=letter.id, metadata=meta)])

    target = _EVENT_STATUS.get(event.event_type)
    if target is None:
        return Transition()

    if target == "none":
        return Transition(
            changes={"signature_status": "none", "signature_document_id": None},
            effects=[activity(user_id=None, action="signature_cancelled", entity_id=letter.id, metadata=meta)],
            expected=expected,
        )

    # signed, declined and expired are final for the provider; only open states move.
    if current not in _PROGRESS_RANK:
        return Transition()
    if target in _PROGRESS_RANK and _PROGRESS_RANK[current] >= _PROGRESS_RANK[target]:
        return Transition()

    if target == "signed":
        now = now or _now()
        signature_data = {
            "source": "provider",
            "document_id": event.document_id,
            "signer_email": event.signer_email,
            "signer_name": event.signer_name,
            "completed_pdf_url": event.completed_pdf_url,
            "completed_at": event.timestamp or now.isoformat(),
        }
        return Transition(
            changes={
                "signature_status": "signed",
                "signed_document_url": event.completed_pdf_url,
                "signature_completed_at": now,
                "signature_data_json": json.dumps(signature_data, sort_keys=True),
            },
            effects=[
                activity(
                    user_id=None,
                    action="letter_signed",
                    entity_id=letter.id,
                    metadata={"document_id": event.document_id, "signed_document_url": event.completed_pdf_url},
                )
            ],
            expected=expected,
        )

    effects = []
    if target == "declined":
        effects.append(activity(user_id=None, action="signer_declined", entity_id=letter.id, metadata=meta))
    return Transition(changes={"signature_status": target}, effects=effects, expected=expected)


def submit_talent_signature(
    letter: Any,
    actor: Actor,
    *,
    signer_name: str,
    signature: str,
    signature_type: str = "typed",
    now: datetime | None = None,
) -> Transition:
    """Talent signs in-app; the letter goes straight to admin review."""
    talent = getattr(letter, "talent", None)
    if actor.role != "talent" or talent is None or talent.user_id != actor.user_id:
        raise ForbiddenError("Only the addressed talent can sign this letter")
    if letter.status not in SIGNABLE_LETTER_STATUSES:
        raise InvalidStateError("Only letters approved and sent can be signed")
    if letter.signature_status not in TALENT_SIGNABLE_STATES:
        raise InvalidStateError(f"Letter cannot be signed (signature status: {letter.signature_status})")
    if not (signer_name or "").strip() or not (signature or "").strip():
        raise ValidationError("Signer name and signature are required")

    now = now or _now()
    signature_data = {
        "source": "in_app",
        "signer_name": signer_name.strip(),
        "signature_type": signature_type,
        "signature": signature,
        "signed_at": now.isoformat(),
    }
    return Transition(
        changes={
            "signature_status": "admin_reviewing",
            "signature_data_json": json.dumps(signature_data, sort_keys=True),
            "signature_completed_at": now,
        },
        effects=[
            email(template="admin_signature_review", to=ADMIN_NOTIFICATION_EMAIL, context=_letter_context(letter)),
            activity(user_id=actor.user_id, action="talent_signed_letter", entity_id=letter.id),
        ],
        expected={"status": letter.status, "signature_status": letter.signature_status},
    )


def begin_signature_review(letter: Any, actor: Actor) -> Transition:
    _require_admin(actor)
    if letter.signature_status != "signed":
        raise InvalidStateError(f"Letter is not signed (signature status: {letter.signature_status})")
    if not _has_signature_data(letter):
        raise InvalidStateError("No captured signature to review")
    return Transition(
        changes={"signature_status": "admin_reviewing"},
        effects=[activity(user_id=actor.user_id, action="signature_review_started", entity_id=letter.id)],
        expected={"signature_status": "signed"},
    )


def forward_to_employer(
    letter: Any,
    actor: Actor,
    *,
    notes: str | None = None,
    now: datetime | None = None,
) -> Transition:
    """Release the signed letter to the employer and reveal the talent's contact details."""
    _require_admin(actor)
    if letter.signature_status != "admin_reviewing":
        raise InvalidStateError(
            f"Letter must be under signature review to forward (signature status: {letter.signature_status})"
        )
    if not _has_signature_data(letter):
        raise InvalidStateError("No captured signature to forward")

    now = now or _now()
    changes: dict[str, Any] = {
        "signature_status": "forwarded_to_employer",
        "signature_reviewed_at": now,
        "signature_reviewed_by": actor.user_id,
    }
    if letter.contact_revealed_at is None:
        changes["contact_revealed_at"] = now
    if notes and notes.strip():
        entry = f"[Signature Review] {notes.strip()}"
        changes["admin_notes"] = f"{letter.admin_notes}\n\n{entry}" if letter.admin_notes else entry

    employer = letter.employer
    talent = letter.talent
    ctx = {**_letter_context(letter), "talent_name": talent.full_name, "talent_email": talent.email}
    return Transition(
        changes=changes,
        effects=[
            email(template="signed_letter_forwarded", to=_employer_email(employer), context=ctx),
            notify(
                user_id=employer.user_id,
                type="letter_signed",
                title="Signed interest letter",
                message=f"{talent.full_name or talent.candidate_code} signed your interest letter for {letter.job_title}.",
                data={"letter_id": letter.id},
            ),
            activity(user_id=actor.user_id, action="signature_forwarded_to_employer", entity_id=letter.id),
        ],
        expected={"signature_status": "admin_reviewing"},
    )
