import json
from types import SimpleNamespace

import pytest

from o1dmatch.services import letter_workflow as wf
from o1dmatch.utils.error_handlers import ForbiddenError, InvalidStateError, ValidationError

ADMIN = wf.Actor(user_id=1, role="admin")
EMPLOYER = wf.Actor(user_id=2, role="employer")
TALENT = wf.Actor(user_id=3, role="talent")


def _letter(**overrides):
    base = dict(
        id=10,
        status="pending_review",
        admin_notes=None,
        commitment_level="intent_to_engage",
        job_title="Staff Engineer",
        duties_description="Lead the platform team.",
        why_o1_required="Extraordinary ability.",
        signature_status="none",
        signature_data_json=None,
        contact_revealed_at=None,
        employer=SimpleNamespace(id=5, user_id=2, company_name="Acme", signatory_email="hr@acme.test", user=None),
        talent=SimpleNamespace(id=7, user_id=3, email="ada@example.com", full_name="Ada Lovelace", candidate_code="O1D-ABC123"),
    )
    base.update(overrides)
    return SimpleNamespace(**base)


def _apply(letter, transition):
    for name, value in transition.changes.items():
        setattr(letter, name, value)
    return letter


def test_approve_sends_and_queues_effects():
    letter = _letter()
    t = wf.review_letter(letter, ADMIN, action="approve", notes="Looks good")

    assert t.changes["status"] == "sent"
    assert t.changes["admin_status"] == "approved"
    assert t.changes["sent_at"] is not None
    kinds = [e.kind for e in t.effects]
    assert kinds == ["notification", "email", "activity"]
    assert t.effects[0].payload["user_id"] == 3


def test_second_approval_is_rejected():
    letter = _apply(_letter(), wf.review_letter(_letter(), ADMIN, action="approve"))
    with pytest.raises(InvalidStateError):
        wf.review_letter(letter, ADMIN, action="approve")


def test_review_requires_admin():
    with pytest.raises(ForbiddenError):
        wf.review_letter(_letter(), EMPLOYER, action="approve")


def test_submit_requires_owner_draft_and_fields():
    with pytest.raises(ForbiddenError):
        wf.submit_for_review(_letter(status="draft"), wf.Actor(user_id=99, role="employer"))
    with pytest.raises(InvalidStateError):
        wf.submit_for_review(_letter(status="sent"), EMPLOYER)
    with pytest.raises(ValidationError) as exc:
        wf.submit_for_review(_letter(status="draft", why_o1_required="  "), EMPLOYER)
    assert exc.value.details["missing"] == ["why_o1_required"]

    t = wf.submit_for_review(_letter(status="draft"), EMPLOYER)
    assert t.changes["status"] == "pending_review"


def test_forward_guard_leaves_letter_unchanged():
    letter = _letter(status="sent", signature_status="signed", signature_data_json=None)
    with pytest.raises(InvalidStateError):
        wf.forward_to_employer(letter, ADMIN, notes="ok")
    assert letter.signature_status == "signed"
    assert letter.contact_revealed_at is None

    reviewing_without_data = _letter(status="sent", signature_status="admin_reviewing", signature_data_json="")
    with pytest.raises(InvalidStateError):
        wf.forward_to_employer(reviewing_without_data, ADMIN)


def test_forward_reveals_contact_once_and_appends_notes():
    letter = _letter(
        status="sent",
        signature_status="admin_reviewing",
        signature_data_json=json.dumps({"source": "in_app"}),
        admin_notes="Approved",
    )
    t = wf.forward_to_employer(letter, ADMIN, notes="Signature matches")

    assert t.changes["signature_status"] == "forwarded_to_employer"
    assert t.changes["contact_revealed_at"] is not None
    assert t.changes["admin_notes"] == "Approved\n\n[Signature Review] Signature matches"
    assert [e.kind for e in t.effects] == ["email", "notification", "activity"]

    already = _letter(
        status="sent",
        signature_status="admin_reviewing",
        signature_data_json="{}x",
        contact_revealed_at="2026-01-01T00:00:00+00:00",
    )
    assert "contact_revealed_at" not in wf.forward_to_employer(already, ADMIN).changes


@pytest.mark.parametrize(
    "event_type,start,expected",
    [
        ("document.sent", "requested", "sent_to_signer"),
        ("document.viewed", "sent_to_signer", "viewed"),
        ("signer.declined", "viewed", "declined"),
        ("document.expired", "sent_to_signer", "expired"),
    ],
)
def test_provider_events_advance_signature(event_type, start, expected):
    letter = _letter(status="sent", signature_status=start)
    t = wf.apply_signature_event(letter, wf.ProviderEvent(event_type=event_type, document_id="doc-1"))
    assert t.changes["signature_status"] == expected


def test_completed_event_records_signature():
    letter = _letter(status="sent", signature_status="viewed")
    event = wf.ProviderEvent(
        event_type="document.completed",
        document_id="doc-1",
        completed_pdf_url="https://files.example/doc-1.pdf",
    )
    t = wf.apply_signature_event(letter, event)
    assert t.changes["signature_status"] == "signed"
    assert t.changes["signed_document_url"] == "https://files.example/doc-1.pdf"
    assert json.loads(t.changes["signature_data_json"])["document_id"] == "doc-1"


def test_unknown_and_stale_events_are_noops():
    letter = _letter(status="sent", signature_status="viewed")
    assert wf.apply_signature_event(letter, wf.ProviderEvent(event_type="document.reminded")).is_noop
    # No regression from viewed back to sent_to_signer.
    assert wf.apply_signature_event(letter, wf.ProviderEvent(event_type="document.sent")).is_noop

    locked = _letter(status="sent", signature_status="admin_reviewing")
    assert wf.apply_signature_event(locked, wf.ProviderEvent(event_type="document.completed")).is_noop

    signed = _letter(status="sent", signature_status="signed")
    assert wf.apply_signature_event(signed, wf.ProviderEvent(event_type="document.declined")).is_noop


def test_cancelled_event_resets_signature():
    letter = _letter(status="sent", signature_status="requested", signature_document_id="doc-1")
    t = wf.apply_signature_event(letter, wf.ProviderEvent(event_type="document.cancelled", document_id="doc-1"))
    assert t.changes == {"signature_status": "none", "signature_document_id": None}


def test_provider_event_parses_nested_payload():
    event = wf.ProviderEvent.from_payload(
        {
            "event": {"type": "document.completed", "time": 1700000000, "related_signer": {"email": "a@b.c", "name": "A"}},
            "data": {"object": {"id": "doc-9", "completed_pdf_url": "https://x/doc.pdf"}},
        }
    )
    assert event.event_type == "document.completed"
    assert event.document_id == "doc-9"
    assert event.signer_email == "a@b.c"
    assert event.completed_pdf_url == "https://x/doc.pdf"


def test_talent_signature_moves_to_admin_review():
    letter = _letter(status="sent", signature_status="none")
    t = wf.submit_talent_signature(letter, TALENT, signer_name="Ada Lovelace", signature="Ada Lovelace")
    assert t.changes["signature_status"] == "admin_reviewing"
    assert json.loads(t.changes["signature_data_json"])["source"] == "in_app"

    with pytest.raises(ForbiddenError):
        wf.submit_talent_signature(letter, wf.Actor(user_id=42, role="talent"), signer_name="X", signature="X")
    with pytest.raises(InvalidStateError):
        wf.submit_talent_signature(_letter(status="pending_review"), TALENT, signer_name="X", signature="X")


def test_provider_event_drops_malformed_signer_and_ids():
    event = wf.ProviderEvent.from_payload(
        {"event": {"type": "document.viewed", "related_signer": "x"}, "data": {"object": {"id": 42}}}
    )
    assert event.event_type == "document.viewed"
    assert event.document_id == "42"
    assert event.signer_email is None
    assert event.signer_name is None

    nested = wf.ProviderEvent.from_payload({"event_type": "document.sent", "document_id": {"id": "doc-1"}})
    assert nested.document_id is None


@pytest.mark.parametrize("start", ["signed", "declined", "expired", "viewed"])
def test_cancel_detaches_document_from_any_open_or_final_state(start):
    letter = _letter(status="sent", signature_status=start, signature_document_id="doc-1")
    t = wf.apply_signature_event(letter, wf.ProviderEvent(event_type="document.cancelled", document_id="doc-1"))
    assert t.changes == {"signature_status": "none", "signature_document_id": None}
    assert t.expected == {"signature_status": start}


def test_cancel_leaves_admin_gate_alone():
    letter = _letter(status="sent", signature_status="forwarded_to_employer", signature_document_id="doc-1")
    assert wf.apply_signature_event(letter, wf.ProviderEvent(event_type="document.cancelled")).is_noop


def test_transitions_carry_prior_state_guards():
    assert wf.review_letter(_letter(), ADMIN, action="approve").expected == {"status": "pending_review"}
    assert wf.submit_for_review(_letter(status="draft"), EMPLOYER).expected == {"status": "draft"}
    t = wf.forward_to_employer(
        _letter(status="sent", signature_status="admin_reviewing", signature_data_json="{}"), ADMIN
    )
    assert t.expected == {"signature_status": "admin_reviewing"}


def test_talent_accepts_letter():
    letter = _letter(status="sent")
    t = wf.respond_to_letter(letter, TALENT, action="accept", message="  Happy to talk  ")

    assert t.changes["status"] == "accepted"
    assert t.changes["talent_response_message"] == "Happy to talk"
    assert t.changes["responded_at"] is not None
    assert t.expected == {"status": "sent", "signature_status": "none"}
    assert [e.kind for e in t.effects] == ["notification", "email", "activity"]
    note, mail, act = (e.payload for e in t.effects)
    assert (note["user_id"], note["type"]) == (2, "letter_accepted")
    assert mail["template"] == "letter_response"
    assert mail["to"] == "hr@acme.test"
    # The employer only learns the candidate code at this point.
    assert "talent_email" not in mail["context"]
    assert "Ada" not in note["message"]
    assert act["action"] == "letter_accepted"
    assert "contact_revealed_at" not in t.changes


def test_talent_declines_letter_without_message():
    t = wf.respond_to_letter(_letter(status="sent"), TALENT, action="decline", message="   ")
    assert t.changes["status"] == "declined"
    assert t.changes["talent_response_message"] is None
    assert t.effects[0].payload["type"] == "letter_declined"


def test_response_guards():
    with pytest.raises(ForbiddenError):
        wf.respond_to_letter(_letter(status="sent"), wf.Actor(user_id=42, role="talent"), action="accept")
    with pytest.raises(ForbiddenError):
        wf.respond_to_letter(_letter(status="sent"), EMPLOYER, action="accept")
    with pytest.raises(ValidationError):
        wf.respond_to_letter(_letter(status="sent"), TALENT, action="maybe")
    for status in ("pending_review", "accepted", "declined"):
        with pytest.raises(InvalidStateError):
            wf.respond_to_letter(_letter(status=status), TALENT, action="accept")
    with pytest.raises(InvalidStateError):
        wf.respond_to_letter(_letter(status="sent", signature_status="signed"), TALENT, action="decline")

    signed = wf.respond_to_letter(_letter(status="sent", signature_status="admin_reviewing"), TALENT, action="accept")
    assert signed.changes["status"] == "accepted"


def test_accepted_letter_can_still_be_signed():
    letter = _letter(status="accepted", signature_status="none")
    wf.assert_can_request_signature(letter, EMPLOYER)
    t = wf.submit_talent_signature(letter, TALENT, signer_name="Ada Lovelace", signature="Ada Lovelace")
    assert t.changes["signature_status"] == "admin_reviewing"

    with pytest.raises(InvalidStateError):
        wf.submit_talent_signature(_letter(status="declined"), TALENT, signer_name="X", signature="X")


# ---------------------------------------------------------------- API flow


def _auth(token):
    return {"Authorization": f"Bearer {token}"}


def test_letter_lifecycle_through_api(client, signup, admin_headers):
    employer_token, _ = signup(email="hr@acme.test", role="employer", name="Grace Hopper", company_name="Acme")
    talent_token, _ = signup(email="ada@example.com", role="talent", name="Ada Lovelace")
    talent_id = client.get("/talent/me", headers=_auth(talent_token)).json()["profile"]["id"]

    r = client.post(
        "/letters",
        headers=_auth(employer_token),
        json={
            "talent_id": talent_id,
            "commitment_level": "conditional_offer",
            "job_title": "Principal Engineer",
            "salary_min": 250000,
            "salary_max": 300000,
            "locations": ["New York, NY"],
            "duties_description": "Own the ML platform.",
            "why_o1_required": "Top 1% researcher in the field.",
        },
    )
    assert r.status_code == 201, r.text
    letter = r.json()["letter"]
    assert letter["status"] == "draft"
    assert letter["locations"] == ["New York, NY"]
    assert "email" not in letter["talent"]
    letter_id = letter["id"]

    # Talent can't see a letter before an admin approves it.
    assert client.get(f"/letters/{letter_id}", headers=_auth(talent_token)).status_code == 404

    r = client.post(f"/letters/{letter_id}/submit", headers=_auth(employer_token))
    assert r.status_code == 200, r.text
    assert r.json()["letter"]["status"] == "pending_review"

    pending = client.get("/admin/letters?status=pending_review", headers=admin_headers).json()["letters"]
    assert [l["id"] for l in pending] == [letter_id]

    r = client.post(f"/admin/letters/{letter_id}/review", headers=admin_headers, json={"action": "approve"})
    assert r.status_code == 200, r.text
    assert r.json()["letter"]["status"] == "sent"

    again = client.post(f"/admin/letters/{letter_id}/review", headers=admin_headers, json={"action": "approve"})
    assert again.status_code == 400, again.text
    assert again.json()["success"] is False

    notes = client.get("/notifications", headers=_auth(talent_token)).json()["notifications"]
    assert notes[0]["type"] == "letter_received"

    r = client.post(
        f"/letters/{letter_id}/talent-signature",
        headers=_auth(talent_token),
        json={"signer_name": "Ada Lovelace", "signature": "Ada Lovelace"},
    )
    assert r.status_code == 200, r.text
    assert r.json()["letter"]["signature_status"] == "admin_reviewing"

    before = client.get(f"/letters/{letter_id}", headers=_auth(employer_token)).json()["letter"]
    assert "email" not in before["talent"]

    r = client.post(f"/admin/letters/{letter_id}/forward-signature", headers=admin_headers, json={"notes": "Verified"})
    assert r.status_code == 200, r.text
    assert r.json()["letter"]["signature_status"] == "forwarded_to_employer"

    after = client.get(f"/letters/{letter_id}", headers=_auth(employer_token)).json()["letter"]
    assert after["talent"]["email"] == "ada@example.com"
    assert after["contact_revealed_at"] is not None

    # Forwarding twice is a state error, not a second reveal.
    r = client.post(f"/admin/letters/{letter_id}/forward-signature", headers=admin_headers, json={})
    assert r.status_code == 400, r.text


def test_other_employer_cannot_submit(client, signup, make_letter):
    letter = make_letter(status="draft")
    token, _ = signup(email="other@corp.test", role="employer", company_name="Other Corp")
    r = client.post(f"/letters/{letter.id}/submit", headers=_auth(token))
    assert r.status_code == 403, r.text


def test_unknown_commitment_level_rejected(client, signup):
    employer_token, _ = signup(email="hr2@acme.test", role="employer", company_name="Acme")
    talent_token, _ = signup(email="t2@example.com", role="talent")
    talent_id = client.get("/talent/me", headers=_auth(talent_token)).json()["profile"]["id"]
    r = client.post(
        "/letters",
        headers=_auth(employer_token),
        json={"talent_id": talent_id, "commitment_level": "pinky_promise"},
    )
    assert r.status_code == 400, r.text


def _token(user_id, role):
    from o1dmatch.utils.jwt import create_access_token

    return _auth(create_access_token({"sub": str(user_id), "role": role}))


def test_concurrent_approvals_apply_once(app, make_letter, db_session):
    from o1dmatch.database import SessionLocal
    from o1dmatch.models.activity_log import ActivityLog
    from o1dmatch.models.interest_letter import InterestLetter
    from o1dmatch.models.notification import Notification
    from o1dmatch.services.side_effects import apply_transition

    letter_id = make_letter(status="pending_review").id
    first, second = SessionLocal(), SessionLocal()
    try:
        # Both requests read the letter before either writes.
        a = first.get(InterestLetter, letter_id)
        b = second.get(InterestLetter, letter_id)
        ta = wf.review_letter(a, ADMIN, action="approve")
        tb = wf.review_letter(b, ADMIN, action="approve")

        apply_transition(first, a, ta)
        with pytest.raises(InvalidStateError):
            apply_transition(second, b, tb)
    finally:
        first.close()
        second.close()

    db_session.expire_all()
    assert db_session.get(InterestLetter, letter_id).status == "sent"
    talent_user_id = db_session.get(InterestLetter, letter_id).talent.user_id
    assert db_session.query(Notification).filter(Notification.user_id == talent_user_id).count() == 1
    approvals = db_session.query(ActivityLog).filter(ActivityLog.entity_id == letter_id, ActivityLog.action == "letter_approved")
    assert approvals.count() == 1


def test_talent_responds_through_api(client, make_letter, db_session):
    from o1dmatch.models.notification import Notification

    letter = make_letter(status="sent")
    letter_id = letter.id
    talent = _token(letter.talent.user_id, "talent")
    employer_user_id = letter.employer.user_id
    employer = _token(employer_user_id, "employer")

    assert client.post(f"/letters/{letter_id}/respond", headers=employer, json={"action": "accept"}).status_code == 403

    r = client.post(f"/letters/{letter_id}/respond", headers=talent, json={"action": "accept", "message": "Let's talk"})
    assert r.status_code == 200, r.text
    body = r.json()["letter"]
    assert body["status"] == "accepted"
    assert body["talent_response_message"] == "Let's talk"
    assert body["responded_at"] is not None

    again = client.post(f"/letters/{letter_id}/respond", headers=talent, json={"action": "decline"})
    assert again.status_code == 400, again.text
    assert again.json()["success"] is False

    seen = client.get(f"/letters/{letter_id}", headers=employer).json()["letter"]
    assert seen["status"] == "accepted"
    assert "email" not in seen["talent"]

    notes = db_session.query(Notification).filter(Notification.user_id == employer_user_id).all()
    assert [n.type for n in notes] == ["letter_accepted"]

    # Still visible to the talent after answering.
    assert client.get(f"/letters/{letter_id}", headers=talent).status_code == 200


def test_talent_cannot_answer_someone_elses_or_unsent_letter(client, make_letter, signup):
    draft = make_letter(status="pending_review")
    owner = _token(draft.talent.user_id, "talent")
    assert client.post(f"/letters/{draft.id}/respond", headers=owner, json={"action": "accept"}).status_code == 404

    sent = make_letter(status="sent")
    stranger, _ = signup(email="stranger@example.com", role="talent")
    r = client.post(f"/letters/{sent.id}/respond", headers=_auth(stranger), json={"action": "decline"})
    assert r.status_code == 404, r.text


def test_signature_request_on_accepted_letter_awaits_provider(client, make_letter, db_session, monkeypatch):
    import httpx

    from o1dmatch.models.interest_letter import InterestLetter
    from o1dmatch.services import signature_client

    calls = []

    def _provider(request):
        calls.append((request.method, request.url.path, request.headers["X-Api-Key"]))
        return httpx.Response(200, json={"id": "doc-77"})

    real_client = httpx.AsyncClient
    monkeypatch.setattr(signature_client, "SIGNWELL_API_KEY", "key-1")
    monkeypatch.setattr(httpx, "AsyncClient", lambda **kw: real_client(transport=httpx.MockTransport(_provider), **kw))

    letter = make_letter(status="accepted")
    r = client.post(f"/letters/{letter.id}/signature", headers=_token(letter.employer.user_id, "employer"))
    assert r.status_code == 200, r.text
    assert len(calls) == 1
    assert calls[0][0] == "POST"
    assert calls[0][1].endswith("/documents")
    assert calls[0][2] == "key-1"

    db_session.expire_all()
    stored = db_session.get(InterestLetter, letter.id)
    assert (stored.signature_status, stored.signature_document_id) == ("requested", "doc-77")
