from dataclasses import replace
import json
import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.interest_letter import InterestLetter
from ..models.signature_event import SignatureEvent
from ..services import signature_client
from ..services.letter_workflow import ProviderEvent, apply_signature_event
from ..services.side_effects import apply_transition
from ..utils.error_handlers import AppError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/signwell", tags=["E-Signature"])

SIGNATURE_HEADER = "X-Signwell-Signature"


def _ack(**extra):
    # The provider retries on any non-2xx, so processing failures are acknowledged too.
    return JSONResponse(status_code=200, content={"received": True, **extra})


@router.post("/webhook")
async def signwell_webhook(request: Request, db: Session = Depends(get_db)):
    body = await request.body()
    signature = request.headers.get(SIGNATURE_HEADER)
    if not signature_client.verify_webhook_signature(body, signature):
        logger.warning("Rejected SignWell webhook with invalid signature")
        return JSONResponse(status_code=401, content={"success": False, "error": "Invalid signature"})

    try:
        payload = json.loads(body or b"{}")
    except ValueError:
        payload = None
    if not isinstance(payload, dict):
        return _ack(success=False, error="Invalid JSON payload")

    try:
        return await _process_event(db, payload, body)
    except Exception:
        db.rollback()
        logger.exception("SignWell webhook processing failed")
        return _ack(success=False, error="Processing failed")


async def _process_event(db: Session, payload: dict, body: bytes) -> JSONResponse:
    event = ProviderEvent.from_payload(payload)
    logger.info("SignWell webhook event=%s document=%s", event.event_type, event.document_id)
    if not event.document_id:
        return _ack(message="No document id")

    letter = (
        db.query(InterestLetter)
        .filter(InterestLetter.signature_document_id == event.document_id)
        .first()
    )
    if not letter:
        logger.info("No letter for SignWell document %s", event.document_id)
        return _ack(message="Letter not found")

    try:
        db.add(
            SignatureEvent(
                letter_id=letter.id,
                document_id=event.document_id,
                event_type=event.event_type or "unknown",
                signer_email=event.signer_email,
                signer_name=event.signer_name,
                payload_json=body.decode("utf-8", errors="replace"),
            )
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to store SignWell event for letter %s: %s", letter.id, e)

    if event.event_type == "document.completed" and not event.completed_pdf_url:
        try:
            url = await signature_client.get_completed_pdf_url(event.document_id)
        except AppError as e:
            logger.warning("Could not fetch completed PDF for %s: %s", event.document_id, e.message)
            url = None
        if url:
            event = replace(event, completed_pdf_url=url)

    try:
        transition = apply_signature_event(letter, event)
        apply_transition(db, letter, transition)
    except AppError as e:
        logger.error("Failed to apply SignWell event %s to letter %s: %s", event.event_type, letter.id, e.message)
        return _ack(success=False, error="Processing failed")

    return _ack(success=True, signature_status=letter.signature_status)


@router.get("/webhook")
def signwell_webhook_status():
    return {"status": "ok", "message": "SignWell webhook endpoint"}
