import json
import logging

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .. import config
from ..database import get_db
from ..models.scoring_session import ScoringSession
from ..schemas.scoring import ScoringSessionCreate, ScoringWebhookPayload
from ..services.scoring_client import ScoringClient, get_scoring_client
from ..services.scoring_sync import TERMINAL_STATUSES, apply_completed_results, reconcile_scoring_sessions, results_of
from ..utils.dependencies import get_current_user
from ..utils.error_handlers import AppError, UnauthorizedError, UpstreamError, handle_database_error

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Scoring"])


def _public_session(s: ScoringSession) -> dict:
    return {
        "id": s.id,
        "session_id": s.session_id,
        "visa_type": s.visa_type,
        "status": s.status,
        "progress": s.progress,
        "overall_score": s.overall_score,
        "overall_rating": s.overall_rating,
        "approval_probability": s.approval_probability,
        "rfe_probability": s.rfe_probability,
        "denial_risk": s.denial_risk,
        "report": json.loads(s.report_json) if s.report_json else None,
        "created_at": s.created_at.isoformat() if s.created_at else None,
    }


@router.post("/scoring/sessions", status_code=201)
def create_scoring_session(
    payload: ScoringSessionCreate,
    db: Session = Depends(get_db),
    user=Depends(get_current_user),
    client: ScoringClient = Depends(get_scoring_client),
):
    response = client.create_session(
        visa_type=payload.visa_type,
        document_type=payload.document_type,
        beneficiary_name=payload.beneficiary_name,
    )
    data = response.get("data") or response
    session_id = data.get("sessionId") or data.get("session_id") or data.get("id")
    if not session_id:
        raise UpstreamError("Scoring service did not return a session id")

    session = ScoringSession(
        session_id=str(session_id),
        user_id=int(user["sub"]),
        visa_type=payload.visa_type,
        status="queued",
        progress=0,
        api_response_json=json.dumps(response, ensure_ascii=False),
    )
    try:
        db.add(session)
        db.commit()
        db.refresh(session)
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "creating scoring session")

    # Polling by the reconciliation job covers a missed registration.
    try:
        client.register_webhook(session_id=session.session_id, url=f"{config.APP_URL}/scoring/webhook/{session.session_id}")
    except AppError as e:
        logger.warning("Webhook registration failed for scoring session %s: %s", session.session_id, e.message)

    logger.info("Scoring session created session_id=%s user=%s", session.session_id, user["sub"])
    return {"success": True, "session": _public_session(session)}


@router.get("/scoring/sessions")
def list_scoring_sessions(db: Session = Depends(get_db), user=Depends(get_current_user)):
    rows = (
        db.query(ScoringSession)
        .filter(ScoringSession.user_id == int(user["sub"]))
        .order_by(ScoringSession.created_at.desc(), ScoringSession.id.desc())
        .all()
    )
    return {"success": True, "sessions": [_public_session(s) for s in rows]}


@router.post("/scoring/webhook/{session_id}")
async def scoring_webhook(
    session_id: str,
    request: Request,
    db: Session = Depends(get_db),
    client: ScoringClient = Depends(get_scoring_client),
):
    try:
        payload = ScoringWebhookPayload.model_validate(await request.json())
    except ValueError:
        return {"success": False, "error": "Invalid payload"}

    try:
        session = db.query(ScoringSession).filter(ScoringSession.session_id == session_id).first()
        if not session:
            logger.info("Scoring webhook for unknown session %s", session_id)
            return {"received": True, "message": "Session not found"}
        if session.status in TERMINAL_STATUSES:
            return {"received": True, "message": "Session already final"}

        data = payload.data
        if payload.type == "scoring.completed":
            results = results_of(data)
            raw = payload.model_dump()
            if results is None:
                try:
                    full = client.get_session(session_id)
                    raw = full
                    results = results_of(full.get("data") if isinstance(full, dict) else None)
                except AppError as e:
                    logger.warning("Could not fetch results for scoring session %s: %s", session_id, e.message)
            apply_completed_results(session, results=results or {}, progress=data.get("progress"), raw=raw)
        elif payload.type == "scoring.failed":
            session.status = "failed"
            session.api_response_json = json.dumps(payload.model_dump(), ensure_ascii=False, default=str)
        elif payload.type == "scoring.progress":
            session.status = "processing"
            session.progress = _progress(data.get("progress"), session.progress)
        else:
            return {"received": True, "message": f"Ignored event {payload.type}"}

        db.commit()
    except Exception:
        # The service retries anything but a 200, so failures are acknowledged.
        db.rollback()
        logger.exception("Scoring webhook failed for %s", session_id)
        return {"success": False, "error": "Processing failed"}

    logger.info("Scoring webhook %s applied to %s (status=%s)", payload.type, session_id, session.status)
    return {"success": True, "status": session.status}


def _progress(value, current: int | None) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return current or 0


@router.get("/cron/scoring-sync")
def scoring_sync(
    authorization: str | None = Header(default=None),
    db: Session = Depends(get_db),
    client: ScoringClient = Depends(get_scoring_client),
):
    if config.CRON_SECRET and authorization != f"Bearer {config.CRON_SECRET}":
        raise UnauthorizedError("Invalid cron secret")

    results = reconcile_scoring_sessions(db, client=client, delay_s=config.SCORING_SYNC_DELAY_S)
    return {"success": True, "results": results.as_dict()}
