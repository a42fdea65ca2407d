"""
Reconciliation of external scoring sessions.

Safe to run on any schedule: only sessions not yet completed or failed are
polled, and each one is written from the provider's current state.
"""
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.scoring_session import ScoringSession
from ..utils.error_handlers import AppError

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "failed")


@dataclass
class SyncResults:
    total: int = 0
    checked: int = 0
    updated: int = 0
    completed: int = 0
    failed: int = 0
    skipped: int = 0
    errors: list[str] = field(default_factory=list)

    def as_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "checked": self.checked,
            "updated": self.updated,
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
            "errors": list(self.errors),
        }


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def results_of(data: Any) -> dict[str, Any] | None:
    """The `results` object of a provider payload, or None when absent or malformed."""
    results = data.get("results") if isinstance(data, dict) else None
    return results if isinstance(results, dict) and results else None


def apply_completed_results(session: ScoringSession, *, results: dict[str, Any], progress: Any, raw: dict[str, Any]) -> None:
    results = results if isinstance(results, dict) else {}
    session.status = "completed"
    session.progress = _as_int(progress, 100) if progress is not None else 100
    session.overall_score = results.get("overallScore")
    session.overall_rating = results.get("overallRating")
    session.approval_probability = results.get("approvalProbability")
    session.rfe_probability = results.get("rfeProbability")
    session.denial_risk = results.get("denialRisk")
    session.report_json = json.dumps(results, ensure_ascii=False)
    session.api_response_json = json.dumps(raw, ensure_ascii=False, default=str)


def _local_status(api_status: str) -> str:
    # The service reports intermediate states such as "pending" or "scoring".
    return api_status if api_status in ("queued", "processing") else "processing"


def _sync_one(db: Session, session: ScoringSession, client: Any, results: SyncResults) -> None:
    payload = client.get_session(session.session_id)
    payload = payload if isinstance(payload, dict) else {}
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}
    api_status = data.get("status")
    api_results = results_of(data)

    if api_status == "completed" and api_results:
        apply_completed_results(session, results=api_results, progress=data.get("progress"), raw=payload)
        results.completed += 1
    elif api_status in ("failed", "error"):
        session.status = "failed"
        session.api_response_json = json.dumps(payload, ensure_ascii=False, default=str)
        results.failed += 1
    elif isinstance(api_status, str) and api_status and _local_status(api_status) != session.status:
        session.status = _local_status(api_status)
        session.progress = _as_int(data.get("progress"), session.progress or 0)
    else:
        results.skipped += 1
        return

    db.commit()
    results.updated += 1


def reconcile_scoring_sessions(db: Session, *, client: Any, delay_s: float = 0.5) -> SyncResults:
    """
    Poll every non-terminal session, oldest first, one at a time.

    A failure on one session is rolled back, recorded in `errors` and the
    batch moves on.
    """
    results = SyncResults()
    pending = (
        db.query(ScoringSession)
        .filter(ScoringSession.status.notin_(TERMINAL_STATUSES))
        .order_by(ScoringSession.created_at.asc(), ScoringSession.id.asc())
        .all()
    )
    results.total = len(pending)
    logger.info("Scoring sync: %s pending sessions", results.total)

    for i, session in enumerate(pending):
        if i and delay_s > 0:
            time.sleep(delay_s)
        results.checked += 1
        sid = session.session_id
        try:
            _sync_one(db, session, client, results)
        except Exception as e:
            db.rollback()
            message = e.message if isinstance(e, AppError) else f"{type(e).__name__}: {e}"
            if isinstance(e, (AppError, SQLAlchemyError)):
                logger.warning("Scoring sync failed for %s: %s", sid, message)
            else:
                logger.exception("Scoring sync failed for %s", sid)
            results.errors.append(f"{sid}: {message}")
            results.skipped += 1

    logger.info("Scoring sync complete: %s", results.as_dict())
    return results
