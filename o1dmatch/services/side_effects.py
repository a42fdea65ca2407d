"""
Commit a letter transition, then run its side effects.

Side effects are best-effort: each one runs in isolation, failures are logged
and never undo the committed state change.
"""
import json
import logging
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.activity_log import ActivityLog
from ..models.notification import Notification
from ..utils.error_handlers import InvalidStateError, StorageError
from .emailer import send_templated_email
from .letter_workflow import SideEffect, Transition

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    *,
    user_id: int | None,
    action: str,
    entity_type: str,
    entity_id: int | None,
    metadata: dict | None = None,
) -> None:
    db.add(
        ActivityLog(
            user_id=user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            metadata_json=json.dumps(metadata or {}, default=str),
        )
    )
    db.commit()


def create_notification(db: Session, *, user_id: int, type: str, title: str, message: str, data: dict | None = None) -> None:
    db.add(
        Notification(
            user_id=user_id,
            type=type,
            title=title,
            message=message,
            data_json=json.dumps(data or {}, default=str),
        )
    )
    db.commit()


def _run_one(db: Session, effect: SideEffect, *, entity_id: int | None) -> None:
    p = effect.payload
    if effect.kind == "activity":
        log_activity(
            db,
            user_id=p.get("user_id"),
            action=p["action"],
            entity_type=p.get("entity_type") or "interest_letter",
            entity_id=p.get("entity_id") or entity_id,
            metadata=p.get("metadata"),
        )
    elif effect.kind == "notification":
        create_notification(
            db,
            user_id=p["user_id"],
            type=p["type"],
            title=p["title"],
            message=p["message"],
            data=p.get("data"),
        )
    elif effect.kind == "email":
        send_templated_email(
            template=p["template"],
            to_email=p.get("to") or "",
            context=p.get("context") or {},
        )
    else:
        raise ValueError(f"Unknown side effect kind: {effect.kind}")


def run_side_effects(db: Session, effects: list[SideEffect], *, entity_id: int | None = None) -> list[str]:
    """Run every effect; returns the kinds that failed."""
    failed: list[str] = []
    for effect in effects:
        try:
            _run_one(db, effect, entity_id=entity_id)
        except Exception as e:  # best-effort: smtplib and the DB raise unrelated types
            if isinstance(e, SQLAlchemyError):
                db.rollback()
            logger.warning("Side effect %s failed for entity %s: %s", effect.kind, entity_id, e)
            failed.append(effect.kind)
    return failed


def _guarded_update(db: Session, obj: Any, transition: Transition) -> None:
    """UPDATE ... WHERE id = :id AND <expected columns>; no matching row means the state moved on."""
    model = type(obj)
    conditions = [model.id == obj.id]
    for name, value in transition.expected.items():
        column = getattr(model, name)
        conditions.append(column.is_(None) if value is None else column == value)

    updated = (
        db.query(model)
        .filter(*conditions)
        .update(transition.changes, synchronize_session=False)
    )
    if updated != 1:
        db.rollback()
        logger.warning("Stale %s %s transition; expected %s", model.__name__, obj.id, transition.expected)
        raise InvalidStateError(f"{model.__name__} was changed by another request; reload and try again")
    db.commit()


def apply_transition(db: Session, obj: Any, transition: Transition) -> Any:
    """
    Persist the transition's changes, commit, then run its side effects.

    Transitions with `expected` values are written as a single conditional
    UPDATE, so only one of several concurrent requests can apply them and
    only that one runs the side effects.
    """
    if transition.changes:
        try:
            if transition.expected and getattr(obj, "id", None) is not None:
                _guarded_update(db, obj, transition)
            else:
                for name, value in transition.changes.items():
                    setattr(obj, name, value)
                db.add(obj)
                db.commit()
            db.refresh(obj)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to persist %s transition: %s", type(obj).__name__, e)
            raise StorageError() from e

    run_side_effects(db, transition.effects, entity_id=getattr(obj, "id", None))
    return obj
