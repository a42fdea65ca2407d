import json

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..database import get_db
from ..models.notification import Notification
from ..utils.dependencies import get_current_user
from ..utils.error_handlers import handle_database_error

router = APIRouter(prefix="/notifications", tags=["Notifications"])


def _public(n: Notification) -> dict:
    return {
        "id": n.id,
        "type": n.type,
        "title": n.title,
        "message": n.message,
        "data": json.loads(n.data_json) if n.data_json else {},
        "is_read": bool(n.is_read),
        "created_at": n.created_at.isoformat() if n.created_at else None,
    }


@router.get("")
def list_notifications(unread_only: bool = False, db: Session = Depends(get_db), user=Depends(get_current_user)):
    q = db.query(Notification).filter(Notification.user_id == int(user["sub"]))
    if unread_only:
        q = q.filter(Notification.is_read.is_(False))
    rows = q.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(100).all()
    return {"success": True, "notifications": [_public(n) for n in rows]}


@router.post("/read-all")
def mark_all_read(db: Session = Depends(get_db), user=Depends(get_current_user)):
    try:
        updated = (
            db.query(Notification)
            .filter(Notification.user_id == int(user["sub"]), Notification.is_read.is_(False))
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise handle_database_error(e, "marking notifications read")
    return {"success": True, "updated": updated}
