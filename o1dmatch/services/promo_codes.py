import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ..models.promo_code import PromoCode, PromoCodeUsage
from ..utils.error_handlers import ConflictError, NotFoundError, StorageError

logger = logging.getLogger(__name__)

DEFAULT_TRIAL_DAYS = 14


@dataclass
class PromoValidation:
    valid: bool
    error: str | None = None
    promo: dict[str, Any] = field(default_factory=dict)


def _aware(dt: datetime | None) -> datetime | None:
    # SQLite hands back naive datetimes even for timezone-aware columns.
    if dt is None:
        return None
    return dt if dt.tzinfo else dt.replace(tzinfo=timezone.utc)


def public_promo(p: PromoCode) -> dict[str, Any]:
    return {
        "id": p.id,
        "code": p.code,
        "type": p.type,
        "description": p.description,
        "trial_days": p.trial_days,
        "discount_percent": p.discount_percent,
        "grants_igta_member": bool(p.grants_igta_member),
        "applicable_tier": p.applicable_tier,
        "applicable_user_type": p.applicable_user_type,
        "max_uses": p.max_uses,
        "max_uses_per_user": p.max_uses_per_user,
        "current_uses": p.current_uses,
        "valid_from": p.valid_from.isoformat() if p.valid_from else None,
        "valid_until": p.valid_until.isoformat() if p.valid_until else None,
        "is_active": bool(p.is_active),
        "created_at": p.created_at.isoformat() if p.created_at else None,
    }


def list_promo_codes(db: Session) -> list[PromoCode]:
    return db.query(PromoCode).order_by(PromoCode.created_at.desc(), PromoCode.id.desc()).all()


def create_promo_code(
    db: Session,
    *,
    code: str,
    type: str,
    description: str | None = None,
    trial_days: int | None = None,
    discount_percent: int | None = None,
    applicable_tier: str | None = None,
    applicable_user_type: str = "both",
    max_uses: int | None = None,
    max_uses_per_user: int | None = 1,
    valid_from: datetime | None = None,
    valid_until: datetime | None = None,
) -> PromoCode:
    """
    Insert a promo code with per-type defaults.

    A duplicate code raises ConflictError; the existing row is left untouched.
    """
    promo = PromoCode(
        code=code.upper(),
        type=type,
        description=description or None,
        trial_days=(trial_days or DEFAULT_TRIAL_DAYS) if type == "trial" else 0,
        discount_percent=(discount_percent or 0) if type == "discount" else 0,
        grants_igta_member=type == "igta_verification",
        applicable_tier=applicable_tier or None,
        applicable_user_type=applicable_user_type or "both",
        max_uses=max_uses or None,
        max_uses_per_user=max_uses_per_user,
        current_uses=0,
        valid_from=valid_from or datetime.now(timezone.utc),
        valid_until=valid_until,
        is_active=True,
    )
    try:
        db.add(promo)
        db.commit()
        db.refresh(promo)
    except IntegrityError as e:
        db.rollback()
        logger.info("Duplicate promo code rejected: %s", promo.code)
        raise ConflictError(f'Promo code "{promo.code}" already exists') from e
    except SQLAlchemyError as e:
        db.rollback()
        logger.error("Failed to create promo code %s: %s", promo.code, e)
        raise StorageError() from e

    logger.info("Promo code created code=%s type=%s", promo.code, promo.type)
    return promo


def _get(db: Session, promo_id: int) -> PromoCode:
    promo = db.query(PromoCode).filter(PromoCode.id == promo_id).first()
    if not promo:
        raise NotFoundError("Promo code not found")
    return promo


def set_promo_active(db: Session, *, promo_id: int, is_active: bool) -> PromoCode:
    promo = _get(db, promo_id)
    promo.is_active = bool(is_active)
    try:
        db.commit()
        db.refresh(promo)
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError() from e
    return promo


def delete_promo_code(db: Session, *, promo_id: int) -> None:
    promo = _get(db, promo_id)
    try:
        db.query(PromoCodeUsage).filter(PromoCodeUsage.promo_code_id == promo.id).delete()
        db.delete(promo)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise StorageError() from e


def validate_promo(
    db: Session,
    *,
    code: str,
    user_type: str | None = None,
    user_id: int | None = None,
    context: str = "billing",
    now: datetime | None = None,
) -> PromoValidation:
    """
    Check whether a code can be redeemed. When a user is given, a successful
    check also records the redemption.
    """
    normalized = (code or "").strip().upper()
    if not normalized:
        return PromoValidation(False, "Promo code is required")

    promo = db.query(PromoCode).filter(PromoCode.code == normalized).first()
    if not promo:
        return PromoValidation(False, "Invalid promo code")
    if not promo.is_active:
        return PromoValidation(False, "This promo code is no longer active")

    now = now or datetime.now(timezone.utc)
    valid_from = _aware(promo.valid_from)
    valid_until = _aware(promo.valid_until)
    if valid_from and valid_from > now:
        return PromoValidation(False, "This promo code is not yet valid")
    if valid_until and valid_until < now:
        return PromoValidation(False, "This promo code has expired")

    if promo.max_uses is not None and (promo.current_uses or 0) >= promo.max_uses:
        return PromoValidation(False, "This promo code has reached its usage limit")

    if promo.applicable_user_type and promo.applicable_user_type != "both" and promo.applicable_user_type != user_type:
        return PromoValidation(False, f"This promo code is only valid for {promo.applicable_user_type} accounts")

    if user_id is not None:
        per_user_limit = promo.max_uses_per_user or 1
        used = (
            db.query(PromoCodeUsage)
            .filter(PromoCodeUsage.promo_code_id == promo.id, PromoCodeUsage.user_id == user_id)
            .count()
        )
        if used >= per_user_limit:
            if per_user_limit == 1:
                return PromoValidation(False, "You have already used this promo code")
            return PromoValidation(
                False,
                f"You have already used this promo code the maximum number of times ({per_user_limit})",
            )

    info: dict[str, Any] = {"type": promo.type, "code": promo.code}
    if promo.type == "trial" and promo.trial_days:
        info["trial_days"] = promo.trial_days
    if promo.type == "discount" and promo.discount_percent:
        info["discount_percent"] = promo.discount_percent
    if promo.grants_igta_member:
        info["grants_igta_member"] = True
    if promo.applicable_tier:
        info["applicable_tier"] = promo.applicable_tier

    if user_id is not None:
        try:
            # Counted in SQL so concurrent redemptions cannot overshoot max_uses.
            claimed = (
                db.query(PromoCode)
                .filter(
                    PromoCode.id == promo.id,
                    or_(PromoCode.max_uses.is_(None), PromoCode.current_uses < PromoCode.max_uses),
                )
                .update({PromoCode.current_uses: PromoCode.current_uses + 1}, synchronize_session=False)
            )
            if claimed != 1:
                db.rollback()
                logger.info("Promo code %s hit its usage limit during redemption", promo.code)
                return PromoValidation(False, "This promo code has reached its usage limit")
            db.add(PromoCodeUsage(promo_code_id=promo.id, user_id=user_id, context=context))
            db.commit()
        except SQLAlchemyError as e:
            db.rollback()
            logger.error("Failed to record promo usage code=%s user=%s: %s", promo.code, user_id, e)
            raise StorageError() from e

    return PromoValidation(True, promo=info)
