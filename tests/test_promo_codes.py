from datetime import datetime, timedelta, timezone

import pytest


def _create(client, headers, **body):
    payload = {"code": "LAUNCH50", "type": "discount", "discount_percent": 50}
    payload.update(body)
    return client.post("/admin/promo-codes", json=payload, headers=headers)


def test_admin_creates_and_lists_promo_codes(client, admin_headers):
    r = _create(client, admin_headers)
    assert r.status_code == 201, r.text
    promo = r.json()["promo_code"]
    assert promo["code"] == "LAUNCH50"
    assert promo["discount_percent"] == 50
    assert promo["is_active"] is True

    trial = _create(client, admin_headers, code="TRY-IT", type="trial", discount_percent=None)
    assert trial.status_code == 201, trial.text
    assert trial.json()["promo_code"]["trial_days"] == 14

    codes = [p["code"] for p in client.get("/admin/promo-codes", headers=admin_headers).json()["promo_codes"]]
    assert set(codes) == {"LAUNCH50", "TRY-IT"}


def test_duplicate_code_conflicts_and_keeps_original(client, admin_headers, db_session):
    from o1dmatch.models.promo_code import PromoCode

    assert _create(client, admin_headers).status_code == 201
    r = _create(client, admin_headers, type="trial", trial_days=30)
    assert r.status_code == 409, r.text
    assert r.json()["success"] is False

    rows = db_session.query(PromoCode).filter(PromoCode.code == "LAUNCH50").all()
    assert len(rows) == 1
    assert rows[0].type == "discount"
    assert rows[0].discount_percent == 50


def test_invalid_code_format_rejected(client, admin_headers):
    r = _create(client, admin_headers, code="bad code!")
    assert r.status_code == 400, r.text


def test_promo_admin_requires_admin(client, signup):
    token, _ = signup(email="emp-promo@example.com", role="employer", company_name="Acme")
    r = client.get("/admin/promo-codes", headers={"Authorization": f"Bearer {token}"})
    assert r.status_code == 403, r.text


def test_toggle_and_delete(client, admin_headers):
    promo_id = _create(client, admin_headers).json()["promo_code"]["id"]

    r = client.patch(f"/admin/promo-codes/{promo_id}", json={"is_active": False}, headers=admin_headers)
    assert r.status_code == 200, r.text
    assert r.json()["promo_code"]["is_active"] is False

    r = client.post("/promo/validate", json={"code": "launch50"})
    assert r.json() == {"valid": False, "error": "This promo code is no longer active"}

    assert client.delete(f"/admin/promo-codes/{promo_id}", headers=admin_headers).status_code == 200
    assert client.delete(f"/admin/promo-codes/{promo_id}", headers=admin_headers).status_code == 404


@pytest.mark.parametrize(
    "overrides,user_type,error",
    [
        ({"valid_from": datetime.now(timezone.utc) + timedelta(days=2)}, None, "This promo code is not yet valid"),
        ({"valid_until": datetime.now(timezone.utc) - timedelta(days=1)}, None, "This promo code has expired"),
        ({"applicable_user_type": "talent"}, "employer", "This promo code is only valid for talent accounts"),
    ],
)
def test_validation_reasons(db_session, overrides, user_type, error):
    from o1dmatch.services.promo_codes import create_promo_code, validate_promo

    create_promo_code(db_session, code="WINDOW", type="trial", **overrides)
    result = validate_promo(db_session, code="window", user_type=user_type)
    assert result.valid is False
    assert result.error == error


def test_unknown_code_is_invalid(db_session):
    from o1dmatch.services.promo_codes import validate_promo

    result = validate_promo(db_session, code="NOPE")
    assert (result.valid, result.error) == (False, "Invalid promo code")


def test_usage_is_recorded_and_limited(client, signup, db_session):
    from o1dmatch.models.promo_code import PromoCode
    from o1dmatch.services.promo_codes import create_promo_code

    create_promo_code(db_session, code="ONCE", type="trial", max_uses=5)
    token, _ = signup(email="promo-talent@example.com", role="talent")
    headers = {"Authorization": f"Bearer {token}"}

    first = client.post("/promo/validate", json={"code": "ONCE"}, headers=headers)
    assert first.status_code == 200, first.text
    assert first.json()["valid"] is True
    assert first.json()["promo"]["trial_days"] == 14

    second = client.post("/promo/validate", json={"code": "ONCE"}, headers=headers)
    assert second.json() == {"valid": False, "error": "You have already used this promo code"}

    db_session.expire_all()
    promo = db_session.query(PromoCode).filter(PromoCode.code == "ONCE").one()
    assert promo.current_uses == 1


def test_max_uses_reached(db_session):
    from o1dmatch.models.user import User
    from o1dmatch.services.promo_codes import create_promo_code, validate_promo

    first, second = User(email="first@example.com", password="x", role="talent"), User(email="second@example.com", password="x", role="talent")
    db_session.add_all([first, second])
    db_session.commit()

    create_promo_code(db_session, code="ONLYONE", type="discount", discount_percent=10, max_uses=1)
    assert validate_promo(db_session, code="ONLYONE", user_id=first.id).valid is True
    result = validate_promo(db_session, code="ONLYONE", user_id=second.id)
    assert result.error == "This promo code has reached its usage limit"


def test_stale_read_cannot_overshoot_max_uses(app, db_session):
    from o1dmatch.database import SessionLocal
    from o1dmatch.models.promo_code import PromoCode, PromoCodeUsage
    from o1dmatch.models.user import User
    from o1dmatch.services.promo_codes import create_promo_code, validate_promo

    first, second = User(email="race1@example.com", password="x", role="talent"), User(email="race2@example.com", password="x", role="talent")
    db_session.add_all([first, second])
    db_session.commit()
    create_promo_code(db_session, code="LASTONE", type="trial", max_uses=1)

    slow, fast = SessionLocal(), SessionLocal()
    try:
        # The slow request has already read current_uses == 0.
        assert slow.query(PromoCode).filter(PromoCode.code == "LASTONE").one().current_uses == 0
        assert validate_promo(fast, code="LASTONE", user_id=first.id).valid is True

        late = validate_promo(slow, code="LASTONE", user_id=second.id)
        assert (late.valid, late.error) == (False, "This promo code has reached its usage limit")
    finally:
        slow.close()
        fast.close()

    db_session.expire_all()
    promo = db_session.query(PromoCode).filter(PromoCode.code == "LASTONE").one()
    assert promo.current_uses == 1
    assert db_session.query(PromoCodeUsage).filter(PromoCodeUsage.promo_code_id == promo.id).count() == 1
