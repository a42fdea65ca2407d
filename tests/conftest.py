import os
import tempfile
from pathlib import Path

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient


# Must be set before anything imports o1dmatch.config (constants are read at import time).
_TMP_DIR = Path(tempfile.mkdtemp(prefix="o1dmatch-tests-"))
os.environ["DISABLE_DOTENV"] = "1"
os.environ["DATABASE_URL"] = f"sqlite+pysqlite:///{_TMP_DIR / 'test.sqlite3'}"
os.environ["UPLOAD_DIR"] = str(_TMP_DIR / "uploads")
os.environ["SECRET_KEY"] = "test-secret"
# Tests never call external AI providers even if the developer machine has keys set.
os.environ["GEMINI_API_KEY"] = ""
os.environ["OPENAI_API_KEY"] = ""
os.environ["SIGNWELL_API_KEY"] = ""
os.environ["SIGNWELL_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["CRON_SECRET"] = ""
os.environ["SMTP_HOST"] = ""


@pytest.fixture()
def app() -> FastAPI:
    """
    Create a FastAPI app wired to a temporary SQLite DB.

    We intentionally do NOT import `o1dmatch.main` so startup hooks never touch a real database.
    """
    from o1dmatch import database as db

    db.configure_engine(os.environ["DATABASE_URL"])
    db.init_db(drop_existing=True)

    from o1dmatch.api import admin as admin_api
    from o1dmatch.api import auth as auth_api
    from o1dmatch.api import documents as documents_api
    from o1dmatch.api import letters as letters_api
    from o1dmatch.api import notifications as notifications_api
    from o1dmatch.api import promo as promo_api
    from o1dmatch.api import scoring as scoring_api
    from o1dmatch.api import signwell as signwell_api
    from o1dmatch.api import talent as talent_api
    from o1dmatch.utils.error_handlers import register_error_handlers

    fastapi_app = FastAPI()
    fastapi_app.include_router(auth_api.router)
    fastapi_app.include_router(talent_api.router)
    fastapi_app.include_router(documents_api.router)
    fastapi_app.include_router(letters_api.router)
    fastapi_app.include_router(admin_api.router)
    fastapi_app.include_router(signwell_api.router)
    fastapi_app.include_router(promo_api.router)
    fastapi_app.include_router(scoring_api.router)
    fastapi_app.include_router(notifications_api.router)
    register_error_handlers(fastapi_app)

    return fastapi_app


@pytest.fixture()
def client(app: FastAPI) -> TestClient:
    return TestClient(app, raise_server_exceptions=False)


@pytest.fixture()
def db_session(app: FastAPI):
    """
    Direct SQLAlchemy session bound to the same temporary SQLite DB used by the test app.
    """
    from o1dmatch.database import SessionLocal

    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture()
def signup(client):
    """Sign a user up through the API and return (token, user json)."""

    def _signup(*, email: str, role: str, name: str = "Test User", company_name: str | None = None):
        body = {"email": email, "password": "Testpass123!", "role": role, "name": name}
        if company_name:
            body["company_name"] = company_name
        r = client.post("/auth/signup", json=body)
        assert r.status_code == 200, r.text
        data = r.json()
        return data["access_token"], data["user"]

    return _signup


@pytest.fixture()
def admin_headers(db_session) -> dict:
    # Admins are provisioned out of band, never through signup.
    from o1dmatch.models.user import User
    from o1dmatch.utils.jwt import create_access_token
    from o1dmatch.utils.security import hash_password

    admin = User(name="Admin", email="admin@example.com", password=hash_password("Adminpass123!"), role="admin")
    db_session.add(admin)
    db_session.commit()
    db_session.refresh(admin)
    token = create_access_token({"sub": str(admin.id), "role": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def make_letter(db_session):
    """Insert a talent, an employer and a letter directly; returns the letter."""
    from o1dmatch.models.employer_profile import EmployerProfile
    from o1dmatch.models.interest_letter import InterestLetter
    from o1dmatch.models.talent_profile import TalentProfile
    from o1dmatch.models.user import User

    counter = {"n": 0}

    def _make(**overrides):
        counter["n"] += 1
        n = counter["n"]
        talent_user = User(name="Tal", email=f"talent{n}@example.com", password="x", role="talent")
        employer_user = User(name="Emp", email=f"employer{n}@example.com", password="x", role="employer")
        db_session.add_all([talent_user, employer_user])
        db_session.flush()

        talent = TalentProfile(
            user_id=talent_user.id,
            candidate_code=f"O1D-T{n:05d}",
            first_name="Ada",
            last_name="Lovelace",
            email=talent_user.email,
        )
        employer = EmployerProfile(
            user_id=employer_user.id,
            kind="employer",
            company_name="Acme Corp",
            signatory_name="Emp Signatory",
            signatory_email=employer_user.email,
        )
        db_session.add_all([talent, employer])
        db_session.flush()

        fields = {
            "talent_id": talent.id,
            "employer_id": employer.id,
            "commitment_level": "intent_to_engage",
            "job_title": "Staff Engineer",
            "duties_description": "Lead the platform team.",
            "why_o1_required": "Extraordinary ability in distributed systems.",
            "status": "sent",
            "signature_status": "none",
        }
        fields.update(overrides)
        letter = InterestLetter(**fields)
        db_session.add(letter)
        db_session.commit()
        db_session.refresh(letter)
        return letter

    return _make
