import os
from pathlib import Path
from dotenv import load_dotenv

# Override=True so changes in .env take effect on process reload.
#
# For automated tests (SQLite), set DISABLE_DOTENV=1 so a developer .env can't
# override the test DATABASE_URL.
if os.getenv("DISABLE_DOTENV") != "1":
    load_dotenv(override=True)


def _env_bool(name: str, default: str = "0") -> bool:
    return (os.getenv(name, default) or default).strip() in {"1", "true", "True", "yes", "YES"}


_raw_database_url = (os.getenv("DATABASE_URL") or "").strip()
# Default to a local SQLite DB for dev so the backend can start out-of-the-box.
_default_sqlite_path = (Path(__file__).resolve().parent.parent / "dev.db").as_posix()
DATABASE_URL = _raw_database_url or f"sqlite:///{_default_sqlite_path}"

# Public URL of the web app, used for links in e-mails and provider redirects.
APP_URL = (os.getenv("APP_URL") or "http://localhost:3000").strip().rstrip("/")

# Auth / JWT
# NOTE: keep a default for local dev so the server can boot even if SECRET_KEY isn't set.
SECRET_KEY = os.getenv("SECRET_KEY", "dev_secret_change_me")

# -------------------- Evidence uploads --------------------
UPLOAD_DIR = os.getenv("UPLOAD_DIR") or (Path(__file__).resolve().parent.parent / "uploads").as_posix()
MAX_DOCUMENT_BYTES = int(os.getenv("MAX_DOCUMENT_BYTES", str(10 * 1024 * 1024)) or str(10 * 1024 * 1024))

# -------------------- Document classification (AI) --------------------
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.0-flash")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com")
GEMINI_API_VERSION = os.getenv("GEMINI_API_VERSION", "v1")

# Secondary provider (OpenAI-compatible chat completions).
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o")
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")

# Keep defaults tight so the UI doesn't hit its request timeout on transient AI failures.
AI_TIMEOUT_S = float(os.getenv("AI_TIMEOUT_S", "10") or "10")
AI_MAX_RETRIES = int(os.getenv("AI_MAX_RETRIES", "1") or "1")
AI_LOG_PAYLOADS = _env_bool("AI_LOG_PAYLOADS", "0")

# -------------------- E-signature (SignWell) --------------------
SIGNWELL_API_KEY = os.getenv("SIGNWELL_API_KEY")
SIGNWELL_API_URL = (os.getenv("SIGNWELL_API_URL") or "https://www.signwell.com/api/v1").rstrip("/")
SIGNWELL_WEBHOOK_SECRET = os.getenv("SIGNWELL_WEBHOOK_SECRET")
SIGNWELL_TEST_MODE = _env_bool("SIGNWELL_TEST_MODE", "0")

# -------------------- External scoring service --------------------
SCORING_API_BASE = (
    os.getenv("SCORING_API_BASE") or "https://uscis-scoring-tool-paid-production.up.railway.app/api/v1"
).strip().rstrip("/")
SCORING_API_KEY = (os.getenv("SCORING_API_KEY") or "").strip()
# Pause between external calls in the reconciliation job (rate limits).
SCORING_SYNC_DELAY_S = float(os.getenv("SCORING_SYNC_DELAY_S", "0.5") or "0.5")
CRON_SECRET = (os.getenv("CRON_SECRET") or "").strip()

# -------------------- Notifications --------------------
ADMIN_NOTIFICATION_EMAIL = os.getenv("ADMIN_NOTIFICATION_EMAIL", "admin@example.com")
