import logging
import os

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import admin as admin_api
from .api import auth as auth_api
from .api import documents as documents_api
from .api import letters as letters_api
from .api import notifications as notifications_api
from .api import promo as promo_api
from .api import scoring as scoring_api
from .api import signwell as signwell_api
from .api import talent as talent_api
from .database import init_db
from .utils.error_handlers import register_error_handlers

logger = logging.getLogger(__name__)

app = FastAPI(title="O1DMatch")

app.include_router(auth_api.router)
app.include_router(talent_api.router)
app.include_router(documents_api.router)
app.include_router(letters_api.router)
app.include_router(admin_api.router)
app.include_router(signwell_api.router)
app.include_router(promo_api.router)
app.include_router(scoring_api.router)
app.include_router(notifications_api.router)

register_error_handlers(app)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {
        "status": "Backend running",
        "service": "O1DMatch"
    }


_default_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
_extra_origins = [
    origin.strip()
    for origin in os.getenv("FRONTEND_ORIGINS", "").split(",")
    if origin.strip()
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=[*_default_origins, *_extra_origins],
    allow_origin_regex=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    try:
        init_db()
    except Exception as e:
        # Keep the process up so /health can report; requests will surface DB errors.
        logger.exception("Database initialisation failed: %s", e)
