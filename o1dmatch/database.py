import logging

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

# Pragmas applied to every new SQLite connection.
SQLITE_PRAGMAS = (
    "PRAGMA journal_mode=WAL;",
    "PRAGMA foreign_keys=ON;",
    "PRAGMA busy_timeout=30000;",
)


def normalize_database_url(url: str) -> str:
    """Accept `mysql://` URLs from `.env` and pin them to the PyMySQL driver."""
    url = (url or "").strip()
    if url.startswith("mysql://"):
        return "mysql+pymysql://" + url[len("mysql://"):]
    return url


def make_engine(url: str) -> Engine:
    url = normalize_database_url(url)
    is_sqlite = url.startswith("sqlite")
    connect_args = {"check_same_thread": False, "timeout": 30} if is_sqlite else {}
    new_engine = create_engine(url, pool_pre_ping=True, connect_args=connect_args)

    if is_sqlite:
        @event.listens_for(new_engine, "connect")
        def _set_sqlite_pragmas(dbapi_connection, connection_record):  # noqa: ANN001
            cursor = dbapi_connection.cursor()
            try:
                for pragma in SQLITE_PRAGMAS:
                    cursor.execute(pragma)
            except Exception as e:
                logger.warning("Failed to set SQLite pragmas: %s", e)
            finally:
                cursor.close()

    return new_engine


engine = make_engine(DATABASE_URL)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base = declarative_base()


def configure_engine(url: str) -> Engine:
    """
    Point the application at a different database.

    The existing `SessionLocal` factory is rebound in place, so modules that
    imported it keep working.
    """
    global engine
    engine.dispose()
    engine = make_engine(url)
    SessionLocal.configure(bind=engine)
    logger.info("Database engine configured (%s)", engine.url.get_backend_name())
    return engine


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def import_models() -> None:
    # Every table must be registered on Base.metadata before create_all.
    from .models import (  # noqa: F401
        activity_log,
        document,
        employer_profile,
        interest_letter,
        notification,
        promo_code,
        scoring_session,
        signature_event,
        talent_profile,
        user,
    )


def init_db(*, drop_existing: bool = False) -> None:
    import_models()
    if drop_existing:
        Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
