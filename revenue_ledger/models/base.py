"""
Database engine, session management, and base model.

Every record model inherits from Base. Every request gets a session
from get_db().
"""

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from revenue_ledger.config import get_settings

settings = get_settings()


def _connect_args(url: str) -> dict:
    # FastAPI runs sync dependencies in a threadpool
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


# pool_pre_ping=True tests connections before using them, which
# handles a restarted database or a stale connection.
engine = create_engine(
    settings.DATABASE_URL,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.DATABASE_URL),
)

# autocommit=False: the API layer decides when to commit, so a failed
# operation never leaves half its writes behind.
SessionLocal = sessionmaker(
    bind=engine,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    pass


def get_db():
    """
    Provide a database session for a single request.

    FastAPI uses this generator as a dependency. The try/finally
    guarantees the session is closed even if the request fails.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
