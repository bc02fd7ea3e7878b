# backend/vhc_engine/db.py
from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, DeclarativeBase

from .config import settings


class Base(DeclarativeBase):
    pass


def _connect_args(url: str) -> dict:
    # FastAPI's TestClient runs handlers on a worker thread
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    settings.database_url,
    pool_pre_ping=True,
    connect_args=_connect_args(settings.database_url),
    future=True,
)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def supports_row_locks() -> bool:
    """SELECT ... FOR UPDATE is a no-op on sqlite; other dialects honour it."""
    return engine.dialect.name != "sqlite"


def get_db():
    """
    Request-scoped session.

    Every workflow write happens inside one transaction per request. If any
    statement fails the session is rolled back here so a later query in the
    same request never runs against an aborted transaction.
    """
    db = SessionLocal()
    try:
        yield db
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
