# tipbot/database.py
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker, Session

from tipbot.core.config import settings
from tipbot.models import Base

logger = logging.getLogger(__name__)


def _normalize_url(url: str) -> str:
    # Railway/Heroku hand out postgres://; SQLAlchemy expects postgresql://
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


_engine = None
_SessionLocal = None


def make_engine(url: str, **kwargs):
    engine = create_engine(url, future=True, **kwargs)
    if engine.dialect.name == "sqlite":
        # pysqlite defers BEGIN on its own, which breaks SAVEPOINT nesting
        @event.listens_for(engine, "connect")
        def _no_implicit_begin(dbapi_conn, _record):
            dbapi_conn.isolation_level = None

        @event.listens_for(engine, "begin")
        def _explicit_begin(conn):
            conn.exec_driver_sql("BEGIN")
    return engine


def get_engine():
    global _engine, _SessionLocal
    if _engine is None:
        url = _normalize_url(settings.DATABASE_URL or "")
        if not url:
            raise RuntimeError("DATABASE_URL is not set")
        _engine = make_engine(url, pool_pre_ping=True)
        _SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_engine, future=True)
    return _engine


def get_sessionmaker():
    if _SessionLocal is None:
        get_engine()
    return _SessionLocal


@contextmanager
def db_session(session_factory=None) -> Generator[Session, None, None]:
    """One transactional scope: commit on success, roll back on any error."""
    SessionLocal = session_factory or get_sessionmaker()
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_db() -> Generator[Session, None, None]:
    with db_session() as db:
        yield db


def init_db(engine=None) -> None:
    engine = engine or get_engine()
    # checkfirst keeps this idempotent on every boot
    Base.metadata.create_all(bind=engine, checkfirst=True)
    logger.info("Schema ensured (%d tables)", len(Base.metadata.tables))
