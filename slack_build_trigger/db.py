"""Engine, session, and schema helpers for the local database."""

from __future__ import annotations

from contextlib import contextmanager
from functools import lru_cache
from typing import Generator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from slack_build_trigger.config import get_settings

Base = declarative_base()


@lru_cache()
def get_engine() -> Engine:
    """Create or return the cached engine for ``DATABASE_URL``."""

    url = get_settings().database_url
    # Flask serves requests from several threads against one SQLite file
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, pool_pre_ping=True)


@lru_cache()
def get_session_factory() -> sessionmaker[Session]:
    return sessionmaker(bind=get_engine(), autoflush=False, expire_on_commit=False)


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Commit on success, roll back and re-raise on error, always close."""

    session = get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def create_schema() -> None:
    # Models register their tables on Base when imported
    from slack_build_trigger import models  # noqa: F401

    Base.metadata.create_all(get_engine())


def drop_schema() -> None:
    from slack_build_trigger import models  # noqa: F401

    Base.metadata.drop_all(get_engine())
