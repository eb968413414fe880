"""
Database wiring.

`Database` owns one SQLAlchemy engine and session factory. It is built once by the
entrypoint (API, CLI) and passed to the repositories, so tests can hand them an
in-memory SQLite database instead.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from motofinder.config.settings import Settings
from motofinder.core.env import resolve_project_path
from motofinder.storage.tables import Base

logger = logging.getLogger(__name__)


def _normalize_sqlite_url(url: str) -> str:
    """Resolve relative SQLite file paths against the project root."""
    parsed = make_url(url)
    if parsed.get_backend_name() != "sqlite":
        return url
    database = parsed.database
    if not database or database == ":memory:" or Path(database).is_absolute():
        return url
    resolved = resolve_project_path(database)
    resolved.parent.mkdir(parents=True, exist_ok=True)
    return parsed.set(database=str(resolved)).render_as_string(hide_password=False)


def build_engine(url: str, *, echo: bool = False) -> Engine:
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if not parsed.database or parsed.database == ":memory:":
            # One shared connection, otherwise every session sees an empty database.
            kwargs["poolclass"] = StaticPool
        return create_engine(_normalize_sqlite_url(url), echo=echo, future=True, **kwargs)
    return create_engine(url, echo=echo, pool_pre_ping=True, pool_size=5, max_overflow=10, future=True)


class Database:
    def __init__(self, engine: Engine):
        self._engine = engine
        self._session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False, future=True)

    @classmethod
    def from_url(cls, url: str, *, echo: bool = False) -> "Database":
        return cls(build_engine(url, echo=echo))

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls.from_url(settings.database.url, echo=settings.database.echo)

    @property
    def engine(self) -> Engine:
        return self._engine

    def create_all(self) -> None:
        Base.metadata.create_all(self._engine)
        logger.info("Database schema ensured on %s", self._engine.url.render_as_string(hide_password=True))

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Transactional scope: commit on success, roll back on any exception."""
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()
