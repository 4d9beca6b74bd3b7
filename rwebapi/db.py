"""Database engine setup and the state shared by request handlers."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError

from rwebapi.config import Settings

log = logging.getLogger(__name__)

_TIMEOUT_SECONDS = 8


def _sqlalchemy_url(url: str) -> str:
    """Map the short ``postgres://`` scheme onto the dialect name SQLAlchemy knows."""
    if url.startswith("postgres://"):
        return "postgresql://" + url[len("postgres://"):]
    return url


def ping(engine: Engine) -> None:
    """Run a trivial query; raises ``SQLAlchemyError`` when the database is unreachable."""
    with engine.connect() as conn:
        conn.execute(text("SELECT 1"))


def init_db(settings: Settings, url: str | None = None) -> Engine:
    """Create an engine for the configured database and check that it answers.

    ``url`` overrides the URL built from ``settings``. Pool limits and timeouts
    come from the settings for server databases; SQLite keeps its own pool.
    """
    target = _sqlalchemy_url(url if url is not None else settings.database.get_url())
    backend = make_url(target).get_backend_name()

    options: dict[str, object] = {}
    if backend != "sqlite":
        max_connections = settings.database.max_connections
        min_connections = min(settings.database.min_connections, max_connections)
        options.update(
            pool_size=max(min_connections, 1),
            max_overflow=max(max_connections - max(min_connections, 1), 0),
            pool_timeout=_TIMEOUT_SECONDS,
            pool_recycle=_TIMEOUT_SECONDS,
            pool_pre_ping=True,
        )
        if backend == "postgresql":
            options["connect_args"] = {"connect_timeout": _TIMEOUT_SECONDS}

    engine = create_engine(target, **options)
    try:
        ping(engine)
    except SQLAlchemyError:
        engine.dispose()
        raise
    log.info("Database connected successfully")
    log.info("Database ping successful")
    return engine


@dataclass(frozen=True)
class AppState:
    """The database engine and settings that every handler sees."""

    db: Engine
    config: Settings