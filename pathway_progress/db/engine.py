"""SQLAlchemy engine and session factory.

When DATABASE_URL is configured, provides:
- engine for PostgreSQL via psycopg2 (or any SQLAlchemy URL)
- session factory used by the SQL repositories
- FastAPI lifespan hook for startup/shutdown

When DATABASE_URL is None (no database configured), all exports are None
and the app falls back to in-memory repositories.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from pathway_progress.core.config import SETTINGS

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all table models."""


def make_session_factory(db_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(db_engine, expire_on_commit=False)


# --- Engine and session factory (None when no DATABASE_URL) ---

engine: Engine | None
session_factory: sessionmaker[Session] | None

if SETTINGS.database_url:
    engine = create_engine(
        SETTINGS.database_url,
        echo=SETTINGS.is_dev,  # log SQL in dev only
        pool_pre_ping=True,
    )
    session_factory = make_session_factory(engine)
else:
    engine = None
    session_factory = None


@contextmanager
def lifespan_db() -> Iterator[None]:
    """Startup/shutdown hook for the database engine."""
    if engine is None:
        logger.info("No DATABASE_URL configured, using in-memory repositories")
        yield
        return

    logger.info("Database engine created: %s", engine.url.render_as_string(hide_password=True))
    yield
    engine.dispose()
    logger.info("Database engine disposed")
