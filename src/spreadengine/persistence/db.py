"""Database connectivity and connection helpers for the engine stores.

Environment Variables:
    SPREADENGINE_DATABASE_URL: Connection string for the snapshot and
        rendering tables. PostgreSQL in production; SQLite works for tests.

Design Requirements:
    - Fail closed on missing configuration
    - Schema is created idempotently (CREATE TABLE IF NOT EXISTS)
"""

from __future__ import annotations

import logging
import os
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, text

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)

SPREADENGINE_DATABASE_URL_ENV = "SPREADENGINE_DATABASE_URL"

_engine: Engine | None = None

SCHEMA_STATEMENTS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS model_snapshots (
        snapshot_id VARCHAR(64) PRIMARY KEY,
        deal_id VARCHAR(128) NOT NULL,
        bank_id VARCHAR(128),
        snapshot_hash VARCHAR(64) NOT NULL,
        outputs_hash VARCHAR(64) NOT NULL,
        registry_version VARCHAR(64) NOT NULL,
        policy_version VARCHAR(64) NOT NULL,
        engine_version VARCHAR(32) NOT NULL,
        period_count INTEGER NOT NULL,
        computed_metrics TEXT NOT NULL,
        risk_flags TEXT NOT NULL,
        dependency_graph TEXT NOT NULL,
        created_at VARCHAR(40) NOT NULL,
        CONSTRAINT uq_model_snapshots_deal_outputs UNIQUE (deal_id, outputs_hash)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS deal_spread_renderings (
        deal_id VARCHAR(128) NOT NULL,
        bank_id VARCHAR(128) NOT NULL,
        statement_type VARCHAR(64) NOT NULL,
        engine_version VARCHAR(32) NOT NULL,
        snapshot_hash VARCHAR(64),
        outputs_hash VARCHAR(64),
        envelope TEXT NOT NULL,
        updated_at VARCHAR(40) NOT NULL,
        CONSTRAINT uq_deal_spread_renderings UNIQUE (deal_id, bank_id, statement_type)
    )
    """,
)


class DatabaseConfigError(Exception):
    """Raised when database configuration is missing or invalid.

    This is a fail-closed error - operations requiring the database
    should not proceed without valid configuration.
    """

    pass


def is_database_configured(environ: Mapping[str, str] | None = None) -> bool:
    """Check if a database URL is configured.

    Returns:
        True if SPREADENGINE_DATABASE_URL is set, False otherwise.
    """
    env = os.environ if environ is None else environ
    return bool(env.get(SPREADENGINE_DATABASE_URL_ENV))


def _normalize_url(url: str) -> str:
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_url(environ: Mapping[str, str] | None = None) -> str:
    """Get the database URL from the environment.

    Raises:
        DatabaseConfigError: If the environment variable is not set.
    """
    env = os.environ if environ is None else environ
    url = env.get(SPREADENGINE_DATABASE_URL_ENV)
    if not url:
        raise DatabaseConfigError(
            f"Database URL not configured. Set {SPREADENGINE_DATABASE_URL_ENV} "
            "environment variable."
        )
    return _normalize_url(url)


def get_engine(url: str | None = None) -> Engine:
    """Get or create the shared database engine.

    Args:
        url: Explicit connection string; read from the environment when None.

    Returns:
        SQLAlchemy Engine.

    Raises:
        DatabaseConfigError: If no URL is given and none is configured.
    """
    global _engine

    if _engine is None:
        resolved = _normalize_url(url) if url else get_database_url()
        if resolved.startswith("sqlite"):
            _engine = create_engine(resolved, echo=False)
        else:
            _engine = create_engine(
                resolved,
                pool_size=5,
                max_overflow=10,
                pool_pre_ping=True,
                echo=False,
            )
        logger.info("Created database engine")

    return _engine


@contextmanager
def begin_conn(engine: Engine | None = None) -> Generator[Connection, None, None]:
    """Context manager for a database connection with transaction.

    Commits on success and rolls back on error.

    Yields:
        SQLAlchemy Connection in a transaction.

    Raises:
        DatabaseConfigError: If no engine is given and none is configured.
    """
    engine = engine or get_engine()
    with engine.connect() as conn, conn.begin():
        yield conn


def create_schema(engine: Engine) -> None:
    """Create the snapshot and rendering tables if they do not exist."""
    with begin_conn(engine) as conn:
        for statement in SCHEMA_STATEMENTS:
            conn.execute(text(statement))
    logger.debug("Ensured engine schema")


def reset_engines() -> None:
    """Reset the global engine instance.

    Used for testing to ensure fresh engine creation.
    """
    global _engine
    if _engine is not None:
        _engine.dispose()
        _engine = None
