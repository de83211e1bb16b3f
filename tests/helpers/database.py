"""Throwaway PostgreSQL databases for tests that need real SQL semantics."""

import os
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote_plus, urlunparse

import psycopg
import pytest
from alembic import command
from alembic.config import Config
from railwatch.core.utils import convert_async_db_url_to_sync
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Database connection configuration for tests
DB_HOST = os.environ.get("TEST_DB_HOST", "localhost")
DB_PORT = int(os.environ.get("TEST_DB_PORT", "5432"))
DB_USER = os.environ.get("TEST_DB_USER", "postgres")
DB_PASSWORD = os.environ.get("TEST_DB_PASSWORD", "postgres")
DB_VERSION = os.environ.get("TEST_DB_VERSION", "16")


@dataclass
class DatabaseContext:
    """Engine, session factory and name of one migrated test database."""

    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    db_name: str


def skip_without_postgres() -> None:
    """Skip the requesting test when no PostgreSQL server is reachable."""
    try:
        with psycopg.connect(
            host=DB_HOST,
            port=DB_PORT,
            user=DB_USER,
            password=DB_PASSWORD,
            dbname="postgres",
            connect_timeout=3,
        ):
            pass
    except psycopg.OperationalError as e:
        pytest.skip(f"PostgreSQL not reachable at {DB_HOST}:{DB_PORT}: {e}")


def async_database_url(db_name: str) -> str:
    """asyncpg URL of ``db_name`` on the test server."""
    netloc = f"{quote_plus(DB_USER)}:{quote_plus(DB_PASSWORD)}@{quote_plus(DB_HOST)}:{DB_PORT}"
    return urlunparse(("postgresql+asyncpg", netloc, f"/{quote_plus(db_name)}", "", "", ""))


def migrate_to_head(async_db_url: str) -> None:
    """
    Run every Alembic migration against the database.

    Raises:
        RuntimeError: If a migration fails
    """
    alembic_cfg = Config()
    alembic_cfg.set_main_option("script_location", str(Path(__file__).resolve().parents[2] / "alembic"))
    alembic_cfg.set_main_option("sqlalchemy.url", convert_async_db_url_to_sync(async_db_url))

    # Suppress Alembic output during tests unless debugging
    if not os.environ.get("ALEMBIC_VERBOSE"):
        alembic_cfg.set_main_option("configure_logger", "false")

    try:
        command.upgrade(alembic_cfg, "head")
    except Exception as e:
        msg = f"Alembic migration failed: {e}"
        raise RuntimeError(msg) from e
