"""
Name: Integration Test DB Setup

Responsibilities:
  - Ensure the auth schema exists before integration tests run
  - Run Alembic migrations once per test session
  - Open and close the global connection pool

Notes:
  - Only runs when RUN_INTEGRATION=1
  - Uses DATABASE_URL from environment (see alembic/env.py)
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from app.crosscutting.config import get_settings
from app.infrastructure.db.pool import close_pool, init_pool
from psycopg import connect

DB_USER = os.getenv("POSTGRES_USER", "postgres")
DB_PASSWORD = os.getenv("POSTGRES_PASSWORD", "postgres")
DB_HOST = os.getenv("POSTGRES_HOST", "localhost")
DB_PORT = os.getenv("POSTGRES_HOST_PORT", "5432")
DB_NAME = os.getenv("POSTGRES_DB", "gym")
DEFAULT_DATABASE_URL = (
    f"postgresql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)


def _resolve_database_url() -> str:
    url = os.getenv("DATABASE_URL") or DEFAULT_DATABASE_URL
    try:
        with connect(url, autocommit=True, connect_timeout=2) as conn:
            conn.execute("SELECT 1")
    except Exception as exc:
        raise RuntimeError(
            "A reachable PostgreSQL server is required for integration tests. "
            "Set DATABASE_URL or start the local database."
        ) from exc
    return url


if os.getenv("RUN_INTEGRATION") == "1":
    os.environ["APP_ENV"] = "integration"
    os.environ["DATABASE_URL"] = _resolve_database_url()
    get_settings.cache_clear()


@pytest.fixture(scope="session", autouse=True)
def apply_migrations() -> None:
    """Run Alembic migrations for integration tests."""
    if os.getenv("RUN_INTEGRATION") != "1":
        return

    root_dir = Path(__file__).resolve().parents[2]
    config = Config(str(root_dir / "alembic.ini"))
    config.set_main_option("script_location", str(root_dir / "alembic"))

    command.upgrade(config, "head")


@pytest.fixture(scope="session", autouse=True)
def init_db_pool(apply_migrations):
    if os.getenv("RUN_INTEGRATION") != "1":
        yield
        return

    settings = get_settings()
    init_pool(
        database_url=settings.database_url,
        min_size=settings.db_pool_min_size,
        max_size=settings.db_pool_max_size,
    )
    yield
    close_pool()


@pytest.fixture
def clean_auth_tables():
    """Delete auth rows (permissions catalog is seeded by the migration and kept)."""
    url = os.environ["DATABASE_URL"]
    with connect(url, autocommit=True) as conn:
        conn.execute("DELETE FROM security_events")
        conn.execute("DELETE FROM user_sessions")
        conn.execute("DELETE FROM users")
    yield
