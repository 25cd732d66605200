"""
Name: Database Pool Tests

Responsibilities:
  - Test pool lifecycle (init, get, close, reset)
  - Test repository SQL mapping and DatabaseError wrapping
  - Offline unit tests (no real DB)

Notes:
  - Uses mocking for ConnectionPool
  - Tests pool singleton behavior
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest


@pytest.mark.unit
class TestPoolLifecycle:
    """Test pool initialization and cleanup."""

    def test_init_pool_creates_pool(self):
        """init_pool should create a ConnectionPool."""
        from app.infrastructure.db.pool import init_pool, reset_pool

        reset_pool()  # Clean state

        with patch("app.infrastructure.db.pool.ConnectionPool") as MockPool:
            mock_pool = MagicMock()
            MockPool.return_value = mock_pool

            result = init_pool("postgresql://test", min_size=2, max_size=10)

            MockPool.assert_called_once()
            assert result == mock_pool

        reset_pool()

    def test_init_pool_twice_raises_error(self):
        """init_pool called twice should raise RuntimeError."""
        from app.infrastructure.db.pool import init_pool, reset_pool

        reset_pool()

        with patch("app.infrastructure.db.pool.ConnectionPool") as MockPool:
            mock_pool = MagicMock()
            MockPool.return_value = mock_pool

            init_pool("postgresql://test", min_size=2, max_size=10)

            with pytest.raises(RuntimeError, match="already initialized"):
                init_pool("postgresql://test", min_size=2, max_size=10)

        reset_pool()

    def test_get_pool_without_init_raises_error(self):
        """get_pool before init_pool should raise RuntimeError."""
        from app.infrastructure.db.pool import get_pool, reset_pool

        reset_pool()

        with pytest.raises(RuntimeError, match="not initialized"):
            get_pool()

    def test_close_pool_clears_singleton(self):
        """close_pool should clear the singleton."""
        from app.infrastructure.db.pool import (
            close_pool,
            get_pool,
            init_pool,
            reset_pool,
        )

        reset_pool()

        with patch("app.infrastructure.db.pool.ConnectionPool") as MockPool:
            mock_pool = MagicMock()
            MockPool.return_value = mock_pool

            init_pool("postgresql://test", min_size=2, max_size=10)
            close_pool()

            mock_pool.close.assert_called_once()

            with pytest.raises(RuntimeError, match="not initialized"):
                get_pool()

        reset_pool()

    def test_reset_pool_allows_reinit(self):
        """reset_pool should allow re-initialization."""
        from app.infrastructure.db.pool import init_pool, reset_pool

        reset_pool()

        with patch("app.infrastructure.db.pool.ConnectionPool") as MockPool:
            mock_pool = MagicMock()
            MockPool.return_value = mock_pool

            init_pool("postgresql://test", min_size=2, max_size=10)
            reset_pool()

            # Should not raise
            init_pool("postgresql://test", min_size=2, max_size=10)

        reset_pool()


def _pool_with(conn: MagicMock) -> MagicMock:
    pool = MagicMock()
    pool.connection.return_value.__enter__.return_value = conn
    return pool


def _user_row(role: str = "trainer") -> tuple:
    now = datetime(2026, 3, 1, tzinfo=timezone.utc)
    return (
        uuid4(), "coach_ana", "ana@example.com", "Ana", "$2b$04$hash", role,
        True, 0, None, False, None, now, now,
    )


@pytest.mark.unit
class TestPostgresUserRepository:
    """Row mapping and error wrapping over an injected pool."""

    def test_get_user_by_username_maps_row(self):
        from app.identity.users import UserRole
        from app.infrastructure.repositories.postgres.user import (
            PostgresUserRepository,
        )

        conn = MagicMock()
        conn.execute.return_value.fetchone.return_value = _user_row()
        repo = PostgresUserRepository(pool=_pool_with(conn))

        user = repo.get_user_by_username("coach_ana")

        assert user.username == "coach_ana"
        assert user.role is UserRole.TRAINER
        query, params = conn.execute.call_args.args
        assert "WHERE username = %s" in query
        assert params == ("coach_ana",)

    def test_missing_user_is_none(self):
        from app.infrastructure.repositories.postgres.user import (
            PostgresUserRepository,
        )

        conn = MagicMock()
        conn.execute.return_value.fetchone.return_value = None
        repo = PostgresUserRepository(pool=_pool_with(conn))

        assert repo.get_user_by_id(uuid4()) is None

    def test_unknown_role_in_row_is_database_error(self):
        from app.crosscutting.exceptions import DatabaseError
        from app.infrastructure.repositories.postgres.user import (
            PostgresUserRepository,
        )

        conn = MagicMock()
        conn.execute.return_value.fetchone.return_value = _user_row(role="owner")
        repo = PostgresUserRepository(pool=_pool_with(conn))

        with pytest.raises(DatabaseError, match="Invalid user role"):
            repo.get_user_by_username("coach_ana")

    def test_driver_errors_become_database_error(self):
        from app.crosscutting.exceptions import DatabaseError
        from app.infrastructure.repositories.postgres.user import (
            PostgresUserRepository,
        )

        conn = MagicMock()
        conn.execute.side_effect = RuntimeError("connection refused")
        repo = PostgresUserRepository(pool=_pool_with(conn))

        with pytest.raises(DatabaseError, match="connection refused"):
            repo.list_users()

    def test_update_ignores_non_whitelisted_columns(self):
        from app.infrastructure.repositories.postgres.user import (
            PostgresUserRepository,
        )

        conn = MagicMock()
        conn.execute.return_value.fetchone.return_value = _user_row()
        repo = PostgresUserRepository(pool=_pool_with(conn))

        repo.update_user(uuid4(), {"full_name": "Ana B", "username": "hijack"})

        query = conn.execute.call_args.args[0]
        assert "full_name = %s" in query
        assert "username = %s" not in query
        assert "updated_at = now()" in query

    def test_uses_global_pool_when_not_injected(self):
        from app.infrastructure.repositories.postgres.user import (
            PostgresUserRepository,
        )

        conn = MagicMock()
        conn.execute.return_value.fetchone.return_value = (0,)

        with patch(
            "app.infrastructure.db.pool.get_pool", return_value=_pool_with(conn)
        ):
            assert PostgresUserRepository().count_active_admins() == 0


@pytest.mark.unit
class TestPostgresSessionRepository:
    def test_deactivate_reports_rowcount(self):
        from app.infrastructure.repositories.postgres.session import (
            PostgresSessionRepository,
        )

        conn = MagicMock()
        conn.execute.return_value.rowcount = 0
        repo = PostgresSessionRepository(pool=_pool_with(conn))

        assert repo.deactivate_session(uuid4()) is False

    def test_session_row_stringifies_ip(self):
        from ipaddress import ip_address

        from app.infrastructure.repositories.postgres.session import (
            PostgresSessionRepository,
        )

        now = datetime(2026, 3, 1, tzinfo=timezone.utc)
        row = (
            uuid4(), uuid4(), "s" * 64, "refresh", now, True,
            "pytest", ip_address("10.0.0.1"), "pytest", now, now,
        )
        conn = MagicMock()
        conn.execute.return_value.fetchone.return_value = row
        repo = PostgresSessionRepository(pool=_pool_with(conn))

        session = repo.get_session_by_token("s" * 64)

        assert session.ip_address == "10.0.0.1"


@pytest.mark.unit
class TestPostgresPermissionRepository:
    def test_lists_permission_names(self):
        from app.infrastructure.repositories.postgres.permission import (
            PostgresPermissionRepository,
        )

        conn = MagicMock()
        conn.execute.return_value.fetchall.return_value = [
            ("dashboard.view",),
            ("profile.view",),
        ]
        repo = PostgresPermissionRepository(pool=_pool_with(conn))

        assert repo.list_role_permissions("member") == ["dashboard.view", "profile.view"]
        assert conn.execute.call_args.args[1] == ("member",)
