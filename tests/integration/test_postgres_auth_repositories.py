"""
Name: PostgreSQL Auth Repositories Integration Tests

Responsibilities:
  - Test PostgresUserRepository / PostgresSessionRepository against a real DB
  - Verify the migration seeds the role -> permission catalog
  - Verify security events persist with JSONB details

Notes:
  - Requires running PostgreSQL instance
  - Mark with @pytest.mark.integration

Setup:
  RUN_INTEGRATION=1 DATABASE_URL=postgresql://... pytest tests/integration
"""

import os

import pytest

# Skip BEFORE importing app.* to avoid triggering env validation during collection
if os.getenv("RUN_INTEGRATION") != "1":
    pytest.skip(
        "Set RUN_INTEGRATION=1 to run integration tests", allow_module_level=True
    )

import secrets
from datetime import datetime, timedelta, timezone
from uuid import uuid4

from app.crosscutting.exceptions import DatabaseError
from app.domain.audit import SecurityEvent, SecurityEventType, Severity
from app.identity.permissions import ROLE_PERMISSIONS
from app.identity.users import UserRole
from app.infrastructure.repositories import (
    PostgresPermissionRepository,
    PostgresSecurityEventRepository,
    PostgresSessionRepository,
    PostgresUserRepository,
)

pytestmark = [pytest.mark.integration, pytest.mark.usefixtures("clean_auth_tables")]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _create_user(repo: PostgresUserRepository, username: str = "coach_ana", **kw):
    return repo.create_user(
        username=username,
        email=f"{username}@kranos.example.com",
        password_hash="$2b$04$" + "x" * 53,
        role=kw.pop("role", UserRole.TRAINER),
        **kw,
    )


class TestUserRepository:
    def test_create_and_lookup(self):
        repo = PostgresUserRepository()
        user = _create_user(repo, full_name="Ana Trainer")

        assert repo.get_user_by_id(user.id).username == "coach_ana"
        assert repo.get_user_by_username("coach_ana").id == user.id
        assert repo.get_user_by_email("coach_ana@kranos.example.com").id == user.id
        assert user.role is UserRole.TRAINER
        assert user.is_active is True
        assert user.failed_login_attempts == 0
        assert user.created_at is not None

    def test_missing_user_is_none(self):
        assert PostgresUserRepository().get_user_by_id(uuid4()) is None

    def test_duplicate_username_is_database_error(self):
        repo = PostgresUserRepository()
        _create_user(repo)

        with pytest.raises(DatabaseError):
            repo.create_user(
                username="coach_ana",
                email="other@kranos.example.com",
                password_hash="hash",
                role=UserRole.MEMBER,
            )

    def test_update_ignores_unknown_columns(self):
        repo = PostgresUserRepository()
        user = _create_user(repo)

        updated = repo.update_user(
            user.id, {"role": UserRole.ADMIN, "full_name": "Ana", "id": uuid4()}
        )

        assert updated.id == user.id
        assert updated.role is UserRole.ADMIN
        assert updated.full_name == "Ana"

    def test_count_active_admins(self):
        repo = PostgresUserRepository()
        _create_user(repo, "head_admin", role=UserRole.ADMIN)
        former = _create_user(repo, "former_admin", role=UserRole.ADMIN)
        repo.update_user(former.id, {"is_active": False})

        assert repo.count_active_admins() == 1

    def test_failed_and_successful_login_bookkeeping(self):
        repo = PostgresUserRepository()
        user = _create_user(repo)
        locked_until = _now() + timedelta(minutes=15)

        repo.record_failed_login(user.id, 5, locked_until)
        locked = repo.get_user_by_id(user.id)
        assert locked.failed_login_attempts == 5
        assert locked.is_locked(_now())

        repo.record_successful_login(user.id, _now())
        unlocked = repo.get_user_by_id(user.id)
        assert unlocked.failed_login_attempts == 0
        assert unlocked.locked_until is None
        assert unlocked.last_login_at is not None


class TestSessionRepository:
    def _session(self, repo, user_id, *, expires_in=timedelta(days=7)):
        return repo.create_session(
            user_id=user_id,
            session_token=secrets.token_hex(32),
            refresh_token=secrets.token_urlsafe(32),
            expires_at=_now() + expires_in,
            ip_address="10.0.0.7",
            user_agent="pytest",
        )

    def test_create_and_lookup(self):
        user = _create_user(PostgresUserRepository())
        repo = PostgresSessionRepository()

        session = self._session(repo, user.id)

        assert repo.get_session(session.id).user_id == user.id
        assert repo.get_session_by_token(session.session_token).id == session.id
        assert session.ip_address == "10.0.0.7"
        assert session.is_active is True

    def test_deactivate_is_idempotent(self):
        user = _create_user(PostgresUserRepository())
        repo = PostgresSessionRepository()
        session = self._session(repo, user.id)

        assert repo.deactivate_session(session.id) is True
        repo.deactivate_session(session.id)

        assert repo.get_session(session.id).is_active is False

    def test_deactivate_user_sessions(self):
        user = _create_user(PostgresUserRepository())
        repo = PostgresSessionRepository()
        self._session(repo, user.id)
        self._session(repo, user.id)

        assert repo.deactivate_user_sessions(user.id) == 2
        assert repo.list_active_sessions(user.id, _now()) == []

    def test_expired_sessions_are_cleaned_up(self):
        user = _create_user(PostgresUserRepository())
        repo = PostgresSessionRepository()
        live = self._session(repo, user.id)
        self._session(repo, user.id, expires_in=timedelta(seconds=-1))

        assert repo.deactivate_expired_sessions(_now()) == 1
        assert [s.id for s in repo.list_active_sessions(user.id, _now())] == [live.id]

    def test_touch_updates_last_used(self):
        user = _create_user(PostgresUserRepository())
        repo = PostgresSessionRepository()
        session = self._session(repo, user.id)
        at = _now()

        repo.touch_session(session.id, at)

        assert repo.get_session(session.id).last_used_at is not None


class TestPermissionRepository:
    @pytest.mark.parametrize("role", list(UserRole))
    def test_seeded_catalog_matches_roles(self, role):
        granted = PostgresPermissionRepository().list_role_permissions(role)

        assert sorted(granted) == sorted(p.value for p in ROLE_PERMISSIONS[role])


class TestSecurityEventRepository:
    def test_record_and_list(self):
        repo = PostgresSecurityEventRepository()
        user = _create_user(PostgresUserRepository())
        repo.record_event(
            SecurityEvent(
                id=uuid4(),
                event_type=SecurityEventType.FAILED_LOGIN,
                severity=Severity.MEDIUM,
                user_id=user.id,
                username=user.username,
                ip_address="10.0.0.7",
                details={"attempt": 1},
            )
        )

        events = repo.list_events(user_id=user.id)

        assert len(events) == 1
        assert events[0].event_type is SecurityEventType.FAILED_LOGIN
        assert events[0].details == {"attempt": 1}
        assert repo.list_events(event_type="login") == []
