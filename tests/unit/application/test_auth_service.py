"""
Name: AuthenticationService Unit Tests

Responsibilities:
  - Login, lockout and generic credential errors
  - Token resolution bound to a live session, refresh, logout
  - Password change/reset revoking sessions
  - Permission lookup and user administration rules
  - Security events emitted on each transition
"""

from uuid import uuid4

import pytest
from app.crosscutting.exceptions import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    CurrentPasswordIncorrectError,
    NotFoundError,
    SessionError,
    ValidationError,
)
from app.application.auth_service import AuthenticationService
from app.identity.passwords import hash_rounds, verify_password
from app.identity.tokens import (
    InvalidTokenError,
    get_token_settings,
    verify_refresh_token,
)
from app.identity.users import UserRole

STRONG_PASSWORD = "Gym!Strong9x"
OTHER_STRONG_PASSWORD = "N3w!Secure#Key"

pytestmark = pytest.mark.unit


def _fail(auth_service, username, times):
    for _ in range(times):
        with pytest.raises(AuthenticationError):
            auth_service.login(username, "Wrong!Pass1x")


# =============================================================================
# Login
# =============================================================================


class TestLogin:
    def test_success_returns_tokens_and_session(self, auth_service, trainer_user, event_repo):
        result = auth_service.login("coach_ana", STRONG_PASSWORD, "10.0.0.1", "pytest")

        assert result.user.username == "coach_ana"
        assert result.user.role is UserRole.TRAINER
        assert len(result.session_token) == 64
        assert result.refresh_expires_at > result.access_expires_at
        assert result.must_change_password is False
        assert event_repo.event_types() == ["login"]

    def test_success_resets_failure_counter(self, auth_service, trainer_user, user_repo):
        _fail(auth_service, "coach_ana", 2)

        auth_service.login("coach_ana", STRONG_PASSWORD)

        stored = user_repo.get_user_by_id(trainer_user.id)
        assert stored.failed_login_attempts == 0
        assert stored.last_login_at is not None

    def test_username_is_trimmed(self, auth_service, trainer_user):
        assert auth_service.login("  coach_ana ", STRONG_PASSWORD).user.id == trainer_user.id

    def test_unknown_user_gets_generic_error(self, auth_service, event_repo):
        with pytest.raises(AuthenticationError) as exc_info:
            auth_service.login("ghost", STRONG_PASSWORD)

        assert exc_info.value.message == "Invalid username or password"
        event = event_repo.list_events()[0]
        assert event.details["reason"] == "unknown_user"

    def test_wrong_password_gets_same_generic_error(self, auth_service, trainer_user):
        with pytest.raises(AuthenticationError) as exc_info:
            auth_service.login("coach_ana", "Wrong!Pass1x")

        assert not isinstance(exc_info.value, AccountLockedError)
        assert exc_info.value.message == "Invalid username or password"

    def test_inactive_user_cannot_login(self, auth_service, trainer_user, user_repo):
        user_repo.update_user(trainer_user.id, {"is_active": False})

        with pytest.raises(AuthenticationError, match="Invalid username or password"):
            auth_service.login("coach_ana", STRONG_PASSWORD)

    @pytest.mark.parametrize("username, password", [("", "x"), ("coach_ana", ""), ("  ", "x")])
    def test_missing_credentials(self, auth_service, trainer_user, username, password):
        with pytest.raises(AuthenticationError):
            auth_service.login(username, password)

    def test_must_change_password_is_reported(self, auth_service, trainer_user, user_repo):
        user_repo.update_user(trainer_user.id, {"must_change_password": True})

        assert auth_service.login("coach_ana", STRONG_PASSWORD).must_change_password


class TestHashUpgrade:
    def test_weaker_hash_is_upgraded_on_login(
        self, user_repo, session_repo, permission_repo, event_repo, settings, clock, trainer_user
    ):
        service = AuthenticationService(
            users=user_repo,
            sessions=session_repo,
            permissions=permission_repo,
            events=event_repo,
            settings=settings.model_copy(update={"bcrypt_rounds": 5}),
            clock=clock,
        )

        service.login("coach_ana", STRONG_PASSWORD)

        stored = user_repo.get_user_by_id(trainer_user.id).password_hash
        assert hash_rounds(stored) == 5
        assert verify_password(STRONG_PASSWORD, stored)

    def test_current_cost_hash_is_left_alone(self, auth_service, trainer_user, user_repo):
        auth_service.login("coach_ana", STRONG_PASSWORD)

        assert user_repo.get_user_by_id(trainer_user.id).password_hash == trainer_user.password_hash

    def test_failed_login_does_not_rehash(self, auth_service, trainer_user, user_repo):
        with pytest.raises(AuthenticationError):
            auth_service.login("coach_ana", "Wrong!Pass1x")

        assert user_repo.get_user_by_id(trainer_user.id).password_hash == trainer_user.password_hash


class TestLockout:
    def test_fifth_failure_locks_the_account(self, auth_service, trainer_user, user_repo, event_repo):
        _fail(auth_service, "coach_ana", 5)

        stored = user_repo.get_user_by_id(trainer_user.id)
        assert stored.failed_login_attempts == 5
        assert stored.locked_until is not None
        assert "account_locked" in event_repo.event_types()

    def test_fourth_failure_does_not_lock(self, auth_service, trainer_user, user_repo):
        _fail(auth_service, "coach_ana", 4)

        assert user_repo.get_user_by_id(trainer_user.id).locked_until is None

    def test_correct_password_rejected_while_locked(self, auth_service, trainer_user, event_repo):
        _fail(auth_service, "coach_ana", 5)

        with pytest.raises(AccountLockedError) as exc_info:
            auth_service.login("coach_ana", STRONG_PASSWORD)

        assert exc_info.value.remaining_minutes == 15
        assert "15 minutes" in exc_info.value.message
        assert event_repo.event_types()[-1] == "login_blocked_locked"

    def test_remaining_minutes_round_up(self, auth_service, trainer_user, clock):
        _fail(auth_service, "coach_ana", 5)
        clock.advance(minutes=10, seconds=30)

        with pytest.raises(AccountLockedError) as exc_info:
            auth_service.login("coach_ana", STRONG_PASSWORD)

        assert exc_info.value.remaining_minutes == 5

    def test_login_allowed_after_lock_expires(self, auth_service, trainer_user, user_repo, clock):
        _fail(auth_service, "coach_ana", 5)
        clock.advance(minutes=16)

        result = auth_service.login("coach_ana", STRONG_PASSWORD)

        assert result.user.id == trainer_user.id
        stored = user_repo.get_user_by_id(trainer_user.id)
        assert stored.failed_login_attempts == 0
        assert stored.locked_until is None


# =============================================================================
# Token resolution / logout / refresh
# =============================================================================


class TestResolveAccessToken:
    def test_resolves_identity(self, auth_service, trainer_user):
        result = auth_service.login("coach_ana", STRONG_PASSWORD)

        user = auth_service.resolve_access_token(result.access_token)

        assert user.id == trainer_user.id
        assert user.role is UserRole.TRAINER
        assert user.session_id == result.session_id
        assert auth_service.validate_session(result.access_token) == user

    def test_token_dies_with_its_session(self, auth_service, trainer_user):
        result = auth_service.login("coach_ana", STRONG_PASSWORD)
        auth_service.logout(result.session_id)

        with pytest.raises(SessionError):
            auth_service.resolve_access_token(result.access_token)

    def test_expired_session_rejects_valid_token(self, auth_service, trainer_user, clock):
        result = auth_service.login("coach_ana", STRONG_PASSWORD)
        clock.advance(days=8)

        with pytest.raises(SessionError):
            auth_service.resolve_access_token(result.access_token)

    def test_garbage_token(self, auth_service):
        with pytest.raises(InvalidTokenError):
            auth_service.resolve_access_token("garbage")


class TestLogout:
    def test_logout_is_idempotent(self, auth_service, trainer_user, event_repo):
        result = auth_service.login("coach_ana", STRONG_PASSWORD)

        assert auth_service.logout(result.session_id) is True
        assert auth_service.logout(result.session_id) is False
        assert auth_service.logout(uuid4()) is False
        assert auth_service.logout("not-a-uuid") is False
        assert event_repo.event_types().count("logout") == 1

    def test_logout_ignores_foreign_session(self, auth_service, trainer_user, member_user):
        result = auth_service.login("coach_ana", STRONG_PASSWORD)

        assert auth_service.logout(result.session_id, user_id=member_user.id) is False
        assert auth_service.resolve_access_token(result.access_token).id == trainer_user.id

    def test_logout_by_token(self, auth_service, trainer_user):
        result = auth_service.login("coach_ana", STRONG_PASSWORD)

        assert auth_service.logout_token(result.access_token) is True
        assert auth_service.logout_token(result.access_token) is False
        assert auth_service.logout_token("garbage") is False
        assert auth_service.logout_token(None) is False


class TestRefresh:
    def test_refresh_issues_new_access_token(self, auth_service, trainer_user, event_repo):
        login = auth_service.login("coach_ana", STRONG_PASSWORD)

        refreshed = auth_service.refresh_access_token(login.session_id, login.refresh_token)

        assert refreshed.access_token != login.access_token
        assert refreshed.user.id == trainer_user.id
        assert refreshed.user.email == trainer_user.email
        assert auth_service.resolve_access_token(refreshed.access_token).id == trainer_user.id
        assert event_repo.event_types()[-1] == "token_refreshed"

    def test_refresh_token_is_not_rotated(self, auth_service, trainer_user):
        login = auth_service.login("coach_ana", STRONG_PASSWORD)

        auth_service.refresh_access_token(login.session_id, login.refresh_token)
        again = auth_service.refresh_access_token(login.session_id, login.refresh_token)

        assert again.user.session_id == login.session_id

    def test_mismatched_refresh_token(self, auth_service, trainer_user, event_repo):
        first = auth_service.login("coach_ana", STRONG_PASSWORD)
        second = auth_service.login("coach_ana", STRONG_PASSWORD)

        with pytest.raises(SessionError, match="Invalid session"):
            auth_service.refresh_access_token(first.session_id, second.refresh_token)

        assert event_repo.event_types()[-1] == "token_refresh_failed"

    def test_refresh_after_logout_fails(self, auth_service, trainer_user):
        login = auth_service.login("coach_ana", STRONG_PASSWORD)
        auth_service.logout(login.session_id)

        with pytest.raises(SessionError):
            auth_service.refresh_access_token(login.session_id, login.refresh_token)

    def test_refresh_for_deactivated_user_fails(self, auth_service, trainer_user, user_repo):
        login = auth_service.login("coach_ana", STRONG_PASSWORD)
        user_repo.update_user(trainer_user.id, {"is_active": False})

        with pytest.raises(SessionError):
            auth_service.refresh_access_token(login.session_id, login.refresh_token)

    def test_missing_inputs(self, auth_service):
        with pytest.raises(SessionError):
            auth_service.refresh_access_token(None, None)

    def test_refresh_token_is_bound_to_session(self, auth_service, trainer_user, settings):
        login = auth_service.login("coach_ana", STRONG_PASSWORD)

        claims = verify_refresh_token(login.refresh_token, get_token_settings(settings))
        assert claims.session_id == login.session_token


# =============================================================================
# Passwords
# =============================================================================


class TestChangePassword:
    def test_change_revokes_every_session(self, auth_service, trainer_user, user_repo, event_repo):
        first = auth_service.login("coach_ana", STRONG_PASSWORD)
        auth_service.login("coach_ana", STRONG_PASSWORD)

        revoked = auth_service.change_password(
            trainer_user.id, STRONG_PASSWORD, OTHER_STRONG_PASSWORD
        )

        assert revoked == 2
        with pytest.raises(SessionError):
            auth_service.resolve_access_token(first.access_token)
        stored = user_repo.get_user_by_id(trainer_user.id)
        assert verify_password(OTHER_STRONG_PASSWORD, stored.password_hash)
        assert event_repo.event_types()[-1] == "password_changed"

    def test_new_password_works_for_login(self, auth_service, trainer_user):
        auth_service.change_password(trainer_user.id, STRONG_PASSWORD, OTHER_STRONG_PASSWORD)

        with pytest.raises(AuthenticationError):
            auth_service.login("coach_ana", STRONG_PASSWORD)
        assert auth_service.login("coach_ana", OTHER_STRONG_PASSWORD)

    def test_wrong_current_password(self, auth_service, trainer_user):
        with pytest.raises(CurrentPasswordIncorrectError):
            auth_service.change_password(trainer_user.id, "Wrong!Pass1x", OTHER_STRONG_PASSWORD)

    def test_weak_new_password(self, auth_service, trainer_user):
        with pytest.raises(ValidationError) as exc_info:
            auth_service.change_password(trainer_user.id, STRONG_PASSWORD, "weak")

        assert "new_password" in exc_info.value.field_errors

    def test_clears_must_change_flag(self, auth_service, trainer_user, user_repo):
        user_repo.update_user(trainer_user.id, {"must_change_password": True})

        auth_service.change_password(trainer_user.id, STRONG_PASSWORD, OTHER_STRONG_PASSWORD)

        assert not user_repo.get_user_by_id(trainer_user.id).must_change_password


class TestResetPassword:
    def test_generated_password_forces_change(self, auth_service, admin_user, member_user, user_repo):
        auth_service.login("member_bob", STRONG_PASSWORD)

        temporary = auth_service.reset_user_password(member_user.id, actor=admin_user)

        stored = user_repo.get_user_by_id(member_user.id)
        assert len(temporary) == 16
        assert verify_password(temporary, stored.password_hash)
        assert stored.must_change_password
        assert auth_service.list_user_sessions(member_user.id) == []

    def test_reset_unlocks_account(self, auth_service, member_user, user_repo):
        _fail(auth_service, "member_bob", 5)

        auth_service.reset_user_password(member_user.id, OTHER_STRONG_PASSWORD)

        assert auth_service.login("member_bob", OTHER_STRONG_PASSWORD).must_change_password

    def test_weak_explicit_password(self, auth_service, member_user):
        with pytest.raises(ValidationError):
            auth_service.reset_user_password(member_user.id, "weak")

    def test_unknown_user(self, auth_service):
        with pytest.raises(NotFoundError):
            auth_service.reset_user_password(uuid4())


# =============================================================================
# Permissions
# =============================================================================


class TestPermissions:
    def test_role_permissions(self, auth_service):
        assert "users.create" in auth_service.get_role_permissions("admin")
        assert auth_service.get_role_permissions("member") == ["dashboard.view", "profile.view"]
        assert auth_service.get_role_permissions("owner") == []

    def test_user_permissions(self, auth_service, trainer_user):
        assert auth_service.has_permission(trainer_user.id, "members.view")
        assert not auth_service.has_permission(trainer_user.id, "users.view")

    def test_inactive_user_has_no_permissions(self, auth_service, trainer_user, user_repo):
        user_repo.update_user(trainer_user.id, {"is_active": False})

        assert auth_service.get_user_permissions(trainer_user.id) == []

    def test_unknown_user_has_no_permissions(self, auth_service):
        assert auth_service.get_user_permissions(uuid4()) == []


# =============================================================================
# User administration
# =============================================================================


class TestCreateUser:
    def test_creates_normalized_user(self, auth_service, admin_user, event_repo):
        user = auth_service.create_user(
            " New_Coach ", " Coach@Example.COM ", STRONG_PASSWORD, "trainer", " Ana B ",
            actor=admin_user,
        )

        assert user.username == "new_coach"
        assert user.email == "coach@example.com"
        assert user.full_name == "Ana B"
        assert user.role is UserRole.TRAINER
        event = event_repo.list_events(event_type="user_created")[0]
        assert event.details["actor_username"] == "head_admin"

    def test_duplicate_username(self, auth_service, trainer_user):
        with pytest.raises(ConflictError, match="Username already exists"):
            auth_service.create_user("coach_ana", "other@example.com", STRONG_PASSWORD)

    def test_duplicate_email(self, auth_service, trainer_user):
        with pytest.raises(ConflictError, match="Email already exists"):
            auth_service.create_user("other_coach", "coach_ana@example.com", STRONG_PASSWORD)

    def test_collects_field_errors(self, auth_service):
        with pytest.raises(ValidationError) as exc_info:
            auth_service.create_user("ab", "bad", "weak", "owner")

        assert set(exc_info.value.field_errors) == {"username", "email", "password", "role"}


class TestUpdateUser:
    def test_updates_fields(self, auth_service, member_user):
        updated = auth_service.update_user(
            member_user.id, {"full_name": "Bob B", "role": "trainer"}
        )

        assert updated.full_name == "Bob B"
        assert updated.role is UserRole.TRAINER

    def test_rejects_unknown_fields(self, auth_service, member_user):
        with pytest.raises(ValidationError, match="Unsupported fields: password_hash"):
            auth_service.update_user(member_user.id, {"password_hash": "x"})

    def test_email_conflict(self, auth_service, member_user, trainer_user):
        with pytest.raises(ConflictError):
            auth_service.update_user(member_user.id, {"email": "coach_ana@example.com"})

    def test_cannot_deactivate_self(self, auth_service, admin_user):
        with pytest.raises(ValidationError):
            auth_service.update_user(admin_user.id, {"is_active": False}, actor=admin_user)

    def test_deactivation_revokes_sessions(self, auth_service, admin_user, member_user):
        login = auth_service.login("member_bob", STRONG_PASSWORD)

        auth_service.update_user(member_user.id, {"is_active": False}, actor=admin_user)

        with pytest.raises(SessionError):
            auth_service.resolve_access_token(login.access_token)

    def test_unknown_user(self, auth_service):
        with pytest.raises(NotFoundError):
            auth_service.update_user(uuid4(), {"full_name": "x"})


class TestDeleteUser:
    def test_soft_delete(self, auth_service, admin_user, member_user, event_repo):
        login = auth_service.login("member_bob", STRONG_PASSWORD)

        deleted = auth_service.delete_user(member_user.id, actor=admin_user)

        assert not deleted.is_active
        assert auth_service.get_user(member_user.id).is_active is False
        with pytest.raises(SessionError):
            auth_service.resolve_access_token(login.access_token)
        assert event_repo.event_types()[-1] == "user_deactivated"

    def test_cannot_delete_self(self, auth_service, admin_user):
        with pytest.raises(ValidationError):
            auth_service.delete_user(admin_user.id, actor=admin_user)


class TestSessionAdministration:
    def test_list_and_revoke(self, auth_service, member_user):
        first = auth_service.login("member_bob", STRONG_PASSWORD)
        auth_service.login("member_bob", STRONG_PASSWORD)

        assert len(auth_service.list_user_sessions(member_user.id)) == 2

        auth_service.revoke_user_session(member_user.id, first.session_id)

        remaining = auth_service.list_user_sessions(member_user.id)
        assert first.session_id not in {s.id for s in remaining}

    def test_revoke_foreign_session_is_not_found(self, auth_service, member_user, trainer_user):
        login = auth_service.login("coach_ana", STRONG_PASSWORD)

        with pytest.raises(NotFoundError):
            auth_service.revoke_user_session(member_user.id, login.session_id)

    def test_cleanup_expired(self, auth_service, member_user, clock):
        auth_service.login("member_bob", STRONG_PASSWORD)
        clock.advance(days=8)

        assert auth_service.cleanup_expired_sessions() == 1


class TestFirstTimeSetup:
    def test_no_admin_means_first_time(self, auth_service, member_user):
        assert auth_service.is_first_time_setup()

    def test_active_admin_ends_setup(self, auth_service, admin_user):
        assert not auth_service.is_first_time_setup()

    def test_inactive_admin_does_not_count(self, auth_service, admin_user, user_repo):
        user_repo.update_user(admin_user.id, {"is_active": False})

        assert auth_service.is_first_time_setup()
