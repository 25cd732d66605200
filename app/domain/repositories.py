"""
CRC — domain/repositories.py

Name
- Domain Repository Interfaces (Protocols)

Responsibilities
- Define persistence contracts for users, sessions, permissions and security events (ports).
- Keep the application layer independent from infrastructure (PostgreSQL, in-memory).
- Enable dependency inversion and straightforward unit testing.

Collaborators
- identity.users: User, UserRole
- domain.sessions: Session
- domain.audit: SecurityEvent
- infrastructure.repositories: postgres/*, in_memory/* implementations

Constraints
- Pure interfaces only: no side effects, no infrastructure imports, no SQL.
- Implementations MUST match method signatures exactly.

Notes
- We use typing.Protocol for structural subtyping ("duck typing").
- Outputs are concrete lists for predictable iteration/serialization.
"""

from datetime import datetime
from typing import Any, List, Optional, Protocol
from uuid import UUID

from ..identity.users import User, UserRole
from .audit import SecurityEvent
from .sessions import Session


class UserRepository(Protocol):
    """
    R: Interface for user persistence.

    Users are never hard-deleted: deactivation flips is_active.
    """

    def get_user_by_id(self, user_id: UUID) -> Optional[User]: ...

    def get_user_by_username(self, username: str) -> Optional[User]: ...

    def get_user_by_email(self, email: str) -> Optional[User]: ...

    def list_users(self) -> List[User]: ...

    def create_user(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        role: UserRole,
        full_name: str = "",
        must_change_password: bool = False,
    ) -> User: ...

    def update_user(self, user_id: UUID, changes: dict[str, Any]) -> Optional[User]:
        """R: Apply column changes; returns the updated user or None if unknown."""
        ...

    def record_failed_login(
        self, user_id: UUID, attempts: int, locked_until: Optional[datetime]
    ) -> None: ...

    def record_successful_login(self, user_id: UUID, at: datetime) -> None:
        """R: Reset failed counter, clear lock and stamp last_login_at."""
        ...

    def count_active_admins(self) -> int: ...


class SessionRepository(Protocol):
    """R: Interface for login sessions (user_sessions)."""

    def create_session(
        self,
        *,
        user_id: UUID,
        session_token: str,
        refresh_token: str,
        expires_at: datetime,
        device_info: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> Session: ...

    def get_session(self, session_id: UUID) -> Optional[Session]: ...

    def get_session_by_token(self, session_token: str) -> Optional[Session]: ...

    def deactivate_session(self, session_id: UUID) -> bool:
        """R: True only when an active row changed."""
        ...

    def deactivate_user_sessions(self, user_id: UUID) -> int: ...

    def touch_session(self, session_id: UUID, at: datetime) -> None: ...

    def list_active_sessions(self, user_id: UUID, now: datetime) -> List[Session]: ...

    def deactivate_expired_sessions(self, now: datetime) -> int: ...


class PermissionRepository(Protocol):
    """R: Interface for the role -> permission mapping."""

    def list_role_permissions(self, role: UserRole) -> List[str]: ...


class SecurityEventRepository(Protocol):
    """R: Append-only store for security events."""

    def record_event(self, event: SecurityEvent) -> None: ...

    def list_events(
        self,
        *,
        user_id: Optional[UUID] = None,
        event_type: Optional[str] = None,
        limit: int = 100,
    ) -> List[SecurityEvent]: ...
