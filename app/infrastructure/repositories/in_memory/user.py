"""
============================================================
TARJETA CRC — infrastructure/repositories/in_memory/user.py
============================================================
Class: InMemoryUserRepository

Responsibilities:
  - Almacenar usuarios en memoria (tests / local dev).
  - Replicar las constraints únicas de Postgres (username, email).
  - Mantener ordering determinístico alineado con Postgres:
      ORDER BY created_at DESC, id DESC

Collaborators:
  - identity.users.User / UserRole
  - domain.repositories.UserRepository (contrato a implementar)

Constraints / Notes:
  - Thread-safe: acceso protegido por Lock.
  - User es inmutable: los updates usan dataclasses.replace.
============================================================
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, List, Optional
from uuid import UUID, uuid4

from ....crosscutting.exceptions import DatabaseError
from ....identity.users import User, UserRole

_UPDATABLE_FIELDS = frozenset(
    {
        "email",
        "full_name",
        "role",
        "is_active",
        "password_hash",
        "must_change_password",
        "failed_login_attempts",
        "locked_until",
    }
)


class InMemoryUserRepository:
    """Repositorio in-memory, thread-safe, para usuarios."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._users: Dict[UUID, User] = {}

    @staticmethod
    def _now() -> datetime:
        return datetime.now(timezone.utc)

    def _find(self, predicate) -> Optional[User]:
        for user in self._users.values():
            if predicate(user):
                return user
        return None

    # --- Lectura ---
    def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        with self._lock:
            return self._users.get(user_id)

    def get_user_by_username(self, username: str) -> Optional[User]:
        with self._lock:
            return self._find(lambda u: u.username == username)

    def get_user_by_email(self, email: str) -> Optional[User]:
        with self._lock:
            return self._find(lambda u: u.email == email)

    def list_users(self) -> List[User]:
        with self._lock:
            return sorted(
                self._users.values(),
                key=lambda u: (u.created_at, str(u.id)),
                reverse=True,
            )

    def count_active_admins(self) -> int:
        with self._lock:
            return sum(
                1
                for u in self._users.values()
                if u.role == UserRole.ADMIN and u.is_active
            )

    # --- Escritura ---
    def create_user(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        role: UserRole,
        full_name: str = "",
        must_change_password: bool = False,
    ) -> User:
        now = self._now()
        with self._lock:
            if self._find(lambda u: u.username == username or u.email == email):
                raise DatabaseError("duplicate key value violates unique constraint")
            user = User(
                id=uuid4(),
                username=username,
                email=email,
                full_name=full_name,
                password_hash=password_hash,
                role=UserRole(role),
                must_change_password=must_change_password,
                created_at=now,
                updated_at=now,
            )
            self._users[user.id] = user
            return user

    def update_user(self, user_id: UUID, changes: dict[str, Any]) -> Optional[User]:
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                return None
            values = {k: v for k, v in changes.items() if k in _UPDATABLE_FIELDS}
            if not values:
                return current
            if "role" in values:
                values["role"] = UserRole(values["role"])
            if "email" in values and self._find(
                lambda u: u.email == values["email"] and u.id != user_id
            ):
                raise DatabaseError("duplicate key value violates unique constraint")
            updated = replace(current, **values, updated_at=self._now())
            self._users[user_id] = updated
            return updated

    def record_failed_login(
        self, user_id: UUID, attempts: int, locked_until: Optional[datetime]
    ) -> None:
        self.update_user(
            user_id,
            {"failed_login_attempts": attempts, "locked_until": locked_until},
        )

    def record_successful_login(self, user_id: UUID, at: datetime) -> None:
        with self._lock:
            current = self._users.get(user_id)
            if current is None:
                return
            self._users[user_id] = replace(
                current,
                failed_login_attempts=0,
                locked_until=None,
                last_login_at=at,
                updated_at=self._now(),
            )

    # --- Testing helpers ---
    def clear(self) -> None:
        with self._lock:
            self._users.clear()
