"""
===============================================================================
TARJETA CRC — identity/users.py
===============================================================================

Módulo:
    Modelos de Usuario (staff y socios del gimnasio)

Responsabilidades:
    - Definir el enum de roles (admin, trainer, member) y su jerarquía.
    - Definir el dataclass User que usan login, lockout y administración.
    - Exponer la proyección mínima que se devuelve al cliente (sin hash).

Colaboradores:
    - identity/tokens.py: embebe username/role en los tokens.
    - identity/permissions.py: mapea roles -> permisos.
    - infrastructure/repositories/*/user.py: mapea filas -> User.

Notas:
    - Este módulo NO contiene lógica de negocio: solo “shapes” de datos
      y helpers puros de jerarquía.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable
from uuid import UUID


class UserRole(str, Enum):
    """Roles soportados."""

    ADMIN = "admin"
    TRAINER = "trainer"
    MEMBER = "member"


# Mayor número = más privilegios.
ROLE_HIERARCHY: dict[UserRole, int] = {
    UserRole.MEMBER: 1,
    UserRole.TRAINER: 2,
    UserRole.ADMIN: 3,
}


@dataclass(frozen=True, slots=True)
class User:
    """Registro de usuario."""

    id: UUID
    username: str
    email: str
    password_hash: str
    role: UserRole
    full_name: str = ""
    is_active: bool = True
    failed_login_attempts: int = 0
    locked_until: datetime | None = None
    must_change_password: bool = False
    last_login_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_locked(self, now: datetime) -> bool:
        return self.locked_until is not None and self.locked_until > now


@dataclass(frozen=True, slots=True)
class UserProjection:
    """Lo mínimo que el cliente necesita saber del usuario (nunca el hash)."""

    id: UUID
    username: str
    role: UserRole

    @classmethod
    def from_user(cls, user: User) -> "UserProjection":
        return cls(id=user.id, username=user.username, role=user.role)

    def to_dict(self) -> dict[str, str]:
        return {"id": str(self.id), "username": self.username, "role": self.role.value}


def _coerce_role(role: UserRole | str | None) -> UserRole | None:
    if role is None:
        return None
    try:
        return UserRole(role)
    except ValueError:
        return None


def has_role(
    role: UserRole | str | None, required: UserRole | str | Iterable[UserRole | str]
) -> bool:
    """True si el rol coincide con alguno de los requeridos."""
    current = _coerce_role(role)
    if current is None:
        return False

    if isinstance(required, (str, UserRole)):
        required = [required]
    return current in {_coerce_role(r) for r in required}


def has_minimum_role(role: UserRole | str | None, minimum: UserRole | str) -> bool:
    """True si el rol alcanza el nivel mínimo en la jerarquía."""
    current = _coerce_role(role)
    if current is None:
        return False
    required = _coerce_role(minimum)
    if required is None:
        return False
    return ROLE_HIERARCHY[current] >= ROLE_HIERARCHY[required]
