"""
===============================================================================
TARJETA CRC — app/api/schemas.py
===============================================================================

Módulo:
    DTOs HTTP (auth + administración de usuarios)

Responsabilidades:
    - Contratos de request/response de los routers.
    - Adaptar entidades de dominio (User, Session) a respuestas sin secretos.

Colaboradores:
    - identity.users.User / UserRole
    - domain.sessions.Session
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..domain.sessions import Session
from ..identity.users import User, UserRole


class UserResponse(BaseModel):
    id: UUID
    username: str
    email: str
    full_name: str
    role: UserRole
    is_active: bool
    must_change_password: bool
    last_login_at: datetime | None = None
    created_at: datetime | None = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            username=user.username,
            email=user.email,
            full_name=user.full_name,
            role=user.role,
            is_active=user.is_active,
            must_change_password=user.must_change_password,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class SessionResponse(BaseModel):
    """Sesión listada para admin (sin session_token ni refresh_token)."""

    id: UUID
    device_info: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime | None = None
    last_used_at: datetime | None = None
    expires_at: datetime

    @classmethod
    def from_session(cls, session: Session) -> "SessionResponse":
        return cls(
            id=session.id,
            device_info=session.device_info,
            ip_address=session.ip_address,
            user_agent=session.user_agent,
            created_at=session.created_at,
            last_used_at=session.last_used_at,
            expires_at=session.expires_at,
        )


class CreateUserRequest(BaseModel):
    username: str = Field(..., max_length=50)
    email: str = Field(..., max_length=254)
    password: str = Field(..., max_length=512)
    role: str = UserRole.MEMBER.value
    full_name: str = Field("", max_length=200)
    must_change_password: bool = False


class UpdateUserRequest(BaseModel):
    """Patch parcial: solo los campos enviados se aplican."""

    model_config = ConfigDict(extra="forbid")

    email: str | None = None
    full_name: str | None = None
    role: str | None = None
    is_active: bool | None = None


class ResetPasswordRequest(BaseModel):
    password: str | None = Field(None, max_length=512)


class ResetPasswordResponse(BaseModel):
    success: bool = True
    temporary_password: str


class ChangePasswordRequest(BaseModel):
    """Acepta camelCase (cliente web) y snake_case."""

    model_config = ConfigDict(populate_by_name=True)

    current_password: str | None = Field(None, alias="currentPassword")
    new_password: str | None = Field(None, alias="newPassword")
