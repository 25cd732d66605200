"""
===============================================================================
TARJETA CRC — domain/audit.py
===============================================================================

Módulo:
    Modelos de Eventos de Seguridad (Dominio)

Responsabilidades:
    - Definir el evento de seguridad (SecurityEvent), su tipo y severidad.
    - Mantener el contrato de auditoría independiente de infraestructura.

Colaboradores:
    - domain.repositories.SecurityEventRepository: persiste y lista eventos.
    - app/audit.py: emite eventos (best-effort).
    - infra repos: mapean hacia/desde la tabla security_events.

Notas:
    - Append-only: no se edita ni se borra.
    - details es flexible (dict JSON-serializable).
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID


class Severity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SecurityEventType(str, Enum):
    """Tipos de evento que emite la capa de autenticación."""

    LOGIN = "login"
    FAILED_LOGIN = "failed_login"
    ACCOUNT_LOCKED = "account_locked"
    LOGIN_BLOCKED_LOCKED = "login_blocked_locked"
    LOGOUT = "logout"
    TOKEN_REFRESHED = "token_refreshed"
    TOKEN_REFRESH_FAILED = "token_refresh_failed"
    UNAUTHORIZED_ACCESS = "unauthorized_access"
    PASSWORD_CHANGED = "password_changed"
    PASSWORD_RESET = "password_reset"
    USER_CREATED = "user_created"
    USER_UPDATED = "user_updated"
    USER_DEACTIVATED = "user_deactivated"
    SESSION_REVOKED = "session_revoked"
    ADMIN_SETUP = "admin_setup"
    SERVER_ERROR = "server_error"


@dataclass(slots=True)
class SecurityEvent:
    """Evento de seguridad del sistema."""

    id: UUID
    event_type: SecurityEventType
    severity: Severity = Severity.LOW
    user_id: UUID | None = None
    username: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
