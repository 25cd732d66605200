"""
===============================================================================
TARJETA CRC — domain/sessions.py
===============================================================================

Módulo:
    Entidad Session (sesión de login persistida)

Responsabilidades:
    - Representar una fila de user_sessions.
    - Decidir si la sesión es utilizable y si un refresh token le corresponde.

Colaboradores:
    - identity/sessions.py: SessionStore.
    - infrastructure/repositories/*/session.py: mapean filas -> Session.

Notas:
    - La comparación del refresh token es en tiempo constante.
===============================================================================
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from datetime import datetime
from uuid import UUID


@dataclass(frozen=True, slots=True)
class Session:
    """Sesión ligada a un par session_token / refresh_token."""

    id: UUID
    user_id: UUID
    session_token: str
    refresh_token: str
    expires_at: datetime
    is_active: bool = True
    device_info: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: datetime | None = None
    last_used_at: datetime | None = None

    def is_usable(self, now: datetime) -> bool:
        return self.is_active and now < self.expires_at

    def matches_refresh(self, refresh_token: str | None, now: datetime) -> bool:
        if not refresh_token or not self.is_usable(now):
            return False
        return hmac.compare_digest(
            self.refresh_token.encode("utf-8"), refresh_token.encode("utf-8")
        )
