"""
===============================================================================
TARJETA CRC — identity/sessions.py
===============================================================================

Módulo:
    Session Store (sesiones de login persistidas)

Responsabilidades:
    - Crear, leer, invalidar y listar sesiones de usuario.
    - Validar el par (session_id, refresh_token) para renovar tokens.
    - Limpiar sesiones vencidas.

Colaboradores:
    - domain.repositories.SessionRepository: persistencia (Postgres / in-memory).
    - domain.sessions.Session: entidad.
    - application/auth_service.py: único consumidor.

Notas de diseño:
    - La DB es la única fuente de verdad: no hay caché en memoria de proceso.
    - invalidate_* es idempotente (invalidar dos veces no es error).
    - Un mismatch del refresh token se reporta como "Invalid session" sin
      distinguir la causa.
===============================================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from ..crosscutting.exceptions import SessionError
from ..crosscutting.logger import logger
from ..domain.repositories import SessionRepository
from ..domain.sessions import Session

INVALID_SESSION_MESSAGE: str = "Invalid session"


def _as_uuid(value: UUID | str | None) -> UUID | None:
    if value is None or isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


class SessionStore:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      SessionStore

    Responsabilidades:
      - Operaciones de sesión sobre el puerto SessionRepository
      - Tolerar ids malformados (cookies manipuladas) como "no existe"

    Colaboradores:
      - SessionRepository
    ----------------------------------------------------------------------------
    """

    def __init__(self, repository: SessionRepository):
        self._repo = repository

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
    ) -> Session:
        session = self._repo.create_session(
            user_id=user_id,
            session_token=session_token,
            refresh_token=refresh_token,
            expires_at=expires_at,
            device_info=device_info,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        logger.info(
            "Sesión creada",
            extra={"session_id": str(session.id), "user_id": str(user_id)},
        )
        return session

    def get_session(self, session_id: UUID | str | None) -> Session | None:
        sid = _as_uuid(session_id)
        if sid is None:
            return None
        return self._repo.get_session(sid)

    def get_session_by_token(self, session_token: str | None) -> Session | None:
        if not session_token:
            return None
        return self._repo.get_session_by_token(session_token)

    def invalidate_session(self, session_id: UUID | str | None) -> bool:
        sid = _as_uuid(session_id)
        if sid is None:
            return False
        changed = self._repo.deactivate_session(sid)
        if changed:
            logger.info("Sesión invalidada", extra={"session_id": str(sid)})
        return changed

    def invalidate_user_sessions(self, user_id: UUID) -> int:
        count = self._repo.deactivate_user_sessions(user_id)
        logger.info(
            "Sesiones de usuario invalidadas",
            extra={"user_id": str(user_id), "count": count},
        )
        return count

    def validate_refresh_pair(
        self, session_id: UUID | str | None, refresh_token: str | None, now: datetime
    ) -> Session:
        """Sesión activa, no vencida y ligada a ESTE refresh token; si no, SessionError."""
        session = self.get_session(session_id)
        if session is None or not session.matches_refresh(refresh_token, now):
            raise SessionError(INVALID_SESSION_MESSAGE)
        return session

    def touch(self, session_id: UUID, now: datetime) -> None:
        self._repo.touch_session(session_id, now)

    def list_user_sessions(self, user_id: UUID, now: datetime) -> List[Session]:
        return self._repo.list_active_sessions(user_id, now)

    def revoke_user_session(self, user_id: UUID, session_id: UUID | str) -> bool:
        """Revoca una sesión solo si pertenece al usuario indicado."""
        session = self.get_session(session_id)
        if session is None or session.user_id != user_id:
            return False
        return self._repo.deactivate_session(session.id)

    def cleanup_expired_sessions(self, now: datetime) -> int:
        count = self._repo.deactivate_expired_sessions(now)
        if count:
            logger.info("Sesiones vencidas desactivadas", extra={"count": count})
        return count
