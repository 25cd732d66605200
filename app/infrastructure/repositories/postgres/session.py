"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/session.py
============================================================
Class: PostgresSessionRepository

Responsibilities:
  - Persistir sesiones de login (tabla user_sessions).
  - Desactivar sesiones (una, todas las de un usuario, las vencidas).
  - Listar sesiones activas y no vencidas de un usuario.

Collaborators:
  - domain.sessions.Session
  - psycopg_pool.ConnectionPool
  - crosscutting.logger.logger / crosscutting.exceptions.DatabaseError

Constraints / Notes:
  - Repo puro: NO decide si una sesión es válida (eso es SessionStore).
  - Desactivar es idempotente: solo cuenta filas que estaban activas.
  - Orden estable en listados: created_at DESC, id DESC.
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable, Optional
from uuid import UUID

from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....domain.sessions import Session

_SESSION_COLUMNS = (
    "id, user_id, session_token, refresh_token, expires_at, is_active, "
    "device_info, ip_address, user_agent, created_at, last_used_at"
)


def _row_to_session(row: tuple) -> Session:
    return Session(
        id=row[0],
        user_id=row[1],
        session_token=row[2],
        refresh_token=row[3],
        expires_at=row[4],
        is_active=row[5],
        device_info=row[6],
        ip_address=str(row[7]) if row[7] is not None else None,
        user_agent=row[8],
        created_at=row[9],
        last_used_at=row[10],
    )


class PostgresSessionRepository:
    """Repositorio PostgreSQL para user_sessions."""

    def __init__(self, pool: ConnectionPool | None = None):
        self._pool = pool

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from app.infrastructure.db.pool import get_pool

        return get_pool()

    def _run(
        self,
        *,
        query: str,
        params: Iterable[object],
        error_message: str,
        extra: dict[str, object],
        fetch: str | None = None,
    ):
        """Ejecuta y opcionalmente trae filas ("one" / "all"); sino devuelve rowcount."""
        try:
            with self._get_pool().connection() as conn:
                cursor = conn.execute(query, tuple(params))
                if fetch == "one":
                    return cursor.fetchone()
                if fetch == "all":
                    return cursor.fetchall()
                return cursor.rowcount
        except Exception as exc:
            logger.exception(error_message, extra={**extra, "error": str(exc)})
            raise DatabaseError(f"{error_message}: {exc}") from exc

    # ------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------
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
        row = self._run(
            query=f"""
                INSERT INTO user_sessions (
                    user_id, session_token, refresh_token, expires_at,
                    device_info, ip_address, user_agent
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING {_SESSION_COLUMNS}
            """,
            params=(
                user_id,
                session_token,
                refresh_token,
                expires_at,
                device_info,
                ip_address,
                user_agent,
            ),
            error_message="PostgresSessionRepository: create_session failed",
            extra={"user_id": str(user_id)},
            fetch="one",
        )
        if not row:
            raise DatabaseError(
                "PostgresSessionRepository: create_session failed (no row returned)"
            )
        return _row_to_session(row)

    def deactivate_session(self, session_id: UUID) -> bool:
        count = self._run(
            query="""
                UPDATE user_sessions
                SET is_active = FALSE
                WHERE id = %s AND is_active = TRUE
            """,
            params=(session_id,),
            error_message="PostgresSessionRepository: deactivate_session failed",
            extra={"session_id": str(session_id)},
        )
        return count > 0

    def deactivate_user_sessions(self, user_id: UUID) -> int:
        return self._run(
            query="""
                UPDATE user_sessions
                SET is_active = FALSE
                WHERE user_id = %s AND is_active = TRUE
            """,
            params=(user_id,),
            error_message="PostgresSessionRepository: deactivate_user_sessions failed",
            extra={"user_id": str(user_id)},
        )

    def touch_session(self, session_id: UUID, at: datetime) -> None:
        self._run(
            query="UPDATE user_sessions SET last_used_at = %s WHERE id = %s",
            params=(at, session_id),
            error_message="PostgresSessionRepository: touch_session failed",
            extra={"session_id": str(session_id)},
        )

    def deactivate_expired_sessions(self, now: datetime) -> int:
        return self._run(
            query="""
                UPDATE user_sessions
                SET is_active = FALSE
                WHERE is_active = TRUE AND expires_at <= %s
            """,
            params=(now,),
            error_message="PostgresSessionRepository: deactivate_expired_sessions failed",
            extra={},
        )

    # ------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------
    def get_session(self, session_id: UUID) -> Optional[Session]:
        row = self._run(
            query=f"SELECT {_SESSION_COLUMNS} FROM user_sessions WHERE id = %s",
            params=(session_id,),
            error_message="PostgresSessionRepository: get_session failed",
            extra={"session_id": str(session_id)},
            fetch="one",
        )
        return _row_to_session(row) if row else None

    def get_session_by_token(self, session_token: str) -> Optional[Session]:
        row = self._run(
            query=f"""
                SELECT {_SESSION_COLUMNS}
                FROM user_sessions
                WHERE session_token = %s
            """,
            params=(session_token,),
            error_message="PostgresSessionRepository: get_session_by_token failed",
            extra={},
            fetch="one",
        )
        return _row_to_session(row) if row else None

    def list_active_sessions(self, user_id: UUID, now: datetime) -> list[Session]:
        rows = self._run(
            query=f"""
                SELECT {_SESSION_COLUMNS}
                FROM user_sessions
                WHERE user_id = %s AND is_active = TRUE AND expires_at > %s
                ORDER BY created_at DESC, id DESC
            """,
            params=(user_id, now),
            error_message="PostgresSessionRepository: list_active_sessions failed",
            extra={"user_id": str(user_id)},
            fetch="all",
        )
        return [_row_to_session(r) for r in rows]
