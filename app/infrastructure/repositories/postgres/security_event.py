"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/security_event.py
============================================================
Class: PostgresSecurityEventRepository

Responsibilities:
  - Persistir eventos de seguridad en PostgreSQL (tabla security_events).
  - Listar eventos con filtros opcionales (user_id, event_type).

Collaborators:
  - app.domain.audit.SecurityEvent
  - psycopg_pool.ConnectionPool
  - psycopg.types.json.Json (details JSONB)
  - crosscutting.logger.logger / crosscutting.exceptions.DatabaseError

Constraints / Notes:
  - Append-only: no se edita, no se borra.
  - Si falla, se propaga DatabaseError; emit_security_event lo traga.
============================================================
"""

from __future__ import annotations

from typing import Iterable
from uuid import UUID

from psycopg.types.json import Json
from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....domain.audit import SecurityEvent, SecurityEventType, Severity


class PostgresSecurityEventRepository:
    """Repositorio PostgreSQL para security_events."""

    def __init__(self, pool: ConnectionPool | None = None):
        self._pool = pool

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from app.infrastructure.db.pool import get_pool

        return get_pool()

    def _fetchall(
        self,
        *,
        query: str,
        params: Iterable[object],
        error_message: str,
        extra: dict[str, object],
    ) -> list[tuple]:
        try:
            with self._get_pool().connection() as conn:
                return conn.execute(query, tuple(params)).fetchall()
        except Exception as exc:
            logger.exception(error_message, extra={**extra, "error": str(exc)})
            raise DatabaseError(f"{error_message}: {exc}") from exc

    def record_event(self, event: SecurityEvent) -> None:
        try:
            with self._get_pool().connection() as conn:
                conn.execute(
                    """
                    INSERT INTO security_events (
                        id, event_type, severity, user_id, username,
                        ip_address, user_agent, details
                    )
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
                    """,
                    (
                        event.id,
                        event.event_type.value,
                        event.severity.value,
                        event.user_id,
                        event.username,
                        event.ip_address,
                        event.user_agent,
                        Json(event.details or {}),
                    ),
                )
        except Exception as exc:
            logger.exception(
                "PostgresSecurityEventRepository: Failed to record security event",
                extra={
                    "event_id": str(event.id),
                    "event_type": event.event_type.value,
                    "error": str(exc),
                },
            )
            raise DatabaseError(f"Failed to record security event: {exc}") from exc

    def list_events(
        self,
        *,
        user_id: UUID | None = None,
        event_type: str | None = None,
        limit: int = 100,
    ) -> list[SecurityEvent]:
        if limit <= 0:
            return []

        conditions: list[str] = []
        params: list[object] = []

        if user_id is not None:
            conditions.append("user_id = %s")
            params.append(user_id)
        if event_type:
            conditions.append("event_type = %s")
            params.append(str(event_type))

        where_clause = f"WHERE {' AND '.join(conditions)}" if conditions else ""

        rows = self._fetchall(
            query=f"""
                SELECT id, event_type, severity, user_id, username,
                       ip_address, user_agent, details, created_at
                FROM security_events
                {where_clause}
                ORDER BY created_at DESC, id DESC
                LIMIT %s
            """,
            params=[*params, limit],
            error_message="PostgresSecurityEventRepository: Failed to list events",
            extra={
                "user_id": str(user_id) if user_id else None,
                "event_type": event_type,
                "limit": limit,
            },
        )

        events: list[SecurityEvent] = []
        for (
            event_id,
            kind,
            severity,
            uid,
            username,
            ip_address,
            user_agent,
            details,
            created_at,
        ) in rows:
            events.append(
                SecurityEvent(
                    id=event_id,
                    event_type=SecurityEventType(kind),
                    severity=Severity(severity),
                    user_id=uid,
                    username=username,
                    ip_address=str(ip_address) if ip_address is not None else None,
                    user_agent=user_agent,
                    details=details or {},
                    created_at=created_at,
                )
            )
        return events
