"""
============================================================
TARJETA CRC — infrastructure/repositories/in_memory/session.py
============================================================
Class: InMemorySessionRepository

Responsibilities:
  - Almacenar sesiones en memoria (tests / local dev).
  - Replicar la semántica de desactivación idempotente de Postgres.

Collaborators:
  - domain.sessions.Session
  - domain.repositories.SessionRepository

Constraints / Notes:
  - Thread-safe: acceso protegido por Lock.
  - NO es un caché del store real: es un backend alternativo completo.
============================================================
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from threading import Lock
from typing import Dict, List, Optional
from uuid import UUID, uuid4

from ....crosscutting.exceptions import DatabaseError
from ....domain.sessions import Session


class InMemorySessionRepository:
    def __init__(self) -> None:
        self._lock = Lock()
        self._sessions: Dict[UUID, Session] = {}

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
        now = datetime.now(timezone.utc)
        with self._lock:
            if any(s.session_token == session_token for s in self._sessions.values()):
                raise DatabaseError("duplicate key value violates unique constraint")
            session = Session(
                id=uuid4(),
                user_id=user_id,
                session_token=session_token,
                refresh_token=refresh_token,
                expires_at=expires_at,
                device_info=device_info,
                ip_address=ip_address,
                user_agent=user_agent,
                created_at=now,
                last_used_at=now,
            )
            self._sessions[session.id] = session
            return session

    def get_session(self, session_id: UUID) -> Optional[Session]:
        with self._lock:
            return self._sessions.get(session_id)

    def get_session_by_token(self, session_token: str) -> Optional[Session]:
        with self._lock:
            for session in self._sessions.values():
                if session.session_token == session_token:
                    return session
            return None

    def _deactivate_where(self, predicate) -> int:
        count = 0
        for sid, session in list(self._sessions.items()):
            if session.is_active and predicate(session):
                self._sessions[sid] = replace(session, is_active=False)
                count += 1
        return count

    def deactivate_session(self, session_id: UUID) -> bool:
        with self._lock:
            return self._deactivate_where(lambda s: s.id == session_id) > 0

    def deactivate_user_sessions(self, user_id: UUID) -> int:
        with self._lock:
            return self._deactivate_where(lambda s: s.user_id == user_id)

    def deactivate_expired_sessions(self, now: datetime) -> int:
        with self._lock:
            return self._deactivate_where(lambda s: s.expires_at <= now)

    def touch_session(self, session_id: UUID, at: datetime) -> None:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is not None:
                self._sessions[session_id] = replace(session, last_used_at=at)

    def list_active_sessions(self, user_id: UUID, now: datetime) -> List[Session]:
        with self._lock:
            active = [
                s
                for s in self._sessions.values()
                if s.user_id == user_id and s.is_active and s.expires_at > now
            ]
        return sorted(active, key=lambda s: (s.created_at, str(s.id)), reverse=True)
