"""
In-Memory Security Event Repository for testing and development.

NOT FOR PRODUCTION USE - data is lost on restart.
"""

from __future__ import annotations

from datetime import datetime, timezone
from dataclasses import replace
from threading import Lock
from typing import List, Optional
from uuid import UUID

from ....domain.audit import SecurityEvent


class InMemorySecurityEventRepository:
    """
    In-memory implementation of SecurityEventRepository.

    Useful for:
      - Unit testing (assert which events were emitted)
      - Local development without database
    """

    def __init__(self) -> None:
        self._lock = Lock()
        self._events: List[SecurityEvent] = []

    def record_event(self, event: SecurityEvent) -> None:
        stored = event
        if stored.created_at is None:
            stored = replace(event, created_at=datetime.now(timezone.utc))
        with self._lock:
            self._events.append(stored)

    def list_events(
        self,
        *,
        user_id: Optional[UUID] = None,
        event_type: Optional[str] = None,
        limit: int = 100,
    ) -> List[SecurityEvent]:
        if limit <= 0:
            return []
        with self._lock:
            results = list(self._events)
        if user_id is not None:
            results = [e for e in results if e.user_id == user_id]
        if event_type:
            results = [e for e in results if e.event_type.value == str(event_type)]
        # Más recientes primero (orden de inserción inverso).
        return list(reversed(results))[:limit]

    # -------------------------------------------------------------------------
    # Testing helpers
    # -------------------------------------------------------------------------
    def event_types(self) -> List[str]:
        """Tipos en orden de emisión."""
        with self._lock:
            return [e.event_type.value for e in self._events]

    def clear(self) -> None:
        with self._lock:
            self._events.clear()
