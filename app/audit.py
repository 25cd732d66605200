"""
===============================================================================
TARJETA CRC — app/audit.py (Emisión de eventos de seguridad)
===============================================================================

Responsabilidades:
  - Construir eventos de seguridad con formato consistente
    (tipo/severidad/usuario/ip/user-agent/details).
  - Persistir vía SecurityEventRepository (puerto del dominio).
  - “Best-effort”: si falla la persistencia, NO rompe el flujo de negocio.

Colaboradores:
  - app.domain.audit.SecurityEvent / Severity / SecurityEventType
  - app.domain.repositories.SecurityEventRepository
  - app.crosscutting.logger.logger

Decisiones de seguridad:
  - details se sanitiza a valores serializables; lo no serializable se stringifica.
  - Nunca se guardan passwords ni tokens en details.
===============================================================================
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from .crosscutting.logger import logger
from .domain.audit import SecurityEvent, SecurityEventType, Severity
from .domain.repositories import SecurityEventRepository

_FORBIDDEN_DETAIL_KEYS = frozenset(
    {
        "password",
        "current_password",
        "new_password",
        "password_hash",
        "token",
        "access_token",
        "refresh_token",
        "session_token",
    }
)


def _sanitize(value: Any) -> Any:
    """
    Convierte valores a tipos serializables para JSON.
    - primitives -> OK
    - dict/list/tuple/set -> sanitiza recursivamente
    - otros -> str(value)
    """
    if value is None or isinstance(value, (str, int, float, bool)):
        return value

    if isinstance(value, dict):
        return {
            str(k): _sanitize(v)
            for k, v in value.items()
            if str(k).lower() not in _FORBIDDEN_DETAIL_KEYS
        }

    if isinstance(value, (list, tuple, set, frozenset)):
        return [_sanitize(v) for v in value]

    return str(value)


def emit_security_event(
    repository: SecurityEventRepository | None,
    event_type: SecurityEventType | str,
    *,
    severity: Severity | str = Severity.LOW,
    user_id: UUID | None = None,
    username: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """
    Emite un evento de seguridad.

    Regla clave:
      - Si repository es None o falla al escribir, NO se lanza excepción.
    """
    if repository is None:
        return

    event = SecurityEvent(
        id=uuid4(),
        event_type=SecurityEventType(event_type),
        severity=Severity(severity),
        user_id=user_id,
        username=username,
        ip_address=ip_address,
        user_agent=user_agent,
        details=_sanitize(details or {}),
    )

    try:
        repository.record_event(event)
    except Exception as exc:
        # Best-effort: logueamos y seguimos.
        logger.warning(
            "Falló la escritura del evento de seguridad",
            extra={"event_type": event.event_type.value, "error": str(exc)},
        )
