"""
===============================================================================
TARJETA CRC — domain/__init__.py
===============================================================================

Módulo:
    Exportaciones de la Capa de Dominio (API pública del dominio)

Responsabilidades:
    - Centralizar exports para imports limpios en application/infrastructure.
    - Mantener estable el “surface area” del dominio.

Colaboradores:
    - domain.audit: SecurityEvent, Severity, SecurityEventType
    - domain.sessions: Session
    - domain.repositories: Puertos de persistencia

Reglas:
    - Solo re-exporta contratos/entidades del dominio.
    - No importar infraestructura aquí.
===============================================================================
"""

from .audit import SecurityEvent, SecurityEventType, Severity
from .repositories import (
    PermissionRepository,
    SecurityEventRepository,
    SessionRepository,
    UserRepository,
)
from .sessions import Session

__all__ = [
    # Entities
    "SecurityEvent",
    "SecurityEventType",
    "Severity",
    "Session",
    # Repositories
    "UserRepository",
    "SessionRepository",
    "PermissionRepository",
    "SecurityEventRepository",
]
