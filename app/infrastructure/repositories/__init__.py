"""
============================================================
TARJETA CRC
============================================================
Class: app.infrastructure.repositories (Package exports)

Responsibilities:
- Exponer implementaciones concretas de repositorios (Postgres e InMemory)
  en un único punto de importación.
- Mantener una API estable para la capa de aplicación.

Collaborators:
- Repositorios Postgres (SQL crudo parametrizado)
- Repositorios InMemory (testing / local dev)
============================================================
"""

# ---------------------------
# In-memory implementations
# Usados para tests unitarios rápidos. No persisten datos tras reiniciar.
# ---------------------------
from .in_memory import (
    InMemoryPermissionRepository,
    InMemorySecurityEventRepository,
    InMemorySessionRepository,
    InMemoryUserRepository,
)

# ---------------------------
# Postgres implementations
# ---------------------------
from .postgres import (
    PostgresPermissionRepository,
    PostgresSecurityEventRepository,
    PostgresSessionRepository,
    PostgresUserRepository,
)

__all__ = [
    # Postgres
    "PostgresUserRepository",
    "PostgresSessionRepository",
    "PostgresPermissionRepository",
    "PostgresSecurityEventRepository",
    # In-memory
    "InMemoryUserRepository",
    "InMemorySessionRepository",
    "InMemoryPermissionRepository",
    "InMemorySecurityEventRepository",
]
