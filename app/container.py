"""
===============================================================================
TARJETA CRC — app/container.py (Composition Root / DI manual)
===============================================================================

Responsabilidades:
  - Componer dependencias (repositorios, servicios) siguiendo DIP.
  - Exponer factories para FastAPI (Depends) y para el request gate.
  - Mantener singletons con caching (lru_cache).
  - Centralizar decisiones runtime basadas en Settings (config).

Colaboradores:
  - app.crosscutting.config.get_settings
  - app.domain.repositories.* (puertos)
  - app.infrastructure.repositories.* (implementaciones)
  - app.application.auth_service.AuthenticationService

Patrones aplicados:
  - Composition Root
  - Dependency Inversion (el servicio depende de puertos)
  - Lazy singletons con lru_cache

Notas:
  - Este archivo NO contiene lógica de negocio.
  - Este archivo NO debe depender de FastAPI (solo expone factories).
===============================================================================
"""

from __future__ import annotations

from functools import lru_cache

from .application.auth_service import AuthenticationService
from .crosscutting.config import get_settings
from .domain.repositories import (
    PermissionRepository,
    SecurityEventRepository,
    SessionRepository,
    UserRepository,
)
from .identity.permissions import RoutePolicy
from .infrastructure.repositories import (
    InMemoryPermissionRepository,
    InMemorySecurityEventRepository,
    InMemorySessionRepository,
    InMemoryUserRepository,
    PostgresPermissionRepository,
    PostgresSecurityEventRepository,
    PostgresSessionRepository,
    PostgresUserRepository,
)

# =============================================================================
# Helpers internos
# =============================================================================


def _is_test_env() -> bool:
    """
    Determina si estamos en entorno de test.

    Regla:
      - app_env ∈ {"test", "testing", "ci"} => se favorecen in-memory adapters.
    """
    env = get_settings().app_env.strip().lower()
    return env in {"test", "testing", "ci"}


# =============================================================================
# Repositorios (singletons)
# =============================================================================


@lru_cache(maxsize=1)
def get_user_repository() -> UserRepository:
    """Usuarios (in-memory en test; Postgres en runtime)."""
    if _is_test_env():
        return InMemoryUserRepository()
    return PostgresUserRepository()


@lru_cache(maxsize=1)
def get_session_repository() -> SessionRepository:
    """Sesiones de login (in-memory en test; Postgres en runtime)."""
    if _is_test_env():
        return InMemorySessionRepository()
    return PostgresSessionRepository()


@lru_cache(maxsize=1)
def get_permission_repository() -> PermissionRepository:
    """Mapa rol -> permisos (seed en memoria en test; tablas en runtime)."""
    if _is_test_env():
        return InMemoryPermissionRepository()
    return PostgresPermissionRepository()


@lru_cache(maxsize=1)
def get_security_event_repository() -> SecurityEventRepository:
    """Eventos de seguridad (append-only)."""
    if _is_test_env():
        return InMemorySecurityEventRepository()
    return PostgresSecurityEventRepository()


# =============================================================================
# Servicios (singletons)
# =============================================================================


@lru_cache(maxsize=1)
def get_auth_service() -> AuthenticationService:
    """Servicio de autenticación cableado con los repos configurados."""
    return AuthenticationService(
        users=get_user_repository(),
        sessions=get_session_repository(),
        permissions=get_permission_repository(),
        events=get_security_event_repository(),
        settings=get_settings(),
    )


@lru_cache(maxsize=1)
def get_route_policy() -> RoutePolicy:
    """Tabla prefijo -> permisos por defecto."""
    return RoutePolicy()


def reset_container() -> None:
    """Limpia los singletons (tests)."""
    for factory in (
        get_user_repository,
        get_session_repository,
        get_permission_repository,
        get_security_event_repository,
        get_auth_service,
        get_route_policy,
    ):
        factory.cache_clear()
