"""
===============================================================================
TARJETA CRC — app/api/dependencies.py
===============================================================================

Responsabilidades:
  - Dependencias FastAPI sobre la identidad que dejó el request gate:
      * require_user(): usuario autenticado o 401
      * require_permission(p): permiso del rol o 403
  - Exponer el AuthenticationService del container.

Colaboradores:
  - crosscutting/auth_gate.py (request.state.user / request.state.permissions)
  - container.get_auth_service
  - crosscutting.error_responses (RFC7807)
===============================================================================
"""

from __future__ import annotations

from typing import Any, Callable

from fastapi import Depends, Request
from starlette.concurrency import run_in_threadpool

from ..application.auth_service import AuthenticatedUser, AuthenticationService
from ..container import get_auth_service
from ..crosscutting.error_responses import forbidden, unauthorized
from ..crosscutting.logger import logger
from ..identity.permissions import Permission


def current_user(request: Request) -> AuthenticatedUser | None:
    return getattr(request.state, "user", None)


def require_user() -> Callable:
    """Dependency: identidad resuelta por el gate; sin ella => 401."""

    def dependency(request: Request) -> AuthenticatedUser:
        user = current_user(request)
        if user is None:
            raise unauthorized()
        return user

    return dependency


def require_permission(permission: Permission | str) -> Callable:
    """Dependency: el rol del usuario debe conceder `permission`."""
    required = str(getattr(permission, "value", permission))

    async def dependency(
        request: Request,
        user: AuthenticatedUser = Depends(require_user()),
        service: AuthenticationService = Depends(get_auth_service),
    ) -> AuthenticatedUser:
        granted: Any = getattr(request.state, "permissions", None)
        if not granted:
            granted = await run_in_threadpool(service.get_role_permissions, user.role)
            request.state.permissions = granted

        if required not in granted:
            logger.warning(
                "Permiso denegado",
                extra={"user_id": str(user.id), "permission": required},
            )
            raise forbidden(f"Missing permission: {required}")
        return user

    return dependency
