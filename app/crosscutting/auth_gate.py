"""
===============================================================================
MÓDULO: Request gate (autenticación + autorización por ruta)
===============================================================================

Objetivo
--------
Decidir, antes de cada handler, si el request sigue, se redirige o se
deniega:

  1) assets estáticos pasan sin chequeos
  2) sin admin activo => 302 /setup (salvo el propio /setup)
  3) identidad desde la cookie access_token (o Bearer); si falla y hay
     refresh_token + session_id => refresh (nueva cookie access_token)
  4) sin usuario en ruta no pública => 302 /login?redirect=<path>
  5) usuario en /login => 302 /
  6) ruta protegida sin permiso => unauthorized_access + 302 /?error=unauthorized

Política de fallas
------------------
  - Chequeo de primer uso: fail open (se loguea y sigue).
  - Resolución de identidad: fail closed (sin usuario).
  - Chequeo de permisos: fail open (se loguea y sigue).

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componentes:
  - RequestGateMiddleware

Colaboradores:
  - application.auth_service.AuthenticationService (vía service_provider)
  - identity.permissions.RoutePolicy
  - identity.cookies
  - app/context.py (user_id para logs)
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable
from urllib.parse import quote

from starlette.concurrency import run_in_threadpool
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from ..context import set_user_context
from ..domain.audit import SecurityEventType, Severity
from ..identity.cookies import (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    SESSION_ID_COOKIE,
    clear_auth_cookies,
    set_access_cookie,
)
from ..identity.permissions import (
    LOGIN_PATH,
    SETUP_PATH,
    RoutePolicy,
    is_public_path,
    is_static_asset,
)
from ..identity.tokens import TokenError, extract_token_from_header
from .exceptions import SessionError
from .logger import logger

UNAUTHORIZED_REDIRECT = "/?error=unauthorized"

ServiceProvider = Callable[[], Any]


def client_ip(request: Request) -> str | None:
    return request.client.host if request.client else None


def client_user_agent(request: Request) -> str | None:
    return request.headers.get("user-agent")


def login_redirect_url(path: str) -> str:
    return f"{LOGIN_PATH}?redirect={quote(path, safe='')}"


@dataclass(slots=True)
class _CookieEffect:
    """Cambios de cookies a aplicar sobre la respuesta final."""

    access_token: str | None = None
    clear: bool = False

    def apply(self, response: Response) -> None:
        if self.clear:
            clear_auth_cookies(response)
        elif self.access_token:
            set_access_cookie(response, self.access_token)


def _default_service_provider() -> Any:
    from ..container import get_auth_service

    return get_auth_service()


class RequestGateMiddleware(BaseHTTPMiddleware):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      RequestGateMiddleware

    Responsabilidades:
      - Resolver identidad (cookie / refresh) por request
      - Aplicar redirects de setup, login y permisos
      - Exponer request.state.user / request.state.permissions

    Colaboradores:
      - AuthenticationService (is_first_time_setup, resolve_access_token,
        refresh_access_token, get_role_permissions, record_event)
      - RoutePolicy
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        app,
        service_provider: ServiceProvider | None = None,
        policy: RoutePolicy | None = None,
    ):
        super().__init__(app)
        self._service_provider = service_provider or _default_service_provider
        self._policy = policy or RoutePolicy()

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path
        request.state.user = None
        request.state.permissions = []

        if is_static_asset(path):
            return await call_next(request)

        service = self._service_provider()

        if path != SETUP_PATH and await self._needs_setup(service):
            return RedirectResponse(SETUP_PATH, status_code=302)

        try:
            user, effect = await self._resolve_identity(request, service)
        except Exception as exc:
            logger.error(
                "Gate: error resolviendo identidad",
                extra={"error": str(exc), "path": path},
            )
            user, effect = None, _CookieEffect()

        response = await self._route(request, call_next, service, user, path)
        effect.apply(response)
        return response

    # ------------------------------------------------------------------
    # Pasos
    # ------------------------------------------------------------------
    async def _needs_setup(self, service: Any) -> bool:
        try:
            return bool(await run_in_threadpool(service.is_first_time_setup))
        except Exception as exc:
            logger.warning(
                "Gate: chequeo de primer uso falló", extra={"error": str(exc)}
            )
            return False

    async def _resolve_identity(
        self, request: Request, service: Any
    ) -> tuple[Any, _CookieEffect]:
        # Cookie primero, luego Bearer: un cookie viejo no tapa un header válido.
        candidates = [
            request.cookies.get(ACCESS_TOKEN_COOKIE),
            extract_token_from_header(request.headers.get("authorization")),
        ]
        for access_token in dict.fromkeys(t for t in candidates if t):
            try:
                user = await run_in_threadpool(
                    service.resolve_access_token, access_token
                )
                return user, _CookieEffect()
            except (TokenError, SessionError) as exc:
                logger.info("Gate: access token rechazado", extra={"reason": str(exc)})

        refresh_token = request.cookies.get(REFRESH_TOKEN_COOKIE)
        session_id = request.cookies.get(SESSION_ID_COOKIE)
        if not (refresh_token and session_id):
            return None, _CookieEffect()

        try:
            result = await run_in_threadpool(
                service.refresh_access_token,
                session_id,
                refresh_token,
                client_ip(request),
                client_user_agent(request),
            )
        except SessionError:
            return None, _CookieEffect(clear=True)

        return result.user, _CookieEffect(access_token=result.access_token)

    async def _route(
        self,
        request: Request,
        call_next: Callable,
        service: Any,
        user: Any,
        path: str,
    ) -> Response:
        public = is_public_path(path)

        if user is None:
            if public:
                return await call_next(request)
            return RedirectResponse(login_redirect_url(path), status_code=302)

        if path == LOGIN_PATH:
            return RedirectResponse("/", status_code=302)

        permissions: list[str] = []
        if not public:
            try:
                permissions = await run_in_threadpool(
                    service.get_role_permissions, user.role
                )
                decision = self._policy.evaluate(path, permissions)
                if not decision.allowed:
                    await self._record_denial(request, service, user, path, permissions)
                    return RedirectResponse(UNAUTHORIZED_REDIRECT, status_code=302)
            except Exception as exc:
                logger.error(
                    "Gate: chequeo de permisos falló",
                    extra={"error": str(exc), "path": path},
                )

        request.state.user = user
        request.state.permissions = permissions
        set_user_context(str(user.id))
        return await call_next(request)

    async def _record_denial(
        self,
        request: Request,
        service: Any,
        user: Any,
        path: str,
        permissions: list[str],
    ) -> None:
        role = getattr(user.role, "value", user.role)
        logger.warning(
            "Gate: acceso denegado",
            extra={"user_id": str(user.id), "path": path, "role": role},
        )
        await run_in_threadpool(
            lambda: service.record_event(
                SecurityEventType.UNAUTHORIZED_ACCESS,
                Severity.HIGH,
                user_id=user.id,
                username=user.username,
                ip_address=client_ip(request),
                user_agent=client_user_agent(request),
                details={
                    "attempted_route": path,
                    "user_role": role,
                    "user_permissions": list(permissions),
                },
            )
        )
