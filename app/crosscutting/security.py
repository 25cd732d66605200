"""
===============================================================================
MÓDULO: Security headers
===============================================================================

Objetivo
--------
Agregar a toda respuesta los headers de hardening del panel:
nosniff, anti-clickjacking, filtro XSS legado y Referrer-Policy.
En producción, además, HSTS cuando el request llegó por HTTPS.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  SecurityHeadersMiddleware

Colaboradores:
  - crosscutting.config.get_settings (is_production)
===============================================================================
"""

from __future__ import annotations

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

BASE_SECURITY_HEADERS: dict[str, str] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
    "Referrer-Policy": "same-origin",
}

HSTS_HEADER_VALUE = "max-age=31536000; includeSubDomains"


def _is_https(request: Request) -> bool:
    proto = request.headers.get("x-forwarded-proto") or request.url.scheme or ""
    return proto.lower() == "https"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Headers de seguridad en cada respuesta (HSTS solo prod + HTTPS)."""

    def __init__(self, app, is_production: bool | None = None):
        super().__init__(app)
        if is_production is None:
            from .config import get_settings

            is_production = get_settings().is_production()
        self._is_production = is_production

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)

        for name, value in BASE_SECURITY_HEADERS.items():
            response.headers.setdefault(name, value)

        if self._is_production and _is_https(request):
            response.headers["Strict-Transport-Security"] = HSTS_HEADER_VALUE

        return response
