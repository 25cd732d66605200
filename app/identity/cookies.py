"""
===============================================================================
TARJETA CRC — identity/cookies.py
===============================================================================

Módulo:
    Cookies de autenticación (access_token / refresh_token / session_id)

Responsabilidades:
    - Nombres y max-age de las tres cookies.
    - Setear y limpiar cookies con atributos consistentes
      (httponly, samesite=strict, path=/, secure según Settings).

Colaboradores:
    - crosscutting.config.get_settings: use_secure_cookies()
    - crosscutting/auth_gate.py (refresh / limpieza)
    - api/auth_routes.py (login / logout / change-password)
===============================================================================
"""

from __future__ import annotations

from typing import Any

from starlette.responses import Response

from ..crosscutting.config import get_settings

ACCESS_TOKEN_COOKIE: str = "access_token"
REFRESH_TOKEN_COOKIE: str = "refresh_token"
SESSION_ID_COOKIE: str = "session_id"

ACCESS_TOKEN_MAX_AGE: int = 60 * 60
REFRESH_TOKEN_MAX_AGE: int = 7 * 24 * 60 * 60
SESSION_ID_MAX_AGE: int = 7 * 24 * 60 * 60

AUTH_COOKIES: tuple[str, ...] = (
    ACCESS_TOKEN_COOKIE,
    REFRESH_TOKEN_COOKIE,
    SESSION_ID_COOKIE,
)


def _set(response: Response, key: str, value: str, max_age: int, secure: bool) -> None:
    response.set_cookie(
        key=key,
        value=value,
        max_age=max_age,
        path="/",
        httponly=True,
        samesite="strict",
        secure=secure,
    )


def _secure(settings: Any = None) -> bool:
    return (settings or get_settings()).use_secure_cookies()


def set_access_cookie(response: Response, token: str, settings: Any = None) -> None:
    _set(response, ACCESS_TOKEN_COOKIE, token, ACCESS_TOKEN_MAX_AGE, _secure(settings))


def set_auth_cookies(
    response: Response,
    *,
    access_token: str,
    refresh_token: str,
    session_id: str,
    settings: Any = None,
) -> None:
    """Las tres cookies de una sesión recién creada (login)."""
    secure = _secure(settings)
    _set(response, ACCESS_TOKEN_COOKIE, access_token, ACCESS_TOKEN_MAX_AGE, secure)
    _set(response, REFRESH_TOKEN_COOKIE, refresh_token, REFRESH_TOKEN_MAX_AGE, secure)
    _set(response, SESSION_ID_COOKIE, session_id, SESSION_ID_MAX_AGE, secure)


def clear_auth_cookies(response: Response, settings: Any = None) -> None:
    """Expira las tres cookies (max-age 0, mismos atributos)."""
    secure = _secure(settings)
    for key in AUTH_COOKIES:
        _set(response, key, "", 0, secure)
