"""
===============================================================================
TARJETA CRC — app/api/auth_routes.py (Autenticación, login/logout y setup)
===============================================================================

Responsabilidades:
  - Endpoints JSON de autenticación (/api/auth/*): login, logout, validate,
    change-password, me.
  - Endpoints de página (/login, /logout, /setup) con redirects.
  - Setear/limpiar las cookies de sesión de forma consistente.

Patrones aplicados:
  - Adapter / Presentation Layer: traduce HTTP <-> AuthenticationService.
  - Fail-safe security: mensajes genéricos; logout siempre "success".

Colaboradores:
  - application.auth_service.AuthenticationService
  - application.setup_admin.create_initial_admin
  - identity.cookies / identity.tokens.extract_token_from_header
  - api.dependencies.require_user
===============================================================================
"""

from __future__ import annotations

from typing import Any, Mapping

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import ValidationError as PayloadValidationError
from starlette.concurrency import run_in_threadpool

from ..application.auth_service import AuthenticatedUser, AuthenticationService
from ..application.setup_admin import AdminSetupForm, create_initial_admin
from ..container import get_auth_service
from ..crosscutting.auth_gate import client_ip, client_user_agent
from ..crosscutting.error_responses import OPENAPI_ERROR_RESPONSES
from ..crosscutting.exceptions import (
    AuthenticationError,
    ConflictError,
    CurrentPasswordIncorrectError,
    SessionError,
    ValidationError,
)
from ..crosscutting.logger import logger
from ..identity.cookies import (
    ACCESS_TOKEN_COOKIE,
    SESSION_ID_COOKIE,
    clear_auth_cookies,
    set_auth_cookies,
)
from ..identity.permissions import LOGIN_PATH
from ..identity.tokens import TokenError, extract_token_from_header
from .dependencies import require_user
from .schemas import ChangePasswordRequest

router = APIRouter(responses=OPENAPI_ERROR_RESPONSES)

MISSING_CREDENTIALS_MESSAGE = "Username and password are required"
MISSING_PASSWORDS_MESSAGE = "Current password and new password are required"
INVALID_PAYLOAD_MESSAGE = "Invalid request data"
PASSWORD_CHANGED_MESSAGE = (
    "Password changed successfully. Please log in again with your new password."
)


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


async def _read_payload(request: Request) -> Mapping[str, Any]:
    """JSON o formulario, según Content-Type. Body inválido => vacío."""
    content_type = request.headers.get("content-type", "")
    try:
        if content_type.startswith("application/json"):
            data = await request.json()
            return data if isinstance(data, dict) else {}
        return dict(await request.form())
    except ValueError:
        return {}


def _field_errors(exc: PayloadValidationError) -> list[dict[str, str]]:
    return [
        {"field": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
        for err in exc.errors()
    ]


def _safe_redirect_target(target: Any) -> str:
    """Solo paths locales (evita open redirect)."""
    value = str(target or "")
    if not value.startswith("/") or value.startswith("//"):
        return "/"
    return value


def _bearer_or_cookie(request: Request) -> str | None:
    return extract_token_from_header(
        request.headers.get("authorization")
    ) or request.cookies.get(ACCESS_TOKEN_COOKIE)


async def _login(
    service: AuthenticationService, request: Request, username: str, password: str
):
    return await run_in_threadpool(
        service.login,
        username,
        password,
        client_ip(request),
        client_user_agent(request),
    )


# -----------------------------------------------------------------------------
# API JSON (/api/auth/*)
# -----------------------------------------------------------------------------


@router.post("/api/auth/login", tags=["auth"])
async def api_login(
    request: Request,
    service: AuthenticationService = Depends(get_auth_service),
):
    """Login con username/password (JSON o form). Setea las tres cookies."""
    payload = await _read_payload(request)
    username = str(payload.get("username") or "")
    password = str(payload.get("password") or "")

    if not username or not password:
        return JSONResponse(
            {"success": False, "message": MISSING_CREDENTIALS_MESSAGE},
            status_code=400,
        )

    try:
        result = await _login(service, request, username, password)
    except AuthenticationError as exc:
        return JSONResponse({"success": False, "message": exc.message}, status_code=401)

    response = JSONResponse(
        {
            "success": True,
            "user": result.user.to_dict(),
            "session_id": str(result.session_id),
            "must_change_password": result.must_change_password,
        }
    )
    set_auth_cookies(
        response,
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        session_id=str(result.session_id),
    )
    return response


@router.post("/api/auth/logout", tags=["auth"])
async def api_logout(
    request: Request,
    service: AuthenticationService = Depends(get_auth_service),
):
    """Idempotente: siempre success y siempre limpia cookies."""
    ip, agent = client_ip(request), client_user_agent(request)
    token = _bearer_or_cookie(request)

    closed = False
    if token:
        closed = await run_in_threadpool(service.logout_token, token, ip, agent)
    session_id = request.cookies.get(SESSION_ID_COOKIE)
    if not closed and session_id:
        await run_in_threadpool(service.logout, session_id, None, ip, agent)

    response = JSONResponse({"success": True})
    clear_auth_cookies(response)
    return response


@router.post("/api/auth/validate", tags=["auth"])
async def api_validate(
    request: Request,
    service: AuthenticationService = Depends(get_auth_service),
):
    """Valida `Authorization: Bearer <token>` contra token + sesión."""
    token = extract_token_from_header(request.headers.get("authorization"))
    if not token:
        return JSONResponse(
            {"valid": False, "error": "No token provided"}, status_code=401
        )

    try:
        user = await run_in_threadpool(service.resolve_access_token, token)
    except (TokenError, SessionError) as exc:
        return JSONResponse({"valid": False, "error": str(exc)}, status_code=401)

    return {"valid": True, "user": user.to_dict()}


@router.post("/api/auth/change-password", tags=["auth"])
async def api_change_password(
    request: Request,
    user: AuthenticatedUser = Depends(require_user()),
    service: AuthenticationService = Depends(get_auth_service),
):
    """Cambia el password propio; revoca todas las sesiones del usuario."""
    try:
        payload = ChangePasswordRequest.model_validate(await _read_payload(request))
    except PayloadValidationError as exc:
        return JSONResponse(
            {
                "success": False,
                "message": INVALID_PAYLOAD_MESSAGE,
                "errors": _field_errors(exc),
            },
            status_code=400,
        )
    if not payload.current_password or not payload.new_password:
        return JSONResponse(
            {"success": False, "message": MISSING_PASSWORDS_MESSAGE}, status_code=400
        )

    try:
        await run_in_threadpool(
            service.change_password,
            user.id,
            payload.current_password,
            payload.new_password,
            client_ip(request),
            client_user_agent(request),
        )
    except CurrentPasswordIncorrectError as exc:
        return JSONResponse({"success": False, "message": exc.message}, status_code=400)
    except ValidationError as exc:
        return JSONResponse(
            {"success": False, "message": exc.message, "errors": exc.errors},
            status_code=400,
        )

    response = JSONResponse({"success": True, "message": PASSWORD_CHANGED_MESSAGE})
    clear_auth_cookies(response)
    return response


@router.get("/api/auth/me", tags=["auth"])
def api_me(request: Request, user: AuthenticatedUser = Depends(require_user())):
    return {
        "user": user.to_dict(),
        "permissions": list(getattr(request.state, "permissions", None) or []),
    }


# -----------------------------------------------------------------------------
# Páginas (/login, /logout, /setup)
# -----------------------------------------------------------------------------


@router.get("/login", tags=["pages"])
def login_page(request: Request, redirect: str | None = None):
    if getattr(request.state, "user", None) is not None:
        return RedirectResponse("/", status_code=302)
    return {"authenticated": False, "redirect": _safe_redirect_target(redirect)}


@router.post("/login", tags=["pages"])
async def login_form(
    request: Request,
    service: AuthenticationService = Depends(get_auth_service),
):
    form = await request.form()
    username = str(form.get("username") or "")
    password = str(form.get("password") or "")
    target = _safe_redirect_target(
        form.get("redirect") or request.query_params.get("redirect")
    )

    if not username or not password:
        return {"success": False, "error": MISSING_CREDENTIALS_MESSAGE}

    try:
        result = await _login(service, request, username, password)
    except AuthenticationError as exc:
        return {"success": False, "error": exc.message}

    response = RedirectResponse(target, status_code=303)
    set_auth_cookies(
        response,
        access_token=result.access_token,
        refresh_token=result.refresh_token,
        session_id=str(result.session_id),
    )
    return response


@router.get("/logout", tags=["pages"])
async def logout_page(
    request: Request,
    service: AuthenticationService = Depends(get_auth_service),
):
    ip, agent = client_ip(request), client_user_agent(request)
    session_id = request.cookies.get(SESSION_ID_COOKIE)

    if session_id:
        await run_in_threadpool(service.logout, session_id, None, ip, agent)
    else:
        token = request.cookies.get(ACCESS_TOKEN_COOKIE)
        if token:
            await run_in_threadpool(service.logout_token, token, ip, agent)

    response = RedirectResponse(LOGIN_PATH, status_code=302)
    clear_auth_cookies(response)
    return response


@router.get("/setup", tags=["pages"])
async def setup_page(service: AuthenticationService = Depends(get_auth_service)):
    if not await run_in_threadpool(service.is_first_time_setup):
        return RedirectResponse(LOGIN_PATH, status_code=302)
    return {"first_time_setup": True}


@router.post("/setup", tags=["pages"])
async def setup_form(
    request: Request,
    service: AuthenticationService = Depends(get_auth_service),
):
    form = AdminSetupForm.from_mapping(await _read_payload(request))

    try:
        admin = await run_in_threadpool(
            lambda: create_initial_admin(
                service,
                form,
                client_ip=client_ip(request),
                user_agent=client_user_agent(request),
            )
        )
    except ConflictError:
        return RedirectResponse(LOGIN_PATH, status_code=303)
    except ValidationError as exc:
        return JSONResponse(
            {
                "success": False,
                "message": exc.message,
                "errors": exc.field_errors,
                "values": {
                    "username": form.username,
                    "email": form.email,
                    "full_name": form.full_name,
                },
            },
            status_code=400,
        )

    logger.info("Setup completado", extra={"user_id": str(admin.id)})
    return RedirectResponse(LOGIN_PATH, status_code=303)
