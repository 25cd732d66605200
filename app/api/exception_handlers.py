"""
===============================================================================
TARJETA CRC — app/api/exception_handlers.py (Manejo Centralizado de Excepciones)
===============================================================================

Responsabilidades:
  - Traducir la taxonomía GymError a respuestas HTTP RFC7807.
  - Centralizar logging de errores con request_id + error_id.
  - No filtrar detalles internos en errores no controlados.
  - Registrar server_error (best-effort) si el request tenía usuario.

Patrones aplicados:
  - Exception Mapping (Presentation Layer).
  - Fail-safe: cualquier excepción no tipada -> INTERNAL_ERROR.

Colaboradores:
  - crosscutting.error_responses: AppHTTPException, ErrorCode, app_exception_handler
  - crosscutting.exceptions: GymError y derivadas
  - container.get_auth_service (record_event)
===============================================================================
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse

from ..crosscutting.error_responses import (
    AppHTTPException,
    ErrorCode,
    account_locked,
    app_exception_handler,
)
from ..crosscutting.exceptions import (
    AccountLockedError,
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    CurrentPasswordIncorrectError,
    DatabaseError,
    GymError,
    InfrastructureError,
    NotFoundError,
    SessionError,
    ValidationError,
)
from ..crosscutting.logger import logger
from ..domain.audit import SecurityEventType, Severity

GENERIC_ERROR_MESSAGE = "An unexpected error occurred"

# Orden: de lo más específico a lo más general (primer match gana).
_ERROR_MAP: tuple[tuple[type[GymError], int, ErrorCode, str | None], ...] = (
    (AccountLockedError, 401, ErrorCode.ACCOUNT_LOCKED, None),
    (AuthenticationError, 401, ErrorCode.UNAUTHORIZED, None),
    (SessionError, 401, ErrorCode.UNAUTHORIZED, None),
    (CurrentPasswordIncorrectError, 400, ErrorCode.VALIDATION_ERROR, None),
    (ValidationError, 400, ErrorCode.VALIDATION_ERROR, None),
    (AuthorizationError, 403, ErrorCode.FORBIDDEN, None),
    (NotFoundError, 404, ErrorCode.NOT_FOUND, None),
    (ConflictError, 409, ErrorCode.CONFLICT, None),
    (DatabaseError, 503, ErrorCode.DATABASE_ERROR, "Database temporarily unavailable"),
    (InfrastructureError, 503, ErrorCode.SERVICE_UNAVAILABLE, "Service temporarily unavailable"),
)


def _request_id_from(request: Request) -> str | None:
    return getattr(getattr(request, "state", None), "request_id", None)


def _validation_items(exc: ValidationError) -> list[dict[str, str]]:
    if exc.field_errors:
        return [{"field": k, "msg": v} for k, v in exc.field_errors.items()]
    return [{"msg": msg} for msg in exc.errors]


def _classify(exc: GymError) -> tuple[int, ErrorCode, str]:
    for exc_type, status_code, code, public_message in _ERROR_MAP:
        if isinstance(exc, exc_type):
            return status_code, code, public_message or exc.message
    return 500, ErrorCode.INTERNAL_ERROR, GENERIC_ERROR_MESSAGE


async def gym_error_handler(request: Request, exc: GymError) -> JSONResponse:
    status_code, code, detail = _classify(exc)
    request_id = _request_id_from(request)

    log = logger.error if status_code >= 500 else logger.info
    log(
        "Error de servicio",
        extra={
            "code": code.value,
            "error_id": exc.error_id,
            "error_message": exc.message,
            "request_id": request_id,
        },
    )

    errors: list[dict[str, str]] = [{"error_id": exc.error_id}]
    if isinstance(exc, ValidationError):
        errors = [*_validation_items(exc), *errors]

    if isinstance(exc, AccountLockedError):
        app_exc = account_locked(exc.remaining_minutes, errors)
    else:
        app_exc = AppHTTPException(
            status_code=status_code, code=code, detail=detail, errors=errors
        )
    return await app_exception_handler(request, app_exc)


def _record_server_error(request: Request, exc: Exception) -> None:
    user = getattr(request.state, "user", None)
    if user is None:
        return

    from ..container import get_auth_service

    try:
        get_auth_service().record_event(
            SecurityEventType.SERVER_ERROR,
            Severity.HIGH,
            user_id=user.id,
            username=getattr(user, "username", None),
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            details={
                "error": str(exc),
                "url": str(request.url),
                "method": request.method,
            },
        )
    except Exception as record_exc:
        logger.warning(
            "No se pudo registrar server_error", extra={"error": str(record_exc)}
        )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handler para excepciones no tipadas.

    - Log completo (stacktrace).
    - Respuesta genérica (nunca el mensaje interno).
    """
    request_id = _request_id_from(request)
    logger.error(
        "Excepción no controlada",
        exc_info=exc,
        extra={"request_id": request_id, "error": str(exc)},
    )
    _record_server_error(request, exc)

    app_exc = AppHTTPException(
        status_code=500,
        code=ErrorCode.INTERNAL_ERROR,
        detail=GENERIC_ERROR_MESSAGE,
    )
    return await app_exception_handler(request, app_exc)


def register_exception_handlers(app) -> None:
    """
    Registra handlers en la app FastAPI.

    Importante:
      - AppHTTPException debe registrarse para respetar RFC7807.
      - Exception genérica se registra al final como fallback.
    """
    app.add_exception_handler(GymError, gym_error_handler)
    app.add_exception_handler(AppHTTPException, app_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


__all__ = [
    "register_exception_handlers",
    "gym_error_handler",
    "unhandled_exception_handler",
]
