# app/crosscutting/exceptions.py
"""
===============================================================================
MÓDULO: Excepciones tipadas del backend (errores internos)
===============================================================================

Objetivo
--------
Tener excepciones internas coherentes, con:
- error_code estable
- error_id para correlación con logs
- message “humana” y genérica (sin filtrar secretos ni enumerar usuarios)

Taxonomía
---------
  GymError
   ├── ValidationError               (input inválido, errores por campo)
   ├── AuthenticationError           (credenciales inválidas)
   │    └── AccountLockedError       (lockout temporal)
   ├── CurrentPasswordIncorrectError (cambio de password)
   ├── AuthorizationError            (identidad válida, permiso insuficiente)
   ├── SessionError                  (sesión expirada/inválida/mismatch)
   ├── NotFoundError
   ├── ConflictError
   └── InfrastructureError
        └── DatabaseError

Colaboradores:
  - api/exception_handlers.py (mapea a AppHTTPException)
  - crosscutting/logger.py
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import uuid4


@dataclass(frozen=True)
class ErrorResponse:
    """Estructura mínima para responder errores de forma consistente."""

    error_code: str
    message: str
    error_id: str

    def to_dict(self) -> dict:
        return {
            "error_code": self.error_code,
            "message": self.message,
            "error_id": self.error_id,
        }


class GymError(Exception):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      GymError

    Responsabilidades:
      - Base para errores internos del sistema
      - Proveer error_code + error_id + message

    Colaboradores:
      - api/exception_handlers.py
    ----------------------------------------------------------------------------
    """

    error_code: str = "GYM_ERROR"

    def __init__(
        self,
        message: str,
        error_id: str | None = None,
        original_error: Exception | None = None,
    ):
        self.message = message
        self.error_id = error_id or str(uuid4())
        self.original_error = original_error
        super().__init__(message)

    def to_response(self) -> ErrorResponse:
        return ErrorResponse(
            error_code=self.error_code, message=self.message, error_id=self.error_id
        )


class ValidationError(GymError):
    """Input con forma/formato inválido."""

    error_code: str = "VALIDATION_ERROR"

    def __init__(
        self,
        message: str,
        errors: list[str] | None = None,
        field_errors: dict[str, str] | None = None,
    ):
        super().__init__(message)
        self.errors = list(errors or [])
        self.field_errors = dict(field_errors or {})


class AuthenticationError(GymError):
    """Credenciales inválidas (mensaje siempre genérico)."""

    error_code: str = "AUTHENTICATION_ERROR"


class AccountLockedError(AuthenticationError):
    """Cuenta bloqueada temporalmente por intentos fallidos."""

    error_code: str = "ACCOUNT_LOCKED"

    def __init__(self, remaining_minutes: int):
        self.remaining_minutes = remaining_minutes
        super().__init__(
            f"Account is locked. Try again in {remaining_minutes} minutes."
        )


class CurrentPasswordIncorrectError(GymError):
    """El password actual no coincide (cambio de password)."""

    error_code: str = "CURRENT_PASSWORD_INCORRECT"

    def __init__(self, message: str = "Current password is incorrect"):
        super().__init__(message)


class AuthorizationError(GymError):
    """Identidad válida pero sin el permiso requerido."""

    error_code: str = "AUTHORIZATION_ERROR"


class SessionError(GymError):
    """Sesión expirada, invalidada o con refresh token que no coincide."""

    error_code: str = "SESSION_ERROR"


class NotFoundError(GymError):
    """Recurso inexistente (p.ej. user id desconocido)."""

    error_code: str = "NOT_FOUND"


class ConflictError(GymError):
    """Conflicto de unicidad o de estado (username/email duplicado, setup hecho)."""

    error_code: str = "CONFLICT"


class InfrastructureError(GymError):
    """Errores de infraestructura (DB caída, pool sin inicializar)."""

    error_code: str = "INFRASTRUCTURE_ERROR"


class DatabaseError(InfrastructureError):
    """Errores de DB (conexión, query, timeout, pool)."""

    error_code: str = "DATABASE_ERROR"
