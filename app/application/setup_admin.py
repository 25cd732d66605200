# =============================================================================
# FILE: application/setup_admin.py
# =============================================================================
"""
===============================================================================
TASK: First-time Setup (crear el primer admin)
===============================================================================

Name:
    First-time Setup

Qué es:
    Crea el primer usuario admin cuando el sistema todavía no tiene ninguno.
    Es el único flujo que corre sin autenticación previa.

Seguridad:
    - Re-chequea is_first_time_setup() al momento de crear (no confía en el
      estado que vio el GET del formulario).
    - Los errores se devuelven campo por campo (ValidationError.field_errors).

Patrones:
    - Task orchestration
    - Dependency Injection (AuthenticationService)
    - Fail-fast guard (ConflictError si ya hay admin)

CRC:
    Component: create_initial_admin
    Responsibilities:
      - Validar el formulario de setup
      - Crear el admin vía AuthenticationService.create_user
      - Emitir admin_setup
    Collaborators:
      - AuthenticationService
      - identity.credentials
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Final, Mapping

from ..crosscutting.exceptions import ConflictError, ValidationError
from ..crosscutting.logger import logger
from ..domain.audit import SecurityEventType, Severity
from ..identity.credentials import (
    PASSWORD_MIN_LENGTH,
    USERNAME_MIN_LENGTH,
    validate_email,
    validate_password_strength,
    validate_username,
)
from ..identity.users import User, UserRole
from .auth_service import AuthenticationService

SETUP_ALREADY_DONE_MESSAGE: Final[str] = (
    "Admin user already exists. Please use the login page."
)
SETUP_VALIDATION_MESSAGE: Final[str] = "Please fix the validation errors"
_FULL_NAME_MIN_LENGTH: Final[int] = 2


@dataclass(frozen=True, slots=True)
class AdminSetupForm:
    """Datos crudos del formulario de setup."""

    username: str
    email: str
    password: str
    confirm_password: str
    full_name: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "AdminSetupForm":
        def _get(*keys: str) -> str:
            for key in keys:
                value = data.get(key)
                if value is not None:
                    return str(value)
            return ""

        return cls(
            username=_get("username").strip(),
            email=_get("email").strip(),
            password=_get("password"),
            confirm_password=_get("confirm_password", "confirmPassword"),
            full_name=_get("full_name", "fullName").strip(),
        )


def validate_setup_form(form: AdminSetupForm) -> dict[str, str]:
    """Primer error por campo; dict vacío => formulario válido."""
    errors: dict[str, str] = {}

    if len(form.username) < USERNAME_MIN_LENGTH:
        errors["username"] = "Username must be at least 3 characters long"
    else:
        result = validate_username(form.username)
        if not result.is_valid:
            errors["username"] = result.errors[0]

    if "@" not in form.email:
        errors["email"] = "Valid email address is required"
    else:
        result = validate_email(form.email)
        if not result.is_valid:
            errors["email"] = result.errors[0]

    if len(form.password) < PASSWORD_MIN_LENGTH:
        errors["password"] = "Password must be at least 8 characters long"
    else:
        result = validate_password_strength(form.password)
        if not result.is_valid:
            errors["password"] = result.errors[0]

    if form.password != form.confirm_password:
        errors["confirm_password"] = "Passwords do not match"

    if len(form.full_name) < _FULL_NAME_MIN_LENGTH:
        errors["full_name"] = "Full name must be at least 2 characters long"

    return errors


def create_initial_admin(
    service: AuthenticationService,
    form: AdminSetupForm,
    *,
    client_ip: str | None = None,
    user_agent: str | None = None,
) -> User:
    """
    Crea el primer admin.

    Raises:
        ConflictError: ya existe un admin activo.
        ValidationError: formulario inválido o username/email tomados.
    """
    if not service.is_first_time_setup():
        raise ConflictError(SETUP_ALREADY_DONE_MESSAGE)

    field_errors = validate_setup_form(form)
    if field_errors:
        raise ValidationError(
            SETUP_VALIDATION_MESSAGE,
            errors=list(field_errors.values()),
            field_errors=field_errors,
        )

    try:
        admin = service.create_user(
            username=form.username,
            email=form.email,
            password=form.password,
            role=UserRole.ADMIN,
            full_name=form.full_name,
        )
    except ConflictError as exc:
        field = "email" if "Email" in exc.message else "username"
        raise ValidationError(
            "Username or email already exists",
            errors=[exc.message],
            field_errors={field: exc.message},
        ) from exc

    service.record_event(
        SecurityEventType.ADMIN_SETUP,
        Severity.HIGH,
        user_id=admin.id,
        username=admin.username,
        ip_address=client_ip,
        user_agent=user_agent,
        details={"description": "First admin user created during initial setup"},
    )
    logger.info(
        "Setup inicial: admin creado",
        extra={"user_id": str(admin.id), "username": admin.username},
    )
    return admin
