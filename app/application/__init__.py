"""
===============================================================================
APPLICATION LAYER (Public API / Exports)
===============================================================================

Expone los puntos de entrada estables de la capa de aplicación:
  - AuthenticationService: login, sesiones, permisos y administración de usuarios
  - create_initial_admin: flujo de primer uso (primer admin)
===============================================================================
"""

from .auth_service import (
    AuthenticatedUser,
    AuthenticationService,
    LoginResult,
    RefreshResult,
)
from .setup_admin import AdminSetupForm, create_initial_admin, validate_setup_form

__all__ = [
    "AuthenticationService",
    "AuthenticatedUser",
    "LoginResult",
    "RefreshResult",
    "AdminSetupForm",
    "create_initial_admin",
    "validate_setup_form",
]
