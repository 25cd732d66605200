"""
===============================================================================
TARJETA CRC — identity/permissions.py
===============================================================================

Módulo:
    Catálogo de permisos + política declarativa de rutas

Responsabilidades:
    - Definir el catálogo de permisos (Permission) con descripción y categoría.
    - Definir el seed rol -> permisos (fuente para migración e in-memory).
    - Evaluar una ruta contra la tabla prefijo -> permisos (RoutePolicy).
    - Clasificar rutas públicas y assets estáticos.

Colaboradores:
    - crosscutting/auth_gate.py: consulta la política en cada request.
    - application/auth_service.py: resuelve permisos por rol.
    - alembic/versions/001_auth_foundation.py: seed de permisos.

Notas de diseño:
    - Módulo puro: sin FastAPI ni I/O, testeable sin HTTP.
    - Gana el prefijo MÁS LARGO (/memberships/bulk-import no cae en /memberships,
      y /memberships no cae en /members).
    - Alcanza con UNO de los permisos listados. Ruta sin regla => permitida.
===============================================================================
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .users import UserRole


class Permission(str, Enum):
    """Permisos disponibles en el sistema (`<recurso>.<acción>`)."""

    DASHBOARD_VIEW = "dashboard.view"

    MEMBERS_VIEW = "members.view"
    MEMBERS_CREATE = "members.create"
    MEMBERS_EDIT = "members.edit"
    MEMBERS_DELETE = "members.delete"

    PLANS_VIEW = "plans.view"
    PLANS_CREATE = "plans.create"
    PLANS_EDIT = "plans.edit"
    PLANS_DELETE = "plans.delete"

    MEMBERSHIPS_VIEW = "memberships.view"
    MEMBERSHIPS_CREATE = "memberships.create"
    MEMBERSHIPS_EDIT = "memberships.edit"
    MEMBERSHIPS_DELETE = "memberships.delete"
    MEMBERSHIPS_BULK_IMPORT = "memberships.bulk_import"

    PAYMENTS_VIEW = "payments.view"
    PAYMENTS_CREATE = "payments.create"
    PAYMENTS_EDIT = "payments.edit"
    PAYMENTS_DELETE = "payments.delete"

    REPORTS_VIEW = "reports.view"
    REPORTS_FINANCIAL = "reports.financial"

    SETTINGS_VIEW = "settings.view"
    SETTINGS_EDIT = "settings.edit"

    USERS_VIEW = "users.view"
    USERS_CREATE = "users.create"
    USERS_EDIT = "users.edit"
    USERS_DELETE = "users.delete"
    USERS_RESET_PASSWORDS = "users.reset_passwords"

    PROFILE_VIEW = "profile.view"

    @property
    def category(self) -> str:
        return self.value.split(".", 1)[0]


PERMISSION_DESCRIPTIONS: dict[Permission, str] = {
    Permission.DASHBOARD_VIEW: "View dashboard",
    Permission.MEMBERS_VIEW: "View members",
    Permission.MEMBERS_CREATE: "Create members",
    Permission.MEMBERS_EDIT: "Edit members",
    Permission.MEMBERS_DELETE: "Delete members",
    Permission.PLANS_VIEW: "View plans",
    Permission.PLANS_CREATE: "Create plans",
    Permission.PLANS_EDIT: "Edit plans",
    Permission.PLANS_DELETE: "Delete plans",
    Permission.MEMBERSHIPS_VIEW: "View memberships",
    Permission.MEMBERSHIPS_CREATE: "Create memberships",
    Permission.MEMBERSHIPS_EDIT: "Edit memberships",
    Permission.MEMBERSHIPS_DELETE: "Delete memberships",
    Permission.MEMBERSHIPS_BULK_IMPORT: "Bulk import memberships",
    Permission.PAYMENTS_VIEW: "View payments",
    Permission.PAYMENTS_CREATE: "Record payments",
    Permission.PAYMENTS_EDIT: "Edit payments",
    Permission.PAYMENTS_DELETE: "Delete payments",
    Permission.REPORTS_VIEW: "View reports",
    Permission.REPORTS_FINANCIAL: "View financial reports",
    Permission.SETTINGS_VIEW: "View settings",
    Permission.SETTINGS_EDIT: "Edit settings",
    Permission.USERS_VIEW: "View users",
    Permission.USERS_CREATE: "Create users",
    Permission.USERS_EDIT: "Edit users",
    Permission.USERS_DELETE: "Delete users",
    Permission.USERS_RESET_PASSWORDS: "Reset user passwords",
    Permission.PROFILE_VIEW: "View own profile",
}


# R: seed rol -> permisos. La DB es la fuente en runtime; esto la inicializa.
ROLE_PERMISSIONS: dict[UserRole, frozenset[Permission]] = {
    UserRole.ADMIN: frozenset(p for p in Permission if p is not Permission.PROFILE_VIEW),
    UserRole.TRAINER: frozenset(
        {
            Permission.DASHBOARD_VIEW,
            Permission.MEMBERS_VIEW,
            Permission.PLANS_VIEW,
            Permission.MEMBERSHIPS_VIEW,
            Permission.MEMBERSHIPS_CREATE,
            Permission.MEMBERSHIPS_EDIT,
        }
    ),
    UserRole.MEMBER: frozenset({Permission.DASHBOARD_VIEW, Permission.PROFILE_VIEW}),
}


def default_role_permissions(role: UserRole | str) -> list[str]:
    """Permisos seed de un rol, ordenados. Rol desconocido => []."""
    try:
        resolved = UserRole(role)
    except ValueError:
        return []
    return sorted(p.value for p in ROLE_PERMISSIONS[resolved])


# ---------------------------------------------------------------------------
# Política de rutas
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RouteRule:
    prefix: str
    permissions: frozenset[str]

    @classmethod
    def of(cls, prefix: str, *permissions: Permission | str) -> "RouteRule":
        return cls(
            prefix=prefix,
            permissions=frozenset(Permission(p).value for p in permissions),
        )


@dataclass(frozen=True, slots=True)
class AccessDecision:
    allowed: bool
    matched_prefix: str | None = None
    required: frozenset[str] = frozenset()


DEFAULT_ROUTE_RULES: tuple[RouteRule, ...] = (
    RouteRule.of("/members", Permission.MEMBERS_VIEW),
    RouteRule.of("/api/members", Permission.MEMBERS_VIEW),
    RouteRule.of("/plans", Permission.PLANS_VIEW),
    RouteRule.of("/memberships", Permission.MEMBERSHIPS_VIEW),
    RouteRule.of("/memberships/bulk-import", Permission.MEMBERSHIPS_BULK_IMPORT),
    RouteRule.of("/reporting", Permission.REPORTS_VIEW),
    RouteRule.of("/api/reports", Permission.REPORTS_VIEW),
    RouteRule.of("/settings", Permission.SETTINGS_VIEW),
    RouteRule.of("/users", Permission.USERS_VIEW),
    RouteRule.of("/profile", Permission.PROFILE_VIEW),
)


class RoutePolicy:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      RoutePolicy

    Responsabilidades:
      - Resolver la regla aplicable a un path (prefijo más largo)
      - Decidir acceso dado el set de permisos concedidos

    Colaboradores:
      - RouteRule / AccessDecision
      - crosscutting/auth_gate.py
    ----------------------------------------------------------------------------
    """

    def __init__(self, rules: Iterable[RouteRule] = DEFAULT_ROUTE_RULES):
        # Orden: prefijos más largos primero.
        self._rules: tuple[RouteRule, ...] = tuple(
            sorted(rules, key=lambda rule: len(rule.prefix), reverse=True)
        )

    @property
    def rules(self) -> tuple[RouteRule, ...]:
        return self._rules

    def match(self, path: str) -> RouteRule | None:
        for rule in self._rules:
            if path.startswith(rule.prefix):
                return rule
        return None

    def required_permissions(self, path: str) -> frozenset[str]:
        rule = self.match(path)
        return rule.permissions if rule else frozenset()

    def evaluate(self, path: str, granted: Iterable[str]) -> AccessDecision:
        rule = self.match(path)
        if rule is None:
            return AccessDecision(allowed=True)

        granted_set = {str(getattr(p, "value", p)) for p in granted}
        return AccessDecision(
            allowed=bool(rule.permissions & granted_set),
            matched_prefix=rule.prefix,
            required=rule.permissions,
        )


# ---------------------------------------------------------------------------
# Clasificación de rutas
# ---------------------------------------------------------------------------

PUBLIC_PATH_PREFIXES: tuple[str, ...] = (
    "/login",
    "/logout",
    "/setup",
    "/api/health",
    "/api/auth/login",
    "/api/auth/logout",
    "/api/auth/validate",
)

STATIC_PREFIXES: tuple[str, ...] = ("/_app/", "/favicon")
STATIC_SUFFIXES: tuple[str, ...] = (".css", ".js", ".png", ".jpg", ".svg")

SETUP_PATH: str = "/setup"
LOGIN_PATH: str = "/login"


def is_public_path(path: str) -> bool:
    return path.startswith(PUBLIC_PATH_PREFIXES)


def is_static_asset(path: str) -> bool:
    return path.startswith(STATIC_PREFIXES) or path.endswith(STATIC_SUFFIXES)
