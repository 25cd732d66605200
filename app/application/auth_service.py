"""
===============================================================================
TARJETA CRC — application/auth_service.py
===============================================================================

Módulo:
    AuthenticationService (orquestación de login, sesiones, permisos y usuarios)

Responsabilidades:
    - Login con lockout por intentos fallidos y emisión de tokens ligados a sesión.
    - Logout idempotente (por sesión o por access token).
    - Resolver identidad desde un access token (token + sesión viva).
    - Renovar el access token con el par (session_id, refresh_token).
    - Cambio y reset de password (ambos revocan todas las sesiones).
    - Resolver permisos por rol / usuario.
    - Administración de usuarios (alta, edición, baja lógica, sesiones).
    - Detectar el estado de "primer uso" (sin admins).

Colaboradores:
    - domain.repositories: UserRepository, SessionRepository,
      PermissionRepository, SecurityEventRepository.
    - identity.sessions.SessionStore
    - identity.tokens / identity.passwords / identity.credentials
    - app.audit.emit_security_event (best-effort)
    - crosscutting.exceptions (taxonomía de errores)

Notas de diseño:
    - El reloj es inyectable (clock) para testear lockout y expiración.
    - Los mensajes de error de login son genéricos: nunca revelan si el
      username existe.
    - Los tokens JWT usan el reloj real: PyJWT valida exp/iat contra él.
===============================================================================
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional
from uuid import UUID

from ..audit import emit_security_event
from ..crosscutting.config import Settings, get_settings
from ..crosscutting.exceptions import (
    AccountLockedError,
    AuthenticationError,
    ConflictError,
    CurrentPasswordIncorrectError,
    NotFoundError,
    SessionError,
    ValidationError,
)
from ..crosscutting.logger import logger
from ..domain.audit import SecurityEventType, Severity
from ..domain.repositories import (
    PermissionRepository,
    SecurityEventRepository,
    SessionRepository,
    UserRepository,
)
from ..domain.sessions import Session
from ..identity.credentials import (
    generate_secure_password,
    normalize_email,
    normalize_username,
    validate_email,
    validate_password_strength,
    validate_username,
)
from ..identity.passwords import hash_password, needs_rehash, verify_password
from ..identity.sessions import INVALID_SESSION_MESSAGE, SessionStore
from ..identity.tokens import (
    TokenError,
    TokenSettings,
    create_access_token,
    create_token_set,
    generate_session_id,
    get_token_settings,
    verify_access_token,
    verify_refresh_token,
)
from ..identity.users import User, UserProjection, UserRole

INVALID_CREDENTIALS_MESSAGE: str = "Invalid username or password"

Clock = Callable[[], datetime]

_UPDATABLE_USER_FIELDS = frozenset({"email", "full_name", "role", "is_active"})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _remaining_minutes(locked_until: datetime, now: datetime) -> int:
    seconds = (locked_until - now).total_seconds()
    return max(1, math.ceil(seconds / 60))


# ---------------------------------------------------------------------------
# Resultados
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class AuthenticatedUser:
    """Identidad resuelta para un request (token + sesión viva)."""

    id: UUID
    username: str
    role: UserRole
    session_id: UUID
    session_token: str
    email: str | None = None
    full_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "username": self.username,
            "role": self.role.value,
            "email": self.email,
            "full_name": self.full_name,
        }


@dataclass(frozen=True, slots=True)
class LoginResult:
    access_token: str
    refresh_token: str
    session_id: UUID
    session_token: str
    access_expires_at: datetime
    refresh_expires_at: datetime
    user: UserProjection
    must_change_password: bool = False


@dataclass(frozen=True, slots=True)
class RefreshResult:
    user: AuthenticatedUser
    access_token: str
    expires_at: datetime


# ---------------------------------------------------------------------------
# Servicio
# ---------------------------------------------------------------------------


class AuthenticationService:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      AuthenticationService

    Responsabilidades:
      - Operaciones de autenticación/autorización sobre los puertos del dominio
      - Emitir eventos de seguridad en cada transición relevante

    Colaboradores:
      - UserRepository / SessionStore / PermissionRepository
      - SecurityEventRepository (vía emit_security_event)
    ----------------------------------------------------------------------------
    """

    def __init__(
        self,
        users: UserRepository,
        sessions: SessionRepository,
        permissions: PermissionRepository,
        events: SecurityEventRepository | None = None,
        settings: Settings | None = None,
        clock: Clock | None = None,
    ):
        self._users = users
        self._store = SessionStore(sessions)
        self._permissions = permissions
        self._events = events
        self._settings = settings or get_settings()
        self._token_settings: TokenSettings = get_token_settings(self._settings)
        self._clock: Clock = clock or _utcnow

    # ------------------------------------------------------------------
    # Helpers internos
    # ------------------------------------------------------------------
    def _emit(
        self,
        event_type: SecurityEventType,
        severity: Severity,
        *,
        user_id: UUID | None = None,
        username: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        emit_security_event(
            self._events,
            event_type,
            severity=severity,
            user_id=user_id,
            username=username,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details,
        )

    def _hash(self, password: str) -> str:
        return hash_password(password, rounds=self._settings.bcrypt_rounds)

    def _upgrade_hash(self, user: User, password: str) -> None:
        """Rehashea con el costo actual si el hash guardado es más débil."""
        if not needs_rehash(user.password_hash, self._settings.bcrypt_rounds):
            return
        try:
            self._users.update_user(user.id, {"password_hash": self._hash(password)})
        except Exception as exc:
            logger.warning(
                "No se pudo actualizar el costo del hash",
                extra={"user_id": str(user.id), "error": str(exc)},
            )
            return
        logger.info(
            "Hash de password actualizado al costo vigente",
            extra={"user_id": str(user.id), "rounds": self._settings.bcrypt_rounds},
        )

    def _require_user(self, user_id: UUID) -> User:
        user = self._users.get_user_by_id(user_id)
        if user is None:
            raise NotFoundError("User not found")
        return user

    @staticmethod
    def _actor_details(actor: Any) -> dict[str, Any]:
        if actor is None:
            return {}
        return {
            "actor_id": str(getattr(actor, "id", "")),
            "actor_username": getattr(actor, "username", None),
        }

    def _register_failed_attempt(
        self,
        user: User,
        now: datetime,
        client_ip: str | None,
        user_agent: str | None,
    ) -> None:
        max_attempts = self._settings.login_max_failed_attempts
        attempts = (user.failed_login_attempts or 0) + 1

        locked_until: datetime | None = None
        if attempts >= max_attempts:
            locked_until = now + timedelta(minutes=self._settings.login_lockout_minutes)
            self._emit(
                SecurityEventType.ACCOUNT_LOCKED,
                Severity.HIGH,
                user_id=user.id,
                username=user.username,
                ip_address=client_ip,
                user_agent=user_agent,
                details={
                    "failed_attempts": attempts,
                    "locked_until": locked_until.isoformat(),
                },
            )
            logger.warning(
                "Cuenta bloqueada por intentos fallidos",
                extra={"user_id": str(user.id), "failed_attempts": attempts},
            )

        self._users.record_failed_login(user.id, attempts, locked_until)
        self._emit(
            SecurityEventType.FAILED_LOGIN,
            Severity.MEDIUM,
            user_id=user.id,
            username=user.username,
            ip_address=client_ip,
            user_agent=user_agent,
            details={"reason": "invalid_password", "attempt": attempts, "max": max_attempts},
        )

    # ------------------------------------------------------------------
    # Login / logout
    # ------------------------------------------------------------------
    def login(
        self,
        username: str,
        password: str,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> LoginResult:
        """
        Autentica por username + password.

        Orden de chequeos: usuario activo -> lockout -> password. Una cuenta
        bloqueada no evalúa el password (ni siquiera el correcto).
        """
        now = self._clock()
        candidate = (username or "").strip()

        if not candidate or not password:
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        user = self._users.get_user_by_username(candidate)
        if user is None or not user.is_active:
            self._emit(
                SecurityEventType.FAILED_LOGIN,
                Severity.MEDIUM,
                user_id=user.id if user else None,
                username=candidate,
                ip_address=client_ip,
                user_agent=user_agent,
                details={"reason": "unknown_user" if user is None else "inactive_user"},
            )
            logger.info("Login rechazado", extra={"reason": "unknown_or_inactive"})
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        if user.is_locked(now):
            minutes = _remaining_minutes(user.locked_until, now)
            self._emit(
                SecurityEventType.LOGIN_BLOCKED_LOCKED,
                Severity.HIGH,
                user_id=user.id,
                username=user.username,
                ip_address=client_ip,
                user_agent=user_agent,
                details={"remaining_minutes": minutes},
            )
            logger.warning(
                "Login sobre cuenta bloqueada",
                extra={"user_id": str(user.id), "remaining_minutes": minutes},
            )
            raise AccountLockedError(minutes)

        if not verify_password(password, user.password_hash):
            self._register_failed_attempt(user, now, client_ip, user_agent)
            raise AuthenticationError(INVALID_CREDENTIALS_MESSAGE)

        self._users.record_successful_login(user.id, now)
        self._upgrade_hash(user, password)

        session_token = generate_session_id()
        tokens = create_token_set(user, session_token, self._token_settings)
        session = self._store.create_session(
            user_id=user.id,
            session_token=session_token,
            refresh_token=tokens.refresh_token.token,
            expires_at=now + timedelta(seconds=self._settings.session_ttl_seconds),
            device_info=user_agent,
            ip_address=client_ip,
            user_agent=user_agent,
        )

        self._emit(
            SecurityEventType.LOGIN,
            Severity.LOW,
            user_id=user.id,
            username=user.username,
            ip_address=client_ip,
            user_agent=user_agent,
            details={"session_id": str(session.id)},
        )
        logger.info(
            "Login exitoso",
            extra={"user_id": str(user.id), "session_id": str(session.id)},
        )

        return LoginResult(
            access_token=tokens.access_token.token,
            refresh_token=tokens.refresh_token.token,
            session_id=session.id,
            session_token=session_token,
            access_expires_at=tokens.access_token.expires_at,
            refresh_expires_at=tokens.refresh_token.expires_at,
            user=UserProjection.from_user(user),
            must_change_password=user.must_change_password,
        )

    def logout(
        self,
        session_id: UUID | str | None,
        user_id: UUID | None = None,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> bool:
        """Idempotente: una sesión desconocida o ya cerrada no es error."""
        session = self._store.get_session(session_id)
        if session is None:
            return False
        if user_id is not None and session.user_id != user_id:
            logger.warning(
                "Logout de sesión ajena ignorado",
                extra={"session_id": str(session.id), "user_id": str(user_id)},
            )
            return False

        changed = self._store.invalidate_session(session.id)
        if changed:
            self._emit(
                SecurityEventType.LOGOUT,
                Severity.LOW,
                user_id=session.user_id,
                ip_address=client_ip,
                user_agent=user_agent,
                details={"session_id": str(session.id)},
            )
        return changed

    def logout_token(
        self,
        access_token: str | None,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> bool:
        """Logout a partir de un access token (vencido vale; firma inválida no)."""
        if not access_token:
            return False
        try:
            claims = verify_access_token(
                access_token, self._token_settings, allow_expired=True
            )
        except TokenError as exc:
            logger.info("Logout con token inválido", extra={"error": str(exc)})
            return False

        session = self._store.get_session_by_token(claims.session_id)
        if session is None:
            return False
        return self.logout(session.id, client_ip=client_ip, user_agent=user_agent)

    # ------------------------------------------------------------------
    # Identidad / refresh
    # ------------------------------------------------------------------
    def resolve_access_token(self, token: str) -> AuthenticatedUser:
        """
        Token válido + sesión viva => identidad.

        Raises:
            TokenError: firma/formato/tipo inválidos o token vencido.
            SessionError: la sesión embebida no existe, está inactiva o vencida.
        """
        claims = verify_access_token(token, self._token_settings)
        session = self._store.get_session_by_token(claims.session_id)
        if (
            session is None
            or not session.is_usable(self._clock())
            or str(session.user_id) != claims.sub
        ):
            raise SessionError(INVALID_SESSION_MESSAGE)

        return AuthenticatedUser(
            id=session.user_id,
            username=claims.username,
            role=claims.role,
            session_id=session.id,
            session_token=session.session_token,
        )

    def validate_session(self, access_token: str) -> AuthenticatedUser:
        return self.resolve_access_token(access_token)

    def refresh_access_token(
        self,
        session_id: UUID | str | None,
        refresh_token: str | None,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> RefreshResult:
        """
        Emite un access token nuevo para la sesión (el refresh token no rota).

        Cualquier falla (par inválido, firma, usuario inactivo) => SessionError.
        """
        now = self._clock()
        try:
            session = self._store.validate_refresh_pair(session_id, refresh_token, now)
            claims = verify_refresh_token(refresh_token or "", self._token_settings)
            if claims.session_id != session.session_token:
                raise SessionError(INVALID_SESSION_MESSAGE)
            user = self._users.get_user_by_id(session.user_id)
            if user is None or not user.is_active:
                raise SessionError(INVALID_SESSION_MESSAGE)
        except (SessionError, TokenError) as exc:
            self._emit(
                SecurityEventType.TOKEN_REFRESH_FAILED,
                Severity.MEDIUM,
                ip_address=client_ip,
                user_agent=user_agent,
                details={"session_id": str(session_id), "reason": str(exc)},
            )
            logger.info("Refresh rechazado", extra={"reason": str(exc)})
            raise SessionError(INVALID_SESSION_MESSAGE) from exc

        issued = create_access_token(user, session.session_token, self._token_settings)
        self._store.touch(session.id, now)

        self._emit(
            SecurityEventType.TOKEN_REFRESHED,
            Severity.LOW,
            user_id=user.id,
            username=user.username,
            ip_address=client_ip,
            user_agent=user_agent,
            details={"session_id": str(session.id)},
        )

        return RefreshResult(
            user=AuthenticatedUser(
                id=user.id,
                username=user.username,
                role=user.role,
                session_id=session.id,
                session_token=session.session_token,
                email=user.email,
                full_name=user.full_name,
            ),
            access_token=issued.token,
            expires_at=issued.expires_at,
        )

    # ------------------------------------------------------------------
    # Passwords
    # ------------------------------------------------------------------
    def change_password(
        self,
        user_id: UUID,
        current_password: str,
        new_password: str,
        client_ip: str | None = None,
        user_agent: str | None = None,
    ) -> int:
        """
        Cambia el password propio y revoca TODAS las sesiones del usuario.

        Retorna la cantidad de sesiones revocadas.
        """
        user = self._require_user(user_id)

        if not verify_password(current_password, user.password_hash):
            logger.info("Cambio de password rechazado", extra={"user_id": str(user_id)})
            raise CurrentPasswordIncorrectError()

        strength = validate_password_strength(new_password)
        if not strength.is_valid:
            raise ValidationError(
                "Password does not meet requirements",
                errors=strength.errors,
                field_errors={"new_password": strength.errors[0]},
            )

        self._users.update_user(
            user.id,
            {"password_hash": self._hash(new_password), "must_change_password": False},
        )
        revoked = self._store.invalidate_user_sessions(user.id)

        self._emit(
            SecurityEventType.PASSWORD_CHANGED,
            Severity.MEDIUM,
            user_id=user.id,
            username=user.username,
            ip_address=client_ip,
            user_agent=user_agent,
            details={"sessions_revoked": revoked},
        )
        return revoked

    def reset_user_password(
        self,
        user_id: UUID,
        new_password: str | None = None,
        actor: Any = None,
    ) -> str:
        """Reset administrativo: genera password si no viene y fuerza cambio."""
        user = self._require_user(user_id)
        password = new_password or generate_secure_password()

        strength = validate_password_strength(password)
        if not strength.is_valid:
            raise ValidationError(
                "Password does not meet requirements",
                errors=strength.errors,
                field_errors={"password": strength.errors[0]},
            )

        self._users.update_user(
            user.id,
            {
                "password_hash": self._hash(password),
                "must_change_password": True,
                "failed_login_attempts": 0,
                "locked_until": None,
            },
        )
        revoked = self._store.invalidate_user_sessions(user.id)

        self._emit(
            SecurityEventType.PASSWORD_RESET,
            Severity.MEDIUM,
            user_id=user.id,
            username=user.username,
            details={
                **self._actor_details(actor),
                "generated": new_password is None,
                "sessions_revoked": revoked,
            },
        )
        return password

    # ------------------------------------------------------------------
    # Permisos
    # ------------------------------------------------------------------
    def get_role_permissions(self, role: UserRole | str | None) -> list[str]:
        try:
            resolved = UserRole(role)
        except ValueError:
            return []
        return sorted(set(self._permissions.list_role_permissions(resolved)))

    def get_user_permissions(self, user_id: UUID) -> list[str]:
        user = self._users.get_user_by_id(user_id)
        if user is None or not user.is_active:
            return []
        return self.get_role_permissions(user.role)

    def has_permission(self, user_id: UUID, permission: str) -> bool:
        return str(getattr(permission, "value", permission)) in self.get_user_permissions(
            user_id
        )

    # ------------------------------------------------------------------
    # Administración de usuarios
    # ------------------------------------------------------------------
    def list_users(self) -> list[User]:
        return self._users.list_users()

    def get_user(self, user_id: UUID) -> User:
        return self._require_user(user_id)

    def create_user(
        self,
        username: str,
        email: str,
        password: str,
        role: UserRole | str = UserRole.MEMBER,
        full_name: str = "",
        actor: Any = None,
        must_change_password: bool = False,
    ) -> User:
        field_errors: dict[str, str] = {}
        errors: list[str] = []

        for name, result in (
            ("username", validate_username(username)),
            ("email", validate_email(email)),
            ("password", validate_password_strength(password)),
        ):
            if not result.is_valid:
                field_errors[name] = result.errors[0]
                errors.extend(result.errors)

        try:
            resolved_role = UserRole(role)
        except ValueError:
            field_errors["role"] = "Invalid role"
            errors.append("Invalid role")

        if errors:
            raise ValidationError(
                "Invalid user data", errors=errors, field_errors=field_errors
            )

        normalized_username = normalize_username(username)
        normalized_email = normalize_email(email)

        if self._users.get_user_by_username(normalized_username) is not None:
            raise ConflictError("Username already exists")
        if self._users.get_user_by_email(normalized_email) is not None:
            raise ConflictError("Email already exists")

        user = self._users.create_user(
            username=normalized_username,
            email=normalized_email,
            password_hash=self._hash(password),
            role=resolved_role,
            full_name=(full_name or "").strip(),
            must_change_password=must_change_password,
        )

        self._emit(
            SecurityEventType.USER_CREATED,
            Severity.LOW,
            user_id=user.id,
            username=user.username,
            details={**self._actor_details(actor), "role": user.role.value},
        )
        logger.info(
            "Usuario creado",
            extra={"user_id": str(user.id), "role": user.role.value},
        )
        return user

    def update_user(
        self, user_id: UUID, changes: dict[str, Any], actor: Any = None
    ) -> User:
        user = self._require_user(user_id)

        unknown = sorted(set(changes) - _UPDATABLE_USER_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unsupported fields: {', '.join(unknown)}",
                errors=[f"Unsupported field: {name}" for name in unknown],
            )

        values: dict[str, Any] = {}

        if "email" in changes:
            result = validate_email(changes["email"])
            if not result.is_valid:
                raise ValidationError(
                    "Invalid email",
                    errors=result.errors,
                    field_errors={"email": result.errors[0]},
                )
            email = normalize_email(changes["email"])
            other = self._users.get_user_by_email(email)
            if other is not None and other.id != user.id:
                raise ConflictError("Email already exists")
            values["email"] = email

        if "full_name" in changes:
            values["full_name"] = str(changes["full_name"] or "").strip()

        if "role" in changes:
            try:
                values["role"] = UserRole(changes["role"])
            except ValueError as exc:
                raise ValidationError(
                    "Invalid role",
                    errors=["Invalid role"],
                    field_errors={"role": "Invalid role"},
                ) from exc

        if "is_active" in changes:
            is_active = bool(changes["is_active"])
            if not is_active and actor is not None and getattr(actor, "id", None) == user.id:
                raise ValidationError("You cannot deactivate your own account")
            values["is_active"] = is_active

        updated = self._users.update_user(user.id, values) or user

        if user.is_active and not updated.is_active:
            self._store.invalidate_user_sessions(user.id)

        self._emit(
            SecurityEventType.USER_UPDATED,
            Severity.LOW,
            user_id=user.id,
            username=user.username,
            details={**self._actor_details(actor), "fields": sorted(values)},
        )
        return updated

    def delete_user(self, user_id: UUID, actor: Any = None) -> User:
        """Baja lógica: is_active=false + revocación de sesiones."""
        if actor is not None and getattr(actor, "id", None) == user_id:
            raise ValidationError("You cannot delete your own account")

        user = self._require_user(user_id)
        updated = self._users.update_user(user.id, {"is_active": False}) or user
        revoked = self._store.invalidate_user_sessions(user.id)

        self._emit(
            SecurityEventType.USER_DEACTIVATED,
            Severity.MEDIUM,
            user_id=user.id,
            username=user.username,
            details={**self._actor_details(actor), "sessions_revoked": revoked},
        )
        return updated

    # ------------------------------------------------------------------
    # Sesiones (admin)
    # ------------------------------------------------------------------
    def list_user_sessions(self, user_id: UUID) -> list[Session]:
        self._require_user(user_id)
        return self._store.list_user_sessions(user_id, self._clock())

    def revoke_user_session(
        self, user_id: UUID, session_id: UUID | str, actor: Any = None
    ) -> None:
        user = self._require_user(user_id)
        if not self._store.revoke_user_session(user.id, session_id):
            raise NotFoundError("Session not found")

        self._emit(
            SecurityEventType.SESSION_REVOKED,
            Severity.MEDIUM,
            user_id=user.id,
            username=user.username,
            details={**self._actor_details(actor), "session_id": str(session_id)},
        )

    def cleanup_expired_sessions(self) -> int:
        return self._store.cleanup_expired_sessions(self._clock())

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------
    def is_first_time_setup(self) -> bool:
        return self._users.count_active_admins() == 0

    def record_event(
        self,
        event_type: SecurityEventType,
        severity: Severity,
        *,
        user_id: UUID | None = None,
        username: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        """Punto de emisión para capas externas (gate, handlers, setup)."""
        self._emit(
            event_type,
            severity,
            user_id=user_id,
            username=username,
            ip_address=ip_address,
            user_agent=user_agent,
            details=details,
        )
