"""
===============================================================================
TARJETA CRC — identity/tokens.py
===============================================================================

Módulo:
    Emisión y verificación de tokens (JWT HS256)

Responsabilidades:
    - Emitir access tokens (secreto A) y refresh tokens (secreto B).
    - Verificar firma, expiración, issuer/audience y tipo de token.
    - Devolver variantes tipadas (AccessToken / RefreshToken), nunca dicts.
    - Extraer el token de `Authorization: Bearer <token>`.
    - Generar identificadores de sesión con CSPRNG.

Colaboradores:
    - crosscutting.config.get_settings: secretos, issuer, audience, TTLs.
    - application/auth_service.py: login, refresh y resolución de identidad.
    - identity.users: UserRole.

Decisiones de diseño:
    - Secretos distintos por tipo: un refresh token nunca verifica como access
      (y viceversa), además del chequeo explícito de `token_type`.
    - Errores tipados: TokenExpiredError vs InvalidTokenError.
    - No loguear tokens ni secretos.
===============================================================================
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, ClassVar, Mapping

import jwt

from ..crosscutting.config import get_settings
from .users import UserRole

# ---------------------------------------------------------------------------
# Constantes
# ---------------------------------------------------------------------------

JWT_ALGORITHM: str = "HS256"
BEARER_SCHEME: str = "Bearer"

CLAIM_SUB: str = "sub"
CLAIM_USERNAME: str = "username"
CLAIM_ROLE: str = "role"
CLAIM_SESSION_ID: str = "session_id"
CLAIM_TOKEN_TYPE: str = "token_type"
CLAIM_JTI: str = "jti"

_REQUIRED_CLAIMS: tuple[str, ...] = (
    CLAIM_SUB,
    CLAIM_USERNAME,
    CLAIM_SESSION_ID,
    CLAIM_TOKEN_TYPE,
)


class TokenType(str, Enum):
    ACCESS = "access"
    REFRESH = "refresh"


# ---------------------------------------------------------------------------
# Errores
# ---------------------------------------------------------------------------


class TokenError(Exception):
    """Base de errores de token."""


class TokenExpiredError(TokenError):
    """Firma válida pero `exp` vencido."""


class InvalidTokenError(TokenError):
    """Firma, formato, claims o tipo inválidos."""


# ---------------------------------------------------------------------------
# Contratos
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TokenSettings:
    """Settings de tokens (snapshot)."""

    access_secret: str
    refresh_secret: str
    issuer: str
    audience: str
    access_ttl_seconds: int
    refresh_ttl_seconds: int


def get_token_settings(settings: Any = None) -> TokenSettings:
    """Snapshot desde Settings (o el Settings global si no se pasa uno)."""
    s = settings or get_settings()
    return TokenSettings(
        access_secret=s.jwt_secret,
        refresh_secret=s.jwt_refresh_secret,
        issuer=s.jwt_issuer,
        audience=s.jwt_audience,
        access_ttl_seconds=s.jwt_access_ttl_seconds,
        refresh_ttl_seconds=s.jwt_refresh_ttl_seconds,
    )


@dataclass(frozen=True, slots=True)
class TokenClaims:
    """Claims comunes a ambos tipos de token."""

    sub: str
    username: str
    session_id: str
    issued_at: datetime
    expires_at: datetime
    jti: str


@dataclass(frozen=True, slots=True)
class AccessToken(TokenClaims):
    """Access token verificado (lleva rol)."""

    token_type: ClassVar[TokenType] = TokenType.ACCESS

    role: UserRole = UserRole.MEMBER


@dataclass(frozen=True, slots=True)
class RefreshToken(TokenClaims):
    """Refresh token verificado (sin rol)."""

    token_type: ClassVar[TokenType] = TokenType.REFRESH


@dataclass(frozen=True, slots=True)
class IssuedToken:
    """Token recién firmado + metadata para cookies/respuestas."""

    token: str
    expires_at: datetime
    jti: str
    token_type: TokenType


@dataclass(frozen=True, slots=True)
class TokenSet:
    access_token: IssuedToken
    refresh_token: IssuedToken
    session_id: str


# ---------------------------------------------------------------------------
# Emisión
# ---------------------------------------------------------------------------


def generate_session_id() -> str:
    """64 caracteres hex (32 bytes de CSPRNG)."""
    return secrets.token_hex(32)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _sign(
    payload: dict[str, Any],
    *,
    secret: str,
    token_type: TokenType,
    ttl_seconds: int,
    settings: TokenSettings,
    now: datetime | None,
) -> IssuedToken:
    issued_at = (now or _now()).replace(microsecond=0)
    expires_at = issued_at + timedelta(seconds=ttl_seconds)
    jti = secrets.token_hex(16)

    claims: dict[str, Any] = {
        "iss": settings.issuer,
        "aud": settings.audience,
        "iat": int(issued_at.timestamp()),
        "exp": int(expires_at.timestamp()),
        CLAIM_JTI: jti,
        **payload,
        CLAIM_TOKEN_TYPE: token_type.value,
    }
    token = jwt.encode(claims, secret, algorithm=JWT_ALGORITHM)
    return IssuedToken(
        token=token, expires_at=expires_at, jti=jti, token_type=token_type
    )


def create_access_token(
    user: Any,
    session_id: str,
    settings: TokenSettings | None = None,
    *,
    now: datetime | None = None,
) -> IssuedToken:
    """Firma un access token (secreto A, TTL corto) ligado a la sesión."""
    token_settings = settings or get_token_settings()
    role = UserRole(user.role)
    payload = {
        CLAIM_SUB: str(user.id),
        CLAIM_USERNAME: user.username,
        CLAIM_ROLE: role.value,
        "email": getattr(user, "email", None),
        "full_name": getattr(user, "full_name", None),
        CLAIM_SESSION_ID: session_id,
    }
    return _sign(
        payload,
        secret=token_settings.access_secret,
        token_type=TokenType.ACCESS,
        ttl_seconds=token_settings.access_ttl_seconds,
        settings=token_settings,
        now=now,
    )


def create_refresh_token(
    user: Any,
    session_id: str,
    settings: TokenSettings | None = None,
    *,
    now: datetime | None = None,
) -> IssuedToken:
    """Firma un refresh token (secreto B, TTL largo). No incluye rol."""
    token_settings = settings or get_token_settings()
    payload = {
        CLAIM_SUB: str(user.id),
        CLAIM_USERNAME: user.username,
        CLAIM_SESSION_ID: session_id,
    }
    return _sign(
        payload,
        secret=token_settings.refresh_secret,
        token_type=TokenType.REFRESH,
        ttl_seconds=token_settings.refresh_ttl_seconds,
        settings=token_settings,
        now=now,
    )


def create_token_set(
    user: Any,
    session_id: str,
    settings: TokenSettings | None = None,
    *,
    now: datetime | None = None,
) -> TokenSet:
    token_settings = settings or get_token_settings()
    return TokenSet(
        access_token=create_access_token(user, session_id, token_settings, now=now),
        refresh_token=create_refresh_token(
            user, session_id, token_settings, now=now
        ),
        session_id=session_id,
    )


# ---------------------------------------------------------------------------
# Verificación
# ---------------------------------------------------------------------------


def validate_token_payload(payload: Mapping[str, Any] | None) -> bool:
    """Claims mínimos presentes; los access tokens además con rol conocido."""
    if not payload:
        return False
    if any(not payload.get(claim) for claim in _REQUIRED_CLAIMS):
        return False
    if payload.get(CLAIM_TOKEN_TYPE) == TokenType.ACCESS.value:
        try:
            UserRole(payload.get(CLAIM_ROLE))
        except ValueError:
            return False
    return True


def _decode(
    token: str,
    *,
    secret: str,
    expected: TokenType,
    settings: TokenSettings,
    allow_expired: bool = False,
) -> dict[str, Any]:
    label = expected.value.capitalize()
    if not token or not isinstance(token, str):
        raise InvalidTokenError(f"Invalid {expected.value} token")

    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=[JWT_ALGORITHM],
            audience=settings.audience,
            issuer=settings.issuer,
            options={
                "require": ["exp", "iat", CLAIM_SUB],
                "verify_exp": not allow_expired,
            },
        )
    except jwt.ExpiredSignatureError as exc:
        raise TokenExpiredError(f"{label} token expired") from exc
    except jwt.InvalidTokenError as exc:
        raise InvalidTokenError(f"Invalid {expected.value} token") from exc

    if payload.get(CLAIM_TOKEN_TYPE) != expected.value:
        raise InvalidTokenError(f"Invalid {expected.value} token")
    if not validate_token_payload(payload):
        raise InvalidTokenError(f"Invalid {expected.value} token")
    return payload


def _claims(payload: Mapping[str, Any]) -> dict[str, Any]:
    return {
        "sub": str(payload[CLAIM_SUB]),
        "username": str(payload[CLAIM_USERNAME]),
        "session_id": str(payload[CLAIM_SESSION_ID]),
        "issued_at": datetime.fromtimestamp(int(payload["iat"]), tz=timezone.utc),
        "expires_at": datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc),
        "jti": str(payload.get(CLAIM_JTI) or ""),
    }


def verify_access_token(
    token: str,
    settings: TokenSettings | None = None,
    allow_expired: bool = False,
) -> AccessToken:
    """
    Verifica un access token.

    `allow_expired=True` solo se usa para logout: la firma se sigue
    verificando, pero un token vencido igual identifica su sesión.
    """
    token_settings = settings or get_token_settings()
    payload = _decode(
        token,
        secret=token_settings.access_secret,
        expected=TokenType.ACCESS,
        settings=token_settings,
        allow_expired=allow_expired,
    )
    return AccessToken(**_claims(payload), role=UserRole(payload[CLAIM_ROLE]))


def verify_refresh_token(
    token: str, settings: TokenSettings | None = None
) -> RefreshToken:
    token_settings = settings or get_token_settings()
    payload = _decode(
        token,
        secret=token_settings.refresh_secret,
        expected=TokenType.REFRESH,
        settings=token_settings,
    )
    return RefreshToken(**_claims(payload))


def extract_token_from_header(authorization: str | None) -> str | None:
    """Token solo para exactamente `Bearer <token>`."""
    if not authorization or not isinstance(authorization, str):
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0] != BEARER_SCHEME or not parts[1]:
        return None
    return parts[1]


# ---------------------------------------------------------------------------
# Inspección sin verificar firma
# ---------------------------------------------------------------------------


def _unverified_payload(token: str | None) -> dict[str, Any] | None:
    if not token:
        return None
    try:
        return jwt.decode(
            token,
            options={"verify_signature": False, "verify_exp": False},
            algorithms=[JWT_ALGORITHM],
        )
    except jwt.InvalidTokenError:
        return None


def get_token_expiration(token: str | None) -> datetime | None:
    payload = _unverified_payload(token)
    if not payload or payload.get("exp") is None:
        return None
    try:
        return datetime.fromtimestamp(int(payload["exp"]), tz=timezone.utc)
    except (TypeError, ValueError):
        return None


def is_token_expired(token: str | None, now: datetime | None = None) -> bool:
    """Sin `exp` o indecodificable cuenta como vencido."""
    expires_at = get_token_expiration(token)
    if expires_at is None:
        return True
    return expires_at <= (now or _now())
