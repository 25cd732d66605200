"""
===============================================================================
TARJETA CRC — identity/credentials.py
===============================================================================

Módulo:
    Validación de credenciales e input (funciones puras, sin I/O)

Responsabilidades:
    - Validar fortaleza de password, username y email.
    - Sanitizar input antes de renderizarlo en HTML.
    - Generar passwords y tokens CSRF con un CSPRNG (secrets).

Colaboradores:
    - application/auth_service.py: valida altas, cambios y resets de password.
    - application/setup_admin.py: valida el formulario de setup inicial.

Notas:
    - Los mensajes son estables: la UI y los tests dependen de ellos.
    - Toda la aleatoriedad sale de `secrets` / `random.SystemRandom`.
===============================================================================
"""

from __future__ import annotations

import hmac
import random
import re
import secrets
import string
from dataclasses import dataclass, field
from typing import Any, Final

# ---------------------------------------------------------------------------
# Reglas (constantes)
# ---------------------------------------------------------------------------

PASSWORD_MIN_LENGTH: Final[int] = 8
PASSWORD_MAX_LENGTH: Final[int] = 128
USERNAME_MIN_LENGTH: Final[int] = 3
USERNAME_MAX_LENGTH: Final[int] = 30
EMAIL_MAX_LENGTH: Final[int] = 254

COMMON_PASSWORDS: Final[tuple[str, ...]] = (
    "password",
    "password123",
    "admin",
    "admin123",
    "qwerty",
    "qwerty123",
    "12345678",
    "letmein",
    "welcome",
    "monkey",
    "dragon",
    "football",
    "baseball",
    "master",
    "michael",
    "shadow",
)

COMPROMISED_PATTERNS: Final[tuple[str, ...]] = (
    "password",
    "123456",
    "qwerty",
    "admin",
    "letmein",
    "welcome",
    "monkey",
    "dragon",
    "football",
    "baseball",
)

RESERVED_USERNAMES: Final[frozenset[str]] = frozenset(
    {
        "admin",
        "administrator",
        "root",
        "system",
        "user",
        "test",
        "guest",
        "demo",
        "api",
        "www",
        "mail",
        "ftp",
        "web",
        "blog",
    }
)

EMAIL_TYPOS: Final[dict[str, str]] = {
    "gmial.com": "gmail.com",
    "gmai.com": "gmail.com",
    "yahooo.com": "yahoo.com",
    "yaho.com": "yahoo.com",
    "hotmial.com": "hotmail.com",
}

_LOWERCASE_RE = re.compile(r"[a-z]")
_UPPERCASE_RE = re.compile(r"[A-Z]")
_DIGIT_RE = re.compile(r"\d")
_SPECIAL_RE = re.compile(r"[!@#$%^&*()_+\-=\[\]{};':\"\\|,.<>/?]")
_REPEATED_RE = re.compile(r"(.)\1{2,}")
_USERNAME_RE = re.compile(r"^[a-z0-9_]+$")
_EMAIL_RE = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

_HTML_ENTITIES: Final[dict[str, str]] = {
    "&": "&amp;",
    "<": "&lt;",
    ">": "&gt;",
    '"': "&quot;",
    "'": "&#x27;",
    "/": "&#x2F;",
    "`": "&#96;",
    "=": "&#x3D;",
}
_HTML_ESCAPE_RE = re.compile(r"[&<>\"'`=/]")

_PASSWORD_SPECIALS: Final[str] = "!@#$%^&*()_+-=[]{}|;:,.<>?"
_CSRF_TOKEN_LENGTH: Final[int] = 32

_system_random = random.SystemRandom()


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """Resultado de una validación: válido + mensajes (y sugerencias opcionales)."""

    is_valid: bool
    errors: list[str] = field(default_factory=list)
    suggestions: list[str] = field(default_factory=list)


def _result(errors: list[str], suggestions: list[str] | None = None) -> ValidationResult:
    return ValidationResult(
        is_valid=not errors, errors=errors, suggestions=suggestions or []
    )


# ---------------------------------------------------------------------------
# Password
# ---------------------------------------------------------------------------


def validate_password_strength(password: str | None) -> ValidationResult:
    """Valida largo, clases de caracteres y patrones comunes."""
    if not password:
        return _result(["Password is required"])

    errors: list[str] = []

    if len(password) < PASSWORD_MIN_LENGTH:
        errors.append(
            f"Password must be at least {PASSWORD_MIN_LENGTH} characters long"
        )
    if len(password) > PASSWORD_MAX_LENGTH:
        errors.append("Password is too long")

    if not _LOWERCASE_RE.search(password):
        errors.append("Password must contain at least one lowercase letter")
    if not _UPPERCASE_RE.search(password):
        errors.append("Password must contain at least one uppercase letter")
    if not _DIGIT_RE.search(password):
        errors.append("Password must contain at least one number")
    if not _SPECIAL_RE.search(password):
        errors.append("Password must contain at least one special character")

    lowered = password.lower()
    if _REPEATED_RE.search(password) or any(
        common in lowered for common in COMMON_PASSWORDS
    ):
        errors.append("Password contains common patterns and is not secure")

    return _result(errors)


def is_password_compromised(password: str | None) -> bool:
    """Chequeo local (sin red) contra patrones muy comunes."""
    if not password:
        return False
    lowered = password.lower()
    return any(pattern in lowered for pattern in COMPROMISED_PATTERNS)


def generate_secure_password(length: int = 16) -> str:
    """
    Genera un password con al menos un caracter de cada clase.

    Relleno uniforme sobre la unión de clases y shuffle final, ambos con CSPRNG.
    Si el largo es validable, se regenera hasta pasar validate_password_strength
    (descarta corridas repetidas o patrones comunes por azar).
    """
    if length < 4:
        raise ValueError("length must be at least 4")

    classes = (
        string.ascii_lowercase,
        string.ascii_uppercase,
        string.digits,
        _PASSWORD_SPECIALS,
    )
    alphabet = "".join(classes)
    validatable = PASSWORD_MIN_LENGTH <= length <= PASSWORD_MAX_LENGTH

    while True:
        chars = [secrets.choice(group) for group in classes]
        chars.extend(secrets.choice(alphabet) for _ in range(length - len(classes)))
        _system_random.shuffle(chars)
        password = "".join(chars)
        if not validatable or validate_password_strength(password).is_valid:
            return password


# ---------------------------------------------------------------------------
# Username / Email
# ---------------------------------------------------------------------------


def validate_username(username: str | None) -> ValidationResult:
    """Username normalizado (trim + lower): 3..30, [a-z0-9_], no reservado."""
    if not username or not username.strip():
        return _result(["Username is required"])

    normalized = username.strip().lower()
    errors: list[str] = []

    if len(normalized) < USERNAME_MIN_LENGTH:
        errors.append(f"Username must be at least {USERNAME_MIN_LENGTH} characters")
    if len(normalized) > USERNAME_MAX_LENGTH:
        errors.append(f"Username must not exceed {USERNAME_MAX_LENGTH} characters")
    if not _USERNAME_RE.match(normalized):
        errors.append("Username can only contain letters, numbers, and underscores")
    if normalized in RESERVED_USERNAMES:
        errors.append("This username is reserved")

    return _result(errors)


def validate_email(
    email: str | None, suggest_corrections: bool = False
) -> ValidationResult:
    """Formato de email, largo máximo y sugerencias para typos de dominio."""
    if not email or not email.strip():
        return _result(["Email is required"])

    normalized = email.strip().lower()
    errors: list[str] = []
    suggestions: list[str] = []

    if len(normalized) > EMAIL_MAX_LENGTH:
        errors.append("Email address is too long")
    if not _EMAIL_RE.match(normalized):
        errors.append("Invalid email format")

    if suggest_corrections and "@" in normalized:
        local, _, domain = normalized.rpartition("@")
        fixed = EMAIL_TYPOS.get(domain)
        if fixed:
            suggestions.append(f"Did you mean {local}@{fixed}?")

    return _result(errors, suggestions)


def normalize_username(username: str) -> str:
    return (username or "").strip().lower()


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


# ---------------------------------------------------------------------------
# Sanitización / CSRF
# ---------------------------------------------------------------------------


def sanitize_input(value: Any) -> str:
    """Escapa entidades HTML. Falsy -> ""; no-str -> str(value). No hace trim."""
    if not value:
        return ""
    text = value if isinstance(value, str) else str(value)
    return _HTML_ESCAPE_RE.sub(lambda m: _HTML_ENTITIES[m.group(0)], text)


def generate_csrf_token() -> str:
    """Token CSRF de 32 caracteres URL-safe."""
    return secrets.token_urlsafe(_CSRF_TOKEN_LENGTH)[:_CSRF_TOKEN_LENGTH]


def verify_csrf_token(token: str | None, expected: str | None) -> bool:
    """Comparación en tiempo constante contra el token emitido."""
    if not token or not expected:
        return False
    return hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8"))
