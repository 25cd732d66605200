"""
===============================================================================
TARJETA CRC — identity/passwords.py
===============================================================================

Módulo:
    Hash y verificación de passwords (bcrypt)

Responsabilidades:
    - Hashear passwords nuevos con el costo configurado (>= 12 en producción).
    - Verificar passwords contra hashes bcrypt existentes ($2a$/$2b$/$2y$).

Colaboradores:
    - crosscutting.config.get_settings: bcrypt_rounds.
    - application/auth_service.py: login, cambio y reset de password.
    - scripts/create_admin.py: bootstrap.

Notas:
    - Un hash corrupto o input vacío se trata como “no coincide”, nunca explota.
===============================================================================
"""

from __future__ import annotations

import bcrypt

from ..crosscutting.config import get_settings

DEFAULT_BCRYPT_ROUNDS: int = 12

# bcrypt solo usa los primeros 72 bytes; versiones recientes rechazan más.
_BCRYPT_MAX_BYTES: int = 72


def _configured_rounds() -> int:
    try:
        return get_settings().bcrypt_rounds
    except Exception:
        # Scripts sin DATABASE_URL: usamos el costo por defecto.
        return DEFAULT_BCRYPT_ROUNDS


def _encode(password: str) -> bytes:
    return password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(password: str, rounds: int | None = None) -> str:
    """Hashea un password usando bcrypt."""
    salt = bcrypt.gensalt(rounds=rounds or _configured_rounds())
    return bcrypt.hashpw(_encode(password), salt).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    """Verifica password vs hash almacenado."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(_encode(password), password_hash.encode("utf-8"))
    except ValueError:
        return False


def hash_rounds(password_hash: str) -> int | None:
    """Costo embebido en un hash bcrypt (`$2b$12$...` -> 12)."""
    parts = (password_hash or "").split("$")
    if len(parts) < 4:
        return None
    try:
        return int(parts[2])
    except ValueError:
        return None


def needs_rehash(password_hash: str, rounds: int) -> bool:
    """True si el hash fue generado con un costo menor al configurado."""
    current = hash_rounds(password_hash)
    return current is not None and current < rounds
