# app/crosscutting/logger.py
"""
===============================================================================
MÓDULO: Logger estructurado (JSON) para eventos de autenticación
===============================================================================

Objetivo
--------
Cada línea de log es un objeto JSON que:
- Se correlaciona con el request (request_id, method, path) y con el usuario
  autenticado (user_id) vía ContextVars.
- Nunca contiene material de credenciales: passwords, hashes bcrypt, JWTs,
  refresh tokens, cookies de sesión ni secretos de firma.

-------------------------------------------------------------------------------
CRC (Component Card)
-------------------------------------------------------------------------------
Componente:
  CredentialMasker + JSONFormatter + setup_logger()

Responsabilidades:
  - Serializar LogRecord -> JSON (una línea)
  - Enmascarar por NOMBRE de campo (sufijos *_password, *_token, *_secret...)
  - Enmascarar por FORMA del valor (JWT "eyJ...", hash "$2b$12$...") aunque
    el campo tenga un nombre inocente
  - Acotar tamaño y profundidad de los extras

Colaboradores:
  - app/context.py (get_context_dict)
  - crosscutting/config.py (log_level / log_json)
===============================================================================
"""

from __future__ import annotations

import json
import logging
import os
import re
import sys
import traceback
from datetime import datetime, timezone
from typing import Any, Final

REDACTED: Final[str] = "***REDACTADO***"
TRUNCATED: Final[str] = "***TRUNCADO***"

# Atributos estándar del LogRecord (no son "extra" del caller).
_RECORD_ATTRS: Final[frozenset[str]] = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime", "taskName"}

# Un campo es sensible si su nombre (lower) es o termina en alguno de estos.
_SENSITIVE_SUFFIXES: Final[tuple[str, ...]] = (
    "password",
    "passwd",
    "password_hash",
    "secret",
    "token",
    "authorization",
    "cookie",
    "credential",
)

_JWT_RE = re.compile(r"\beyJ[\w-]+\.[\w-]+\.[\w-]+")
_BCRYPT_RE = re.compile(r"\$2[abxy]\$\d{2}\$[./A-Za-z0-9]{53}")


def is_sensitive_key(key: str) -> bool:
    k = key.lower()
    return k.endswith(_SENSITIVE_SUFFIXES)


def mask_credentials(text: str) -> str:
    """Reemplaza JWTs y hashes bcrypt embebidos en un string."""
    text = _JWT_RE.sub(REDACTED, text)
    return _BCRYPT_RE.sub(REDACTED, text)


class CredentialMasker:
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      CredentialMasker

    Responsabilidades:
      - Redactar valores bajo claves sensibles (a cualquier profundidad)
      - Redactar tokens/hashes reconocibles por forma
      - Recortar strings largos y estructuras profundas
      - Devolver siempre algo serializable a JSON

    Colaboradores:
      - JSONFormatter
    ----------------------------------------------------------------------------
    """

    def __init__(self, max_str: int = 8_000, max_depth: int = 4):
        self._max_str = max_str
        self._max_depth = max_depth

    def sanitize(self, value: Any, *, key: str | None = None, depth: int = 0) -> Any:
        if key is not None and is_sensitive_key(key):
            return REDACTED
        if depth > self._max_depth:
            return TRUNCATED

        if value is None or isinstance(value, (bool, int, float)):
            return value

        if isinstance(value, str):
            value = mask_credentials(value)
            if len(value) > self._max_str:
                return value[: self._max_str] + "…(truncado)"
            return value

        if isinstance(value, (bytes, bytearray)):
            return f"<bytes {len(value)}B>"

        if isinstance(value, dict):
            return {
                str(k): self.sanitize(v, key=str(k), depth=depth + 1)
                for k, v in value.items()
            }

        if isinstance(value, (list, tuple, set, frozenset)):
            return [self.sanitize(v, key=key, depth=depth + 1) for v in value]

        # UUID, datetime, Enum...: representación textual
        return self.sanitize(str(value), depth=depth)


class JSONFormatter(logging.Formatter):
    """
    ----------------------------------------------------------------------------
    CRC (Class Card)
    ----------------------------------------------------------------------------
    Clase:
      JSONFormatter

    Responsabilidades:
      - LogRecord -> JSON con campos fijos + contexto + extras enmascarados
      - Adjuntar tipo/mensaje/stacktrace cuando hay excepción

    Colaboradores:
      - app/context.get_context_dict()
      - CredentialMasker
    ----------------------------------------------------------------------------
    """

    def __init__(self, masker: CredentialMasker | None = None):
        super().__init__()
        self._masker = masker or CredentialMasker()

    def format(self, record: logging.LogRecord) -> str:
        from ..context import get_context_dict

        payload: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": mask_credentials(record.getMessage()),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "pid": os.getpid(),
            **get_context_dict(),
        }

        extras = {
            k: v for k, v in record.__dict__.items() if k not in _RECORD_ATTRS
        }
        payload.update(self._masker.sanitize(extras, depth=-1))

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc, tb = record.exc_info
            payload["exception"] = {
                "type": exc_type.__name__,
                "message": mask_credentials(str(exc)) if exc else None,
                "stacktrace": traceback.format_exception(exc_type, exc, tb),
            }

        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def _level_and_format() -> tuple[int, bool]:
    # Settings puede fallar en import (p.ej. DATABASE_URL ausente): defaults.
    try:
        from .config import get_settings

        s = get_settings()
    except Exception:
        return logging.INFO, True
    level = getattr(logging, (s.log_level or "INFO").upper(), logging.INFO)
    return level, bool(s.log_json)


def setup_logger(name: str = "gym-auth") -> logging.Logger:
    """
    Devuelve el logger de la aplicación, configurado una sola vez.

    Reimportar el módulo no duplica handlers.
    """
    log = logging.getLogger(name)
    level, use_json = _level_and_format()
    log.setLevel(level)
    log.propagate = False

    if not log.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            JSONFormatter()
            if use_json
            else logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s")
        )
        log.addHandler(handler)

    return log


logger = setup_logger()
