"""
===============================================================================
CRC CARD — infrastructure/db/errors.py
===============================================================================

Componente:
  Errores tipados del Pool/Conectividad

Responsabilidades:
  - Dar semántica clara: "no inicializado", "ya inicializado", etc.
  - Seguir siendo RuntimeError para callers que capturan lo genérico.
===============================================================================
"""


class DatabasePoolError(RuntimeError):
    """Base de errores de pool de base de datos."""


class PoolAlreadyInitializedError(DatabasePoolError):
    """Se intentó inicializar el pool más de una vez."""


class PoolNotInitializedError(DatabasePoolError):
    """Se intentó usar el pool sin init_pool()."""
