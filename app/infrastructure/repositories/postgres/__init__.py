"""
PostgreSQL Repository Implementations.

Production implementations over psycopg 3 + psycopg_pool (raw, parameterized SQL).
"""

from .permission import PostgresPermissionRepository
from .security_event import PostgresSecurityEventRepository
from .session import PostgresSessionRepository
from .user import PostgresUserRepository

__all__ = [
    "PostgresUserRepository",
    "PostgresSessionRepository",
    "PostgresPermissionRepository",
    "PostgresSecurityEventRepository",
]
