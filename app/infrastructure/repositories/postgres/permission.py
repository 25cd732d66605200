"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/permission.py
============================================================
Class: PostgresPermissionRepository

Responsibilities:
  - Resolver los permisos de un rol (role_permissions JOIN permissions).

Collaborators:
  - psycopg_pool.ConnectionPool
  - identity.users.UserRole
  - crosscutting.exceptions.DatabaseError

Notes:
  - El seed vive en la migración 001; acá solo se lee.
============================================================
"""

from __future__ import annotations

from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....identity.users import UserRole


class PostgresPermissionRepository:
    def __init__(self, pool: ConnectionPool | None = None):
        self._pool = pool

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from app.infrastructure.db.pool import get_pool

        return get_pool()

    def list_role_permissions(self, role: UserRole) -> list[str]:
        role_value = UserRole(role).value
        try:
            with self._get_pool().connection() as conn:
                rows = conn.execute(
                    """
                    SELECT p.name
                    FROM role_permissions rp
                    JOIN permissions p ON p.id = rp.permission_id
                    WHERE rp.role = %s
                    ORDER BY p.name
                    """,
                    (role_value,),
                ).fetchall()
        except Exception as exc:
            logger.exception(
                "PostgresPermissionRepository: list_role_permissions failed",
                extra={"role": role_value, "error": str(exc)},
            )
            raise DatabaseError(f"Failed to list role permissions: {exc}") from exc

        return [row[0] for row in rows]
