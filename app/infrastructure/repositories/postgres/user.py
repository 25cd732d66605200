"""
============================================================
TARJETA CRC — infrastructure/repositories/postgres/user.py
============================================================
Class: PostgresUserRepository

Responsibilities:
  - Cargar usuarios para autenticación (por username / email / id).
  - Crear usuarios y actualizar campos administrables.
  - Persistir el estado de lockout (contador + locked_until) y el último login.
  - Mapear filas crudas -> entidad de dominio `User` y validar `UserRole`.
  - Exponer fallos consistentes vía `DatabaseError` con logging estructurado.

Collaborators:
  - psycopg_pool.ConnectionPool (pool de conexiones)
  - infrastructure.db.pool.get_pool (pool global)
  - identity.users.User / UserRole (modelo de dominio)
  - crosscutting.logger.logger / crosscutting.exceptions.DatabaseError

Constraints / Notes:
  - Repositorio puro: NO define reglas de negocio (lockout, política de roles).
  - Retorna None cuando no existe el recurso (no exception por “not found”).
  - SQL parametrizado siempre; las columnas de UPDATE salen de una whitelist.
  - Nunca se borra un usuario: desactivar = is_active false.
============================================================
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID, uuid4

from psycopg_pool import ConnectionPool

from ....crosscutting.exceptions import DatabaseError
from ....crosscutting.logger import logger
from ....identity.users import User, UserRole

# R: Lista explícita de columnas para mantener el contrato estable con migraciones.
_USER_COLUMNS = (
    "id, username, email, full_name, password_hash, role, is_active, "
    "failed_login_attempts, locked_until, must_change_password, last_login_at, "
    "created_at, updated_at"
)

_USER_ORDER_BY = "created_at DESC, id DESC"

# R: Columnas que update_user acepta (el resto se ignora con warning).
_UPDATABLE_COLUMNS = frozenset(
    {
        "email",
        "full_name",
        "role",
        "is_active",
        "password_hash",
        "must_change_password",
        "failed_login_attempts",
        "locked_until",
    }
)


def _row_to_user(row: tuple) -> User:
    """
    Convierte una fila de `users` a `User`.

    Role casting estricto: un valor fuera del enum es drift de esquema -> DatabaseError.
    """
    try:
        role = UserRole(row[5])
    except ValueError as exc:
        raise DatabaseError(f"Invalid user role in database: {row[5]}") from exc

    return User(
        id=row[0],
        username=row[1],
        email=row[2],
        full_name=row[3] or "",
        password_hash=row[4],
        role=role,
        is_active=row[6],
        failed_login_attempts=row[7] or 0,
        locked_until=row[8],
        must_change_password=bool(row[9]),
        last_login_at=row[10],
        created_at=row[11],
        updated_at=row[12],
    )


class PostgresUserRepository:
    """Repositorio PostgreSQL para la tabla users."""

    def __init__(self, pool: ConnectionPool | None = None) -> None:
        # Pool inyectable (tests); si es None se usa el global.
        self._pool = pool

    def _get_pool(self) -> ConnectionPool:
        if self._pool is not None:
            return self._pool

        from app.infrastructure.db.pool import get_pool

        return get_pool()

    # ------------------------------------------------------------
    # Helpers internos
    # ------------------------------------------------------------
    def _fetchone(
        self,
        *,
        query: str,
        params: Iterable[object],
        log_msg: str,
        log_extra: dict[str, object],
    ) -> tuple | None:
        try:
            with self._get_pool().connection() as conn:
                return conn.execute(query, tuple(params)).fetchone()
        except Exception as exc:
            logger.exception(log_msg, extra={**log_extra, "error": str(exc)})
            raise DatabaseError(f"{log_msg}: {exc}") from exc

    def _fetchall(
        self,
        *,
        query: str,
        params: Iterable[object] = (),
        log_msg: str,
        log_extra: dict[str, object],
    ) -> list[tuple]:
        try:
            with self._get_pool().connection() as conn:
                return conn.execute(query, tuple(params)).fetchall()
        except Exception as exc:
            logger.exception(log_msg, extra={**log_extra, "error": str(exc)})
            raise DatabaseError(f"{log_msg}: {exc}") from exc

    def _execute(
        self,
        *,
        query: str,
        params: Iterable[object],
        log_msg: str,
        log_extra: dict[str, object],
    ) -> int:
        try:
            with self._get_pool().connection() as conn:
                return conn.execute(query, tuple(params)).rowcount
        except Exception as exc:
            logger.exception(log_msg, extra={**log_extra, "error": str(exc)})
            raise DatabaseError(f"{log_msg}: {exc}") from exc

    # ------------------------------------------------------------
    # Lectura
    # ------------------------------------------------------------
    def get_user_by_id(self, user_id: UUID) -> Optional[User]:
        row = self._fetchone(
            query=f"SELECT {_USER_COLUMNS} FROM users WHERE id = %s",
            params=(user_id,),
            log_msg="PostgresUserRepository: get_user_by_id failed",
            log_extra={"user_id": str(user_id)},
        )
        return _row_to_user(row) if row else None

    def get_user_by_username(self, username: str) -> Optional[User]:
        """Match exacto: la normalización (trim/lower) es política del servicio."""
        row = self._fetchone(
            query=f"SELECT {_USER_COLUMNS} FROM users WHERE username = %s",
            params=(username,),
            log_msg="PostgresUserRepository: get_user_by_username failed",
            log_extra={"username": username},
        )
        return _row_to_user(row) if row else None

    def get_user_by_email(self, email: str) -> Optional[User]:
        row = self._fetchone(
            query=f"SELECT {_USER_COLUMNS} FROM users WHERE email = %s",
            params=(email,),
            log_msg="PostgresUserRepository: get_user_by_email failed",
            log_extra={},
        )
        return _row_to_user(row) if row else None

    def list_users(self) -> list[User]:
        rows = self._fetchall(
            query=f"SELECT {_USER_COLUMNS} FROM users ORDER BY {_USER_ORDER_BY}",
            log_msg="PostgresUserRepository: list_users failed",
            log_extra={},
        )
        return [_row_to_user(r) for r in rows]

    def count_active_admins(self) -> int:
        row = self._fetchone(
            query="""
                SELECT COUNT(*)
                FROM users
                WHERE role = %s AND is_active = TRUE
            """,
            params=(UserRole.ADMIN.value,),
            log_msg="PostgresUserRepository: count_active_admins failed",
            log_extra={},
        )
        return int(row[0]) if row else 0

    # ------------------------------------------------------------
    # Escritura
    # ------------------------------------------------------------
    def create_user(
        self,
        *,
        username: str,
        email: str,
        password_hash: str,
        role: UserRole,
        full_name: str = "",
        must_change_password: bool = False,
    ) -> User:
        """
        Crea un usuario y devuelve el registro.

        Un username/email duplicado dispara la constraint única y se envuelve en
        DatabaseError (el servicio ya chequeó duplicados antes).
        """
        user_id = uuid4()
        row = self._fetchone(
            query=f"""
                INSERT INTO users (
                    id, username, email, full_name, password_hash, role,
                    must_change_password
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                RETURNING {_USER_COLUMNS}
            """,
            params=(
                user_id,
                username,
                email,
                full_name,
                password_hash,
                UserRole(role).value,
                must_change_password,
            ),
            log_msg="PostgresUserRepository: create_user failed",
            log_extra={"user_id": str(user_id), "username": username},
        )
        if not row:
            raise DatabaseError(
                "PostgresUserRepository: create_user failed (no row returned)"
            )
        return _row_to_user(row)

    def update_user(self, user_id: UUID, changes: dict[str, Any]) -> Optional[User]:
        """
        Update dinámico.

        - Si no hay cambios válidos => retorna el usuario actual (si existe).
        - updated_at siempre se refresca.
        """
        updates: list[str] = []
        params: list[object] = []

        for column, value in changes.items():
            if column not in _UPDATABLE_COLUMNS:
                logger.warning(
                    "PostgresUserRepository: columna no actualizable ignorada",
                    extra={"column": column},
                )
                continue
            if column == "role":
                value = UserRole(value).value
            updates.append(f"{column} = %s")
            params.append(value)

        if not updates:
            return self.get_user_by_id(user_id)

        updates.append("updated_at = now()")
        params.append(user_id)

        # updates sale de la whitelist (no input de usuario), el f-string es seguro.
        row = self._fetchone(
            query=f"""
                UPDATE users
                SET {", ".join(updates)}
                WHERE id = %s
                RETURNING {_USER_COLUMNS}
            """,
            params=params,
            log_msg="PostgresUserRepository: update_user failed",
            log_extra={"user_id": str(user_id), "columns": sorted(changes)},
        )
        return _row_to_user(row) if row else None

    def record_failed_login(
        self, user_id: UUID, attempts: int, locked_until: Optional[datetime]
    ) -> None:
        self._execute(
            query="""
                UPDATE users
                SET failed_login_attempts = %s, locked_until = %s, updated_at = now()
                WHERE id = %s
            """,
            params=(attempts, locked_until, user_id),
            log_msg="PostgresUserRepository: record_failed_login failed",
            log_extra={"user_id": str(user_id), "attempts": attempts},
        )

    def record_successful_login(self, user_id: UUID, at: datetime) -> None:
        self._execute(
            query="""
                UPDATE users
                SET failed_login_attempts = 0,
                    locked_until = NULL,
                    last_login_at = %s,
                    updated_at = now()
                WHERE id = %s
            """,
            params=(at, user_id),
            log_msg="PostgresUserRepository: record_successful_login failed",
            log_extra={"user_id": str(user_id)},
        )
