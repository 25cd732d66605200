"""
============================================================
TARJETA CRC (Class / Responsibilities / Collaborators)
============================================================
Class: 001_auth_foundation (Alembic Migration)

Responsibilities:
  - Crear el esquema de identidad desde cero: users, user_sessions,
    permissions, role_permissions, security_events.
  - Sembrar el catálogo de permisos y el mapa rol -> permisos.

Collaborators:
  - PostgreSQL 13+ (gen_random_uuid() nativo)
  - app.identity.permissions (catálogo + seed por rol)
  - Repositorios Postgres (usan este esquema como contrato)

Policy:
  - Migración BASELINE. Downgrade NO soportado.
  - Convención de nombres:
      pk_<tabla> / uq_<tabla>_<col> / ix_<tabla>_<col> / fk_<tabla>_<col>__<ref>
============================================================
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

from app.identity.permissions import PERMISSION_DESCRIPTIONS, ROLE_PERMISSIONS

revision: str = "001_auth_foundation"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    # =========================================================
    # 1) USERS
    # =========================================================
    op.create_table(
        "users",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("username", sa.String(50), nullable=False),
        sa.Column("email", sa.String(254), nullable=False),
        sa.Column("full_name", sa.String(200), nullable=False, server_default=""),
        sa.Column("password_hash", sa.Text, nullable=False),
        sa.Column(
            "role",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'member'"),
        ),
        sa.Column(
            "is_active", sa.Boolean, nullable=False, server_default=sa.text("true")
        ),
        sa.Column(
            "failed_login_attempts",
            sa.Integer,
            nullable=False,
            server_default=sa.text("0"),
        ),
        sa.Column("locked_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "must_change_password",
            sa.Boolean,
            nullable=False,
            server_default=sa.text("false"),
        ),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_users"),
        sa.UniqueConstraint("username", name="uq_users_username"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.CheckConstraint(
            "role IN ('admin', 'trainer', 'member')", name="ck_users_role"
        ),
    )
    op.create_index("ix_users_role", "users", ["role"])

    # =========================================================
    # 2) SESSIONS
    # =========================================================
    op.create_table(
        "user_sessions",
        sa.Column(
            "id",
            postgresql.UUID(as_uuid=True),
            server_default=sa.text("gen_random_uuid()"),
            nullable=False,
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=False),
        # 64 hex (32 bytes CSPRNG); el claim session_id de los JWT.
        sa.Column("session_token", sa.String(128), nullable=False),
        sa.Column("refresh_token", sa.Text, nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "is_active", sa.Boolean, nullable=False, server_default=sa.text("true")
        ),
        sa.Column("device_info", sa.Text, nullable=True),
        sa.Column("ip_address", postgresql.INET, nullable=True),
        sa.Column("user_agent", sa.Text, nullable=True),
        *_timestamps(),
        sa.Column(
            "last_used_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=True,
        ),
        sa.PrimaryKeyConstraint("id", name="pk_user_sessions"),
        sa.UniqueConstraint("session_token", name="uq_user_sessions_session_token"),
        sa.ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            name="fk_user_sessions_user_id__users",
            ondelete="CASCADE",
        ),
    )
    op.create_index("ix_user_sessions_user_id", "user_sessions", ["user_id"])
    op.create_index("ix_user_sessions_expires_at", "user_sessions", ["expires_at"])

    # =========================================================
    # 3) PERMISSIONS
    # =========================================================
    permissions = op.create_table(
        "permissions",
        sa.Column("id", sa.Integer, sa.Identity(), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("category", sa.String(50), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_permissions"),
        sa.UniqueConstraint("name", name="uq_permissions_name"),
    )

    op.create_table(
        "role_permissions",
        sa.Column("role", sa.String(20), nullable=False),
        sa.Column("permission_id", sa.Integer, nullable=False),
        sa.PrimaryKeyConstraint("role", "permission_id", name="pk_role_permissions"),
        sa.ForeignKeyConstraint(
            ["permission_id"],
            ["permissions.id"],
            name="fk_role_permissions_permission_id__permissions",
            ondelete="CASCADE",
        ),
    )

    op.bulk_insert(
        permissions,
        [
            {
                "name": permission.value,
                "description": description,
                "category": permission.category,
            }
            for permission, description in PERMISSION_DESCRIPTIONS.items()
        ],
    )

    for role, granted in ROLE_PERMISSIONS.items():
        names = sorted(p.value for p in granted)
        op.get_bind().execute(
            sa.text(
                """
                INSERT INTO role_permissions (role, permission_id)
                SELECT :role, id FROM permissions WHERE name = ANY(:names)
                """
            ),
            {"role": role.value, "names": names},
        )

    # =========================================================
    # 4) SECURITY EVENTS (append-only)
    # =========================================================
    op.create_table(
        "security_events",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("event_type", sa.String(50), nullable=False),
        sa.Column(
            "severity",
            sa.String(20),
            nullable=False,
            server_default=sa.text("'low'"),
        ),
        # Sin FK: el evento sobrevive al usuario y admite intentos anónimos.
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("username", sa.String(255), nullable=True),
        sa.Column("ip_address", postgresql.INET, nullable=True),
        sa.Column("user_agent", sa.Text, nullable=True),
        sa.Column(
            "details",
            postgresql.JSONB,
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_security_events"),
    )
    op.create_index("ix_security_events_user_id", "security_events", ["user_id"])
    op.create_index(
        "ix_security_events_event_type", "security_events", ["event_type"]
    )
    op.create_index(
        "ix_security_events_created_at", "security_events", ["created_at"]
    )


def downgrade() -> None:
    """Downgrade NO soportado para la migración fundacional."""
    raise NotImplementedError(
        "Baseline: downgrade no soportado por política. "
        "Para resetear la base de datos, recrearla y correr `alembic upgrade head`."
    )
