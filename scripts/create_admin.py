"""
Name: Admin Bootstrap Script

Responsibilities:
  - Create an admin (or any role) user without the web setup flow
  - Validate username, email and password strength like the web flow does
  - Hash the password with bcrypt and store the user in PostgreSQL
  - Be idempotent: an existing username/email is reported, not overwritten
"""

from __future__ import annotations

import argparse
import getpass
import os
import sys

import psycopg

ROOT_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if ROOT_DIR not in sys.path:
    sys.path.insert(0, ROOT_DIR)

from app.identity.credentials import (  # noqa: E402
    normalize_email,
    normalize_username,
    validate_email,
    validate_password_strength,
    validate_username,
)
from app.identity.passwords import hash_password  # noqa: E402
from app.identity.users import UserRole  # noqa: E402


def _require_database_url() -> str:
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        raise SystemExit("DATABASE_URL is required to create a user.")
    return db_url


def _check(result, label: str) -> None:
    if not result.is_valid:
        raise SystemExit(f"Invalid {label}: " + "; ".join(result.errors))


def _prompt(label: str) -> str:
    value = input(f"{label}: ").strip()
    if not value:
        raise SystemExit(f"{label} is required.")
    return value


def _prompt_password() -> str:
    password = getpass.getpass("Password: ")
    if not password:
        raise SystemExit("Password is required.")
    confirm = getpass.getpass("Confirm password: ")
    if password != confirm:
        raise SystemExit("Passwords do not match.")
    return password


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    argv = list(sys.argv[1:] if argv is None else argv)
    if argv and argv[0] == "--":
        argv = argv[1:]
    parser = argparse.ArgumentParser(description="Create a user (idempotent).")
    parser.add_argument("--username", help="Login name (stored lower-case)")
    parser.add_argument("--email", help="User email (stored lower-case)")
    parser.add_argument("--full-name", default="", help="Display name")
    parser.add_argument(
        "--password",
        help="User password (omit to be prompted securely)",
    )
    parser.add_argument(
        "--role",
        default=UserRole.ADMIN.value,
        choices=[role.value for role in UserRole],
        help="User role (default: admin)",
    )
    parser.add_argument(
        "--must-change-password",
        action="store_true",
        help="Force a password change on first login",
    )
    return parser.parse_args(argv)


def _maybe_create_user(
    db_url: str,
    *,
    username: str,
    email: str,
    full_name: str,
    password: str,
    role: str,
    must_change_password: bool,
) -> None:
    with psycopg.connect(db_url) as conn:
        with conn.cursor() as cur:
            cur.execute(
                "SELECT id, username, role FROM users WHERE username = %s OR email = %s",
                (username, email),
            )
            row = cur.fetchone()
            if row:
                print(f"User already exists: id={row[0]} username={row[1]} role={row[2]}")
                return

            cur.execute(
                """
                INSERT INTO users (
                    username, email, full_name, password_hash, role,
                    must_change_password
                )
                VALUES (%s, %s, %s, %s, %s, %s)
                RETURNING id
                """,
                (
                    username,
                    email,
                    full_name,
                    hash_password(password),
                    role,
                    must_change_password,
                ),
            )
            (user_id,) = cur.fetchone()
            conn.commit()
            print(f"Created user: id={user_id} username={username} role={role}")


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    db_url = _require_database_url()

    username = args.username or _prompt("Username")
    email = args.email or _prompt("Email")
    password = args.password or _prompt_password()

    _check(validate_username(username), "username")
    _check(validate_email(email), "email")
    _check(validate_password_strength(password), "password")

    _maybe_create_user(
        db_url,
        username=normalize_username(username),
        email=normalize_email(email),
        full_name=args.full_name.strip(),
        password=password,
        role=args.role,
        must_change_password=args.must_change_password,
    )


if __name__ == "__main__":
    main()
