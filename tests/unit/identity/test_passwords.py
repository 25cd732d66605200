"""
Name: Password Hashing Tests

Responsibilities:
  - bcrypt hash/verify round trip and configured cost
  - Corrupt hashes and empty inputs never raise
"""

import bcrypt
import pytest
from app.identity.passwords import hash_password, hash_rounds, needs_rehash, verify_password

pytestmark = pytest.mark.unit


def test_hash_and_verify():
    password_hash = hash_password("Gym!Strong9x", rounds=4)

    assert password_hash.startswith("$2b$04$")
    assert verify_password("Gym!Strong9x", password_hash)
    assert not verify_password("Gym!Strong9y", password_hash)


def test_hashes_are_salted():
    assert hash_password("Gym!Strong9x", rounds=4) != hash_password(
        "Gym!Strong9x", rounds=4
    )


def test_hash_rounds_reads_cost():
    assert hash_rounds(hash_password("Gym!Strong9x", rounds=5)) == 5
    assert hash_rounds("not-a-hash") is None


def test_needs_rehash_compares_cost():
    weak = hash_password("Gym!Strong9x", rounds=4)

    assert needs_rehash(weak, 5)
    assert not needs_rehash(weak, 4)
    assert not needs_rehash("not-a-hash", 12)


def test_verifies_2a_prefixed_hashes():
    legacy = bcrypt.hashpw(b"Gym!Strong9x", bcrypt.gensalt(rounds=4, prefix=b"2a"))

    assert verify_password("Gym!Strong9x", legacy.decode("utf-8"))


def test_long_passwords_do_not_raise():
    password = "Aa1!" + "x" * 100
    password_hash = hash_password(password, rounds=4)

    assert verify_password(password, password_hash)


@pytest.mark.parametrize(
    "password, password_hash",
    [("", "$2b$04$abc"), ("Gym!Strong9x", ""), ("Gym!Strong9x", "corrupt")],
)
def test_bad_inputs_are_false(password, password_hash):
    assert verify_password(password, password_hash) is False
