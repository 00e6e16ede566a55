"""Unit tests for auth/tokens.py and SuppliedSecret -- hashing, ids, secrets.

Covers:
- bcrypt hashes are salted (same password -> different stored values) and verify
- 10,000 session ids: no collisions, every one a random (version 4) UUID
- parse_session_id canonicalizes and rejects non-UUIDs
- app secrets are 256-bit hex and never repeat
- SuppliedSecret compares by value and never leaks through repr()
"""

import uuid

import pytest

from auth.errors import MalformedInput
from auth.models import SuppliedSecret
from auth.tokens import generate_app_secret, hash_password, new_session_id, parse_session_id, verify_password

# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def test_hash_is_salted():
    first = hash_password("hunter2", rounds=4)
    second = hash_password("hunter2", rounds=4)
    assert first != second
    assert "hunter2" not in first


def test_verify_password():
    hashed = hash_password("hunter2", rounds=4)
    assert verify_password("hunter2", hashed) is True
    assert verify_password("hunter3", hashed) is False


def test_hash_uses_requested_cost():
    assert hash_password("pw", rounds=5).startswith("$2b$05$")


def test_verify_against_garbage_hash_is_false():
    assert verify_password("pw", "not-a-bcrypt-hash") is False


# ---------------------------------------------------------------------------
# Session ids
# ---------------------------------------------------------------------------


def test_session_ids_do_not_collide():
    ids = {new_session_id() for _ in range(10_000)}
    assert len(ids) == 10_000


def test_session_ids_are_random_uuids():
    """Version 4 / RFC 4122 variant leaves 122 bits drawn from os.urandom."""
    for _ in range(1_000):
        parsed = uuid.UUID(new_session_id())
        assert parsed.version == 4
        assert parsed.variant == uuid.RFC_4122


def test_parse_session_id_canonicalizes():
    sid = new_session_id()
    assert parse_session_id(sid.upper()) == sid
    assert parse_session_id(f"  {sid} ") == sid


@pytest.mark.parametrize("raw", ["", "nope", "1234", "zzzzzzzz-zzzz-zzzz-zzzz-zzzzzzzzzzzz"])
def test_parse_session_id_rejects_garbage(raw):
    with pytest.raises(MalformedInput):
        parse_session_id(raw)


# ---------------------------------------------------------------------------
# App secrets
# ---------------------------------------------------------------------------


def test_app_secret_shape():
    secret = generate_app_secret()
    assert len(secret) == 64
    int(secret, 16)


def test_app_secrets_never_repeat():
    assert len({generate_app_secret() for _ in range(1_000)}) == 1_000


def test_supplied_secret_matches_exact_value_only():
    assert SuppliedSecret("abc").matches("abc")
    assert not SuppliedSecret("abc").matches("abcd")
    assert not SuppliedSecret("").matches("abc")


def test_supplied_secret_repr_is_redacted():
    assert "abc" not in repr(SuppliedSecret("abc"))
