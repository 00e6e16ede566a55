"""
auth/tokens.py -- Password hashing, session ids, app secrets, and the session cookie.

Security design decisions:
  Passwords: bcrypt, used directly (no passlib wrapper). The cost factor comes
       from Settings.bcrypt_rounds (default 10). gensalt() draws a fresh salt
       per call, so hashing the same password twice never yields the same
       stored value. _DUMMY_HASH enables timing equalization when the username
       does not exist.

  Session ids: uuid.uuid4() draws 122 random bits from os.urandom. The id is
       carried as its canonical string form everywhere; parse_session_id()
       normalizes cookie and query input so "ABC..." and "abc..." name the same
       session.

  App secrets: secrets.token_hex(32) gives 256 bits of entropy, stored as-is
       because the broker must hand the exact value back to compare against.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

import logging
import secrets
import uuid
from datetime import datetime

import bcrypt

from auth.errors import MalformedInput

logger = logging.getLogger("broker.auth")

SESSION_COOKIE = "session"

# ---------------------------------------------------------------------------
# Password hashing
# ---------------------------------------------------------------------------


def hash_password(plain: str, rounds: int = 10) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    bcrypt only looks at the first 72 bytes of input; the form layer does not
    cap length, so longer passwords are compared on their 72-byte prefix.
    """
    return bcrypt.hashpw(plain.encode("utf-8"), bcrypt.gensalt(rounds=rounds)).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash."""
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        # Corrupt or non-bcrypt hash in the store.
        logger.warning("Stored password hash is not a valid bcrypt hash")
        return False


# Computed once at module load so a login for an unknown username runs one
# bcrypt comparison, same as a login with a wrong password.
_DUMMY_HASH: str = hash_password("broker_timing_dummy")


def burn_password_check(plain: str) -> None:
    """Run a bcrypt comparison whose result is discarded."""
    verify_password(plain, _DUMMY_HASH)


# ---------------------------------------------------------------------------
# Session ids
# ---------------------------------------------------------------------------


def new_session_id() -> str:
    """Return a fresh random session id in canonical UUID form."""
    return str(uuid.uuid4())


def parse_session_id(raw: str) -> str:
    """Parse a cookie/query/path value into a canonical session id.

    Raises MalformedInput if the value is not a UUID. The raw value is never
    echoed back in the error.
    """
    try:
        return str(uuid.UUID(raw.strip()))
    except (ValueError, AttributeError) as exc:
        raise MalformedInput("Session id is not a valid UUID.") from exc


# ---------------------------------------------------------------------------
# App secrets
# ---------------------------------------------------------------------------


def generate_app_secret() -> str:
    """Generate a new app shared secret: 64 hex chars, 256 bits of entropy."""
    return secrets.token_hex(32)


# ---------------------------------------------------------------------------
# Cookie helpers
# ---------------------------------------------------------------------------


def set_session_cookie(response, session_id: str, expires: datetime, secure: bool = False) -> None:
    """Write the session id as an httpOnly cookie on the response.

    httponly=True: JS cannot read the cookie (XSS mitigation).
    path="/": every broker route sees it.
    expires: the session's own expiry, so cookie and session end together.
    """
    response.set_cookie(
        SESSION_COOKIE,
        value=session_id,
        httponly=True,
        path="/",
        samesite="lax",
        secure=secure,
        expires=expires,
    )


def clear_session_cookie(response) -> None:
    response.delete_cookie(SESSION_COOKIE, path="/")
