"""
auth/models.py -- Domain dataclasses for broker entities.

Pattern: Data class (pure data container, near-zero logic). Stores and the
broker do the work; routes map these onto HTTP.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple


@dataclass(frozen=True)
class User:
    """A local account. Created by register, removed by delete-account, never mutated.

    password_hash is a bcrypt hash; the plaintext is never stored.
    """

    username: str
    password_hash: str


@dataclass(frozen=True)
class Session:
    """A server-issued session, keyed in SessionStore by its UUID4 string.

    username and app are weak references: they name a User and an App but do
    not keep them alive. Deleting the account leaves other sessions of that
    user in place (no cascade), and the app may never have been registered.

    expires is fixed at creation. Only the app-validation flow checks it.
    """

    username: str
    expires: datetime
    ip: str
    app: str

    def is_expired(self, now: datetime | None = None) -> bool:
        return self.expires <= (now or datetime.now(timezone.utc))


@dataclass(frozen=True)
class App:
    """A registered third-party consumer.

    callback_url is a template the session id is appended to verbatim
    (callback_url + "id=" + session_id), so it should end in "?" or "&".
    """

    secret: str
    callback_url: str


class CurrentSession(NamedTuple):
    """The caller's (session id, session, owning user), as resolved from the cookie."""

    session_id: str
    session: Session
    user: User


class SuppliedSecret:
    """An untrusted Authorization header value.

    Only ever compared against a stored app secret, in constant time. It is
    never parsed into another identifier type, and repr() never shows it.
    """

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        self._value = value

    def matches(self, stored_secret: str) -> bool:
        return hmac.compare_digest(self._value.encode("utf-8"), stored_secret.encode("utf-8"))

    def __repr__(self) -> str:
        return "SuppliedSecret(<redacted>)"


class Outcome(str, Enum):
    """Tagged outcome of a broker flow. The HTTP layer maps each to a redirect or status."""

    ok = "ok"
    unauthenticated = "unauthenticated"
    conflict = "conflict"
    invalid_credential = "invalid_credential"
    not_found = "not_found"
    expired = "expired"


@dataclass(frozen=True)
class FlowResult:
    """Result of register / login.

    On Outcome.ok, session_id and session are set and redirect_to is either the
    app callback (when the caller proved the app secret) or "/".
    """

    outcome: Outcome
    session_id: str | None = None
    session: Session | None = None
    redirect_to: str = "/"


@dataclass(frozen=True)
class ValidationResult:
    """Result of validate-session-for-app. username/app are only set on Outcome.ok."""

    outcome: Outcome
    username: str | None = None
    app: str | None = None
