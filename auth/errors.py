"""
auth/errors.py -- Exception taxonomy for the broker's stores and flows.

Stores raise these; AuthBroker catches the business-rule ones (Conflict,
UnknownUser) and turns them into an Outcome. MalformedInput is the only one
that escapes to the HTTP layer, where api/main.py maps it to a structured 400.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations


class BrokerError(Exception):
    """Base class for all broker errors."""


class Conflict(BrokerError):
    """The username is already registered."""

    def __init__(self, username: str) -> None:
        super().__init__(f"Username {username!r} already exists")
        self.username = username


class UnknownUser(BrokerError):
    """No credential record exists for the username."""

    def __init__(self, username: str) -> None:
        super().__init__(f"Unknown username {username!r}")
        self.username = username


class MalformedInput(BrokerError):
    """A session id or other request value could not be parsed.

    message is safe to return to the client; it never echoes the raw value.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message
