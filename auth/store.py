"""
auth/store.py -- In-memory persistence layer for broker entities.

Pattern: Repository. CredentialStore, SessionStore and AppRegistry each own
one dict; BrokerState bundles the three behind a single readers/writer lock.
Route and broker code never touch the dicts directly.

Locking:
  The repositories themselves are NOT thread-safe. Every access goes through
  a handle obtained from BrokerState:

      with state.write() as db:      # exclusive -- one writer, no readers
          db.credentials.register(...)
      with state.read() as db:       # shared -- many readers, no writer
          db.sessions.get(...)

  A mutating flow must hold write() for its whole check-then-act sequence.
  Releasing between "is the username free?" and "insert" lets two concurrent
  registrations of the same name both succeed.

  Writers are preferred: once a writer is waiting, new readers queue behind it
  so a steady stream of validation calls cannot starve a login.

Storage is process memory only. Expired sessions are never swept; they stay
resident until logout, revoke, delete-account or a failed validation removes
them.

Layer rule: no imports from api/, web/, or core/.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone

from auth.errors import Conflict, UnknownUser
from auth.models import App, Session, User
from auth.tokens import generate_app_secret, new_session_id, verify_password

logger = logging.getLogger("broker.auth.store")


# ---------------------------------------------------------------------------
# Readers/writer lock
# ---------------------------------------------------------------------------


class ReadWriteLock:
    """Writer-preferring readers/writer lock built on threading.Condition."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    def acquire_read(self) -> None:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1

    def release_read(self) -> None:
        with self._cond:
            self._readers -= 1
            if self._readers == 0:
                self._cond.notify_all()

    def acquire_write(self) -> None:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True

    def release_write(self) -> None:
        with self._cond:
            self._writer = False
            self._cond.notify_all()


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class CredentialStore:
    """username -> User (bcrypt hash)."""

    def __init__(self) -> None:
        self._users: dict[str, User] = {}

    def register(self, username: str, password_hash: str) -> User:
        """Store a new credential. Raises Conflict if the username is taken.

        Takes an already-computed hash so the caller can run bcrypt before
        acquiring the exclusive handle.
        """
        if username in self._users:
            raise Conflict(username)
        user = User(username=username, password_hash=password_hash)
        self._users[username] = user
        return user

    def verify(self, username: str, password: str) -> bool:
        """Return whether password matches. Raises UnknownUser if absent."""
        user = self._users.get(username)
        if user is None:
            raise UnknownUser(username)
        return verify_password(password, user.password_hash)

    def get(self, username: str) -> User | None:
        return self._users.get(username)

    def remove(self, username: str) -> bool:
        return self._users.pop(username, None) is not None

    def __contains__(self, username: object) -> bool:
        return username in self._users

    def __len__(self) -> int:
        return len(self._users)


class SessionStore:
    """session id (canonical UUID string) -> Session."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}

    def create(self, username: str, ip: str, app_name: str, ttl: timedelta) -> tuple[str, Session]:
        """Create a session expiring ttl from now and return (id, session)."""
        session_id = new_session_id()
        # uuid4 collisions are not a practical concern, but never overwrite.
        while session_id in self._sessions:
            session_id = new_session_id()
        session = Session(
            username=username,
            expires=datetime.now(timezone.utc) + ttl,
            ip=ip,
            app=app_name,
        )
        self._sessions[session_id] = session
        return session_id, session

    def get(self, session_id: str) -> Session | None:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> bool:
        """Remove a session. Returns True if one was removed."""
        return self._sessions.pop(session_id, None) is not None

    def for_user(self, username: str) -> list[tuple[str, Session]]:
        """Return every session owned by username, soonest expiry first."""
        owned = [(sid, s) for sid, s in self._sessions.items() if s.username == username]
        return sorted(owned, key=lambda pair: pair[1].expires)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def __len__(self) -> int:
        return len(self._sessions)


class AppRegistry:
    """app name -> App (shared secret + callback URL template)."""

    def __init__(self) -> None:
        self._apps: dict[str, App] = {}

    def register(self, name: str, callback_url: str) -> str:
        """Store an app under a fresh secret and return the secret.

        Re-registering an existing name replaces it, secret included.
        """
        if name in self._apps:
            logger.warning("App %r re-registered; previous secret is no longer valid", name)
        secret = generate_app_secret()
        self._apps[name] = App(secret=secret, callback_url=callback_url)
        return secret

    def lookup(self, name: str) -> App | None:
        return self._apps.get(name)

    def __len__(self) -> int:
        return len(self._apps)


# ---------------------------------------------------------------------------
# Shared state
# ---------------------------------------------------------------------------


@dataclass
class StoreHandle:
    """The three repositories, reachable only while a lock is held."""

    credentials: CredentialStore
    sessions: SessionStore
    apps: AppRegistry


class BrokerState:
    """All broker state for one process.

    Built once in the FastAPI lifespan and stored on app.state; tests build
    their own. There is no module-level instance.
    """

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._handle = StoreHandle(
            credentials=CredentialStore(),
            sessions=SessionStore(),
            apps=AppRegistry(),
        )

    @contextmanager
    def read(self) -> Iterator[StoreHandle]:
        """Shared-read handle. Callers must not mutate through it."""
        self._lock.acquire_read()
        try:
            yield self._handle
        finally:
            self._lock.release_read()

    @contextmanager
    def write(self) -> Iterator[StoreHandle]:
        """Exclusive handle for a whole check-then-act sequence."""
        self._lock.acquire_write()
        try:
            yield self._handle
        finally:
            self._lock.release_write()
