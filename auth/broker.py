"""
auth/broker.py -- AuthBroker: the register/login/logout/revoke/validate flows.

Every flow is a plain method taking already-parsed request values (form
fields, query params, the raw cookie string, the Authorization header wrapped
in SuppliedSecret). Nothing here knows about HTTP: results come back as
FlowResult / ValidationResult tagged with an Outcome, and web/routes.py and
api/routes/v1/auth.py translate them into redirects and status codes.

Locking (see auth/store.py):
  - register hashes the password BEFORE taking the exclusive handle, then does
    "is the name free?" + insert + session create under one write().
  - login verifies under a shared read(), then re-checks under write() that
    the same credential record is still there before creating the session.
    A delete (or delete + re-register) between the two steps makes the login
    fail rather than mint a session for a user that no longer exists.
  - validate runs under read(); only the secret-mismatch branch takes write()
    to remove the queried session. Removal by id is idempotent, so releasing
    the read handle first is safe.

Layer rule: no imports from api/ or web/. Settings are injected, not imported.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING

from auth.errors import Conflict, MalformedInput, UnknownUser
from auth.models import CurrentSession, FlowResult, Outcome, Session, SuppliedSecret, ValidationResult
from auth.store import BrokerState, StoreHandle
from auth.tokens import burn_password_check, hash_password, parse_session_id

if TYPE_CHECKING:
    from core.config import Settings

logger = logging.getLogger("broker.auth")


class AuthBroker:
    """Orchestrates CredentialStore, SessionStore and AppRegistry for each flow.

    Usage:
        broker = AuthBroker(BrokerState(), get_settings())
        result = broker.register("alice", "pw", "broker", SuppliedSecret(header), "10.0.0.1")
    """

    def __init__(self, state: BrokerState, settings: Settings) -> None:
        self.state = state
        self.settings = settings
        self.session_ttl = timedelta(days=settings.session_ttl_days)

    # ------------------------------------------------------------------
    # Register / login
    # ------------------------------------------------------------------

    def register(
        self,
        username: str,
        password: str,
        app_name: str,
        secret: SuppliedSecret | None,
        ip: str,
    ) -> FlowResult:
        """Create an account and its first session."""
        if secret is None:
            return FlowResult(Outcome.unauthenticated)

        password_hash = hash_password(password, rounds=self.settings.bcrypt_rounds)

        with self.state.write() as db:
            try:
                db.credentials.register(username, password_hash)
            except Conflict:
                logger.info("Registration rejected: username %r already exists", username)
                return FlowResult(Outcome.conflict)
            session_id, session = db.sessions.create(username, ip, app_name, self.session_ttl)
            redirect_to = _redirect_target(db, app_name, secret, session_id)

        logger.info("Registered %r (app=%s, ip=%s)", username, app_name, ip)
        return FlowResult(Outcome.ok, session_id=session_id, session=session, redirect_to=redirect_to)

    def login(
        self,
        username: str,
        password: str,
        app_name: str,
        secret: SuppliedSecret | None,
        ip: str,
    ) -> FlowResult:
        """Verify a password and issue a new session."""
        if secret is None:
            return FlowResult(Outcome.unauthenticated)

        with self.state.read() as db:
            user = db.credentials.get(username)
            try:
                matched = db.credentials.verify(username, password)
            except UnknownUser:
                matched = None

        if matched is None:
            # Equalize timing with the wrong-password path.
            burn_password_check(password)
            logger.info("Login failed: unknown username %r", username)
            return FlowResult(Outcome.not_found)
        if not matched:
            logger.info("Login failed: wrong password for %r", username)
            return FlowResult(Outcome.invalid_credential)

        with self.state.write() as db:
            if db.credentials.get(username) != user:
                logger.info("Login for %r raced an account deletion", username)
                return FlowResult(Outcome.not_found)
            session_id, session = db.sessions.create(username, ip, app_name, self.session_ttl)
            redirect_to = _redirect_target(db, app_name, secret, session_id)

        logger.info("Login for %r (app=%s, ip=%s)", username, app_name, ip)
        return FlowResult(Outcome.ok, session_id=session_id, session=session, redirect_to=redirect_to)

    # ------------------------------------------------------------------
    # Logout / delete account / revoke
    # ------------------------------------------------------------------

    def logout(self, raw_cookie: str | None) -> bool:
        """Remove the cookie's session. Returns True if a session was removed.

        An absent cookie is a no-op. A malformed one raises MalformedInput.
        """
        if raw_cookie is None:
            return False
        session_id = parse_session_id(raw_cookie)
        with self.state.write() as db:
            return db.sessions.remove(session_id)

    def delete_account(self, raw_cookie: str | None) -> str | None:
        """Delete the cookie owner's account and this one session.

        Returns the deleted username, or None when no cookie was sent. Other
        sessions of the same account are left in place.

        Raises MalformedInput if the cookie is unparseable or names no session.
        """
        if raw_cookie is None:
            return None
        session_id = parse_session_id(raw_cookie)
        with self.state.write() as db:
            session = db.sessions.get(session_id)
            if session is None:
                raise MalformedInput("Unknown session.")
            db.credentials.remove(session.username)
            db.sessions.remove(session_id)
        logger.info("Deleted account %r", session.username)
        return session.username

    def revoke_session(self, raw_cookie: str | None, raw_target: str) -> bool:
        """Remove target if it belongs to the same user as the caller's session.

        Returns True if removed. Raises MalformedInput only for a bad target id;
        a missing or bad caller cookie just means nothing is removed.
        """
        target_id = parse_session_id(raw_target)
        if raw_cookie is None:
            return False
        try:
            caller_id = parse_session_id(raw_cookie)
        except MalformedInput:
            return False

        with self.state.write() as db:
            caller = db.sessions.get(caller_id)
            target = db.sessions.get(target_id)
            if caller is None or target is None:
                return False
            if target.username != caller.username:
                logger.warning("Session of %r tried to revoke a session it does not own", caller.username)
                return False
            db.sessions.remove(target_id)
        logger.info("Revoked a session of %r", caller.username)
        return True

    # ------------------------------------------------------------------
    # Apps
    # ------------------------------------------------------------------

    def register_app(self, name: str, callback_url: str) -> str:
        """Register (or overwrite) an app and return its new secret.

        No caller authentication: anyone reaching this endpoint can register
        an app and learn its secret.
        """
        with self.state.write() as db:
            secret = db.apps.register(name, callback_url)
        logger.info("App %s created with callback url %s and secret %s", name, callback_url, secret)
        return secret

    def validate_session(self, raw_ssid: str, app_name: str, secret: SuppliedSecret | None) -> ValidationResult:
        """Answer an app's "who owns this session?" query.

        Precedence: missing secret -> unauthenticated; unknown session ->
        not_found; expired -> expired; unknown app -> not_found; matching
        secret -> ok; mismatching secret -> unauthenticated, and the queried
        session is revoked.
        """
        if secret is None:
            return ValidationResult(Outcome.unauthenticated)
        session_id = parse_session_id(raw_ssid)

        with self.state.read() as db:
            session = db.sessions.get(session_id)
            if session is None:
                return ValidationResult(Outcome.not_found)
            if session.is_expired():
                return ValidationResult(Outcome.expired)
            app = db.apps.lookup(app_name)
            if app is None:
                return ValidationResult(Outcome.not_found)
            if secret.matches(app.secret):
                return ValidationResult(Outcome.ok, username=session.username, app=session.app)

        with self.state.write() as db:
            db.sessions.remove(session_id)
        logger.warning("Secret mismatch validating a session for app %r; session revoked", app_name)
        return ValidationResult(Outcome.unauthenticated)

    # ------------------------------------------------------------------
    # Session guard support
    # ------------------------------------------------------------------

    def resolve(self, raw_cookie: str | None) -> CurrentSession | None:
        """Resolve a cookie value to (id, session, user). Expiry is NOT checked."""
        if raw_cookie is None:
            return None
        try:
            session_id = parse_session_id(raw_cookie)
        except MalformedInput:
            return None
        with self.state.read() as db:
            session = db.sessions.get(session_id)
            if session is None:
                return None
            user = db.credentials.get(session.username)
        if user is None:
            return None
        return CurrentSession(session_id, session, user)

    def sessions_for(self, username: str) -> list[tuple[str, Session]]:
        with self.state.read() as db:
            return db.sessions.for_user(username)


def _redirect_target(db: StoreHandle, app_name: str, secret: SuppliedSecret, session_id: str) -> str:
    """Callback URL with the session id appended, or "/" unless the caller proved the app secret.

    The id is appended verbatim (no separator, no encoding): the registered
    callback template is expected to end in "?" or "&".
    """
    app = db.apps.lookup(app_name)
    if app is None:
        logger.debug("No registered app %r; redirecting to /", app_name)
        return "/"
    if secret.matches(app.secret):
        return app.callback_url + "id=" + session_id
    return "/"
