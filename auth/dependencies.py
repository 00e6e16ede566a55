"""
auth/dependencies.py -- FastAPI Depends() helpers: the session guard and request extractors.

resolve_session() is the soft variant (returns None when the caller has no
usable session). get_current_session() wraps it and raises HTTP 401.

The guard does NOT check expiry: an expired session that has not been removed
still resolves here, unlike the app-validation endpoint, which answers 401 for
it. It does check that the owning user still exists, so sessions orphaned by
delete-account resolve to None.

Layer rule: no imports from web/ or core/.
  auth/dependencies.py may import from fastapi (for Depends/HTTPException/Request)
  because this module is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.broker import AuthBroker
from auth.models import CurrentSession, SuppliedSecret
from auth.tokens import SESSION_COOKIE


def get_broker(request: Request) -> AuthBroker:
    """Return the AuthBroker built by the lifespan."""
    return request.app.state.broker


def supplied_secret(request: Request) -> SuppliedSecret | None:
    """Wrap the raw Authorization header. None when the header is absent.

    An empty header value still counts as present; it simply never matches.
    """
    value = request.headers.get("Authorization")
    if value is None:
        return None
    return SuppliedSecret(value)


def client_ip(request: Request) -> str:
    """Peer host without the port, or "unknown" when the transport has none."""
    return request.client.host if request.client else "unknown"


def resolve_session(request: Request) -> CurrentSession | None:
    """Resolve the session cookie to (session_id, session, user), or None.

    None when the cookie is absent, not a UUID, unknown, or its owner was deleted.
    """
    return get_broker(request).resolve(request.cookies.get(SESSION_COOKIE))


def get_current_session(request: Request) -> CurrentSession:
    """Require a session. Raises HTTP 401 if the request has none.

    Use as a FastAPI dependency:
        @router.get("/protected")
        def route(current: CurrentSession = Depends(get_current_session)): ...
    """
    current = resolve_session(request)
    if current is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Authentication required."},
        )
    return current
