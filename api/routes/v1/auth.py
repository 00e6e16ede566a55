"""
api/routes/v1/auth.py -- Machine-facing session endpoints.

Routes:
  GET /api/v1/auth/session?ssid=&name=  -- app validates a session (Authorization: <app secret>)
  GET /api/v1/auth/me                   -- current caller via the session cookie

Status mapping for /auth/session (checked in this order):
  401  Authorization header missing
  400  ssid is not a UUID (malformed_input, via the MalformedInput handler)
  404  unknown session
  401  session expired
  404  unknown app
  200  {"username", "app"} when the secret matches
  401  secret mismatch -- the queried session is revoked as a side effect

This is the only part of the broker that signals with status codes; the
browser flows in web/routes.py always redirect.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import JSONResponse

from api.models import MeResponse, SessionValidationResponse
from auth.dependencies import get_broker, get_current_session, supplied_secret
from auth.models import CurrentSession, Outcome

# Auth policy:
# - GET /api/v1/auth/session: app secret in Authorization, checked by the broker
# - GET /api/v1/auth/me:      requires a session cookie (get_current_session)
router = APIRouter()

_FAILURES: dict[Outcome, tuple[int, str, str]] = {
    Outcome.unauthenticated: (401, "unauthorized", "Missing or invalid app secret."),
    Outcome.expired: (401, "session_expired", "Session has expired."),
    Outcome.not_found: (404, "not_found", "Unknown session or app."),
}


@router.get("/auth/session", response_model=SessionValidationResponse)
def validate_session(
    request: Request,
    ssid: str = Query(..., description="Session id presented to the app"),
    name: str = Query(..., description="Registered app name"),
) -> JSONResponse:
    """Tell a registered app which user owns a session.

    Plain def (not async): the broker blocks on the store lock, so this runs
    in the threadpool rather than on the event loop.
    """
    result = get_broker(request).validate_session(ssid, name, supplied_secret(request))
    if result.outcome is Outcome.ok:
        resp = JSONResponse(
            status_code=200,
            content=SessionValidationResponse(username=result.username, app=result.app).model_dump(),
        )
        resp.headers["Cache-Control"] = "no-store"
        return resp

    status_code, code, message = _FAILURES[result.outcome]
    raise HTTPException(status_code=status_code, detail={"code": code, "message": message})


@router.get("/auth/me", response_model=MeResponse)
def me(current: CurrentSession = Depends(get_current_session)) -> MeResponse:
    """Return identity information for the session in the caller's cookie."""
    return MeResponse(
        username=current.user.username,
        session_id=current.session_id,
        app=current.session.app,
        ip=current.session.ip,
        expires_at=current.session.expires,
    )
