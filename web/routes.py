"""
web/routes.py -- Browser-facing routes for the session broker.

Every human flow answers with a 302 redirect; business-rule failures travel in
the ?err= query parameter of the redirect target, never as a status code. The
two exceptions are a missing Authorization header on register/login (401) and
an unparseable session id (400, raised as MalformedInput and rendered by the
handler in api/main.py).

Handlers are plain def functions: the broker blocks on the store lock and on
bcrypt, so they run in the threadpool. FastAPI has already read the form body
by the time a handler starts, so no lock is ever held across network I/O.

Routes:
  GET  /                               -- signed-in summary, or a note that apps sign users in
  GET  /register                       -- registration notice (?err= message only)
  POST /register?app=                  -- create account + session, redirect
  POST /login?app=                     -- verify password + new session, redirect
  POST /logout                         -- remove the cookie's session, redirect /
  POST /delete                         -- delete the cookie owner's account, redirect /
  GET  /sessions                       -- the caller's sessions (session guard)
  POST /sessions/{session_id}/revoke   -- revoke one of the caller's sessions, redirect /sessions
  POST /apps?name=&url=                -- register an app (unauthenticated), redirect /
"""

import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Form, Query, Request, Response
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from auth.dependencies import client_ip, get_broker, resolve_session, supplied_secret
from auth.models import FlowResult, Outcome
from auth.tokens import SESSION_COOKIE, clear_session_cookie, set_session_cookie

logger = logging.getLogger("broker.web")

templates = Jinja2Templates(directory=str(Path(__file__).parent / "templates"))
router = APIRouter()

# Whitelist mapping for ?err= query params. The raw query param is NEVER
# passed to templates -- only the message from this dict is.
_ERROR_MESSAGES: dict[str, str] = {
    "exists": "That username is already taken.",
    "incorrect": "Incorrect password.",
    "notfound": "No account with that username.",
}

# Outcome -> ?err= flag for the failure redirects.
_ERROR_FLAGS: dict[Outcome, str] = {
    Outcome.conflict: "exists",
    Outcome.invalid_credential: "incorrect",
    Outcome.not_found: "notfound",
}


def _app_name(request: Request, app: Optional[str]) -> str:
    return app or get_broker(request).settings.default_app


def _flow_response(request: Request, result: FlowResult, error_path: str) -> Response:
    """Translate a register/login FlowResult into the HTTP response.

    ok                -> 302 to result.redirect_to with the session cookie
    unauthenticated   -> bare 401
    anything else     -> 302 to error_path?err=<flag>
    """
    if result.outcome is Outcome.unauthenticated:
        return Response(status_code=401)
    if result.outcome is not Outcome.ok:
        return RedirectResponse(f"{error_path}?err={_ERROR_FLAGS[result.outcome]}", status_code=302)

    resp = RedirectResponse(result.redirect_to, status_code=302)
    set_session_cookie(
        resp,
        result.session_id,
        result.session.expires,
        secure=get_broker(request).settings.secure_cookies,
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------


@router.get("/", response_class=HTMLResponse)
def index(request: Request) -> HTMLResponse:
    """Render the signed-in summary, or the app-only sign-in notice for anonymous callers."""
    current = resolve_session(request)
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("err", ""))
    return templates.TemplateResponse(
        request,
        "index.html",
        {"current": current, "error_msg": error_msg},
    )


@router.get("/register", response_class=HTMLResponse)
def register_form(request: Request) -> HTMLResponse:
    error_msg = _ERROR_MESSAGES.get(request.query_params.get("err", ""))
    return templates.TemplateResponse(request, "register.html", {"error_msg": error_msg})


@router.get("/sessions", response_class=HTMLResponse)
def list_sessions(request: Request) -> Response:
    """List the caller's sessions. Anonymous callers are sent to /."""
    current = resolve_session(request)
    if current is None:
        return RedirectResponse("/", status_code=302)
    sessions = get_broker(request).sessions_for(current.user.username)
    return templates.TemplateResponse(
        request,
        "sessions.html",
        {
            "current": current,
            "sessions": sessions,
            "now": datetime.now(timezone.utc),
        },
    )


# ---------------------------------------------------------------------------
# Register / login
# ---------------------------------------------------------------------------


@router.post("/register")
def register(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    app: Optional[str] = Query(None),
) -> Response:
    """Create an account and its first session."""
    result = get_broker(request).register(
        username,
        password,
        _app_name(request, app),
        supplied_secret(request),
        client_ip(request),
    )
    return _flow_response(request, result, "/register")


@router.post("/login")
def login(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    app: Optional[str] = Query(None),
) -> Response:
    """Verify the password and issue a fresh session."""
    result = get_broker(request).login(
        username,
        password,
        _app_name(request, app),
        supplied_secret(request),
        client_ip(request),
    )
    return _flow_response(request, result, "/")


# ---------------------------------------------------------------------------
# Logout / delete account / revoke
# ---------------------------------------------------------------------------


@router.post("/logout")
def logout(request: Request) -> RedirectResponse:
    """Remove the cookie's session and clear the cookie."""
    raw_cookie = request.cookies.get(SESSION_COOKIE)
    resp = RedirectResponse("/", status_code=302)
    if raw_cookie is not None:
        get_broker(request).logout(raw_cookie)
        clear_session_cookie(resp)
    return resp


@router.post("/delete")
def delete_account(request: Request) -> RedirectResponse:
    """Delete the cookie owner's account. Only this request's session is removed."""
    raw_cookie = request.cookies.get(SESSION_COOKIE)
    resp = RedirectResponse("/", status_code=302)
    if get_broker(request).delete_account(raw_cookie) is not None:
        clear_session_cookie(resp)
    return resp


@router.post("/sessions/{session_id}/revoke")
def revoke_session(request: Request, session_id: str) -> RedirectResponse:
    """Revoke session_id if the caller owns it. Always redirects to /sessions."""
    get_broker(request).revoke_session(request.cookies.get(SESSION_COOKIE), session_id)
    return RedirectResponse("/sessions", status_code=302)


# ---------------------------------------------------------------------------
# Apps
# ---------------------------------------------------------------------------


@router.post("/apps")
def register_app(
    request: Request,
    name: str = Query(..., min_length=1),
    url: str = Query(..., min_length=1),
) -> RedirectResponse:
    """Register an app. Open to anyone; the secret is written to the log."""
    get_broker(request).register_app(name, url)
    return RedirectResponse("/", status_code=302)
