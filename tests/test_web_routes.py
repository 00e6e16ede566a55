"""
tests/test_web_routes.py -- Integration tests for the browser flows in web/routes.py.

Every flow is asserted on its redirect Location and Set-Cookie headers, which
is why the client fixture never follows redirects.

Coverage:
  - POST /register: cookie attributes, err=exists, 401 without Authorization,
    app callback redirect
  - POST /login: fresh session, err=incorrect / err=notfound, cookie expiry
  - POST /logout, POST /delete: cookie cleared, malformed cookie -> 400
  - POST /sessions/{id}/revoke: owner-only removal, unconditional redirect
  - POST /apps: open registration, 422 on missing params
  - GET /, /register, /sessions pages
"""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from conftest import login_user, register_user


def _set_cookies(resp) -> list[str]:
    return resp.headers.get_list("set-cookie")


def _session_cookie_header(resp) -> str:
    headers = [h for h in _set_cookies(resp) if h.startswith("session=")]
    assert len(headers) == 1, f"Expected one session cookie, got {_set_cookies(resp)}"
    return headers[0]


class TestRegisterRoute:
    def test_register_sets_session_cookie(self, client: TestClient, broker) -> None:
        resp = register_user(client, "alice")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        header = _session_cookie_header(resp)
        assert "httponly" in header.lower()
        assert "path=/" in header.lower()
        assert "expires=" in header.lower()
        sid = resp.cookies["session"]
        assert broker.resolve(sid).user.username == "alice"

    def test_register_twice_redirects_with_exists(self, client: TestClient, broker) -> None:
        register_user(client, "alice")
        resp = register_user(client, "alice", password="other")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/register?err=exists"
        assert not [h for h in _set_cookies(resp) if h.startswith("session=")]
        with broker.state.read() as db:
            assert len(db.credentials) == 1

    def test_register_without_authorization_is_401(self, client: TestClient, broker) -> None:
        resp = client.post("/register", data={"username": "alice", "password": "pw1"})
        assert resp.status_code == 401
        with broker.state.read() as db:
            assert "alice" not in db.credentials

    def test_register_redirects_to_app_callback(self, client: TestClient, broker) -> None:
        secret = broker.register_app("wiki", "https://wiki.example/cb?")
        resp = register_user(client, "alice", secret=secret, app_name="wiki")
        sid = resp.cookies["session"]
        assert resp.headers["location"] == f"https://wiki.example/cb?id={sid}"

    def test_register_records_peer_and_app(self, client: TestClient, broker) -> None:
        resp = register_user(client, "alice", app_name="wiki")
        current = broker.resolve(resp.cookies["session"])
        assert current.session.app == "wiki"
        assert current.session.ip == "testclient"

    def test_default_app_context(self, client: TestClient, broker) -> None:
        resp = register_user(client, "alice")
        assert broker.resolve(resp.cookies["session"]).session.app == "broker"

    def test_missing_form_field_is_422(self, client: TestClient) -> None:
        resp = client.post("/register", data={"username": "alice"}, headers={"Authorization": "x"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"


class TestLoginRoute:
    def test_login_success(self, client: TestClient, broker) -> None:
        registered = register_user(client, "alice").cookies["session"]
        resp = login_user(client, "alice")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        sid = resp.cookies["session"]
        assert sid != registered
        header = _session_cookie_header(resp)
        assert "httponly" in header.lower()
        # Login cookies carry the session expiry too.
        assert "expires=" in header.lower()
        assert resp.headers["cache-control"] == "no-store"

    def test_login_wrong_password(self, client: TestClient) -> None:
        register_user(client, "alice")
        resp = login_user(client, "alice", password="wrong")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/?err=incorrect"

    def test_login_unknown_user(self, client: TestClient) -> None:
        resp = login_user(client, "bob", password="x")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/?err=notfound"

    def test_login_without_authorization_is_401(self, client: TestClient) -> None:
        register_user(client, "alice")
        resp = client.post("/login", data={"username": "alice", "password": "pw1"})
        assert resp.status_code == 401


class TestLogoutAndDelete:
    def test_logout_removes_session_and_clears_cookie(self, client: TestClient, broker) -> None:
        first = register_user(client, "alice").cookies["session"]
        client.cookies.clear()
        second = login_user(client, "alice").cookies["session"]
        client.cookies.clear()
        client.cookies.set("session", first)

        resp = client.post("/logout")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert "max-age=0" in _session_cookie_header(resp).lower()
        with broker.state.read() as db:
            assert db.sessions.get(first) is None
            assert db.sessions.get(second) is not None

    def test_logout_without_cookie(self, client: TestClient) -> None:
        client.cookies.clear()
        resp = client.post("/logout")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"

    def test_logout_malformed_cookie_is_400(self, client: TestClient) -> None:
        client.cookies.set("session", "not-a-uuid")
        resp = client.post("/logout")
        assert resp.status_code == 400
        assert resp.json()["error"]["code"] == "malformed_input"

    def test_delete_account(self, client: TestClient, broker) -> None:
        sid = register_user(client, "alice").cookies["session"]
        resp = client.post("/delete")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        assert "max-age=0" in _session_cookie_header(resp).lower()
        with broker.state.read() as db:
            assert "alice" not in db.credentials
            assert db.sessions.get(sid) is None

    def test_delete_with_stale_cookie_is_400(self, client: TestClient) -> None:
        sid = register_user(client, "alice").cookies["session"]
        client.post("/logout")
        client.cookies.set("session", sid)
        resp = client.post("/delete")
        assert resp.status_code == 400


class TestRevokeRoute:
    def test_revoke_own_session(self, client: TestClient, broker) -> None:
        target = register_user(client, "alice").cookies["session"]
        client.cookies.clear()
        caller = login_user(client, "alice").cookies["session"]

        resp = client.post(f"/sessions/{target}/revoke")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/sessions"
        with broker.state.read() as db:
            assert db.sessions.get(target) is None
            assert db.sessions.get(caller) is not None

    def test_revoke_other_users_session_is_silent(self, client: TestClient, broker) -> None:
        target = register_user(client, "bob").cookies["session"]
        client.cookies.clear()
        register_user(client, "alice")

        resp = client.post(f"/sessions/{target}/revoke")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/sessions"
        with broker.state.read() as db:
            assert db.sessions.get(target) is not None

    def test_revoke_malformed_target_is_400(self, client: TestClient) -> None:
        register_user(client, "alice")
        resp = client.post("/sessions/not-a-uuid/revoke")
        assert resp.status_code == 400


class TestRegisterAppRoute:
    def test_register_app_is_open(self, client: TestClient, broker) -> None:
        client.cookies.clear()
        resp = client.post("/apps", params={"name": "wiki", "url": "https://wiki.example/cb?"})
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"
        with broker.state.read() as db:
            app = db.apps.lookup("wiki")
        assert app.callback_url == "https://wiki.example/cb?"
        assert len(app.secret) == 64

    def test_register_app_missing_params(self, client: TestClient) -> None:
        resp = client.post("/apps", params={"name": "wiki"})
        assert resp.status_code == 422


class TestPages:
    def test_index_shows_whitelisted_error(self, client: TestClient) -> None:
        resp = client.get("/", params={"err": "incorrect"})
        assert resp.status_code == 200
        assert "Incorrect password." in resp.text

    def test_index_does_not_reflect_unknown_error(self, client: TestClient) -> None:
        resp = client.get("/", params={"err": "<script>alert(1)</script>"})
        assert resp.status_code == 200
        assert "<script>alert(1)</script>" not in resp.text

    def test_register_page(self, client: TestClient) -> None:
        resp = client.get("/register", params={"err": "exists"})
        assert resp.status_code == 200
        assert "already taken" in resp.text

    @pytest.mark.parametrize("path", ["/", "/register"])
    def test_pages_offer_no_credential_forms(self, client: TestClient, path: str) -> None:
        """A browser form cannot send the app secret, so the pages carry none."""
        client.cookies.clear()
        resp = client.get(path)
        assert resp.status_code == 200
        assert 'action="/login"' not in resp.text
        assert 'action="/register"' not in resp.text
        assert 'name="password"' not in resp.text
        assert "performed by a registered app" in resp.text
        assert "app secret" in resp.text

    def test_index_signed_in_summary(self, client: TestClient) -> None:
        register_user(client, "alice")
        resp = client.get("/")
        assert resp.status_code == 200
        assert "alice" in resp.text
        assert 'action="/logout"' in resp.text
        assert 'action="/delete"' in resp.text
        assert "performed by a registered app" not in resp.text

    def test_sessions_page_requires_session(self, client: TestClient) -> None:
        client.cookies.clear()
        resp = client.get("/sessions")
        assert resp.status_code == 302
        assert resp.headers["location"] == "/"

    def test_sessions_page_lists_own_sessions(self, client: TestClient) -> None:
        target = register_user(client, "alice", app_name="wiki").cookies["session"]
        client.cookies.clear()
        login_user(client, "alice")
        resp = client.get("/sessions")
        assert resp.status_code == 200
        assert f"/sessions/{target}/revoke" in resp.text
        assert "wiki" in resp.text
