"""
tests/conftest.py -- Shared test fixtures for the session broker.

This module provides:
  - settings: Settings with a cheap bcrypt cost so the suite stays fast
  - state / broker: an isolated BrokerState + AuthBroker per test
  - client: TestClient over the real ASGI app (api + web routers) whose
    lifespan is patched to use the test broker, follow_redirects=False
  - register_user(): helper that posts the register form with an
    Authorization header and returns the issued session id

Design: every test gets a fresh in-memory BrokerState, so there is no shared
state between tests and no need for module-scoped clients.

ALLOWED_HOSTS must include "testserver" (TestClient's Host header) before
api.main is imported, because TrustedHostMiddleware reads it at import time.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager

# Set before any import that calls get_settings().
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from asgi import app
from auth.broker import AuthBroker
from auth.store import BrokerState
from core.config import Settings

# ---------------------------------------------------------------------------
# Broker fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def settings() -> Settings:
    return Settings(bcrypt_rounds=4, session_ttl_days=7, default_app="broker")


@pytest.fixture
def state() -> BrokerState:
    return BrokerState()


@pytest.fixture
def broker(state: BrokerState, settings: Settings) -> AuthBroker:
    return AuthBroker(state, settings)


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(broker: AuthBroker):
    """Return an async context manager that wires the test broker into app.state."""

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.broker = broker
        yield

    return test_lifespan


@pytest.fixture
def client(broker: AuthBroker) -> Generator[TestClient, None, None]:
    """TestClient with follow_redirects=False.

    Redirect Location headers ARE the result of every browser flow, so the
    client must not follow them.
    """
    app.router.lifespan_context = _patch_lifespan(broker)
    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as c:
        yield c


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def register_user(
    client: TestClient,
    username: str,
    password: str = "pw1",
    secret: str = "any-secret",
    app_name: str | None = None,
):
    """POST /register and return the response. The client keeps the cookie."""
    params = {"app": app_name} if app_name else None
    return client.post(
        "/register",
        data={"username": username, "password": password},
        params=params,
        headers={"Authorization": secret},
    )


def login_user(
    client: TestClient,
    username: str,
    password: str = "pw1",
    secret: str = "any-secret",
    app_name: str | None = None,
):
    params = {"app": app_name} if app_name else None
    return client.post(
        "/login",
        data={"username": username, "password": password},
        params=params,
        headers={"Authorization": secret},
    )
