"""
tests/conftest.py -- Shared test fixtures for PageKeeper.

This module provides:
  - store / workflow / admin: a fresh in-memory CredentialStore per test for
    unit tests of the store and the workflow
  - _patch_lifespan(): wires a test store into app.state, bypassing real startup
  - api: (client, workflow, admin_token) for HTTP integration tests

Design: the HTTP fixture uses a named shared-memory SQLite URI (not plain
:memory:) because TestClient runs sync route handlers in a thread pool. Plain
:memory: DBs are per-connection and would present a blank schema to each
worker thread. The unit-test store runs on one thread, so :memory: is enough.

Environment must be set before any auth/core import:
  DEBUG=true               -- get_settings() auto-generates SECRET_KEY
  RATE_LIMIT_ENABLED=false -- the suite signs in far more than 10 times a minute
  ALLOWED_HOSTS            -- TestClient sends Host: testserver
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("ALLOWED_HOSTS", '["testserver", "localhost"]')

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.pool import StaticPool

from api.main import app
from auth.models import ROLE_ADMIN, User
from auth.store import CredentialStore
from auth.workflow import AuthWorkflow
from core.config import get_settings

ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "AdminPass1"


# ---------------------------------------------------------------------------
# Unit-test fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def store() -> Generator[CredentialStore, None, None]:
    s = CredentialStore("sqlite:///:memory:", poolclass=StaticPool)
    yield s
    s.close()


@pytest.fixture
def workflow(store: CredentialStore) -> AuthWorkflow:
    return AuthWorkflow(store, get_settings())


@pytest.fixture
def admin(workflow: AuthWorkflow) -> User:
    user = workflow.sign_up(ADMIN_EMAIL, ADMIN_PASSWORD, "Admin", role=ROLE_ADMIN)
    return user


# ---------------------------------------------------------------------------
# HTTP fixtures
# ---------------------------------------------------------------------------


def _patch_lifespan(store: CredentialStore, workflow: AuthWorkflow):
    """Return an async context manager that replaces the real lifespan.

    The purge_task is a long-sleeping coroutine so shutdown can cancel a real
    asyncio.Task, exactly like the production lifespan does.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = workflow.settings
        app.state.store = store
        app.state.workflow = workflow
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def _api_module() -> Generator[tuple[TestClient, AuthWorkflow, str], None, None]:
    """One TestClient per test module, backed by an isolated shared-memory DB."""
    db_url = f"sqlite:///file:test_auth_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"
    store = CredentialStore(db_url, poolclass=StaticPool)
    wf = AuthWorkflow(store, get_settings())
    wf.sign_up(ADMIN_EMAIL, ADMIN_PASSWORD, "Admin", role=ROLE_ADMIN)
    admin_token = wf.sign_in(ADMIN_EMAIL, ADMIN_PASSWORD).token

    app.router.lifespan_context = _patch_lifespan(store, wf)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, wf, admin_token

    store.close()


@pytest.fixture
def api(_api_module) -> tuple[TestClient, AuthWorkflow, str]:
    """Yield (client, workflow, admin_token) with an empty cookie jar.

    The client is shared across a module, so cookies from one test's sign-in
    are cleared before the next test starts.
    """
    client, wf, admin_token = _api_module
    client.cookies.clear()
    return client, wf, admin_token
