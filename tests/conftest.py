"""
tests/conftest.py -- Shared test fixtures for Foundry Admin integration tests.

This module provides:
  - make_services(): isolated in-memory stores for users, documents and audit
  - _patch_lifespan(): wires test services into app.state, bypassing real startup
  - app_env: module-scoped AppEnv (TestClient + stores + one seeded user per role)
  - client: the AppEnv's TestClient with its cookie jar cleared for each test
  - db_url: a per-test named in-memory database URL for unit tests of the stores

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs route handlers in a thread pool. Plain :memory: DBs
are per-connection and would present a blank schema to each worker thread.
The named URI format (file:name?mode=memory&cache=shared&uri=true) shares
one in-memory instance across all connections in the same process.

Environment variables must be set before any core/auth import: DEBUG so
get_settings() auto-generates SECRET_KEY, ALLOWED_HOSTS so TrustedHostMiddleware
accepts TestClient's "testserver" host, BOOTSTRAP_SECRET to enable bootstrap.
"""

from __future__ import annotations

import os
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

os.environ.setdefault("DEBUG", "true")
os.environ["ALLOWED_HOSTS"] = '["testserver", "localhost"]'
os.environ["BOOTSTRAP_SECRET"] = "test-bootstrap-secret"
os.environ["DATABASE_URL"] = "sqlite:///file:test_default?mode=memory&cache=shared&uri=true"

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import attach_services, close_services
from asgi import app
from audit.store import AuditStore
from auth.models import User
from auth.store import UserStore
from auth.tokens import ROLE_COOKIE, SESSION_COOKIE, create_session_token, hash_password
from cache.store import ResponseCache
from content.store import DocumentStore
from core.roles import Role

TEST_PASSWORD = "correct-horse-42"


# ---------------------------------------------------------------------------
# Service helpers
# ---------------------------------------------------------------------------


def memory_url(name: str) -> str:
    return f"sqlite:///file:{name}?mode=memory&cache=shared&uri=true"


def make_services(db_suffix: str) -> dict:
    """Create isolated stores that share one named in-memory database.

    Args:
        db_suffix: Unique string appended to the DB name so test modules
                   don't share state.
    """
    url = memory_url(f"test_foundry_{db_suffix}")
    return {
        "user_store": UserStore(url),
        "documents": DocumentStore(url),
        "audit_store": AuditStore(url),
        "cache": ResponseCache(ttl=30),
    }


def _patch_lifespan(services: dict):
    """Return an async context manager that replaces the real lifespan."""

    @asynccontextmanager
    async def test_lifespan(app):
        attach_services(app, **services)
        yield
        close_services(app)

    return test_lifespan


@dataclass
class AppEnv:
    """Everything an integration test needs: the client, the stores, and seeded users."""

    client: TestClient
    users: UserStore
    documents: DocumentStore
    audit_store: AuditStore
    cache: ResponseCache
    uids: dict[Role, str] = field(default_factory=dict)
    tokens: dict[Role, str] = field(default_factory=dict)
    password: str = TEST_PASSWORD

    def auth(self, role: Role) -> dict[str, str]:
        """Authorization header for the seeded user holding role."""
        return {"Authorization": f"Bearer {self.tokens[role]}"}

    def cookies(self, role: Role) -> dict[str, str]:
        """Session cookie pair for the seeded user holding role."""
        return {SESSION_COOKIE: self.tokens[role], ROLE_COOKIE: role.value}

    def add_user(self, email: str, role: Role = Role.member, active: bool = True) -> str:
        return self.users.create_user(
            User(
                email=email,
                name=email.split("@")[0],
                role=role,
                active=active,
                hashed_password=hash_password(TEST_PASSWORD),
            )
        )

    def token_for(self, uid: str) -> dict[str, str]:
        user = self.users.get_by_uid(uid)
        token = create_session_token(user.uid, user.name, user.role.value, expire_seconds=3600)
        return {"Authorization": f"Bearer {token}"}


def _seed(env: AppEnv) -> None:
    for role in Role:
        uid = env.add_user(f"{role.value}@foundry.test", role)
        env.uids[role] = uid
        env.tokens[role] = create_session_token(uid, role.value, role.value, expire_seconds=3600)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def _reset_rate_limits() -> None:
    """The limiter's memory storage is process-global; start every test with fresh counters."""
    limiter.reset()


@pytest.fixture(scope="module")
def app_env(request) -> Generator[AppEnv, None, None]:
    """Yield an AppEnv backed by a fresh in-memory database for this test module.

    follow_redirects=False so web tests can assert on Location headers.
    """
    services = make_services(request.module.__name__.rsplit(".", 1)[-1])
    app.router.lifespan_context = _patch_lifespan(services)

    with TestClient(app, follow_redirects=False, raise_server_exceptions=True) as client:
        env = AppEnv(
            client=client,
            users=services["user_store"],
            documents=services["documents"],
            audit_store=services["audit_store"],
            cache=services["cache"],
        )
        _seed(env)
        yield env


@pytest.fixture
def client(app_env: AppEnv) -> TestClient:
    """The module's TestClient with no cookies left over from earlier tests."""
    app_env.client.cookies.clear()
    return app_env.client


@pytest.fixture
def db_url(request) -> str:
    """A named in-memory database URL unique to the requesting test."""
    return memory_url(f"unit_{request.module.__name__.rsplit('.', 1)[-1]}_{request.node.name}")
