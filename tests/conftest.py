"""
tests/conftest.py -- Shared test fixtures for sessionauth.

This module provides:
  - RecordingNotifier: in-memory Notifier that keeps every email it was asked to send
  - user_store / code_store / issuer / service: unit-test wiring on sqlite:///:memory:
  - shared_db_url: a unique named shared-memory URI for multi-threaded tests
  - client: TestClient against the real app with a patched lifespan

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
wherever more than one thread touches the database. TestClient runs sync
route handlers in a thread pool, and plain :memory: DBs are per-connection,
so each worker thread would see a blank schema. The named URI format
(file:name?mode=memory&cache=shared&uri=true) shares one in-memory instance
across all connections in the same process.

DEBUG and BCRYPT_ROUNDS must be set before any auth/core import:
get_settings() is cached on first call and auth.passwords reads it at
module load.
"""

from __future__ import annotations

import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

# CRITICAL: Set before any auth/core import so get_settings() can
# auto-generate SECRET_KEY in dev mode instead of raising ValueError, and so
# bcrypt runs at its minimum cost in tests.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.codes import VerificationCodeIssuer
from auth.errors import DeliveryError
from auth.service import AuthService
from auth.store import CodeStore, UserStore

# ---------------------------------------------------------------------------
# Fake notifier
# ---------------------------------------------------------------------------


@dataclass
class SentEmail:
    kind: str  # "verification" or "password_reset"
    to: str
    secret: str


@dataclass
class RecordingNotifier:
    """Notifier that records instead of sending.

    Set fail=True to make every send raise DeliveryError.
    """

    sent: list[SentEmail] = field(default_factory=list)
    fail: bool = False

    def send_verification_email(self, email: str, code: str) -> None:
        if self.fail:
            raise DeliveryError()
        self.sent.append(SentEmail("verification", email, code))

    def send_password_reset_email(self, email: str, new_password: str) -> None:
        if self.fail:
            raise DeliveryError()
        self.sent.append(SentEmail("password_reset", email, new_password))

    def last(self, kind: str) -> SentEmail:
        matching = [m for m in self.sent if m.kind == kind]
        assert matching, f"no {kind} email was sent"
        return matching[-1]


# ---------------------------------------------------------------------------
# Unit-test wiring
# ---------------------------------------------------------------------------


def make_shared_db_url(prefix: str = "sessionauth") -> str:
    return f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true"


@pytest.fixture
def shared_db_url() -> str:
    return make_shared_db_url("test")


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def user_store() -> Generator[UserStore, None, None]:
    store = UserStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def code_store() -> Generator[CodeStore, None, None]:
    store = CodeStore("sqlite:///:memory:")
    yield store
    store.close()


@pytest.fixture
def issuer(code_store: CodeStore) -> VerificationCodeIssuer:
    return VerificationCodeIssuer(code_store, ttl_seconds=900)


@pytest.fixture
def service(user_store: UserStore, issuer: VerificationCodeIssuer, notifier: RecordingNotifier) -> AuthService:
    return AuthService(user_store, issuer, notifier)


# ---------------------------------------------------------------------------
# HTTP wiring
# ---------------------------------------------------------------------------


def _patch_lifespan(auth_service: AuthService):
    """Return an async context manager that replaces the real lifespan.

    Wires a pre-built AuthService into app.state so TestClient routes use
    isolated in-memory stores and the recording notifier rather than the
    configured database and SMTP relay.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.auth_service = auth_service
        yield

    return test_lifespan


@pytest.fixture
def http_service(notifier: RecordingNotifier) -> Generator[AuthService, None, None]:
    """AuthService on a fresh named shared-memory database, safe across threads."""
    url = make_shared_db_url("test_api")
    users = UserStore(db_url=url)
    codes = VerificationCodeIssuer(CodeStore(db_url=url), ttl_seconds=900)
    svc = AuthService(users, codes, notifier)
    yield svc
    svc.close()


@pytest.fixture
def client(http_service: AuthService) -> Generator[TestClient, None, None]:
    """TestClient using the real FastAPI app with a patched lifespan.

    The client keeps cookies between requests, so a login followed by a
    GET /auth/me behaves like one browser session.
    """
    app.router.lifespan_context = _patch_lifespan(http_service)
    with TestClient(app, raise_server_exceptions=True) as c:
        yield c
