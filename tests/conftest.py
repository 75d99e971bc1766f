"""
tests/conftest.py -- Shared test fixtures for the auth provider.

This module provides:
  - FrozenClock: a controllable UTC clock injected into TokenEngine
  - FakeDispatch: records outgoing emails instead of POSTing them
  - _make_engine(): isolated named shared-memory SQLite engine
  - stack: fully wired service graph for unit/flow tests (function scope)
  - file_stack: the same graph on a temporary WAL file database
  - api_client: TestClient with a patched lifespan (module scope)

Design: Named shared-memory SQLite URIs (not plain :memory:) are required
because TestClient runs sync route handlers in a thread pool. Plain :memory:
DBs are per-connection and would present a blank schema to each worker thread.

Environment defaults must be set before any core/auth import so
get_settings() auto-generates signing keys in DEBUG mode, bcrypt runs at a
cheap cost factor, and rate limits do not trip during a test module.
"""

from __future__ import annotations

import asyncio
import os
import uuid
from collections.abc import Generator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

# CRITICAL: set before any auth/core import.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("LOGIN_RATE_LIMIT", "1000/minute")
os.environ.setdefault("EMAIL_RATE_LIMIT", "1000/minute")
os.environ.setdefault("EMAIL_VERIFICATION_ENDPOINT", "http://mailer.test/verify-email")
os.environ.setdefault("ACCOUNT_VERIFICATION_ENDPOINT", "http://mailer.test/verify-account")
os.environ.setdefault("RESET_PASSWORD_ENDPOINT", "http://mailer.test/reset-password")
os.environ.setdefault("RESTRICTED_EMAILS", "blocked@example.com")

import pytest
from fastapi.testclient import TestClient

from api.main import app
from auth.models import IssuedToken, Owner, OwnerKind
from auth.registry import AccessTokenRegistry
from auth.service import AccountService
from auth.store import OwnerStore, TokenStore, open_engine
from auth.tokens import TokenEngine, hash_password
from core.config import get_settings

PASSWORD = "Secret123!"


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


@dataclass
class FakeDispatch:
    """Stands in for EmailDispatchClient; records (issued, email) pairs."""

    succeed: bool = True
    sent: list[tuple[IssuedToken, str]] = field(default_factory=list)

    def send_token(self, issued: IssuedToken, email: str) -> bool:
        self.sent.append((issued, email))
        return self.succeed

    def close(self) -> None:
        pass

    @property
    def last(self) -> IssuedToken:
        return self.sent[-1][0]


# ---------------------------------------------------------------------------
# Builders
# ---------------------------------------------------------------------------


def _make_engine(prefix: str = "test_auth"):
    """Isolated named shared-memory SQLite engine (unique per call)."""
    return open_engine(f"sqlite:///file:{prefix}_{uuid.uuid4().hex}?mode=memory&cache=shared&uri=true")


def _build_stack(clock=None, dispatch: FakeDispatch | None = None, db_url: str | None = None) -> SimpleNamespace:
    settings = get_settings()
    db = open_engine(db_url) if db_url else _make_engine()
    owners = OwnerStore(db)
    tokens = TokenStore(db)
    registry = AccessTokenRegistry(grace=timedelta(minutes=settings.blacklist_grace_minutes))
    kwargs = {"clock": clock} if clock is not None else {}
    engine = TokenEngine(settings, owners, tokens, registry, **kwargs)
    dispatch = dispatch or FakeDispatch()
    service = AccountService(settings, owners, engine, dispatch)
    s = SimpleNamespace(
        settings=settings,
        db=db,
        owners=owners,
        tokens=tokens,
        registry=registry,
        engine=engine,
        dispatch=dispatch,
        service=service,
        clock=clock,
        password=PASSWORD,
    )
    s.make_owner = lambda email="owner@example.com", verified=False: _make_owner(owners, email, verified)
    return s


def _make_owner(owners: OwnerStore, email: str = "owner@example.com", verified: bool = False) -> Owner:
    owner = Owner(
        id=str(uuid.uuid4()),
        email=email,
        password_hash=hash_password(PASSWORD, 4),
        kind=OwnerKind.USER,
        display_name="Test Owner",
        identification_number="1234567890",
        is_verified=verified,
    )
    owners.create_owner(owner)
    return owner


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def stack(clock: FrozenClock) -> Generator[SimpleNamespace, None, None]:
    """Wired OwnerStore/TokenStore/registry/engine/service on a frozen clock."""
    s = _build_stack(clock=clock)
    yield s
    s.db.dispose()


@pytest.fixture
def file_stack(clock: FrozenClock, tmp_path) -> Generator[SimpleNamespace, None, None]:
    """Same graph as stack, on a WAL file database.

    For tests that write from several threads at once: the shared-cache
    memory database reports a table lock instead of waiting on the busy
    timeout.
    """
    s = _build_stack(clock=clock, db_url=f"sqlite:///{tmp_path / 'auth.db'}")
    yield s
    s.db.dispose()


def _patch_lifespan(s: SimpleNamespace):
    """Replace the real lifespan so routes see the test service graph.

    The purge_task is a long-sleeping coroutine: a real asyncio.Task is
    required because shutdown calls .cancel() on it.
    """

    @asynccontextmanager
    async def test_lifespan(app):
        app.state.settings = s.settings
        app.state.db_engine = s.db
        app.state.owner_store = s.owners
        app.state.token_store = s.tokens
        app.state.token_registry = s.registry
        app.state.token_engine = s.engine
        app.state.dispatch = s.dispatch
        app.state.account_service = s.service
        app.state.purge_task = asyncio.create_task(asyncio.sleep(99999))
        yield
        app.state.purge_task.cancel()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client() -> Generator[tuple[TestClient, SimpleNamespace], None, None]:
    """Yield (client, stack) for API integration tests.

    Uses the real clock so cookie max-age and JWT expiry agree with the
    TestClient. One verified owner (verified@example.com / PASSWORD) exists.
    """
    s = _build_stack()
    s.verified_owner = s.make_owner("verified@example.com", verified=True)
    app.router.lifespan_context = _patch_lifespan(s)

    with TestClient(app, raise_server_exceptions=True) as client:
        yield client, s

    s.db.dispose()
