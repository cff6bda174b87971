"""Shared fixtures for tests."""

from __future__ import annotations

import asyncio
import datetime
import pathlib
from typing import Any, Callable, Iterator
from unittest.mock import AsyncMock, MagicMock

import jwt
import pytest

from workforce_session.auth.api_client import AuthClient, LoginResult
from workforce_session.auth.session import Role, User
from workforce_session.policy.engine import PolicyEngine
from workforce_session.session.clock import ManualScheduler
from workforce_session.session.manager import SessionManager
from workforce_session.store.local import MemorySessionStore

SIGNING_KEY = "test-signing-key-with-enough-length-for-hs256"


def make_token(expires_at: datetime.datetime | None, **claims: Any) -> str:
    """Mint an HS256 token; ``expires_at=None`` leaves out the ``exp`` claim."""
    payload: dict[str, Any] = {"sub": "1", **claims}
    if expires_at is not None:
        payload["exp"] = int(expires_at.timestamp())
    return jwt.encode(payload, SIGNING_KEY, algorithm="HS256")


@pytest.fixture
def scheduler() -> Iterator[ManualScheduler]:
    manual = ManualScheduler(start=datetime.datetime(2025, 3, 3, 9, 0, tzinfo=datetime.UTC))
    yield manual
    # Await background logouts a test did not drain itself.
    if manual.pending:
        asyncio.run(manual.drain())


@pytest.fixture
def token_factory(scheduler: ManualScheduler) -> Callable[..., str]:
    """Return ``f(seconds)`` minting a token expiring *seconds* after scheduler time."""

    def factory(seconds: float, **claims: Any) -> str:
        return make_token(scheduler.now() + datetime.timedelta(seconds=seconds), **claims)

    return factory


@pytest.fixture
def admin_user() -> User:
    return User(
        id="1",
        email="a@x.com",
        name="Admin User",
        role=Role.ADMIN,
        department="Management",
        status="active",
    )


@pytest.fixture
def employee_user() -> User:
    return User(id="2", email="e@x.com", name="Erin", role=Role.EMPLOYEE, department="Sales")


@pytest.fixture
def store() -> MemorySessionStore:
    return MemorySessionStore()


@pytest.fixture
def policy_engine() -> PolicyEngine:
    """Return a PolicyEngine loaded from the real permissions.yaml."""
    real_path = pathlib.Path(__file__).resolve().parents[1] / "policies" / "permissions.yaml"
    return PolicyEngine(policy_path=real_path)


@pytest.fixture
def client() -> MagicMock:
    mock = MagicMock(spec=AuthClient)
    mock.login = AsyncMock()
    mock.logout = AsyncMock(return_value=None)
    mock.get_profile = AsyncMock()
    mock.refresh_token = AsyncMock()
    mock.change_password = AsyncMock(return_value={})
    return mock


@pytest.fixture
def manager(
    client: MagicMock,
    store: MemorySessionStore,
    scheduler: ManualScheduler,
    policy_engine: PolicyEngine,
) -> SessionManager:
    return SessionManager(
        client=client,
        store=store,
        scheduler=scheduler,
        policy_engine=policy_engine,
        warning_window=datetime.timedelta(minutes=30),
    )


@pytest.fixture
def login_as(client: MagicMock, token_factory: Callable[..., str]) -> Callable[..., LoginResult]:
    """Prime the mocked client so the next login returns *user* with a token."""

    def prime(user: User, lifetime_seconds: float = 24 * 3600) -> LoginResult:
        result = LoginResult(user=user, token=token_factory(lifetime_seconds), message="Login successful")
        client.login.return_value = result
        return result

    return prime
