"""
tests/conftest.py -- Shared fixtures for nimble-tokens tests.

This module provides:
  - FakeClock / clock: a mutable clock injected into store and verifier so
    tests can move "now" across validity-window boundaries
  - store: an isolated in-memory TokenStore per test
  - user / other_user: persisted users
  - factory, verifier, service: the components wired to the same store+clock

Design: plain "sqlite:///:memory:" is enough here. TokenStore gives in-memory
SQLite a StaticPool, so every store call sees the same database, from any thread.
"""

from __future__ import annotations

from collections.abc import Generator
from datetime import datetime, timedelta, timezone

import pytest

from auth.contexts import ValidityWindows
from auth.models import User
from auth.service import TokenService
from auth.store import TokenStore
from auth.tokens import TokenFactory
from auth.verifier import TokenVerifier

T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock pinned to a settable instant."""

    def __init__(self, now: datetime = T0) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.now = now


# ---------------------------------------------------------------------------
# Component fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> Generator[TokenStore, None, None]:
    s = TokenStore("sqlite:///:memory:", clock=clock)
    yield s
    s.close()


@pytest.fixture
def user(store: TokenStore) -> User:
    uid = store.create_user(User(email="ada@example.com"))
    return store.get_user(uid)


@pytest.fixture
def other_user(store: TokenStore) -> User:
    uid = store.create_user(User(email="grace@example.com"))
    return store.get_user(uid)


@pytest.fixture
def factory() -> TokenFactory:
    return TokenFactory()


@pytest.fixture
def verifier(store: TokenStore, clock: FakeClock) -> TokenVerifier:
    return TokenVerifier(store, ValidityWindows(), clock=clock)


@pytest.fixture
def service(store: TokenStore, verifier: TokenVerifier, factory: TokenFactory) -> TokenService:
    return TokenService(store, verifier=verifier, factory=factory)
