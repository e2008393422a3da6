# tests/conftest.py
from __future__ import annotations

import os
import secrets
from collections import deque
from collections.abc import Generator, Iterable, Iterator
from datetime import UTC, datetime, timedelta

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("SWEEPER_ENABLED", "false")
os.environ.setdefault("ADMIN_PASSWORD", "test-admin-password")

from kinetic_authority.api.v1.dependencies import get_engine_dep, get_registry_dep
from kinetic_authority.core.clock import Clock
from kinetic_authority.core.settings import settings
from kinetic_authority.db.session import Base
from kinetic_authority.main import app as fastapi_app
from kinetic_authority.models import Client
from kinetic_authority.services.attestation import AttestationEngine
from kinetic_authority.services.nonce_store import NonceStore
from kinetic_authority.services.registry import ClientRegistry
from kinetic_authority.services.session_store import SessionStore

TEST_DB_URL = "sqlite://"
ADMIN_PASSWORD = os.environ["ADMIN_PASSWORD"]
START_TIME = datetime(2026, 3, 15, 12, 0, tzinfo=UTC)


class FrozenClock(Clock):
    """Clock that only moves when told to, with scriptable challenge digits."""

    def __init__(self, start: datetime = START_TIME) -> None:
        self.current = start
        self._digits: deque[int] = deque()

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current += timedelta(**delta)

    def set(self, value: datetime) -> None:
        self.current = value

    def queue_digits(self, digits: Iterable[int]) -> None:
        self._digits.extend(digits)

    def digit(self) -> int:
        if self._digits:
            return self._digits.popleft()
        return secrets.randbelow(10)


@pytest.fixture(scope="session")
def db_engine() -> Generator[Engine, None, None]:
    engine = create_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(db_engine: Engine) -> Iterator[sessionmaker[Session]]:
    factory = sessionmaker(
        bind=db_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    try:
        yield factory
    finally:
        # Ensure each test sees a clean database.
        with db_engine.begin() as cleanup_conn:
            for table in reversed(Base.metadata.sorted_tables):
                cleanup_conn.execute(table.delete())


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def registry(session_factory: sessionmaker[Session], clock: FrozenClock) -> ClientRegistry:
    return ClientRegistry(session_factory=session_factory, clock=clock)


@pytest.fixture()
def nonce_store(clock: FrozenClock) -> NonceStore:
    return NonceStore(settings.challenge_ttl_seconds, settings.nonce_bytes, clock=clock)


@pytest.fixture()
def session_store(clock: FrozenClock) -> SessionStore:
    return SessionStore(
        settings.session_ttl_seconds,
        settings.session_token_bytes,
        token_prefix=settings.session_token_prefix,
        duress_prefix=settings.duress_token_prefix,
        clock=clock,
    )


@pytest.fixture()
def attestation_engine(
    nonce_store: NonceStore,
    session_store: SessionStore,
    registry: ClientRegistry,
    clock: FrozenClock,
) -> AttestationEngine:
    return AttestationEngine(nonce_store, session_store, registry, clock=clock)


@pytest.fixture()
def tenant(registry: ClientRegistry) -> Client:
    """Create and return an active starter-plan tenant."""
    return registry.create("Test Tenant", "starter")


@pytest.fixture()
def other_tenant(registry: ClientRegistry) -> Client:
    """Create and return a second active tenant."""
    return registry.create("Other Tenant", "business")


@pytest.fixture()
def app(registry: ClientRegistry, attestation_engine: AttestationEngine) -> Iterator[FastAPI]:
    fastapi_app.dependency_overrides[get_registry_dep] = lambda: registry
    fastapi_app.dependency_overrides[get_engine_dep] = lambda: attestation_engine
    try:
        yield fastapi_app
    finally:
        fastapi_app.dependency_overrides.pop(get_registry_dep, None)
        fastapi_app.dependency_overrides.pop(get_engine_dep, None)


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def api_headers(tenant: Client) -> dict[str, str]:
    """Return API key headers for the primary tenant."""
    return {"X-API-Key": tenant.api_key}


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return {"X-Admin-Password": ADMIN_PASSWORD}
