"""Pytest fixtures wiring the rotation service to in-memory doubles.

Redis-backed components run against ``fakeredis`` (one fresh server per
test, so outages can be simulated with ``server.connected = False``). The
compliance store uses an in-memory SQLite database.
"""

from __future__ import annotations

from collections.abc import Callable, Iterator
from typing import Any

import fakeredis
import pytest
from sqlalchemy.orm import Session, sessionmaker

from tests.helpers.clock import ManualClock
from tests.helpers.utils import USER_ID
from token_rotation.core.config import RotationConfig, TestingConfig
from token_rotation.core.extensions import init_database
from token_rotation.factory import build_rotation_service
from token_rotation.services._shared.ports import (
    InMemoryIdentityResolver,
    InMemoryMetricsSink,
    InMemoryRevocationStore,
    StubTokenIssuer,
)
from token_rotation.services.rotation.service import TokenRotationService


@pytest.fixture()
def clock() -> ManualClock:
    """Provide a UTC clock that only moves when the test says so."""
    return ManualClock()


@pytest.fixture()
def fake_server() -> fakeredis.FakeServer:
    """Provide an isolated fake Redis server; flip ``connected`` to simulate outages."""
    return fakeredis.FakeServer()


@pytest.fixture()
def fake_redis(fake_server) -> fakeredis.FakeRedis:
    """Provide a FakeRedis client bound to :func:`fake_server`."""
    return fakeredis.FakeRedis(server=fake_server)


@pytest.fixture()
def session_factory() -> Iterator[sessionmaker[Session]]:
    """Create the compliance tables in a private in-memory SQLite database."""
    factory = init_database("sqlite:///:memory:")
    yield factory
    bind = factory.kw["bind"]
    bind.dispose()


@pytest.fixture()
def metrics() -> InMemoryMetricsSink:
    return InMemoryMetricsSink()


@pytest.fixture()
def revocations(clock) -> InMemoryRevocationStore:
    return InMemoryRevocationStore(clock=clock)


@pytest.fixture()
def issuer(revocations, clock) -> StubTokenIssuer:
    """Deterministic verifier + signer sharing the revocation store and clock."""
    return StubTokenIssuer(revocations=revocations, clock=clock)


@pytest.fixture()
def identities() -> InMemoryIdentityResolver:
    resolver = InMemoryIdentityResolver()
    resolver.add(USER_ID, role="member", permissions=["read"])
    return resolver


@pytest.fixture()
def make_service(
    fake_redis, session_factory, issuer, revocations, identities, metrics, clock
) -> Callable[..., TokenRotationService]:
    """Return a builder so tests can tweak the rotation policy.

    Keyword arguments are forwarded to :class:`RotationConfig`.
    """

    def _make(**policy: Any) -> TokenRotationService:
        return build_rotation_service(
            TestingConfig,
            identities=identities,
            redis_client=fake_redis,
            session_factory=session_factory,
            verifier=issuer,
            signer=issuer,
            revocations=revocations,
            metrics=metrics,
            rotation_config=RotationConfig(**policy),
            clock=clock,
            setup_logging=False,
        )

    return _make


@pytest.fixture()
def service(make_service) -> TokenRotationService:
    """Rotation service with the default policy."""
    return make_service()


@pytest.fixture(scope="session")
def faker():
    """Provide a :class:`faker.Faker` instance seeded for deterministic tests."""
    from faker import Faker

    fk = Faker()
    Faker.seed(1337)
    return fk


@pytest.fixture()
def session(session_factory) -> Iterator[Session]:
    """Provide a compliance-store session and wire Factory Boy to it."""
    from tests.factories import SQLAlchemySession

    sess = session_factory()
    SQLAlchemySession.set(sess)
    try:
        yield sess
    finally:
        sess.rollback()
        sess.close()
        SQLAlchemySession.set(None)
