"""Global store clients and initialization helpers."""

from __future__ import annotations

import logging
from typing import Any

import redis  # type: ignore[import-untyped]
from flask_jwt_extended import JWTManager
from redis.exceptions import RedisError  # type: ignore[import-untyped]
from sqlalchemy import MetaData, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

log = logging.getLogger(__name__)

# Global naming convention for all constraints
convention = {
    "ix": "ix_%(table_name)s_%(column_0_name)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}

metadata = MetaData(naming_convention=convention)

# Global singletons (import-safe)
jwt = JWTManager()
redis_client: redis.Redis | None = None
engine: Engine | None = None
session_factory: sessionmaker[Session] | None = None


def init_redis(redis_url: str | None) -> redis.Redis | None:
    """Create the keyed-store client and verify connectivity.

    :param redis_url: Connection string; ``None`` leaves the client unset so
        callers can inject their own (e.g. ``fakeredis`` in tests).
    :raises RuntimeError: When the server does not answer ``PING``.
    """
    global redis_client
    if not redis_url:
        redis_client = None
        return None

    client = redis.Redis.from_url(redis_url)
    try:
        client.ping()
    except RedisError as exc:
        raise RuntimeError(f"Failed to connect to Redis at {redis_url!r}") from exc
    redis_client = client
    return client


def init_database(database_url: str, *, echo: bool = False) -> sessionmaker[Session]:
    """Create the compliance-store engine, its tables and a session factory.

    In-memory SQLite URLs share one connection so every session sees the
    same database.
    """
    global engine, session_factory

    kwargs: dict[str, Any] = {"echo": echo, "future": True}
    if database_url.startswith("sqlite") and ":memory:" in database_url:
        kwargs["connect_args"] = {"check_same_thread": False}
        kwargs["poolclass"] = StaticPool
    engine = create_engine(database_url, **kwargs)

    # Ensure models are imported so the metadata knows every table
    from token_rotation import models as _models  # noqa: F401

    metadata.create_all(engine)
    session_factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    log.info("Compliance store ready", extra={"dependency": engine.dialect.name})
    return session_factory
