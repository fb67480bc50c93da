# tests/unit/infra/test_sqlalchemy_compliance_store.py
"""Unit tests for SQLAlchemyComplianceAuditStore against in-memory SQLite."""

from __future__ import annotations

from datetime import timedelta

import pytest
from sqlalchemy.exc import SQLAlchemyError

from tests.factories.token_operation import BASE_TIME, TokenOperationFactory
from token_rotation.infra.sql.sqlalchemy_compliance_store import SQLAlchemyComplianceAuditStore
from token_rotation.services.rotation.dto import OperationType


@pytest.fixture
def store(session_factory):
    return SQLAlchemyComplianceAuditStore(session_factory)


def test_append_and_list_for_user(store):
    older = TokenOperationFactory(timestamp=BASE_TIME, token_id="jti-1")
    newer = TokenOperationFactory(timestamp=BASE_TIME + timedelta(minutes=1), token_id="jti-2")
    store.append(older)
    store.append(newer)

    rows = store.list_for_user("user-1")

    assert [op.token_id for op in rows] == ["jti-2", "jti-1"]
    assert rows[0].timestamp == newer.timestamp
    assert rows[0].timestamp.tzinfo is not None
    assert rows[0].operation_type is OperationType.ROTATION


def test_list_for_user_since_and_limit(store):
    for minute in range(4):
        store.append(TokenOperationFactory(timestamp=BASE_TIME + timedelta(minutes=minute)))

    since = store.list_for_user("user-1", since=BASE_TIME + timedelta(minutes=2))
    limited = store.list_for_user("user-1", limit=1)

    assert len(since) == 2
    assert len(limited) == 1
    assert limited[0].timestamp == BASE_TIME + timedelta(minutes=3)


def test_list_for_family_is_chronological(store):
    store.append(
        TokenOperationFactory(
            operation_type=OperationType.GENERATION,
            family_id="fam_a",
            token_id="",
            timestamp=BASE_TIME,
        )
    )
    store.append(
        TokenOperationFactory(
            family_id="fam_a",
            timestamp=BASE_TIME + timedelta(seconds=5),
            metadata={"previous_token_id": "jti-1"},
        )
    )
    store.append(TokenOperationFactory(family_id="fam_b"))

    ops = store.list_for_family("fam_a")

    assert [op.operation_type for op in ops] == [OperationType.GENERATION, OperationType.ROTATION]
    assert ops[1].metadata == {"previous_token_id": "jti-1"}


def test_long_user_agent_is_truncated(store):
    store.append(TokenOperationFactory(user_agent="x" * 2000))

    assert len(store.list_for_user("user-1")[0].user_agent) == 512


def test_health_probe(store, monkeypatch):
    assert store.is_healthy() is True

    class _BrokenSession:
        def __enter__(self):
            raise SQLAlchemyError("database is locked")

        def __exit__(self, *exc):
            return False

    monkeypatch.setattr(store, "session_factory", lambda: _BrokenSession())

    assert store.is_healthy() is False
