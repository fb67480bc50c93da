"""
Unit tests for SQLAlchemyUnitOfWork and TokenAuditRepository, using factories.
"""

from __future__ import annotations

import pytest

from tests.factories.token_operation import BASE_TIME, TokenAuditRecordFactory
from token_rotation.models import TokenAuditRecord
from token_rotation.uow import SQLAlchemyUnitOfWork


def _count(session_factory) -> int:
    with SQLAlchemyUnitOfWork(session_factory) as uow:
        return uow.audit_records.count()


class TestSQLAlchemyUnitOfWork:
    def test_commits_on_success(self, session_factory):
        """
        GIVEN a UoW
        WHEN a record is appended and the block exits cleanly
        THEN the row is visible from a new session.
        """
        with SQLAlchemyUnitOfWork(session_factory) as uow:
            record = uow.audit_records.append(TokenAuditRecordFactory.build())
            assert record.id is not None

        assert _count(session_factory) == 1

    def test_rolls_back_on_exception(self, session_factory):
        with pytest.raises(RuntimeError), SQLAlchemyUnitOfWork(session_factory) as uow:
            uow.audit_records.append(TokenAuditRecordFactory.build())
            raise RuntimeError("boom")

        assert _count(session_factory) == 0

    def test_commit_outside_scope_is_an_error(self, session_factory):
        with pytest.raises(RuntimeError):
            SQLAlchemyUnitOfWork(session_factory).commit()


class TestTokenAuditRepository:
    def test_list_for_user_newest_first(self, session):
        from token_rotation.repositories import TokenAuditRepository

        for minute in (5, 1, 3):
            TokenAuditRecordFactory(occurred_at=BASE_TIME.replace(minute=minute))
        TokenAuditRecordFactory(user_id="user-2")

        repo = TokenAuditRepository(session)
        rows = repo.list_for_user("user-1")

        assert [r.occurred_at.minute for r in rows] == [5, 3, 1]
        assert len(repo.list_for_user("user-1", limit=2)) == 2
        assert len(repo.list_for_user("user-1", since=BASE_TIME.replace(minute=3))) == 2
        assert repo.count() == 4

    def test_list_for_family_chronological(self, session):
        from token_rotation.repositories import TokenAuditRepository

        TokenAuditRecordFactory(family_id="fam_x", occurred_at=BASE_TIME.replace(minute=9))
        TokenAuditRecordFactory(family_id="fam_x", occurred_at=BASE_TIME.replace(minute=2))

        rows = TokenAuditRepository(session).list_for_family("fam_x")

        assert [r.occurred_at.minute for r in rows] == [2, 9]

    def test_get_by_primary_key(self, session):
        from token_rotation.repositories import TokenAuditRepository

        record = TokenAuditRecordFactory()

        assert TokenAuditRepository(session).get(record.id) is record


def test_unknown_operation_type_is_rejected():
    with pytest.raises(ValueError):
        TokenAuditRecord(operation_type="deleted")


def test_repr_mentions_id(session):
    record = TokenAuditRecordFactory()

    assert repr(record) == f"<TokenAuditRecord id={record.id}>"
