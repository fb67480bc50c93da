"""Durable compliance audit store backed by SQLAlchemy."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from token_rotation.models.token_audit import TokenAuditRecord
from token_rotation.services._shared.ports import ComplianceAuditStore
from token_rotation.services.rotation.dto import OperationType, TokenOperation
from token_rotation.uow.sqlalchemy_uow import SQLAlchemyUnitOfWork

log = logging.getLogger(__name__)


@dataclass(slots=True)
class SQLAlchemyComplianceAuditStore(ComplianceAuditStore):
    """
    Append every :class:`TokenOperation` as one ``token_audit_records`` row.

    :param session_factory: Factory producing sessions bound to the compliance database.
    """

    session_factory: sessionmaker[Session]

    def append(self, operation: TokenOperation) -> None:
        """Persist ``operation`` in its own short transaction.

        :raises sqlalchemy.exc.SQLAlchemyError: On database failure; the
            audit recorder decides how to tolerate it.
        """
        with SQLAlchemyUnitOfWork(self.session_factory) as uow:
            uow.audit_records.append(_to_record(operation))

    def list_for_user(
        self, user_id: str, *, limit: int = 100, since: datetime | None = None
    ) -> list[TokenOperation]:
        """Return the newest durable records of ``user_id`` as domain objects."""
        with SQLAlchemyUnitOfWork(self.session_factory) as uow:
            rows = uow.audit_records.list_for_user(user_id, limit=limit, since=since)
            return _to_operations(rows)

    def list_for_family(self, family_id: str) -> list[TokenOperation]:
        """Return the full durable history of one family, oldest first."""
        with SQLAlchemyUnitOfWork(self.session_factory) as uow:
            return _to_operations(uow.audit_records.list_for_family(family_id))

    def is_healthy(self) -> bool:
        try:
            with self.session_factory() as session:
                session.execute(text("SELECT 1"))
        except SQLAlchemyError:
            log.warning("Compliance store health probe failed", exc_info=True)
            return False
        return True


def _to_record(op: TokenOperation) -> TokenAuditRecord:
    return TokenAuditRecord(
        operation_type=op.operation_type.value,
        token_id=op.token_id,
        family_id=op.family_id,
        user_id=op.user_id,
        session_id=op.session_id,
        ip_address=op.ip_address,
        user_agent=op.user_agent,
        occurred_at=op.timestamp,
        success=op.success,
        error_code=op.error_code,
        details=dict(op.metadata) if op.metadata is not None else None,
    )


def _aware(dt: datetime) -> datetime:
    # SQLite drops tzinfo; values are always written in UTC
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=UTC)


def _to_operations(rows: Sequence[TokenAuditRecord]) -> list[TokenOperation]:
    return [
        TokenOperation(
            operation_type=OperationType(row.operation_type),
            token_id=row.token_id,
            family_id=row.family_id,
            user_id=row.user_id,
            timestamp=_aware(row.occurred_at),
            success=row.success,
            session_id=row.session_id,
            ip_address=row.ip_address,
            user_agent=row.user_agent,
            error_code=row.error_code,
            metadata=row.details,
        )
        for row in rows
    ]
