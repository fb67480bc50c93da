"""Repository for durable audit records."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import datetime

from sqlalchemy import select

from token_rotation.models.token_audit import TokenAuditRecord
from token_rotation.repositories.base import BaseRepository


class TokenAuditRepository(BaseRepository[TokenAuditRecord]):
    """Append and query :class:`TokenAuditRecord` rows.

    Records are never updated or deleted through this repository.
    """

    model = TokenAuditRecord

    def append(self, record: TokenAuditRecord) -> TokenAuditRecord:
        """Stage a new audit row and flush so it gets an id.

        :param record: Row to persist.
        :type record: TokenAuditRecord
        :returns: The same instance, now with ``id`` populated.
        :rtype: TokenAuditRecord
        """
        self.add(record)
        self.flush()
        return record

    def list_for_user(
        self,
        user_id: str,
        *,
        limit: int = 100,
        since: datetime | None = None,
    ) -> Sequence[TokenAuditRecord]:
        """Return the newest records of a user, most recent first.

        :param user_id: Owner of the records.
        :param limit: Maximum number of rows.
        :param since: Only rows at or after this instant, when given.
        """
        stmt = select(TokenAuditRecord).where(TokenAuditRecord.user_id == user_id)
        if since is not None:
            stmt = stmt.where(TokenAuditRecord.occurred_at >= since)
        stmt = stmt.order_by(
            TokenAuditRecord.occurred_at.desc(), TokenAuditRecord.id.desc()
        ).limit(max(1, int(limit)))
        return self.session.execute(stmt).scalars().all()

    def list_for_family(self, family_id: str) -> Sequence[TokenAuditRecord]:
        """Return every record of a token family in chronological order."""
        stmt = (
            select(TokenAuditRecord)
            .where(TokenAuditRecord.family_id == family_id)
            .order_by(TokenAuditRecord.occurred_at.asc(), TokenAuditRecord.id.asc())
        )
        return self.session.execute(stmt).scalars().all()
