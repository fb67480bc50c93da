"""Durable compliance record of one token operation."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column, validates

from .base import Base, PKMixin, ReprMixin, TimestampMixin

OPERATION_TYPES = ("rotation", "generation", "invalidation", "reuse_detected")


class TokenAuditRecord(PKMixin, TimestampMixin, ReprMixin, Base):
    """
    Append-only audit row kept for long-term retention.

    Rows are never updated; the recent-history list in Redis is the fast path
    and this table is the system of record for compliance queries.
    """

    __tablename__ = "token_audit_records"

    operation_type: Mapped[str] = mapped_column(String(32), nullable=False)
    token_id: Mapped[str] = mapped_column(String(200), nullable=False)
    family_id: Mapped[str] = mapped_column(String(200), nullable=False)
    user_id: Mapped[str] = mapped_column(String(200), nullable=False)
    session_id: Mapped[str | None] = mapped_column(String(200))
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(String(512))
    occurred_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(64))
    details: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    __table_args__ = (
        Index("ix_token_audit_user_time", "user_id", "occurred_at"),
        Index("ix_token_audit_family", "family_id"),
    )

    @validates("operation_type")
    def _validate_operation_type(self, key: str, value: str) -> str:
        if value not in OPERATION_TYPES:
            raise ValueError(f"Unknown operation_type {value!r}")
        return value

    @validates("user_agent")
    def _truncate_user_agent(self, key: str, value: str | None) -> str | None:
        # Clients send arbitrarily long agents; keep the column bound
        return value[:512] if value else value
