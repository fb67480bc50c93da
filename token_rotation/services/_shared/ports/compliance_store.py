from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from token_rotation.services.rotation.dto import TokenOperation


class ComplianceAuditStore(Protocol):
    """
    Durable, append-only storage for audit records (long-term retention).

    Failures are tolerated by callers: the audit path is best-effort.
    """

    def append(self, operation: TokenOperation) -> None: ...


class InMemoryComplianceAuditStore(ComplianceAuditStore):
    """List-backed compliance store for unit tests."""

    def __init__(self) -> None:
        self.records: list[TokenOperation] = []
        self.healthy = True

    def append(self, operation: TokenOperation) -> None:
        self.records.append(operation)

    def is_healthy(self) -> bool:
        return self.healthy
