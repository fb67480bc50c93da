from __future__ import annotations

from typing import Protocol

from token_rotation.services.rotation.dto import TokenOperation


class AuditHistoryStore(Protocol):
    """Bounded, fast recent-history list of audit entries per user."""

    def push(self, operation: TokenOperation) -> None: ...

    def recent(self, user_id: str, limit: int = 100) -> list[TokenOperation]: ...
