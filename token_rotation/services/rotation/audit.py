"""Best-effort recording of token operations."""

from __future__ import annotations

import logging

from token_rotation.core.circuit_breaker import CircuitBreaker, guarded_call
from token_rotation.services._shared.ports import (
    AuditHistoryStore,
    ComplianceAuditStore,
    MetricsSink,
)
from token_rotation.services._shared.ports.metrics import LoggingMetricsSink
from token_rotation.services.rotation.dto import TokenOperation

log = logging.getLogger(__name__)


class AuditRecorder:
    """
    Write each :class:`TokenOperation` to the recent-history list and to the
    durable compliance store.

    Both writes are best-effort: a failure is logged and counted but never
    raised, so auditing cannot fail a rotation.

    :param history: Fast, bounded per-user history (Redis).
    :param compliance: Durable append-only store (SQL).
    :param enabled: When ``False`` nothing is written.
    :param metrics: Sink for audit counters.
    :param history_breaker: Optional circuit breaker around the history store.
    :param compliance_breaker: Optional circuit breaker around the compliance store.
    """

    def __init__(
        self,
        *,
        history: AuditHistoryStore | None = None,
        compliance: ComplianceAuditStore | None = None,
        enabled: bool = True,
        metrics: MetricsSink | None = None,
        history_breaker: CircuitBreaker | None = None,
        compliance_breaker: CircuitBreaker | None = None,
    ) -> None:
        self.history = history
        self.compliance = compliance
        self.enabled = enabled
        self.metrics = metrics or LoggingMetricsSink()
        self.history_breaker = history_breaker
        self.compliance_breaker = compliance_breaker

    def record(self, operation: TokenOperation) -> None:
        if not self.enabled:
            return

        extra = {
            "user_id": operation.user_id,
            "family_id": operation.family_id,
            "token_id": operation.token_id,
        }

        if self.history is not None:
            try:
                guarded_call(self.history_breaker, self.history.push, operation)
            except Exception:
                self.metrics.increment("token_audit_errors", sink="history")
                log.error("Failed to record audit history entry", extra=extra, exc_info=True)

        if self.compliance is not None:
            try:
                guarded_call(self.compliance_breaker, self.compliance.append, operation)
            except Exception:
                self.metrics.increment("token_audit_errors", sink="compliance")
                log.error("Failed to persist compliance audit record", extra=extra, exc_info=True)

        self.metrics.increment("token_operations_audited", operation=operation.operation_type.value)

    def recent(self, user_id: str, limit: int = 100) -> list[TokenOperation]:
        """Return the newest entries of ``user_id`` (empty when no history store is wired)."""
        if self.history is None:
            return []
        return guarded_call(self.history_breaker, self.history.recent, user_id, limit)
