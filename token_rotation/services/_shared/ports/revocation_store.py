from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol


@dataclass(frozen=True, slots=True)
class RevocationMeta:
    """
    Context attached to a revocation for traceability.

    :ivar revoked_by: Component requesting the revocation.
    :ivar token_id: ``jti`` of the revoked token (when known).
    :ivar user_id: Owner of the revoked token(s).
    :ivar expires_at: Natural expiry of the revoked token; bounds the marker TTL.
    :ivar metadata: Free-form details (new token id, family id, incident flags...).
    """

    revoked_by: str = "token-rotation"
    token_id: str | None = None
    user_id: str | None = None
    expires_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


class RevocationStore(Protocol):
    """
    Abstraction for the revocation (blacklist) store.

    Methods are expected to be idempotent. User-wide revocation is modelled as a
    cut-off: every token of the user issued at or before the cut-off is revoked.
    """

    def revoke_token(self, token: str, reason: str, meta: RevocationMeta) -> None: ...

    def revoke_user_tokens(self, user_id: str, reason: str, meta: RevocationMeta) -> int: ...

    def is_revoked(
        self, token_id: str, *, user_id: str | None = None, issued_at: int | None = None
    ) -> bool: ...


class InMemoryRevocationStore(RevocationStore):
    """Simple in-memory revocation store keyed by ``jti`` plus per-user cut-offs."""

    def __init__(self, *, clock: Callable[[], datetime] | None = None) -> None:
        self._clock = clock or (lambda: datetime.now(UTC))
        self._revoked: dict[str, tuple[str, RevocationMeta]] = {}
        self._user_cutoff: dict[str, int] = {}
        self.user_revocations: list[tuple[str, str, RevocationMeta]] = []
        self._lock = threading.Lock()
        self.healthy = True
        self.cleanup_runs = 0

    def revoke_token(self, token: str, reason: str, meta: RevocationMeta) -> None:
        key = meta.token_id or token
        with self._lock:
            self._revoked[key] = (reason, meta)

    def revoke_user_tokens(self, user_id: str, reason: str, meta: RevocationMeta) -> int:
        with self._lock:
            self._user_cutoff[user_id] = int(self._clock().timestamp())
            self.user_revocations.append((user_id, reason, meta))
        # Not tracked per-token in this stub.
        return 0

    def is_revoked(
        self, token_id: str, *, user_id: str | None = None, issued_at: int | None = None
    ) -> bool:
        if token_id in self._revoked:
            return True
        if user_id is not None and issued_at is not None:
            cutoff = self._user_cutoff.get(user_id)
            return cutoff is not None and issued_at <= cutoff
        return False

    def reason_for(self, token_id: str) -> tuple[str, RevocationMeta] | None:
        return self._revoked.get(token_id)

    # Health / maintenance hooks
    def is_healthy(self) -> bool:
        return self.healthy

    def cleanup_expired_entries(self) -> int:
        self.cleanup_runs += 1
        return 0
