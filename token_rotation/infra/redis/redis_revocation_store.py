from __future__ import annotations

import json
import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, cast

import redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from token_rotation.services._shared.policies.reuse import fingerprint_token
from token_rotation.services._shared.ports import RevocationMeta, RevocationStore

log = logging.getLogger(__name__)


class RedisRevocationStore(RevocationStore):
    """
    Revocation store for refresh tokens by ``jti`` plus user-wide cut-offs.

    * ``revoked:rt:{jti}`` - JSON marker with reason and metadata, kept until
      the token would have expired anyway.
    * ``revoked:u:{user_id}`` - epoch seconds; every token of the user issued
      at or before it is revoked.

    :param r: A Redis client (already connected).
    :param max_token_lifetime: Seconds a refresh token can live; bounds every TTL.
    :param clock: UTC time source.
    """

    def __init__(
        self,
        r: redis.Redis,
        *,
        max_token_lifetime: int = 7 * 24 * 60 * 60,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.r = r
        self.max_token_lifetime = max_token_lifetime
        self._clock = clock or (lambda: datetime.now(UTC))

    @staticmethod
    def _k(jti: str) -> str:
        return f"revoked:rt:{jti}"

    @staticmethod
    def _ku(user_id: str) -> str:
        return f"revoked:u:{user_id}"

    def _ttl_until(self, expires_at: datetime | None) -> int:
        if expires_at is None:
            return self.max_token_lifetime
        remaining = int(expires_at.timestamp() - self._clock().timestamp())
        return max(1, min(remaining, self.max_token_lifetime))

    def revoke_token(self, token: str, reason: str, meta: RevocationMeta) -> None:
        """Store a marker for the token; idempotent (a second call refreshes it)."""
        jti = meta.token_id or fingerprint_token(token)
        marker: dict[str, Any] = {
            "reason": getattr(reason, "value", reason),
            "revoked_by": meta.revoked_by,
            "revoked_at": self._clock().isoformat(),
            "user_id": meta.user_id,
            "metadata": meta.metadata,
        }
        self.r.set(self._k(jti), json.dumps(marker, default=str), ex=self._ttl_until(meta.expires_at))

    def revoke_user_tokens(self, user_id: str, reason: str, meta: RevocationMeta) -> int:
        """
        Move the user's cut-off to *now*.

        Tokens are not indexed per user, so the number of affected tokens is
        unknown and ``0`` is returned.
        """
        cutoff = int(self._clock().timestamp())
        self.r.set(self._ku(user_id), str(cutoff), ex=self.max_token_lifetime)
        log.warning(
            "All refresh tokens revoked (%s)",
            getattr(reason, "value", reason),
            extra={"user_id": user_id},
        )
        return 0

    def is_revoked(
        self, token_id: str, *, user_id: str | None = None, issued_at: int | None = None
    ) -> bool:
        if cast(int, self.r.exists(self._k(token_id))) == 1:
            return True
        if user_id is None or issued_at is None:
            return False
        raw = self.r.get(self._ku(user_id))
        return raw is not None and int(issued_at) <= int(raw)

    def reason_for(self, token_id: str) -> dict[str, Any] | None:
        """Return the stored marker of a revoked token, if any."""
        raw = self.r.get(self._k(token_id))
        return None if raw is None else cast(dict[str, Any], json.loads(raw))

    # Health / maintenance hooks
    def is_healthy(self) -> bool:
        try:
            return bool(self.r.ping())
        except RedisError:
            return False

    def cleanup_expired_entries(self) -> int:
        """Markers expire through Redis TTLs; nothing to sweep."""
        return 0
