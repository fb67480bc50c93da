from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import cast

import redis  # type: ignore[import-untyped]
from marshmallow import ValidationError

from token_rotation.schemas.token_operation import token_operation_schema
from token_rotation.services._shared.ports import AuditHistoryStore
from token_rotation.services.rotation.dto import TokenOperation

log = logging.getLogger(__name__)


@dataclass(slots=True)
class RedisAuditHistoryStore(AuditHistoryStore):
    """
    Bounded recent-history list per user at ``rotation_audit:{user_id}``.

    :param r: A Redis client (already connected).
    :param max_entries: Entries kept per user (newest first).
    :param retention_seconds: Lifetime of the list after its last write.
    """

    r: redis.Redis
    max_entries: int = 100
    retention_seconds: int = 90 * 24 * 60 * 60

    @staticmethod
    def _k(user_id: str) -> str:
        return f"rotation_audit:{user_id}"

    def push(self, operation: TokenOperation) -> None:
        key = self._k(operation.user_id)
        with self.r.pipeline(transaction=True) as p:
            p.lpush(key, token_operation_schema.dumps(operation))
            p.ltrim(key, 0, self.max_entries - 1)
            p.expire(key, self.retention_seconds)
            p.execute()

    def recent(self, user_id: str, limit: int = 100) -> list[TokenOperation]:
        limit = max(1, min(int(limit), self.max_entries))
        raw_items = cast(list[bytes | str], self.r.lrange(self._k(user_id), 0, limit - 1))

        out: list[TokenOperation] = []
        for raw in raw_items:
            text = raw.decode() if isinstance(raw, bytes | bytearray) else raw
            try:
                out.append(cast(TokenOperation, token_operation_schema.loads(text)))
            except (ValidationError, ValueError):
                # Entries written by an older schema are skipped, not fatal
                log.warning("Skipping unreadable audit entry", extra={"user_id": user_id})
        return out
