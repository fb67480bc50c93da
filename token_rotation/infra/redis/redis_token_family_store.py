# comments in English; reST docstrings
from __future__ import annotations

import logging
from datetime import datetime
from typing import cast

import redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from token_rotation.core.cache import LRUCache
from token_rotation.schemas.token_family import token_family_schema
from token_rotation.services._shared.errors import FamilyAdvanceError
from token_rotation.services._shared.ports import AdvanceResult, FamilyAdvance, TokenFamilyStore
from token_rotation.services.rotation.dto import TokenFamily

log = logging.getLogger(__name__)

# Upper bound on optimistic-lock retries before giving up on a hot key
MAX_WATCH_RETRIES = 16


def _s(raw: bytes | str | None) -> str | None:
    if raw is None:
        return None
    return raw.decode() if isinstance(raw, bytes | bytearray) else str(raw)


class RedisTokenFamilyStore(TokenFamilyStore):
    """
    Redis-backed token family store with atomic advance and invalidation.

    Layout:

    * ``token_family:{family_id}`` - JSON family record (see :mod:`schemas.token_family`).
    * ``token_family:token:{token_id}`` - id of the family a refresh token belongs to.
    * ``token_consumed:{token_id}`` - written in the same transaction that advances
      the family; its presence means the token was already rotated.

    Every key expires after ``ttl`` seconds. Reads go through an in-process
    LRU cache which is advisory only: writes always re-read the keyed store
    under ``WATCH``.

    :param r: A Redis client (already connected).
    :param ttl: Seconds a family, token mapping or consumption marker lives.
    :param cache: Optional in-process cache of families by id.
    """

    def __init__(
        self,
        r: redis.Redis,
        *,
        ttl: int,
        cache: LRUCache[str, TokenFamily] | None = None,
    ) -> None:
        self.r = r
        self.ttl = ttl
        self.cache: LRUCache[str, TokenFamily] = (
            cache if cache is not None else LRUCache(max_size=5000, ttl=60)
        )

    # -------------------- helpers --------------------

    @staticmethod
    def _kf(family_id: str) -> str:
        return f"token_family:{family_id}"

    @staticmethod
    def _kt(token_id: str) -> str:
        return f"token_family:token:{token_id}"

    @staticmethod
    def _kc(token_id: str) -> str:
        return f"token_consumed:{token_id}"

    @staticmethod
    def _load(raw: bytes | str) -> TokenFamily:
        return cast(TokenFamily, token_family_schema.loads(_s(raw) or "{}"))

    @staticmethod
    def _dump(family: TokenFamily) -> str:
        return cast(str, token_family_schema.dumps(family))

    def _read(self, family_id: str) -> TokenFamily | None:
        raw = self.r.get(self._kf(family_id))
        if raw is None:
            self.cache.delete(family_id)
            return None
        family = self._load(raw)
        self.cache.set(family_id, family)
        return family

    # -------------------- API ------------------------

    def get(self, family_id: str) -> TokenFamily | None:
        cached = self.cache.get(family_id)
        if cached is not None:
            return cached
        return self._read(family_id)

    def get_by_token(self, token_id: str) -> TokenFamily | None:
        family_id = _s(self.r.get(self._kt(token_id)))
        if family_id is None:
            return None
        return self.get(family_id)

    def create(self, family: TokenFamily) -> TokenFamily:
        created = self.r.set(self._kf(family.family_id), self._dump(family), nx=True, ex=self.ttl)
        if not created:
            raise FamilyAdvanceError(f"Token family {family.family_id!r} already exists")
        self.cache.set(family.family_id, family)
        return family

    def create_for_token(self, token_id: str, family: TokenFamily) -> TokenFamily:
        """
        Create ``family`` and link ``token_id`` to it unless another caller won.

        Uses WATCH on the token mapping so two first-time rotations of the
        same token converge on one family.
        """
        k_map = self._kt(token_id)
        for _ in range(MAX_WATCH_RETRIES):
            try:
                with self.r.pipeline() as p:
                    p.watch(k_map)
                    existing_id = _s(p.get(k_map))
                    if existing_id is not None:
                        existing = self._read(existing_id)
                        if existing is not None:
                            p.unwatch()
                            return existing
                        # Mapping outlived its family: relink to the new one

                    p.multi()
                    p.set(self._kf(family.family_id), self._dump(family), ex=self.ttl)
                    p.set(k_map, family.family_id, ex=self.ttl)
                    p.execute()

                self.cache.set(family.family_id, family)
                log.info(
                    "Token family created for unlinked token",
                    extra={"family_id": family.family_id, "user_id": family.user_id},
                )
                return family
            except redis.WatchError:
                # Concurrent creation detected; retry and read the winner
                continue
        raise FamilyAdvanceError("Token family creation kept conflicting")

    def link_token(self, token_id: str, family_id: str) -> None:
        self.r.set(self._kt(token_id), family_id, ex=self.ttl)

    def advance(self, family_id: str, *, token_id: str, now: datetime) -> FamilyAdvance:
        """
        Atomically consume ``token_id`` and bump the rotation count of ``family_id``.

        The family record and the consumption marker are both watched; the
        write happens in a single MULTI/EXEC so at most one caller can
        consume a given token.
        """
        k_fam = self._kf(family_id)
        k_used = self._kc(token_id)

        for _ in range(MAX_WATCH_RETRIES):
            try:
                with self.r.pipeline() as p:
                    p.watch(k_fam, k_used)

                    raw = p.get(k_fam)
                    if raw is None:
                        p.unwatch()
                        self.cache.delete(family_id)
                        return FamilyAdvance(AdvanceResult.NOT_FOUND, None)
                    current = self._load(raw)

                    if not current.is_active:
                        p.unwatch()
                        self.cache.set(family_id, current)
                        return FamilyAdvance(AdvanceResult.INACTIVE, current)
                    if p.exists(k_used):
                        p.unwatch()
                        return FamilyAdvance(AdvanceResult.TOKEN_ALREADY_CONSUMED, current)

                    advanced = current.advanced(now=now)

                    p.multi()
                    p.set(k_fam, self._dump(advanced), ex=self.ttl)
                    p.set(k_used, family_id, ex=self.ttl)
                    p.execute()

                self.cache.set(family_id, advanced)
                return FamilyAdvance(AdvanceResult.OK, advanced)
            except redis.WatchError:
                # Concurrent modification detected; retry loop
                continue
        raise FamilyAdvanceError(f"Token family {family_id!r} kept conflicting")

    def invalidate(self, family_id: str, *, now: datetime) -> TokenFamily | None:
        k_fam = self._kf(family_id)
        for _ in range(MAX_WATCH_RETRIES):
            try:
                with self.r.pipeline() as p:
                    p.watch(k_fam)
                    raw = p.get(k_fam)
                    if raw is None:
                        p.unwatch()
                        return None
                    current = self._load(raw)
                    if not current.is_active:
                        p.unwatch()
                        self.cache.set(family_id, current)
                        return None

                    invalidated = current.invalidated(now=now)
                    p.multi()
                    p.set(k_fam, self._dump(invalidated), ex=self.ttl)
                    p.execute()

                self.cache.set(family_id, invalidated)
                return invalidated
            except redis.WatchError:
                continue
        raise FamilyAdvanceError(f"Token family {family_id!r} kept conflicting")

    # -------------------- health / cache ---------------

    def ping(self) -> bool:
        try:
            return bool(self.r.ping())
        except RedisError:
            log.warning("Token family store ping failed", exc_info=True)
            return False

    def cache_size(self) -> int:
        return len(self.cache)

    def clear_cache(self) -> int:
        return self.cache.clear()
