from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import cast

import redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from token_rotation.core.cache import LRUCache
from token_rotation.core.circuit_breaker import CircuitBreaker, guarded_call
from token_rotation.services._shared.errors import CircuitOpenError
from token_rotation.services._shared.ports import MetricsSink, RotationRateLimiter
from token_rotation.services._shared.ports.metrics import LoggingMetricsSink
from token_rotation.services.rotation.dto import RateLimitDecision

log = logging.getLogger(__name__)

HOUR_SECONDS = 60 * 60
DAY_SECONDS = 24 * HOUR_SECONDS


class RedisRotationRateLimiter(RotationRateLimiter):
    """
    Fixed-window rotation counters per user.

    Keys ``rotation_rate:{user_id}:{hour_index}`` and
    ``rotation_rate:{user_id}:day:{day_index}`` are bumped with ``INCR`` and
    given their window length as TTL in one transaction. Windows only reset
    through expiry.

    :param r: A Redis client (already connected).
    :param max_per_hour: Rotations allowed per clock hour.
    :param max_per_day: Rotations allowed per UTC day.
    :param fail_open: Allow the rotation when Redis fails (otherwise re-raise).
    :param clock: UTC time source.
    :param tracking: In-process counters of successful rotations (advisory).
    :param metrics: Sink for limiter counters.
    :param breaker: Optional circuit breaker around the Redis round trip; an open
        breaker is handled like a Redis failure.
    """

    def __init__(
        self,
        r: redis.Redis,
        *,
        max_per_hour: int,
        max_per_day: int,
        fail_open: bool = True,
        clock: Callable[[], datetime] | None = None,
        tracking: LRUCache[str, int] | None = None,
        metrics: MetricsSink | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.r = r
        self.breaker = breaker
        self.max_per_hour = max_per_hour
        self.max_per_day = max_per_day
        self.fail_open = fail_open
        self._clock = clock or (lambda: datetime.now(UTC))
        self.tracking: LRUCache[str, int] = (
            tracking if tracking is not None else LRUCache(max_size=10000, ttl=HOUR_SECONDS)
        )
        self.metrics = metrics or LoggingMetricsSink()

    @staticmethod
    def _kh(user_id: str, hour_index: int) -> str:
        return f"rotation_rate:{user_id}:{hour_index}"

    @staticmethod
    def _kd(user_id: str, day_index: int) -> str:
        return f"rotation_rate:{user_id}:day:{day_index}"

    def _bump(self, k_hour: str, k_day: str) -> tuple[int, int]:
        with self.r.pipeline(transaction=True) as p:
            p.incr(k_hour)
            p.expire(k_hour, HOUR_SECONDS)
            p.incr(k_day)
            p.expire(k_day, DAY_SECONDS)
            out = cast(list[int], p.execute())
        return int(out[0]), int(out[2])

    def check_rotation_rate_limit(self, user_id: str) -> RateLimitDecision:
        epoch = int(self._clock().timestamp())
        k_hour = self._kh(user_id, epoch // HOUR_SECONDS)
        k_day = self._kd(user_id, epoch // DAY_SECONDS)

        try:
            hourly, daily = guarded_call(self.breaker, self._bump, k_hour, k_day)
        except (RedisError, CircuitOpenError):
            self.metrics.increment("rotation_rate_limit_errors")
            if not self.fail_open:
                raise
            log.warning(
                "Rate limit check failed; allowing rotation",
                extra={"user_id": user_id},
                exc_info=True,
            )
            return RateLimitDecision(allowed=True, current_count=0, limit=self.max_per_hour)

        if hourly > self.max_per_hour:
            decision = RateLimitDecision(
                allowed=False, current_count=hourly, window="hour", limit=self.max_per_hour
            )
        elif daily > self.max_per_day:
            decision = RateLimitDecision(
                allowed=False, current_count=daily, window="day", limit=self.max_per_day
            )
        else:
            return RateLimitDecision(
                allowed=True, current_count=hourly, window="hour", limit=self.max_per_hour
            )

        log.warning(
            "Rotation rate limit exceeded (%s: %d > %d)",
            decision.window,
            decision.current_count,
            decision.limit,
            extra={"user_id": user_id},
        )
        return decision

    def record_rotation(self, user_id: str) -> None:
        self.tracking.set(user_id, (self.tracking.get(user_id) or 0) + 1)

    def tracked_count(self) -> int:
        return len(self.tracking)

    def clear_tracking(self) -> int:
        return self.tracking.clear()
