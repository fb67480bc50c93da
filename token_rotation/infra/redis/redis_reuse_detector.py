from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import cast

import redis  # type: ignore[import-untyped]
from redis.exceptions import RedisError  # type: ignore[import-untyped]

from token_rotation.core.circuit_breaker import CircuitBreaker, guarded_call
from token_rotation.services._shared.errors import CircuitOpenError
from token_rotation.services._shared.ports import MetricsSink, ReuseDetector
from token_rotation.services._shared.ports.metrics import LoggingMetricsSink
from token_rotation.services._shared.policies.reuse import classify_reuse_risk, fingerprint_token
from token_rotation.services.rotation.dto import ReuseDetectionResult

log = logging.getLogger(__name__)


class RedisReuseDetector(ReuseDetector):
    """
    Detect refresh-token reuse with fingerprint markers in Redis.

    The first presentation writes ``token_reuse:{fp}`` (epoch milliseconds)
    with ``SET NX EX``. A later presentation inside the grace period is a
    benign retry; after it, ``reuse_count:{fp}`` is incremented and the
    presentation is reported as reuse. The marker keeps the time of the
    first presentation; :meth:`release` drops it when that presentation
    never consumed the token.

    :param r: A Redis client (already connected).
    :param ttl: Lifetime of both keys (the family TTL).
    :param grace_period: Seconds during which a repeat is not reuse.
    :param suspicious_threshold: Reuse count above which the risk is critical.
    :param fail_open: Report "not reused" when Redis fails (otherwise re-raise).
    :param clock: UTC time source.
    :param metrics: Sink for detector counters.
    :param breaker: Optional circuit breaker around the Redis round trips; an
        open breaker is handled like a Redis failure.
    """

    def __init__(
        self,
        r: redis.Redis,
        *,
        ttl: int,
        grace_period: int,
        suspicious_threshold: int,
        fail_open: bool = True,
        clock: Callable[[], datetime] | None = None,
        metrics: MetricsSink | None = None,
        breaker: CircuitBreaker | None = None,
    ) -> None:
        self.r = r
        self.breaker = breaker
        self.ttl = ttl
        self.grace_ms = grace_period * 1000
        self.suspicious_threshold = suspicious_threshold
        self.fail_open = fail_open
        self._clock = clock or (lambda: datetime.now(UTC))
        self.metrics = metrics or LoggingMetricsSink()

    @staticmethod
    def _km(fp: str) -> str:
        return f"token_reuse:{fp}"

    @staticmethod
    def _kc(fp: str) -> str:
        return f"reuse_count:{fp}"

    def detect_token_reuse(self, raw_token: str) -> ReuseDetectionResult:
        fp = fingerprint_token(raw_token)
        try:
            return guarded_call(self.breaker, self._detect, fp)
        except (RedisError, CircuitOpenError):
            self.metrics.increment("token_reuse_detection_errors")
            if not self.fail_open:
                raise
            log.error("Reuse detection failed; treating token as not reused", exc_info=True)
            return ReuseDetectionResult(is_reused=False)

    def _detect(self, fp: str) -> ReuseDetectionResult:
        now = self._clock()
        now_ms = int(now.timestamp() * 1000)
        k_marker = self._km(fp)

        if self.r.set(k_marker, str(now_ms), nx=True, ex=self.ttl):
            return ReuseDetectionResult(is_reused=False, last_used_at=now, first_presentation=True)

        raw = self.r.get(k_marker)
        if raw is None:
            # Marker expired between SET NX and GET: first sight again
            self.r.set(k_marker, str(now_ms), ex=self.ttl)
            return ReuseDetectionResult(is_reused=False, last_used_at=now, first_presentation=True)

        last_ms = int(raw)
        last_used_at = datetime.fromtimestamp(last_ms / 1000, tz=UTC)
        if now_ms - last_ms < self.grace_ms:
            return ReuseDetectionResult(is_reused=False, last_used_at=last_used_at)

        k_count = self._kc(fp)
        with self.r.pipeline(transaction=True) as p:
            p.incr(k_count)
            p.expire(k_count, self.ttl)
            out = cast(list[int], p.execute())
        reuse_count = int(out[0])

        risk = classify_reuse_risk(reuse_count, suspicious_threshold=self.suspicious_threshold)
        self.metrics.increment("token_reuse_detected", risk=risk.value)
        log.warning(
            "Refresh token reuse detected",
            extra={"security_risk": risk.value},
        )
        return ReuseDetectionResult(
            is_reused=True,
            reuse_count=reuse_count,
            security_risk=risk,
            last_used_at=last_used_at,
        )

    def release(self, raw_token: str) -> None:
        fp = fingerprint_token(raw_token)
        try:
            guarded_call(self.breaker, self.r.delete, self._km(fp))
        except (RedisError, CircuitOpenError):
            self.metrics.increment("token_reuse_detection_errors")
            log.warning("Could not release reuse marker", exc_info=True)
