# token_rotation/services/rotation/service.py
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping
from datetime import UTC, datetime
from typing import Any, ParamSpec, TypeVar
from uuid import uuid4

from token_rotation.core.circuit_breaker import BreakerState, CircuitBreaker
from token_rotation.core.config import RotationConfig
from token_rotation.services._shared.base import BaseService, ServiceContext
from token_rotation.services._shared.errors import (
    ErrorCode,
    FamilyAdvanceError,
    InvalidRefreshTokenError,
    RateLimitExceededError,
    SecurityAlert,
    ServiceError,
    TokenReuseDetectedError,
    UserNotFoundError,
)
from token_rotation.services._shared.policies.reuse import revokes_user_wide
from token_rotation.services._shared.ports import (
    AdvanceResult,
    IdentityResolver,
    MetricsSink,
    RevocationMeta,
    RevocationStore,
    ReuseDetector,
    RotationRateLimiter,
    TokenFamilyStore,
    TokenSigner,
    TokenVerifier,
)
from token_rotation.services._shared.ports.metrics import LoggingMetricsSink
from token_rotation.services.rotation.audit import AuditRecorder
from token_rotation.services.rotation.dto import (
    HealthReport,
    HealthStatus,
    OperationType,
    ReuseDetectionResult,
    RevocationReason,
    RotationContext,
    RotationResult,
    TokenFamily,
    TokenOperation,
    TokenPair,
)

log = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")

REVOKED_BY = "token-rotation"

# Dependencies whose failure makes the service unusable
CRITICAL_DEPENDENCIES = ("verifier", "family_store")
BREAKER_NAMES = (
    "verifier",
    "signer",
    "revocation",
    "identity",
    "family_store",
    "rate_limiter",
    "reuse_detector",
    "audit_history",
    "compliance",
)
CACHE_DEGRADED_RATIO = 0.9


def build_breakers(
    config: RotationConfig, *, clock: Callable[[], float] = time.monotonic
) -> dict[str, CircuitBreaker]:
    """Create one breaker per dependency, shared by the service and its adapters."""
    return {
        name: CircuitBreaker(
            name,
            failure_threshold=config.breaker_failure_threshold,
            reset_timeout=config.breaker_reset_timeout,
            clock=clock,
        )
        for name in BREAKER_NAMES
    }


class TokenRotationService(BaseService):
    """
    Refresh-token rotation with theft detection, rate limiting and auditing.

    Each call to :meth:`rotate_tokens` consumes the presented refresh token
    exactly once and issues a new pair in the same token family. Presenting
    an already-rotated token outside the grace period is treated as theft:
    the user's tokens are revoked and the family is invalidated.

    The service holds no global lock. Single use is guaranteed by the
    family store's atomic advance; the in-process caches are advisory.
    """

    def __init__(
        self,
        *,
        verifier: TokenVerifier,
        signer: TokenSigner,
        revocations: RevocationStore,
        identities: IdentityResolver,
        families: TokenFamilyStore,
        reuse_detector: ReuseDetector,
        rate_limiter: RotationRateLimiter,
        audit: AuditRecorder,
        config: RotationConfig | None = None,
        metrics: MetricsSink | None = None,
        clock: Callable[[], datetime] | None = None,
        monotonic: Callable[[], float] = time.monotonic,
        breakers: Mapping[str, CircuitBreaker] | None = None,
        ctx: ServiceContext | None = None,
    ) -> None:
        """
        Initialize the service with its collaborators.

        :param verifier: Validates presented refresh tokens.
        :param signer: Issues new access/refresh pairs.
        :param revocations: Revocation (blacklist) store.
        :param identities: Resolves subject claims for the new pair.
        :param families: Token family store (atomic advance/invalidate).
        :param reuse_detector: Fingerprint-based reuse detector.
        :param rate_limiter: Per-user rotation limits.
        :param audit: Best-effort audit recorder.
        :param config: Validated rotation policy.
        :param metrics: Sink for counters and histograms.
        :param clock: Source of timezone-aware UTC datetimes.
        :param monotonic: Monotonic seconds, used by breakers and uptime.
        :param breakers: Breakers already wired into adapters; missing ones are created.
        """
        super().__init__(ctx=ctx, clock=clock)
        self.config = config or RotationConfig()
        self.verifier = verifier
        self.signer = signer
        self.revocations = revocations
        self.identities = identities
        self.families = families
        self.reuse_detector = reuse_detector
        self.rate_limiter = rate_limiter
        self.audit = audit
        self.metrics = metrics or LoggingMetricsSink()
        self._monotonic = monotonic
        self._started_at = monotonic()
        self._maintenance_lock = threading.Lock()
        self.breakers: dict[str, CircuitBreaker] = {
            **build_breakers(self.config, clock=monotonic),
            **(breakers or {}),
        }

    # ------------------------------------------------------------------ #
    # Helpers
    # ------------------------------------------------------------------ #

    def _call(self, dependency: str, fn: Callable[P, R], *args: P.args, **kwargs: P.kwargs) -> R:
        return self.breakers[dependency].call(fn, *args, **kwargs)

    def _new_family(
        self,
        user_id: str,
        *,
        session_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TokenFamily:
        now = self.now()
        return TokenFamily(
            family_id=f"fam_{uuid4().hex}",
            user_id=user_id,
            session_id=session_id,
            created_at=now,
            last_rotated_at=now,
            metadata=dict(metadata or {}),
        )

    # ------------------------------------------------------------------ #
    # Rotation
    # ------------------------------------------------------------------ #

    def rotate_tokens(
        self, refresh_token: str, context: RotationContext | None = None
    ) -> RotationResult:
        """
        Exchange a refresh token for a new access/refresh pair.

        Never raises: every failure is reported through the result's
        ``error_code`` and, for protocol violations, ``security_alert``.

        :param refresh_token: Raw refresh token presented by the client.
        :param context: Optional request metadata (ip, user agent, session).
        :returns: Outcome of the rotation.
        :rtype: RotationResult
        """
        started = time.perf_counter()
        try:
            result = self._rotate(refresh_token, context or RotationContext())
        except Exception as exc:
            result = self.translate_exceptions(exc)
            code = result.error_code or ErrorCode.ROTATION_ERROR
            self.metrics.increment("token_rotation_failures", error_code=code.value)
            if not isinstance(exc, ServiceError):
                self.metrics.increment("token_rotation_errors")
            log.warning(
                "Token rotation rejected: %s",
                result.error,
                extra={"error_code": code.value},
            )
        elapsed_ms = (time.perf_counter() - started) * 1000
        self.metrics.observe("token_rotation_duration_ms", elapsed_ms)
        return result

    def _rotate(self, refresh_token: str, ctx: RotationContext) -> RotationResult:
        # 1) Verify bearer material
        verified = self._call("verifier", self.verifier.verify_refresh_token, refresh_token)
        if not verified.valid or verified.payload is None:
            raise InvalidRefreshTokenError()

        # 2) Identify subject and token
        payload = verified.payload
        user_id = str(payload.get("sub") or "")
        token_id = str(payload.get("jti") or "")
        if not user_id or not token_id:
            raise InvalidRefreshTokenError()

        # 3) Rate limit
        decision = self.rate_limiter.check_rotation_rate_limit(user_id)
        if not decision.allowed:
            self.metrics.increment("token_rotation_rate_limited", window=decision.window)
            raise RateLimitExceededError()

        # 4) Reuse detection
        marked = False
        if self.config.enable_reuse_detection:
            reuse = self.reuse_detector.detect_token_reuse(refresh_token)
            if reuse.is_reused:
                self._respond_to_reuse(refresh_token, user_id, token_id, reuse, ctx)
                raise TokenReuseDetectedError()
            marked = reuse.first_presentation
        if verified.revoked:
            # Genuine but already rotated, presented again inside the grace period
            raise InvalidRefreshTokenError("Refresh token has already been rotated")

        # 5-6) Resolve the family, then atomically consume the token and advance it
        try:
            family = self._consume(token_id, user_id, ctx)
        except InvalidRefreshTokenError:
            raise
        except Exception:
            # The token was not consumed; a later retry is not a replay
            if marked:
                self.reuse_detector.release(refresh_token)
            raise

        # 7) Issue the new pair
        subject = self._call("identity", self.identities.get_subject_for_rotation, user_id)
        if subject is None:
            raise UserNotFoundError(user_id)
        claims = {**subject, "sub": user_id, "family_id": family.family_id}
        issued = self._call("signer", self.signer.generate_tokens, claims)
        self._call("family_store", self.families.link_token, issued.token_id, family.family_id)

        # 8) Revoke the presented token
        previous_revoked = self._revoke_presented(
            refresh_token,
            user_id=user_id,
            token_id=token_id,
            payload=payload,
            new_token_id=issued.token_id,
            family_id=family.family_id,
        )

        # 9) Audit and advisory tracking
        self.audit_token_operation(
            TokenOperation(
                operation_type=OperationType.ROTATION,
                token_id=issued.token_id,
                family_id=family.family_id,
                user_id=user_id,
                timestamp=self.now(),
                success=True,
                session_id=ctx.session_id or family.session_id,
                ip_address=ctx.ip_address,
                user_agent=ctx.user_agent,
                metadata={"previous_token_id": token_id, "rotation_count": family.rotation_count},
            )
        )
        self.rate_limiter.record_rotation(user_id)
        self.metrics.increment("token_rotation_success")
        log.info(
            "Tokens rotated (rotation #%d)",
            family.rotation_count,
            extra={"user_id": user_id, "family_id": family.family_id, "token_id": issued.token_id},
        )

        # 10) Hand out the pair
        return RotationResult(
            success=True,
            token_pair=TokenPair(
                access_token=issued.access_token,
                refresh_token=issued.refresh_token,
                access_token_expiry=issued.expires_in,
                refresh_token_expiry=issued.refresh_expires_in,
                token_id=issued.token_id,
                family_id=family.family_id,
            ),
            family_rotated=True,
            previous_token_revoked=previous_revoked,
        )

    def _consume(self, token_id: str, user_id: str, ctx: RotationContext) -> TokenFamily:
        family = self._call("family_store", self.families.get_by_token, token_id)
        if family is None:
            family = self._call(
                "family_store",
                self.families.create_for_token,
                token_id,
                self._new_family(user_id, session_id=ctx.session_id),
            )
        if not family.is_active or family.user_id != user_id:
            log.warning(
                "Rotation attempted on an inactive or foreign token family",
                extra={"user_id": user_id, "family_id": family.family_id, "token_id": token_id},
            )
            raise InvalidRefreshTokenError(
                "Token family is no longer active",
                security_alert=SecurityAlert.SUSPICIOUS_ROTATION,
            )
        return self._advance(family.family_id, token_id)

    def _advance(self, family_id: str, token_id: str) -> TokenFamily:
        try:
            outcome = self._call(
                "family_store", self.families.advance, family_id, token_id=token_id, now=self.now()
            )
        except ServiceError:
            raise
        except Exception as exc:
            raise FamilyAdvanceError() from exc

        if outcome.result is AdvanceResult.OK and outcome.family is not None:
            return outcome.family
        if outcome.result is AdvanceResult.TOKEN_ALREADY_CONSUMED:
            # Lost a concurrent race on the same token
            raise InvalidRefreshTokenError("Refresh token has already been rotated")
        if outcome.result is AdvanceResult.INACTIVE:
            raise InvalidRefreshTokenError(
                "Token family is no longer active",
                security_alert=SecurityAlert.SUSPICIOUS_ROTATION,
            )
        raise FamilyAdvanceError("Token family disappeared during rotation")

    def _revoke_presented(
        self,
        refresh_token: str,
        *,
        user_id: str,
        token_id: str,
        payload: dict[str, Any],
        new_token_id: str,
        family_id: str,
    ) -> bool:
        """Revoke the consumed token; single use already holds, so failure only logs."""
        exp = payload.get("exp")
        meta = RevocationMeta(
            revoked_by=REVOKED_BY,
            token_id=token_id,
            user_id=user_id,
            expires_at=datetime.fromtimestamp(int(exp), tz=UTC) if exp is not None else None,
            metadata={"new_token_id": new_token_id, "family_id": family_id},
        )
        try:
            self._call(
                "revocation",
                self.revocations.revoke_token,
                refresh_token,
                RevocationReason.TOKEN_ROTATION,
                meta,
            )
        except Exception:
            self.metrics.increment("token_revocation_errors")
            log.error(
                "Failed to revoke rotated refresh token",
                extra={"user_id": user_id, "token_id": token_id},
                exc_info=True,
            )
            return False
        return True

    # ------------------------------------------------------------------ #
    # Reuse
    # ------------------------------------------------------------------ #

    def detect_token_reuse(self, refresh_token: str) -> ReuseDetectionResult:
        """
        Classify one presentation of ``refresh_token`` without rotating it.

        :returns: Detector verdict, with ``family_id`` filled in when the
            token's lineage can be resolved.
        """
        result = self.reuse_detector.detect_token_reuse(refresh_token)
        try:
            verified = self._call("verifier", self.verifier.verify_refresh_token, refresh_token)
        except Exception:
            log.warning("Could not verify token for lineage lookup", exc_info=True)
            return result
        if not verified.valid or verified.payload is None:
            return result
        family = self._find_family(str(verified.payload.get("jti") or ""))
        if family is None:
            return result
        return ReuseDetectionResult(
            is_reused=result.is_reused,
            reuse_count=result.reuse_count,
            security_risk=result.security_risk,
            last_used_at=result.last_used_at,
            family_id=family.family_id,
            first_presentation=result.first_presentation,
        )

    def _find_family(self, token_id: str) -> TokenFamily | None:
        if not token_id:
            return None
        try:
            return self._call("family_store", self.families.get_by_token, token_id)
        except Exception:
            log.warning(
                "Could not resolve token family", extra={"token_id": token_id}, exc_info=True
            )
            return None

    def _respond_to_reuse(
        self,
        refresh_token: str,
        user_id: str,
        token_id: str,
        reuse: ReuseDetectionResult,
        ctx: RotationContext,
    ) -> None:
        """Revoke, invalidate the lineage and audit the incident."""
        scope = self.config.reuse_revocation_scope
        user_wide = revokes_user_wide(reuse.security_risk, scope)
        log.error(
            "Token reuse detected - initiating security response",
            extra={
                "user_id": user_id,
                "token_id": token_id,
                "security_risk": reuse.security_risk.value,
            },
        )

        detected_at = self.now()
        meta = RevocationMeta(
            revoked_by=REVOKED_BY,
            token_id=token_id,
            user_id=user_id,
            metadata={
                "reason": "token_reuse_detected",
                "security_incident": True,
                "reuse_count": reuse.reuse_count,
                "security_risk": reuse.security_risk.value,
                "detection_time": detected_at.isoformat(),
            },
        )
        if user_wide:
            self._call(
                "revocation",
                self.revocations.revoke_user_tokens,
                user_id,
                RevocationReason.SECURITY_BREACH,
                meta,
            )
        else:
            self._call(
                "revocation",
                self.revocations.revoke_token,
                refresh_token,
                RevocationReason.TOKEN_COMPROMISED,
                meta,
            )

        family = self._find_family(token_id)
        invalidated = None
        if family is not None:
            try:
                invalidated = self._call(
                    "family_store", self.families.invalidate, family.family_id, now=detected_at
                )
            except Exception:
                log.error(
                    "Failed to invalidate token family after reuse",
                    extra={"user_id": user_id, "family_id": family.family_id},
                    exc_info=True,
                )

        self.audit_token_operation(
            TokenOperation(
                operation_type=OperationType.REUSE_DETECTED,
                token_id=token_id,
                family_id=family.family_id if family is not None else "",
                user_id=user_id,
                timestamp=detected_at,
                success=True,
                session_id=ctx.session_id,
                ip_address=ctx.ip_address,
                user_agent=ctx.user_agent,
                error_code=ErrorCode.TOKEN_REUSE_DETECTED.value,
                metadata={
                    "security_incident": True,
                    "response_action": "revoke_all_user_tokens" if user_wide else "revoke_family",
                    "family_invalidated": invalidated is not None,
                    "reuse_count": reuse.reuse_count,
                    "security_risk": reuse.security_risk.value,
                },
            )
        )
        self.metrics.increment("token_security_incidents", risk=reuse.security_risk.value)

    # ------------------------------------------------------------------ #
    # Family lifecycle
    # ------------------------------------------------------------------ #

    def generate_token_family(
        self,
        user_id: str,
        session_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> TokenFamily:
        """
        Start a new lineage (typically right after login).

        :param user_id: Owner of the new family.
        :param session_id: Optional external session id.
        :param metadata: Opaque key/value bag stored with the family.
        :returns: The persisted, active family with ``rotation_count == 0``.
        :raises CircuitOpenError: When the family store breaker is open.
        """
        family = self._new_family(user_id, session_id=session_id, metadata=metadata)
        self._call("family_store", self.families.create, family)

        self.audit_token_operation(
            TokenOperation(
                operation_type=OperationType.GENERATION,
                token_id="",
                family_id=family.family_id,
                user_id=user_id,
                timestamp=family.created_at,
                success=True,
                session_id=session_id,
                metadata=dict(metadata) if metadata else None,
            )
        )
        self.metrics.increment("token_families_created")
        log.info(
            "Token family generated",
            extra={"user_id": user_id, "family_id": family.family_id},
        )
        return family

    def link_token_to_family(self, token_id: str, family_id: str) -> None:
        """Attach a refresh token issued outside rotation (e.g. at login) to its family."""
        self._call("family_store", self.families.link_token, token_id, family_id)

    def invalidate_token_family(
        self,
        family_id: str,
        reason: RevocationReason = RevocationReason.SECURITY_BREACH,
    ) -> None:
        """
        Terminate a lineage and revoke every token of its user.

        Idempotent: unknown or already-invalidated families are logged and
        left alone. The user's tokens are revoked before the family is
        flipped, so a call that fails half-way can simply be retried.
        """
        current = self._call("family_store", self.families.get, family_id)
        if current is None or not current.is_active:
            log.warning(
                "Token family unknown or already inactive; nothing to invalidate",
                extra={"family_id": family_id},
            )
            return

        self._call(
            "revocation",
            self.revocations.revoke_user_tokens,
            current.user_id,
            reason,
            RevocationMeta(
                revoked_by=REVOKED_BY,
                user_id=current.user_id,
                metadata={"family_id": family_id, "reason": reason.value},
            ),
        )
        family = self._call("family_store", self.families.invalidate, family_id, now=self.now())
        if family is None:
            log.info(
                "Token family invalidated concurrently",
                extra={"user_id": current.user_id, "family_id": family_id},
            )
            return

        self.audit_token_operation(
            TokenOperation(
                operation_type=OperationType.INVALIDATION,
                token_id="",
                family_id=family_id,
                user_id=family.user_id,
                timestamp=family.last_rotated_at,
                success=True,
                session_id=family.session_id,
                metadata={"reason": reason.value, "rotation_count": family.rotation_count},
            )
        )
        self.metrics.increment("token_families_invalidated", reason=reason.value)
        log.info(
            "Token family invalidated (%s)",
            reason.value,
            extra={"user_id": family.user_id, "family_id": family_id},
        )

    # ------------------------------------------------------------------ #
    # Audit
    # ------------------------------------------------------------------ #

    def audit_token_operation(self, operation: TokenOperation) -> None:
        """Record ``operation``; never raises."""
        self.audit.record(operation)

    def recent_operations(self, user_id: str, limit: int = 100) -> list[TokenOperation]:
        """Return the newest audit entries of ``user_id``, most recent first."""
        return self.audit.recent(user_id, limit)

    # ------------------------------------------------------------------ #
    # Health & maintenance
    # ------------------------------------------------------------------ #

    def get_health_status(self) -> HealthReport:
        """
        Aggregate component health, breaker states and cache occupancy.

        Never raises: a failing probe yields an ``unhealthy`` report.
        """
        try:
            return self._health()
        except Exception:
            log.error("Health check failed", exc_info=True)
            return HealthReport(
                status=HealthStatus.UNHEALTHY,
                components={"service": "error"},
                metrics={},
            )

    def _health(self) -> HealthReport:
        probes: dict[str, Callable[[], bool]] = {
            "family_store": self.families.ping,
        }
        for name, target in (
            ("verifier", self.verifier),
            ("revocation", self.revocations),
            ("identity", self.identities),
            ("compliance", self.audit.compliance),
        ):
            probe = getattr(target, "is_healthy", None)
            if callable(probe):
                probes[name] = probe

        components: dict[str, str] = {}
        for name, probe in probes.items():
            try:
                components[name] = "healthy" if probe() else "unhealthy"
            except Exception:
                log.warning("Health probe raised", extra={"dependency": name}, exc_info=True)
                components[name] = "unhealthy"

        breaker_states = {name: b.state for name, b in self.breakers.items()}
        for name, state in breaker_states.items():
            components[f"breaker:{name}"] = state.value

        cache_size = self.families.cache_size()
        cache_full = cache_size >= CACHE_DEGRADED_RATIO * self.config.cache_max_size

        critical_down = any(
            components.get(name) == "unhealthy"
            or breaker_states.get(name) is BreakerState.OPEN
            for name in CRITICAL_DEPENDENCIES
        )
        if critical_down:
            status = HealthStatus.UNHEALTHY
        elif (
            any(v == "unhealthy" for v in components.values())
            or any(s is not BreakerState.CLOSED for s in breaker_states.values())
            or cache_full
        ):
            status = HealthStatus.DEGRADED
        else:
            status = HealthStatus.HEALTHY

        return HealthReport(
            status=status,
            components=components,
            metrics={
                "token_families_in_cache": float(cache_size),
                "rotation_rates_tracked": float(self.rate_limiter.tracked_count()),
                "uptime_seconds": self._monotonic() - self._started_at,
            },
        )

    def perform_maintenance(self) -> bool:
        """
        Clear advisory caches and run collaborator maintenance hooks.

        :returns: ``False`` when another run is already in progress.
        """
        if not self._maintenance_lock.acquire(blocking=False):
            log.info("Maintenance already running; skipping")
            return False
        try:
            families = self.families.clear_cache()
            rates = self.rate_limiter.clear_tracking()
            for name, target, hook in (
                ("verifier", self.verifier, "perform_maintenance"),
                ("revocation", self.revocations, "cleanup_expired_entries"),
            ):
                fn = getattr(target, hook, None)
                if not callable(fn):
                    continue
                try:
                    fn()
                except Exception:
                    self.metrics.increment("token_maintenance_errors", dependency=name)
                    log.error(
                        "Maintenance hook failed", extra={"dependency": name}, exc_info=True
                    )
            self.metrics.increment("token_maintenance_runs")
            log.info(
                "Maintenance completed (families cleared=%d, rate entries cleared=%d)",
                families,
                rates,
            )
            return True
        finally:
            self._maintenance_lock.release()
