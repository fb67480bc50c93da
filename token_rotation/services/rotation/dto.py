# token_rotation/services/rotation/dto.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from token_rotation.services._shared.errors import ErrorCode, SecurityAlert

# ------------------------------ Enums ------------------------------------- #


class OperationType(str, Enum):
    ROTATION = "rotation"
    GENERATION = "generation"
    INVALIDATION = "invalidation"
    REUSE_DETECTED = "reuse_detected"


class SecurityRisk(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class RevocationReason(str, Enum):
    """Reasons forwarded to the revocation store."""

    USER_LOGOUT = "user_logout"
    ADMIN_REVOKED = "admin_revoked"
    SECURITY_BREACH = "security_breach"
    TOKEN_COMPROMISED = "token_compromised"
    TOKEN_ROTATION = "token_rotation"
    POLICY_VIOLATION = "policy_violation"


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


# ---------------------------- Domain records ------------------------------ #


@dataclass(frozen=True, slots=True)
class TokenFamily:
    """
    Lineage of refresh tokens descending from one login.

    :param family_id: Opaque unique identifier.
    :param user_id: Owner of the lineage.
    :param session_id: Optional correlation to an external session.
    :param created_at: Creation time (UTC).
    :param last_rotated_at: Time of the last successful rotation (UTC).
    :param rotation_count: Successful rotations so far; never decreases.
    :param is_active: ``False`` once invalidated; terminal.
    :param metadata: Opaque key/value bag.
    :param version: Optimistic-lock counter bumped on every write.
    """

    family_id: str
    user_id: str
    session_id: str | None
    created_at: datetime
    last_rotated_at: datetime
    rotation_count: int = 0
    is_active: bool = True
    metadata: dict[str, Any] = field(default_factory=dict)
    version: int = 0

    def advanced(self, *, now: datetime) -> TokenFamily:
        """Return the family after one successful rotation."""
        if not self.is_active:
            raise ValueError("Cannot rotate an inactive token family")
        return replace(
            self,
            rotation_count=self.rotation_count + 1,
            last_rotated_at=max(now, self.last_rotated_at),
            version=self.version + 1,
        )

    def invalidated(self, *, now: datetime) -> TokenFamily:
        """Return the terminal (inactive) version of this family."""
        return replace(
            self,
            is_active=False,
            last_rotated_at=max(now, self.last_rotated_at),
            version=self.version + 1,
        )


@dataclass(frozen=True, slots=True)
class TokenPair:
    """
    Issuance result handed to the client.

    :param access_token: Encoded access token.
    :param refresh_token: Encoded refresh token.
    :param access_token_expiry: Access token lifetime in seconds.
    :param refresh_token_expiry: Refresh token lifetime in seconds.
    :param token_id: Identifier (``jti``) of the new refresh token.
    :param family_id: Family the new pair belongs to.
    """

    access_token: str
    refresh_token: str
    access_token_expiry: int
    refresh_token_expiry: int
    token_id: str
    family_id: str


@dataclass(frozen=True, slots=True)
class TokenOperation:
    """Append-only audit fact."""

    operation_type: OperationType
    token_id: str
    family_id: str
    user_id: str
    timestamp: datetime
    success: bool
    session_id: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    error_code: str | None = None
    metadata: dict[str, Any] | None = None


# ----------------------------- Input DTOs --------------------------------- #


@dataclass(frozen=True, slots=True)
class RotationContext:
    """
    Optional request metadata attached to a rotation.

    :param ip_address: Client address as seen by the transport layer.
    :param user_agent: Client user agent.
    :param session_id: External session correlation id.
    """

    ip_address: str | None = None
    user_agent: str | None = None
    session_id: str | None = None


# ----------------------------- Output DTOs -------------------------------- #


@dataclass(frozen=True, slots=True)
class RotationResult:
    """Outcome of :meth:`TokenRotationService.rotate_tokens`."""

    success: bool
    token_pair: TokenPair | None = None
    family_rotated: bool = False
    previous_token_revoked: bool = False
    security_alert: SecurityAlert | None = None
    error: str | None = None
    error_code: ErrorCode | None = None


@dataclass(frozen=True, slots=True)
class ReuseDetectionResult:
    """
    Verdict of the reuse detector for one presentation of a refresh token.

    ``first_presentation`` is set when this call wrote the fingerprint marker.
    """

    is_reused: bool
    reuse_count: int = 0
    security_risk: SecurityRisk = SecurityRisk.LOW
    last_used_at: datetime | None = None
    family_id: str | None = None
    first_presentation: bool = False


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    """
    Verdict of the rotation rate limiter.

    :param allowed: Whether the rotation may proceed.
    :param current_count: Count in the window that decided the verdict.
    :param window: ``"hour"`` or ``"day"``.
    :param limit: Limit configured for ``window``.
    """

    allowed: bool
    current_count: int
    window: str = "hour"
    limit: int = 0


@dataclass(frozen=True, slots=True)
class HealthReport:
    """Aggregated health verdict with per-component detail and counters."""

    status: HealthStatus
    components: dict[str, str]
    metrics: dict[str, float]

    @property
    def healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY
