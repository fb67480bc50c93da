from __future__ import annotations

from typing import Protocol

from token_rotation.services.rotation.dto import RateLimitDecision


class RotationRateLimiter(Protocol):
    """Per-user hourly/daily rotation limits."""

    def check_rotation_rate_limit(self, user_id: str) -> RateLimitDecision:
        """Count one attempt for ``user_id`` and decide whether it may proceed."""

    def record_rotation(self, user_id: str) -> None:
        """Advisory, in-process tracking of successful rotations."""

    def tracked_count(self) -> int:
        """Number of users currently tracked in-process."""

    def clear_tracking(self) -> int:
        """Drop in-process tracking. :returns: Entries removed."""
