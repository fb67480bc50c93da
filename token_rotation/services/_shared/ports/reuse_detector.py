from __future__ import annotations

from typing import Protocol

from token_rotation.services.rotation.dto import ReuseDetectionResult


class ReuseDetector(Protocol):
    """
    Tracks presentations of refresh tokens by one-way fingerprint.

    Implementations distinguish benign retries (inside the grace period) from
    theft signals and never keep the raw token.
    """

    def detect_token_reuse(self, raw_token: str) -> ReuseDetectionResult: ...

    def release(self, raw_token: str) -> None:
        """
        Forget the first presentation of a token that was never consumed.

        Best-effort: backend failures are logged, not raised.
        """
