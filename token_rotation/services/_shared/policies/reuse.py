"""Pure policy helpers for refresh-token reuse handling."""

from __future__ import annotations

import hashlib

from token_rotation.core.config import ReuseRevocationScope
from token_rotation.services.rotation.dto import SecurityRisk

# Reuse counts above this are at least HIGH risk
HIGH_RISK_REUSE_COUNT = 2


def fingerprint_token(raw_token: str) -> str:
    """Return the SHA-256 hex digest of a raw token; the token itself is never stored."""
    return hashlib.sha256(raw_token.encode("utf-8")).hexdigest()


def classify_reuse_risk(reuse_count: int, *, suspicious_threshold: int) -> SecurityRisk:
    """Map a reuse count to a risk level (medium by default)."""
    if reuse_count > suspicious_threshold:
        return SecurityRisk.CRITICAL
    if reuse_count > HIGH_RISK_REUSE_COUNT:
        return SecurityRisk.HIGH
    return SecurityRisk.MEDIUM


def revokes_user_wide(risk: SecurityRisk, scope: ReuseRevocationScope) -> bool:
    """
    Decide the blast radius of the reuse response.

    ``USER`` scope always revokes every token of the user. ``RISK_SCALED``
    keeps MEDIUM incidents to the affected family and escalates HIGH and
    CRITICAL ones to the whole user.
    """
    if scope is ReuseRevocationScope.USER:
        return True
    return risk in (SecurityRisk.HIGH, SecurityRisk.CRITICAL)
