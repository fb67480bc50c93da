"""
token_rotation.services._shared.ports
=====================================

Collection of *ports* (hexagonal interfaces) that define the contracts
between the rotation core and the infrastructure it drives.

Modules
-------
- :mod:`token_issuer`:
    :class:`~.TokenVerifier` / :class:`~.TokenSigner`: bearer-material
    validation and issuance (external collaborators).
- :mod:`revocation_store`:
    :class:`~.RevocationStore`: per-token and user-wide revocation.
- :mod:`identity_resolver`:
    :class:`~.IdentityResolver`: subject claims for a rotated pair.
- :mod:`compliance_store`:
    :class:`~.ComplianceAuditStore`: durable, append-only audit storage.
- :mod:`metrics`:
    :class:`~.MetricsSink`: fire-and-forget counters and histograms.
- :mod:`token_family_store`, :mod:`reuse_detector`, :mod:`rate_limiter`,
  :mod:`audit_history`:
    keyed-store backed components of the core itself.

Design Notes
------------
All ports follow the *Dependency Inversion Principle*: the service layer only
sees these Protocols. Concrete adapters (Redis, SQLAlchemy, flask-jwt-extended)
live under ``token_rotation.infra``; in-memory doubles live next to their port.
"""

from __future__ import annotations

from .audit_history import AuditHistoryStore
from .compliance_store import ComplianceAuditStore, InMemoryComplianceAuditStore
from .identity_resolver import IdentityResolver, InMemoryIdentityResolver
from .metrics import InMemoryMetricsSink, LoggingMetricsSink, MetricsSink
from .rate_limiter import RotationRateLimiter
from .reuse_detector import ReuseDetector
from .revocation_store import InMemoryRevocationStore, RevocationMeta, RevocationStore
from .token_family_store import AdvanceResult, FamilyAdvance, TokenFamilyStore
from .token_issuer import (
    IssuedTokens,
    StubTokenIssuer,
    TokenSigner,
    TokenVerifier,
    VerifiedRefreshToken,
)

__all__ = [
    "AdvanceResult",
    "AuditHistoryStore",
    "ComplianceAuditStore",
    "FamilyAdvance",
    "IdentityResolver",
    "InMemoryComplianceAuditStore",
    "InMemoryIdentityResolver",
    "InMemoryMetricsSink",
    "InMemoryRevocationStore",
    "IssuedTokens",
    "LoggingMetricsSink",
    "MetricsSink",
    "RevocationMeta",
    "RevocationStore",
    "ReuseDetector",
    "RotationRateLimiter",
    "StubTokenIssuer",
    "TokenFamilyStore",
    "TokenSigner",
    "TokenVerifier",
    "VerifiedRefreshToken",
]
