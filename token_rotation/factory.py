"""Service factory wiring stores, adapters and the rotation policy."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING

import redis  # type: ignore[import-untyped]
from sqlalchemy.orm import Session, sessionmaker

from token_rotation.core.cache import LRUCache
from token_rotation.core.config import BaseConfig, RotationConfig, get_config
from token_rotation.core.logger import configure_logging

if TYPE_CHECKING:
    from token_rotation.services._shared.ports import (
        IdentityResolver,
        MetricsSink,
        RevocationStore,
        TokenSigner,
        TokenVerifier,
    )
    from token_rotation.services.rotation.service import TokenRotationService


def build_rotation_service(
    config: type[BaseConfig] | object | None = None,
    *,
    identities: IdentityResolver,
    redis_client: redis.Redis | None = None,
    session_factory: sessionmaker[Session] | None = None,
    verifier: TokenVerifier | None = None,
    signer: TokenSigner | None = None,
    revocations: RevocationStore | None = None,
    metrics: MetricsSink | None = None,
    rotation_config: RotationConfig | None = None,
    clock: Callable[[], datetime] | None = None,
    setup_logging: bool = True,
) -> TokenRotationService:
    """Build a fully wired :class:`TokenRotationService`.

    :param config: Settings class or object; defaults to the one selected by ``APP_ENV``.
    :param identities: Identity resolver of the host application (required).
    :param redis_client: Pre-built client; otherwise created from ``REDIS_URL``.
    :param session_factory: Compliance-store sessions; otherwise built from ``DATABASE_URL``.
    :param verifier: Token verifier; defaults to the flask-jwt-extended issuer.
    :param signer: Token signer; defaults to the flask-jwt-extended issuer.
    :param revocations: Revocation store; defaults to the Redis store.
    :param metrics: Metrics sink; defaults to DEBUG log lines.
    :param rotation_config: Policy override; otherwise derived from ``config``.
    :param clock: UTC time source shared by every component.
    :param setup_logging: Install the JSON log handler on the root logger.
    :raises RuntimeError: When no Redis client is available.
    """
    from token_rotation.core import extensions
    from token_rotation.infra.jwt.flask_jwt_token_issuer import (
        FlaskJWTTokenIssuer,
        create_jwt_app,
    )
    from token_rotation.infra.redis.redis_audit_history import RedisAuditHistoryStore
    from token_rotation.infra.redis.redis_rate_limiter import RedisRotationRateLimiter
    from token_rotation.infra.redis.redis_reuse_detector import RedisReuseDetector
    from token_rotation.infra.redis.redis_revocation_store import RedisRevocationStore
    from token_rotation.infra.redis.redis_token_family_store import RedisTokenFamilyStore
    from token_rotation.infra.sql.sqlalchemy_compliance_store import (
        SQLAlchemyComplianceAuditStore,
    )
    from token_rotation.services._shared.ports import LoggingMetricsSink
    from token_rotation.services.rotation.audit import AuditRecorder
    from token_rotation.services.rotation.service import TokenRotationService, build_breakers

    settings = get_config() if config is None else config

    if setup_logging:
        configure_logging(getattr(settings, "LOG_LEVEL", "INFO"))

    cfg = rotation_config or RotationConfig.from_settings(settings)
    metrics = metrics or LoggingMetricsSink()
    breakers = build_breakers(cfg)

    r = (
        redis_client
        if redis_client is not None
        else extensions.init_redis(getattr(settings, "REDIS_URL", None))
    )
    if r is None:
        raise RuntimeError("A Redis client is required (set REDIS_URL or pass redis_client).")

    if session_factory is None:
        session_factory = extensions.init_database(
            settings.DATABASE_URL, echo=getattr(settings, "SQLALCHEMY_ECHO", False)
        )

    if revocations is None:
        refresh_lifetime = getattr(settings, "JWT_REFRESH_TOKEN_EXPIRES", None)
        revocations = RedisRevocationStore(
            r,
            max_token_lifetime=(
                int(refresh_lifetime.total_seconds()) if refresh_lifetime else cfg.token_family_ttl
            ),
            clock=clock,
        )

    if verifier is None or signer is None:
        issuer = FlaskJWTTokenIssuer(create_jwt_app(settings), revocations=revocations)
        verifier = verifier or issuer
        signer = signer or issuer

    families = RedisTokenFamilyStore(
        r,
        ttl=cfg.token_family_ttl,
        cache=LRUCache(max_size=cfg.cache_max_size, ttl=cfg.cache_ttl),
    )
    reuse_detector = RedisReuseDetector(
        r,
        ttl=cfg.token_family_ttl,
        grace_period=cfg.rotation_grace_period,
        suspicious_threshold=cfg.suspicious_pattern_threshold,
        fail_open=cfg.reuse_detection_fail_open,
        clock=clock,
        metrics=metrics,
        breaker=breakers["reuse_detector"],
    )
    rate_limiter = RedisRotationRateLimiter(
        r,
        max_per_hour=cfg.max_rotations_per_hour,
        max_per_day=cfg.max_rotations_per_day,
        fail_open=cfg.rate_limit_fail_open,
        clock=clock,
        tracking=LRUCache(max_size=cfg.cache_max_size, ttl=60 * 60),
        metrics=metrics,
        breaker=breakers["rate_limiter"],
    )
    audit = AuditRecorder(
        history=RedisAuditHistoryStore(
            r,
            max_entries=cfg.audit_history_size,
            retention_seconds=cfg.audit_retention_days * 24 * 60 * 60,
        ),
        compliance=SQLAlchemyComplianceAuditStore(session_factory),
        enabled=cfg.enable_audit_logging,
        metrics=metrics,
        history_breaker=breakers["audit_history"],
        compliance_breaker=breakers["compliance"],
    )

    return TokenRotationService(
        verifier=verifier,
        signer=signer,
        revocations=revocations,
        identities=identities,
        families=families,
        reuse_detector=reuse_detector,
        rate_limiter=rate_limiter,
        audit=audit,
        config=cfg,
        metrics=metrics,
        clock=clock,
        breakers=breakers,
    )
