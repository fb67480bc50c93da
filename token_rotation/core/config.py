"""Settings with environment-based simple classes plus the rotation policy object."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any, Final

from dotenv import load_dotenv

# Public selector env var (keep neutral name to avoid collisions)
ENV_VAR: Final[str] = "APP_ENV"  # 'development' | 'testing' | 'production'


# Load .env during development (no-op when the file is missing)
load_dotenv()


def env_bool(name: str, default: bool = False) -> bool:
    """Parse a boolean flag from an environment variable.

    Parameters
    ----------
    name: str
        Environment variable to inspect.
    default: bool, optional
        Value returned when the variable is unset. Defaults to ``False``.

    Returns
    -------
    bool
        ``True`` if the value resembles ``{"1", "true", "yes", "y", "on"}``
        ignoring case; otherwise ``False`` or ``default`` when missing.
    """
    val = os.getenv(name)
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "y", "on"}


def env_int(name: str, default: int) -> int:
    """Parse an integer from an environment variable, falling back to ``default``."""
    val = os.getenv(name)
    if val is None or not str(val).strip():
        return default
    return int(str(val).strip())


class BaseConfig:
    """Base configuration shared across environments.

    Attributes
    ----------
    REDIS_URL: str | None
        Connection string for the keyed store (families, counters, markers).
    DATABASE_URL: str
        SQLAlchemy URL of the durable compliance store.
    SQLALCHEMY_ECHO: bool
        When ``True`` SQLAlchemy logs SQL statements for debugging.
    JWT_SECRET_KEY: str
        Key used by ``flask-jwt-extended`` when the bundled issuer is wired.
    JWT_ACCESS_TOKEN_EXPIRES, JWT_REFRESH_TOKEN_EXPIRES: timedelta
        Lifetimes of issued access and refresh tokens.
    LOG_LEVEL: str
        Root logging verbosity (``INFO`` by default).
    ROTATION_*:
        Rotation policy knobs, see :class:`RotationConfig`.

    Notes
    -----
    Values are primarily sourced from environment variables, enabling
    configuration without code changes.
    """

    # Stores
    REDIS_URL = os.getenv("REDIS_URL")
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./token_audit.db")
    SQLALCHEMY_ECHO = env_bool("SQLALCHEMY_ECHO", False)

    # Secrets
    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "CHANGE_ME_JWT")
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(minutes=env_int("JWT_ACCESS_TOKEN_MINUTES", 15))
    JWT_REFRESH_TOKEN_EXPIRES = timedelta(days=env_int("JWT_REFRESH_TOKEN_DAYS", 7))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # Rotation policy
    ROTATION_MAX_PER_HOUR = env_int("ROTATION_MAX_PER_HOUR", 10)
    ROTATION_MAX_PER_DAY = env_int("ROTATION_MAX_PER_DAY", 100)
    ROTATION_FAMILY_TTL_SECONDS = env_int("ROTATION_FAMILY_TTL_SECONDS", 7 * 24 * 60 * 60)
    ROTATION_GRACE_PERIOD_SECONDS = env_int("ROTATION_GRACE_PERIOD_SECONDS", 30)
    ROTATION_SUSPICIOUS_THRESHOLD = env_int("ROTATION_SUSPICIOUS_THRESHOLD", 5)
    ROTATION_ENABLE_REUSE_DETECTION = env_bool("ROTATION_ENABLE_REUSE_DETECTION", True)
    ROTATION_ENABLE_AUDIT = env_bool("ROTATION_ENABLE_AUDIT", True)
    ROTATION_CACHE_MAX_SIZE = env_int("ROTATION_CACHE_MAX_SIZE", 5000)
    ROTATION_CACHE_TTL_SECONDS = env_int("ROTATION_CACHE_TTL_SECONDS", 60)
    ROTATION_AUDIT_HISTORY_SIZE = env_int("ROTATION_AUDIT_HISTORY_SIZE", 100)
    ROTATION_AUDIT_RETENTION_DAYS = env_int("ROTATION_AUDIT_RETENTION_DAYS", 90)
    ROTATION_BREAKER_THRESHOLD = env_int("ROTATION_BREAKER_THRESHOLD", 10)
    ROTATION_BREAKER_RESET_SECONDS = env_int("ROTATION_BREAKER_RESET_SECONDS", 60)
    ROTATION_REUSE_SCOPE = os.getenv("ROTATION_REUSE_SCOPE", "user")
    ROTATION_RATE_LIMIT_FAIL_OPEN = env_bool("ROTATION_RATE_LIMIT_FAIL_OPEN", True)
    ROTATION_REUSE_DETECTION_FAIL_OPEN = env_bool("ROTATION_REUSE_DETECTION_FAIL_OPEN", True)
    ROTATION_MAINTENANCE_INTERVAL_SECONDS = env_int("ROTATION_MAINTENANCE_INTERVAL_SECONDS", 300)

    DEBUG = False
    TESTING = False


class DevelopmentConfig(BaseConfig):
    """Configuration tailored for local development.

    Notes
    -----
    Honors ``SQLALCHEMY_ECHO`` for verbose SQL logging when requested.
    """

    DEBUG = env_bool("APP_DEBUG", True)
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")


class TestingConfig(BaseConfig):
    """Configuration for automated test runs.

    Notes
    -----
    - Uses an in-memory SQLite database unless ``TEST_DATABASE_URL`` is set.
    - Leaves ``REDIS_URL`` unset; tests inject ``fakeredis`` clients.
    """

    TESTING = True
    DEBUG = False
    REDIS_URL = None
    DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    LOG_LEVEL = "WARNING"


class ProductionConfig(BaseConfig):
    """Configuration defaults for production deployments."""

    DEBUG = False
    SQLALCHEMY_ECHO = False


# Map names -> classes (simple, explicit)
CONFIG_MAP: Mapping[str, type[BaseConfig]] = {
    "development": DevelopmentConfig,
    "testing": TestingConfig,
    "production": ProductionConfig,
}


def get_config() -> type[BaseConfig]:
    """Return the configuration class inferred from ``APP_ENV``.

    Notes
    -----
    Falls back to :class:`DevelopmentConfig` when ``APP_ENV`` is unset or
    unknown.
    """
    name = os.getenv(ENV_VAR, "development").strip().lower()
    return CONFIG_MAP.get(name, DevelopmentConfig)


# --------------------------------------------------------------------------- #
# Rotation policy value object
# --------------------------------------------------------------------------- #


class ReuseRevocationScope(str, Enum):
    """Blast radius of the security response to a reused refresh token."""

    USER = "user"
    RISK_SCALED = "risk_scaled"


@dataclass(frozen=True, slots=True)
class RotationConfig:
    """
    Validated rotation policy.

    :param max_rotations_per_hour: Rotations allowed per user per clock hour.
    :param max_rotations_per_day: Rotations allowed per user per UTC day.
    :param token_family_ttl: Seconds a family, token mapping or reuse marker lives.
    :param rotation_grace_period: Seconds during which a repeated presentation
        of the same refresh token is a benign retry.
    :param suspicious_pattern_threshold: Reuse count above which the risk is critical.
    :param enable_reuse_detection: Consult the reuse detector during rotation.
    :param enable_audit_logging: Record audit entries at all.
    :param cache_max_size: Capacity of the in-process family cache.
    :param cache_ttl: Seconds an entry stays in the in-process family cache.
    :param audit_history_size: Recent audit entries kept per user.
    :param audit_retention_days: Lifetime of the recent audit list.
    :param breaker_failure_threshold: Consecutive failures that open a breaker.
    :param breaker_reset_timeout: Seconds an open breaker short-circuits calls.
    :param reuse_revocation_scope: Whether reuse always revokes user-wide.
    :param rate_limit_fail_open: Allow rotation when the limiter backend fails.
    :param reuse_detection_fail_open: Report "not reused" when the detector backend fails.
    :param maintenance_interval: Seconds between scheduled maintenance runs.
    """

    max_rotations_per_hour: int = 10
    max_rotations_per_day: int = 100
    token_family_ttl: int = 7 * 24 * 60 * 60
    rotation_grace_period: int = 30
    suspicious_pattern_threshold: int = 5
    enable_reuse_detection: bool = True
    enable_audit_logging: bool = True
    cache_max_size: int = 5000
    cache_ttl: int = 60
    audit_history_size: int = 100
    audit_retention_days: int = 90
    breaker_failure_threshold: int = 10
    breaker_reset_timeout: int = 60
    reuse_revocation_scope: ReuseRevocationScope = ReuseRevocationScope.USER
    rate_limit_fail_open: bool = True
    reuse_detection_fail_open: bool = True
    maintenance_interval: int = 300

    def __post_init__(self) -> None:
        positive = {
            "max_rotations_per_hour": self.max_rotations_per_hour,
            "max_rotations_per_day": self.max_rotations_per_day,
            "token_family_ttl": self.token_family_ttl,
            "suspicious_pattern_threshold": self.suspicious_pattern_threshold,
            "cache_max_size": self.cache_max_size,
            "cache_ttl": self.cache_ttl,
            "audit_history_size": self.audit_history_size,
            "audit_retention_days": self.audit_retention_days,
            "breaker_failure_threshold": self.breaker_failure_threshold,
            "breaker_reset_timeout": self.breaker_reset_timeout,
            "maintenance_interval": self.maintenance_interval,
        }
        for name, value in positive.items():
            if int(value) < 1:
                raise ValueError(f"{name} must be >= 1 (got {value!r})")
        if self.rotation_grace_period < 0:
            raise ValueError("rotation_grace_period must be >= 0")
        if self.rotation_grace_period >= self.token_family_ttl:
            raise ValueError("rotation_grace_period must be shorter than token_family_ttl")
        if self.max_rotations_per_day < self.max_rotations_per_hour:
            raise ValueError("max_rotations_per_day must be >= max_rotations_per_hour")
        # Accept plain strings coming from env/config files
        if not isinstance(self.reuse_revocation_scope, ReuseRevocationScope):
            object.__setattr__(
                self, "reuse_revocation_scope", ReuseRevocationScope(self.reuse_revocation_scope)
            )

    @classmethod
    def from_settings(cls, settings: type[BaseConfig] | Any) -> RotationConfig:
        """Build the policy from a settings class (or any object exposing ``ROTATION_*``)."""
        return cls(
            max_rotations_per_hour=settings.ROTATION_MAX_PER_HOUR,
            max_rotations_per_day=settings.ROTATION_MAX_PER_DAY,
            token_family_ttl=settings.ROTATION_FAMILY_TTL_SECONDS,
            rotation_grace_period=settings.ROTATION_GRACE_PERIOD_SECONDS,
            suspicious_pattern_threshold=settings.ROTATION_SUSPICIOUS_THRESHOLD,
            enable_reuse_detection=settings.ROTATION_ENABLE_REUSE_DETECTION,
            enable_audit_logging=settings.ROTATION_ENABLE_AUDIT,
            cache_max_size=settings.ROTATION_CACHE_MAX_SIZE,
            cache_ttl=settings.ROTATION_CACHE_TTL_SECONDS,
            audit_history_size=settings.ROTATION_AUDIT_HISTORY_SIZE,
            audit_retention_days=settings.ROTATION_AUDIT_RETENTION_DAYS,
            breaker_failure_threshold=settings.ROTATION_BREAKER_THRESHOLD,
            breaker_reset_timeout=settings.ROTATION_BREAKER_RESET_SECONDS,
            reuse_revocation_scope=ReuseRevocationScope(settings.ROTATION_REUSE_SCOPE),
            rate_limit_fail_open=settings.ROTATION_RATE_LIMIT_FAIL_OPEN,
            reuse_detection_fail_open=settings.ROTATION_REUSE_DETECTION_FAIL_OPEN,
            maintenance_interval=settings.ROTATION_MAINTENANCE_INTERVAL_SECONDS,
        )
