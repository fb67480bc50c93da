# tests/unit/core/test_config.py
from __future__ import annotations

import pytest

from token_rotation.core import config
from token_rotation.core.config import ReuseRevocationScope, RotationConfig


def test_defaults_are_valid():
    cfg = RotationConfig()

    assert cfg.max_rotations_per_hour == 10
    assert cfg.max_rotations_per_day == 100
    assert cfg.token_family_ttl == 7 * 24 * 60 * 60
    assert cfg.rotation_grace_period == 30
    assert cfg.reuse_revocation_scope is ReuseRevocationScope.USER


def test_scope_accepts_plain_strings():
    assert RotationConfig(reuse_revocation_scope="risk_scaled").reuse_revocation_scope is (
        ReuseRevocationScope.RISK_SCALED
    )


@pytest.mark.parametrize(
    "overrides",
    [
        {"max_rotations_per_hour": 0},
        {"cache_max_size": 0},
        {"rotation_grace_period": -1},
        {"rotation_grace_period": 60, "token_family_ttl": 60},
        {"max_rotations_per_hour": 20, "max_rotations_per_day": 10},
        {"reuse_revocation_scope": "everyone"},
    ],
)
def test_invalid_policies_are_rejected(overrides):
    with pytest.raises(ValueError):
        RotationConfig(**overrides)


def test_from_settings_maps_environment_knobs():
    class Settings(config.BaseConfig):
        ROTATION_MAX_PER_HOUR = 4
        ROTATION_MAX_PER_DAY = 40
        ROTATION_GRACE_PERIOD_SECONDS = 10
        ROTATION_REUSE_SCOPE = "risk_scaled"
        ROTATION_ENABLE_AUDIT = False

    cfg = RotationConfig.from_settings(Settings)

    assert cfg.max_rotations_per_hour == 4
    assert cfg.max_rotations_per_day == 40
    assert cfg.rotation_grace_period == 10
    assert cfg.reuse_revocation_scope is ReuseRevocationScope.RISK_SCALED
    assert cfg.enable_audit_logging is False


@pytest.mark.parametrize(
    ("raw", "expected"),
    [("1", True), ("yes", True), (" On ", True), ("0", False), ("off", False)],
)
def test_env_bool(monkeypatch, raw, expected):
    monkeypatch.setenv("ROTATION_FLAG", raw)

    assert config.env_bool("ROTATION_FLAG") is expected


def test_env_int_falls_back_on_blank(monkeypatch):
    monkeypatch.setenv("ROTATION_NUMBER", "  ")
    assert config.env_int("ROTATION_NUMBER", 7) == 7

    monkeypatch.setenv("ROTATION_NUMBER", "12")
    assert config.env_int("ROTATION_NUMBER", 7) == 12


@pytest.mark.parametrize(
    ("env", "expected"),
    [
        ("testing", config.TestingConfig),
        ("production", config.ProductionConfig),
        ("unknown", config.DevelopmentConfig),
    ],
)
def test_get_config_selects_by_app_env(monkeypatch, env, expected):
    monkeypatch.setenv(config.ENV_VAR, env)

    assert config.get_config() is expected
