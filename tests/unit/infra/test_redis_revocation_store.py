# tests/unit/infra/test_redis_revocation_store.py
"""Unit tests for RedisRevocationStore using fakeredis."""

from __future__ import annotations

from datetime import timedelta

import pytest

from token_rotation.infra.redis.redis_revocation_store import RedisRevocationStore
from token_rotation.services._shared.policies.reuse import fingerprint_token
from token_rotation.services._shared.ports import RevocationMeta
from token_rotation.services.rotation.dto import RevocationReason


@pytest.fixture
def store(fake_redis, clock):
    return RedisRevocationStore(fake_redis, max_token_lifetime=3600, clock=clock)


def test_revoke_token_by_jti(store, fake_redis, clock):
    meta = RevocationMeta(
        token_id="jti-1",
        user_id="user-1",
        expires_at=clock() + timedelta(minutes=10),
        metadata={"family_id": "fam_1"},
    )

    store.revoke_token("raw-token", RevocationReason.TOKEN_ROTATION, meta)

    assert store.is_revoked("jti-1") is True
    assert store.is_revoked("jti-2") is False
    marker = store.reason_for("jti-1")
    assert marker["reason"] == "token_rotation"
    assert marker["user_id"] == "user-1"
    assert marker["metadata"] == {"family_id": "fam_1"}
    # Marker lives until the token would have expired anyway
    assert 0 < fake_redis.ttl("revoked:rt:jti-1") <= 600


def test_revoke_token_without_jti_uses_fingerprint(store):
    store.revoke_token("raw-token", RevocationReason.TOKEN_COMPROMISED, RevocationMeta())

    assert store.is_revoked(fingerprint_token("raw-token")) is True


def test_revoke_token_is_idempotent(store):
    meta = RevocationMeta(token_id="jti-1")
    store.revoke_token("t", RevocationReason.TOKEN_ROTATION, meta)
    store.revoke_token("t", RevocationReason.TOKEN_COMPROMISED, meta)

    assert store.reason_for("jti-1")["reason"] == "token_compromised"


def test_marker_ttl_is_bounded_by_token_lifetime(store, fake_redis, clock):
    meta = RevocationMeta(token_id="jti-1", expires_at=clock() + timedelta(days=30))

    store.revoke_token("t", RevocationReason.TOKEN_ROTATION, meta)

    assert fake_redis.ttl("revoked:rt:jti-1") <= 3600


def test_user_wide_revocation_uses_issue_time_cutoff(store, clock):
    issued_before = int(clock().timestamp())
    clock.advance(seconds=10)

    affected = store.revoke_user_tokens(
        "user-1", RevocationReason.SECURITY_BREACH, RevocationMeta(user_id="user-1")
    )

    assert affected == 0
    assert store.is_revoked("jti-1", user_id="user-1", issued_at=issued_before) is True
    assert store.is_revoked("jti-1", user_id="user-1", issued_at=issued_before + 11) is False
    assert store.is_revoked("jti-1", user_id="user-2", issued_at=issued_before) is False
    # Without issue time the cut-off cannot be applied
    assert store.is_revoked("jti-1", user_id="user-1") is False


def test_reason_for_unknown_token(store):
    assert store.reason_for("jti-missing") is None


def test_health_and_cleanup(store, fake_server):
    assert store.is_healthy() is True
    assert store.cleanup_expired_entries() == 0

    fake_server.connected = False
    assert store.is_healthy() is False
