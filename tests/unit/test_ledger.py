"""Unit tests for the Redis payment ledger."""

from __future__ import annotations

from unittest.mock import MagicMock

from redis.exceptions import ConnectionError as RedisConnectionError

from src.infrastructure.redis.idempotency import PaymentLedger


def test_claim_is_set_nx_with_ttl() -> None:
    redis = MagicMock()
    redis.set.return_value = True
    ledger = PaymentLedger(redis, ttl_seconds=60)

    assert ledger.claim("id:pay_1") is True
    redis.set.assert_called_once_with("webhook:payment:id:pay_1", "1", nx=True, ex=60)


def test_claim_already_held() -> None:
    redis = MagicMock()
    redis.set.return_value = None
    assert PaymentLedger(redis).claim("id:pay_1") is False


def test_claim_fails_open_when_redis_is_down() -> None:
    redis = MagicMock()
    redis.set.side_effect = RedisConnectionError("connection refused")
    assert PaymentLedger(redis).claim("id:pay_1") is True


def test_release_deletes_key() -> None:
    redis = MagicMock()
    PaymentLedger(redis, prefix="p:").release("k")
    redis.delete.assert_called_once_with("p:k")


def test_release_tolerates_redis_errors() -> None:
    redis = MagicMock()
    redis.delete.side_effect = RedisConnectionError("connection refused")
    PaymentLedger(redis).release("k")
