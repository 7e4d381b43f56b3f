from __future__ import annotations

from redis import Redis
from redis.exceptions import RedisError

from src.shared.logging import get_logger, log_extra

log = get_logger(__name__)


class PaymentLedger:
    """Processed-payment markers kept in Redis.

    ``claim`` is an atomic SET NX, so of two concurrent deliveries of the same
    payment only one gets to mutate the order. When Redis is unreachable the
    ledger fails open and the order's own financial status is the only guard.
    """

    def __init__(self, redis: Redis, ttl_seconds: int = 7 * 24 * 3600, prefix: str = "webhook:payment:") -> None:
        self._redis = redis
        self._ttl = ttl_seconds
        self._prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self._prefix}{key}"

    def claim(self, key: str) -> bool:
        try:
            return bool(self._redis.set(self._key(key), "1", nx=True, ex=self._ttl))
        except RedisError:
            log.exception("payment ledger unavailable; continuing without dedup", extra=log_extra(ledger_key=key))
            return True

    def release(self, key: str) -> None:
        try:
            self._redis.delete(self._key(key))
        except RedisError:
            log.exception("payment ledger release failed", extra=log_extra(ledger_key=key))

    def ping(self) -> bool:
        return bool(self._redis.ping())
