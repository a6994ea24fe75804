"""Revocation store: the authoritative "is this token still valid" state.

Thin adapter over ValkeyClient exposing only the per-key atomic operations the
token, magic link, and throttle services rely on. Any Valkey failure (timeout,
connection loss, protocol error) surfaces as StoreUnavailableError so callers
never hang and never mistake an outage for a missing key.

Keyspace is partitioned by prefix; each service owns exactly one set of
prefixes and never reads another's:

    refresh-token:{jti}          -> subject id      (TokenService)
    user-refresh-tokens:{sub}    -> set of jti      (TokenService)
    magic-link:{link_id}         -> subject id      (MagicLinkService)
    failed-attempts:{email}      -> counter         (LoginThrottle)
    magic-link-requests:{email}  -> counter         (RateLimiter)
"""

import logging
from contextlib import contextmanager

import redis

from auth.exceptions import StoreUnavailableError
from clients.valkey_client import ValkeyClient

logger = logging.getLogger(__name__)


class RevocationStore:
    """TTL-capable key-value operations with store failures made explicit."""

    def __init__(self, valkey: ValkeyClient):
        self._valkey = valkey

    @contextmanager
    def _guard(self, operation: str, key: str):
        try:
            yield
        except redis.RedisError as e:
            logger.error(f"Revocation store {operation} failed for {key.split(':', 1)[0]}: {e}")
            raise StoreUnavailableError(f"Revocation store unavailable during {operation}") from e

    def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._guard("set", key):
            self._valkey.set(key, value, expire_seconds=ttl_seconds)

    def get(self, key: str) -> str | None:
        with self._guard("get", key):
            return self._valkey.get(key)

    def atomic_delete(self, key: str) -> bool:
        """Delete key; True only for the single caller that actually removed it."""
        with self._guard("delete", key):
            return self._valkey.delete(key) == 1

    def take(self, key: str) -> str | None:
        """Atomically fetch and delete. Concurrent callers: at most one gets the value."""
        with self._guard("take", key):
            return self._valkey.getdel(key)

    def delete_many(self, keys: list[str]) -> int:
        """Delete keys in a single command, returning how many existed."""
        with self._guard("delete_many", keys[0] if keys else ""):
            return self._valkey.delete(*keys)

    def add_to_set(self, key: str, member: str, ttl_seconds: int | None = None) -> None:
        with self._guard("sadd", key):
            self._valkey.sadd(key, member, expire_seconds=ttl_seconds)

    def remove_from_set(self, key: str, member: str) -> bool:
        with self._guard("srem", key):
            return self._valkey.srem(key, member) == 1

    def remove_many_from_set(self, key: str, members: list[str]) -> int:
        """Remove members in a single command. An emptied set disappears."""
        with self._guard("srem", key):
            return self._valkey.srem(key, *members)

    def members_of(self, key: str) -> list[str]:
        with self._guard("smembers", key):
            return sorted(self._valkey.smembers(key))

    def increment_with_ttl_on_first(self, key: str, ttl_seconds: int) -> int:
        """Atomic increment; the TTL is attached only when the counter is created."""
        with self._guard("incr", key):
            return self._valkey.incr_with_expiry_on_create(key, ttl_seconds)

    def ttl(self, key: str) -> int:
        with self._guard("ttl", key):
            return self._valkey.ttl(key)
