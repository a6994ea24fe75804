"""
Valkey (Redis-compatible) client for token revocation state and counters.

Simple wrapper around redis-py. Connection URL from Vault.
Fail-fast: raises on connection failure, never returns fallback values.
Every command runs under a bounded socket timeout.
"""

import logging
from typing import Set

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        client.set("key", "value", expire_seconds=300)
        value = client.getdel("key")  # Atomic read-and-consume
    """

    def __init__(self, url: str, socket_timeout: float = 5.0):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)
            socket_timeout: Upper bound in seconds for connect and each command

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        # Verify connectivity immediately (fail-fast)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        """
        Health check.

        Returns True if Valkey responds.
        Raises redis.ConnectionError if unreachable.
        """
        self._client.ping()
        return True

    def get(self, key: str) -> str | None:
        """
        Get value by key.

        Returns None if key doesn't exist (not an error).
        """
        return self._client.get(key)

    def set(self, key: str, value: str, expire_seconds: int | None = None) -> None:
        """
        Set key to value, optionally with expiration.

        Args:
            key: Key to set
            value: Value to store
            expire_seconds: TTL in seconds (None for no expiration)
        """
        if expire_seconds is not None:
            self._client.set(key, value, ex=expire_seconds)
        else:
            self._client.set(key, value)

    def delete(self, *keys: str) -> int:
        """
        Delete one or more keys in a single command.

        Returns the number of keys that existed and were removed. For a
        single key this is the atomic "did I delete it" signal.
        """
        if not keys:
            return 0
        return self._client.delete(*keys)

    def getdel(self, key: str) -> str | None:
        """
        Atomically get and delete key (GETDEL, Valkey/Redis 6.2+).

        At most one caller ever observes the value.
        """
        return self._client.getdel(key)

    def ttl(self, key: str) -> int:
        """
        Get remaining TTL in seconds.

        Returns:
            -2 if key doesn't exist
            -1 if key has no expiration
            Positive int: remaining seconds
        """
        return self._client.ttl(key)

    def incr_with_expiry_on_create(self, key: str, expire_seconds: int) -> int:
        """
        Increment a counter, attaching a TTL only when the counter is created.

        Runs `SET key 0 EX ttl NX` and `INCR key` in one MULTI/EXEC, so the
        expiry is anchored to the first increment and later increments keep
        the original deadline (INCR preserves TTL).
        """
        pipe = self._client.pipeline(transaction=True)
        pipe.set(key, 0, ex=expire_seconds, nx=True)
        pipe.incr(key)
        _, value = pipe.execute()
        return int(value)

    def sadd(self, key: str, member: str, expire_seconds: int | None = None) -> None:
        """
        Add member to set, optionally (re)setting the set's TTL.

        Both commands run in one MULTI/EXEC.
        """
        pipe = self._client.pipeline(transaction=True)
        pipe.sadd(key, member)
        if expire_seconds is not None:
            pipe.expire(key, expire_seconds)
        pipe.execute()

    def srem(self, key: str, *members: str) -> int:
        """Remove members from set in one command. Returns how many were members."""
        if not members:
            return 0
        return self._client.srem(key, *members)

    def smembers(self, key: str) -> Set[str]:
        """Members of set (empty set if key doesn't exist)."""
        return self._client.smembers(key)

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
