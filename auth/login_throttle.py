"""Failed password attempt throttling.

Fixed window anchored at the first failure: the counter's TTL is attached
when it is created and later failures never push it out. Counters are
advisory; losing them on a store restart just means the next attempt is
allowed.
"""

import logging

from auth.config import AuthConfig
from auth.database import normalize_email
from auth.revocation_store import RevocationStore

logger = logging.getLogger(__name__)


class LoginThrottle:
    """Per-email failed login counter backed by the revocation store."""

    KEY_PREFIX = "failed-attempts:"

    def __init__(self, store: RevocationStore, config: AuthConfig):
        self._store = store
        self._max_attempts = config.max_failed_attempts
        self._window_seconds = config.failed_attempt_window_seconds

    def _key(self, identifier: str) -> str:
        """Generate counter key for identifier (normalized to lowercase)."""
        return f"{self.KEY_PREFIX}{normalize_email(identifier)}"

    def failure_count(self, identifier: str) -> int:
        current = self._store.get(self._key(identifier))
        return int(current) if current is not None else 0

    def may_attempt(self, identifier: str) -> bool:
        """True while fewer than max_failed_attempts failures are recorded."""
        return self.failure_count(identifier) < self._max_attempts

    def record_failure(self, identifier: str) -> int:
        """Count a failed attempt. Returns the new count."""
        count = self._store.increment_with_ttl_on_first(self._key(identifier), self._window_seconds)
        if count == self._max_attempts:
            logger.warning(f"Login locked for {normalize_email(identifier)} after {count} failures")
        return count

    def clear(self, identifier: str) -> None:
        """Reset after any successful credential verification."""
        self._store.atomic_delete(self._key(identifier))

    def retry_after_seconds(self, identifier: str) -> int:
        """Seconds until the window closes (at least 1)."""
        ttl = self._store.ttl(self._key(identifier))
        return max(ttl, 1)
