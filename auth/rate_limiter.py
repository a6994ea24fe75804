"""Rate limiting for magic link requests.

Each request for a link counts against the email it targets, whether or not
an account exists. Fixed window anchored at the first request; the counter
expires on its own, so nothing ever resets it early.
"""

import logging

from auth.config import AuthConfig
from auth.database import normalize_email
from auth.exceptions import RateLimitedError
from auth.revocation_store import RevocationStore

logger = logging.getLogger(__name__)


class RateLimiter:
    """Per-email magic link request limit backed by the revocation store."""

    KEY_PREFIX = "magic-link-requests:"

    def __init__(self, store: RevocationStore, config: AuthConfig):
        self._store = store
        self._max_requests = config.magic_link_requests_per_window
        self._window_seconds = config.magic_link_request_window_seconds

    def _key(self, email: str) -> str:
        """Generate rate limit key for email (normalized to lowercase)."""
        return f"{self.KEY_PREFIX}{normalize_email(email)}"

    def check_rate_limit(self, email: str) -> None:
        """Count a request and reject it if the window's allowance is spent.

        Raises:
            RateLimitedError: If rate limit exceeded.
        """
        key = self._key(email)
        count = self._store.increment_with_ttl_on_first(key, self._window_seconds)

        if count > self._max_requests:
            retry_after = max(self._store.ttl(key), 1)
            logger.warning(f"Magic link requests limited for {normalize_email(email)} ({count} in window)")
            raise RateLimitedError(retry_after_seconds=retry_after)

    def get_remaining_requests(self, email: str) -> int:
        """Requests left in the current window."""
        current = self._store.get(self._key(email))
        if current is None:
            return self._max_requests
        return max(self._max_requests - int(current), 0)
