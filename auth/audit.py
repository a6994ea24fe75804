"""
Durable forensic trail of refresh token and magic link lifecycle.

Append/update-only from this subsystem: rows are inserted on issuance and a
single field is flipped on revocation or consumption. Nothing here is ever
read back to make an authorization decision; the revocation store is the
source of truth.
"""

import logging
from datetime import datetime
from uuid import UUID

from clients.postgres_client import PostgresClient
from auth.database import database_guard
from utils.timezone import now_utc

logger = logging.getLogger(__name__)


class TokenAuditLog:
    """Writes to the refresh_tokens and magic_links audit tables.

    Every method raises DatabaseUnavailableError if Postgres fails.
    """

    def __init__(self, postgres: PostgresClient):
        self._db = postgres

    def record_refresh_token(self, token_id: str, user_id: UUID, expires_at: datetime) -> None:
        """Append issuance row for a refresh token."""
        with database_guard("record_refresh_token"):
            self._db.execute_returning(
                """INSERT INTO refresh_tokens (token_id, user_id, expires_at, revoked, created_at)
                   VALUES (%s, %s, %s, false, %s)
                   RETURNING token_id""",
                (token_id, user_id, expires_at, now_utc()),
            )

    def mark_refresh_token_revoked(self, token_id: str) -> None:
        """Flag one refresh token revoked (rotation or logout)."""
        with database_guard("mark_refresh_token_revoked"):
            rows = self._db.execute_returning(
                """UPDATE refresh_tokens
                   SET revoked = true, revoked_at = %s
                   WHERE token_id = %s
                   RETURNING token_id""",
                (now_utc(), token_id),
            )
        if not rows:
            logger.warning("Refresh token revoked with no matching audit row")

    def mark_refresh_tokens_revoked(self, user_id: UUID, token_ids: list[str]) -> int:
        """Flag the given still-active refresh tokens of a user revoked. Returns rows updated."""
        with database_guard("mark_refresh_tokens_revoked"):
            rows = self._db.execute_returning(
                """UPDATE refresh_tokens
                   SET revoked = true, revoked_at = %s
                   WHERE user_id = %s AND token_id = ANY(%s) AND revoked = false
                   RETURNING token_id""",
                (now_utc(), user_id, list(token_ids)),
            )
        return len(rows)

    def record_magic_link(self, link_id: str, user_id: UUID, expires_at: datetime) -> None:
        """Append issuance row for a magic link."""
        with database_guard("record_magic_link"):
            self._db.execute_returning(
                """INSERT INTO magic_links (link_id, user_id, expires_at, used, created_at)
                   VALUES (%s, %s, %s, false, %s)
                   RETURNING link_id""",
                (link_id, user_id, expires_at, now_utc()),
            )

    def mark_magic_link_used(self, link_id: str) -> None:
        """Flag a magic link consumed."""
        with database_guard("mark_magic_link_used"):
            self._db.execute_returning(
                """UPDATE magic_links
                   SET used = true, used_at = %s
                   WHERE link_id = %s
                   RETURNING link_id""",
                (now_utc(), link_id),
            )
