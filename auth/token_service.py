"""Access/refresh token lifecycle.

Access tokens are stateless: signature + expiry is the whole check.

Refresh tokens are stateful. Each carries a random `jti`; the token is only
valid while `refresh-token:{jti}` exists in the revocation store and names the
same subject. Rotation is exchange-then-invalidate: the old jti is removed
with a single DEL whose count decides the winner, so two concurrent rotations
of one token produce exactly one new pair.

Per-jti lifecycle: Issued -> Active -> Rotated-out | Revoked | Expired.
Terminal states are absorbing; a deleted jti is never re-registered.
"""

import logging
from datetime import timedelta
from uuid import UUID, uuid4

from pydantic import ValidationError

from auth.audit import TokenAuditLog
from auth.codec import SigningCodec
from auth.config import AuthConfig
from auth.exceptions import (
    DatabaseUnavailableError,
    InvalidAccessTokenError,
    InvalidRefreshTokenError,
    MalformedTokenError,
    OwnerMismatchError,
    TokenError,
    TokenNotFoundError,
    WrongTokenKindError,
)
from auth.revocation_store import RevocationStore
from auth.types import AccessTokenPayload, RefreshTokenPayload, TokenKind, TokenPair
from utils.timezone import expires_after

logger = logging.getLogger(__name__)


class TokenService:
    """Issues, verifies, rotates and revokes bearer tokens.

    TokenService exclusively owns the `refresh-token:` and
    `user-refresh-tokens:` prefixes of the revocation store.
    """

    TOKEN_KEY_PREFIX = "refresh-token:"
    FAMILY_KEY_PREFIX = "user-refresh-tokens:"

    def __init__(
        self,
        config: AuthConfig,
        codec: SigningCodec,
        store: RevocationStore,
        audit_log: TokenAuditLog,
    ):
        self._config = config
        self._codec = codec
        self._store = store
        self._audit_log = audit_log
        self._access_ttl = timedelta(seconds=config.access_token_ttl_seconds)
        self._refresh_ttl = timedelta(seconds=config.refresh_token_ttl_seconds)

    def _token_key(self, token_id: str) -> str:
        return f"{self.TOKEN_KEY_PREFIX}{token_id}"

    def _family_key(self, subject_id: UUID) -> str:
        return f"{self.FAMILY_KEY_PREFIX}{subject_id}"

    # ------------------------------------------------------------------
    # Issuance
    # ------------------------------------------------------------------

    def issue_access_token(self, subject_id: UUID, email: str) -> str:
        """Sign a short-lived access token. No I/O."""
        return self._codec.sign(
            {"sub": str(subject_id), "email": email, "type": TokenKind.ACCESS.value},
            self._access_ttl,
        )

    def issue_refresh_token(self, subject_id: UUID, email: str) -> str:
        """Sign a refresh token, then register it; return only once registered.

        Raises:
            StoreUnavailableError: Registration failed. The signed token is
                discarded so nothing unregistered ever reaches a caller.
        """
        token_id = str(uuid4())
        token = self._codec.sign(
            {
                "sub": str(subject_id),
                "email": email,
                "type": TokenKind.REFRESH.value,
                "jti": token_id,
            },
            self._refresh_ttl,
        )

        ttl_seconds = self._config.refresh_token_ttl_seconds
        self._store.set_with_ttl(self._token_key(token_id), str(subject_id), ttl_seconds)
        # Family set TTL slides with the newest member so it never outlives them all
        self._store.add_to_set(self._family_key(subject_id), token_id, ttl_seconds=ttl_seconds)
        self._audit_log.record_refresh_token(token_id, subject_id, expires_after(self._refresh_ttl))

        logger.info(f"Refresh token issued for subject {subject_id}")
        return token

    def issue_token_pair(self, subject_id: UUID, email: str) -> TokenPair:
        """Access + refresh token. No shared transaction: access tokens are stateless."""
        return TokenPair(
            access_token=self.issue_access_token(subject_id, email),
            refresh_token=self.issue_refresh_token(subject_id, email),
        )

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def _decode_access(self, token: str) -> AccessTokenPayload:
        claims = self._codec.verify(token)
        try:
            payload = AccessTokenPayload.model_validate(claims)
        except ValidationError as e:
            raise MalformedTokenError("Access token claims invalid") from e
        if payload.kind is not TokenKind.ACCESS:
            raise WrongTokenKindError(f"Expected access token, got {payload.kind.value}")
        return payload

    def _decode_refresh(self, token: str) -> RefreshTokenPayload:
        claims = self._codec.verify(token)
        if claims.get("type") != TokenKind.REFRESH.value:
            raise WrongTokenKindError("Expected refresh token")
        try:
            return RefreshTokenPayload.model_validate(claims)
        except ValidationError as e:
            raise MalformedTokenError("Refresh token claims invalid") from e

    def verify_access_token(self, token: str) -> AccessTokenPayload:
        """Authorize a request. Stateless.

        Raises:
            InvalidAccessTokenError: Malformed, bad signature, expired, or not
                an access token. The specific cause is chained, never exposed.
        """
        try:
            return self._decode_access(token)
        except TokenError as e:
            logger.info(f"Access token rejected: {e.reason}")
            raise InvalidAccessTokenError() from e

    def _claim_refresh_token(self, token: str) -> RefreshTokenPayload:
        """Verify a refresh token and atomically take it out of circulation.

        Lookup and ownership checks happen before any mutation. The DEL is the
        linearization point: if another request deleted the key first, this
        one fails as not found.
        """
        payload = self._decode_refresh(token)
        token_key = self._token_key(payload.token_id)

        stored_owner = self._store.get(token_key)
        if stored_owner is None:
            raise TokenNotFoundError("Refresh token not registered")
        if stored_owner != str(payload.subject_id):
            raise OwnerMismatchError("Refresh token owner mismatch")

        if not self._store.atomic_delete(token_key):
            raise TokenNotFoundError("Refresh token already consumed")

        self._store.remove_from_set(self._family_key(payload.subject_id), payload.token_id)
        return payload

    def _audit_revoked(self, token_id: str) -> None:
        """Flag the audit row once the token is already gone from the store.

        The store is authoritative and the DEL cannot be undone, so a failed
        audit write is logged rather than failing the request.
        """
        try:
            self._audit_log.mark_refresh_token_revoked(token_id)
        except DatabaseUnavailableError:
            logger.error(f"Audit row for revoked refresh token {token_id} not updated")

    def rotate_refresh_token(self, token: str) -> TokenPair:
        """Exchange a live refresh token for a new pair, invalidating the old one.

        Raises:
            InvalidRefreshTokenError: Any verification, lookup, ownership, or
                race failure. Nothing is mutated unless the old token was
                successfully claimed.
            StoreUnavailableError: Revocation store unreachable.
            DatabaseUnavailableError: The new token could not be recorded.
                The old token is already consumed; the user signs in again.
        """
        try:
            payload = self._claim_refresh_token(token)
        except TokenError as e:
            logger.info(f"Refresh token rotation rejected: {e.reason}")
            raise InvalidRefreshTokenError() from e

        pair = self.issue_token_pair(payload.subject_id, payload.email)
        self._audit_revoked(payload.token_id)
        logger.info(f"Refresh token rotated for subject {payload.subject_id}")
        return pair

    def revoke_refresh_token(self, token: str) -> UUID:
        """Revoke one refresh token (logout from one device).

        Returns:
            The subject the token belonged to.

        Raises:
            InvalidRefreshTokenError: Token invalid or already gone.
        """
        try:
            payload = self._claim_refresh_token(token)
        except TokenError as e:
            logger.info(f"Refresh token revocation rejected: {e.reason}")
            raise InvalidRefreshTokenError() from e

        self._audit_revoked(payload.token_id)
        logger.info(f"Refresh token revoked for subject {payload.subject_id}")
        return payload.subject_id

    def revoke_all_for_subject(self, subject_id: UUID) -> int:
        """Revoke every refresh token the subject had at call time.

        Best effort: the family set is read, then the snapshot's tokens are
        deleted in one command and removed from the set in another. A token
        registered between the read and the deletes is not in the snapshot
        and survives, still listed in the family, so a later call revokes it.
        Callers should treat this as "log out everything that existed when
        I asked".

        Returns:
            Number of live refresh tokens that were revoked.
        """
        family_key = self._family_key(subject_id)
        token_ids = self._store.members_of(family_key)
        if not token_ids:
            return 0

        revoked = self._store.delete_many([self._token_key(token_id) for token_id in token_ids])
        self._store.remove_many_from_set(family_key, token_ids)

        try:
            self._audit_log.mark_refresh_tokens_revoked(subject_id, token_ids)
        except DatabaseUnavailableError:
            logger.error(f"Audit rows for revoked refresh tokens of subject {subject_id} not updated")
        logger.info(f"Revoked {revoked} refresh token(s) for subject {subject_id}")
        return revoked
