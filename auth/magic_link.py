"""Passwordless login via single-use, time-boxed email links."""

import html
import logging
import secrets
from datetime import timedelta
from urllib.parse import urlencode

from pydantic import ValidationError

from auth.audit import TokenAuditLog
from auth.codec import SigningCodec
from auth.config import AuthConfig
from auth.database import AuthDatabase, normalize_email
from auth.exceptions import (
    DatabaseUnavailableError,
    DeliveryFailedError,
    InvalidMagicLinkError,
    MalformedTokenError,
    OwnerMismatchError,
    TokenError,
    TokenNotFoundError,
)
from auth.revocation_store import RevocationStore
from auth.types import AuthProvider, MagicLinkIdentity, MagicLinkPayload
from clients.email_client import EmailGatewayClient, EmailGatewayError
from utils.timezone import expires_after

logger = logging.getLogger(__name__)

# 32 random bytes -> 64 hex chars, 256 bits of entropy
_LINK_ID_BYTES = 32


class MagicLinkService:
    """Issues and consumes magic links.

    Exclusively owns the `magic-link:` prefix of the revocation store. The
    store entry is the single-use guard: consumption is one GETDEL, so a
    replayed link can succeed at most once no matter how requests interleave.
    """

    KEY_PREFIX = "magic-link:"
    VERIFY_PATH = "/auth/magic-link/verify"

    def __init__(
        self,
        config: AuthConfig,
        codec: SigningCodec,
        store: RevocationStore,
        audit_log: TokenAuditLog,
        auth_db: AuthDatabase,
        email_client: EmailGatewayClient,
    ):
        self._config = config
        self._codec = codec
        self._store = store
        self._audit_log = audit_log
        self._auth_db = auth_db
        self._email_client = email_client
        self._ttl = timedelta(seconds=config.magic_link_ttl_seconds)

    def _key(self, link_id: str) -> str:
        """Generate Valkey key for a magic link id."""
        return f"{self.KEY_PREFIX}{link_id}"

    def build_link(self, token: str) -> str:
        """Absolute URL the user clicks."""
        base = self._config.app_base_url.rstrip("/")
        return f"{base}{self.VERIFY_PATH}?{urlencode({'token': token})}"

    def _render_email(self, link: str) -> str:
        safe_link = html.escape(link, quote=True)
        app_name = html.escape(self._config.app_name)
        return (
            f"<h2>Log in to {app_name}</h2>"
            f"<p>Click the button below to log in. This link will expire in "
            f"{self._config.magic_link_expiry_minutes} minutes and can be used once.</p>"
            f'<p><a href="{safe_link}">Log In</a></p>'
            f"<p>If you didn't request this link, you can safely ignore this email.</p>"
            f"<p>Or copy this link: {safe_link}</p>"
        )

    def send(self, email: str) -> None:
        """Issue a magic link and email it.

        Flow:
        1. Find or lazily create the user (first-touch provisioning)
        2. Generate link id and sign token
        3. Register link id in the store (TTL = link lifetime)
        4. Record audit row
        5. Send email

        Raises:
            DeliveryFailedError: Email gateway rejected the message. The
                stored link is left to expire on its own.
            StoreUnavailableError: Revocation store unreachable.
        """
        email = normalize_email(email)
        user, created = self._auth_db.get_or_create_user(email, AuthProvider.MAGIC_LINK)
        if created:
            logger.info(f"Provisioned user {user.id} from magic link request")

        link_id = secrets.token_hex(_LINK_ID_BYTES)
        token = self._codec.sign(
            {"sub": str(user.id), "email": user.email, "jti": link_id},
            self._ttl,
        )

        self._store.set_with_ttl(self._key(link_id), str(user.id), self._config.magic_link_ttl_seconds)
        self._audit_log.record_magic_link(link_id, user.id, expires_after(self._ttl))

        try:
            self._email_client.send_email(
                to=user.email,
                subject=f"Your {self._config.app_name} login link",
                html_body=self._render_email(self.build_link(token)),
            )
        except EmailGatewayError as e:
            logger.error(f"Magic link delivery to {user.email} failed: {e}")
            raise DeliveryFailedError("Could not send magic link email") from e

        logger.info(f"Magic link sent to {user.email}")

    def _claim(self, token: str) -> MagicLinkPayload:
        claims = self._codec.verify(token)
        try:
            payload = MagicLinkPayload.model_validate(claims)
        except ValidationError as e:
            raise MalformedTokenError("Magic link claims invalid") from e

        stored_owner = self._store.take(self._key(payload.link_id))
        if stored_owner is None:
            raise TokenNotFoundError("Magic link not registered or already used")
        if stored_owner != str(payload.subject_id):
            # Entry is already gone; a mismatched link stays dead
            raise OwnerMismatchError("Magic link owner mismatch")
        return payload

    def consume(self, token: str) -> MagicLinkIdentity:
        """Consume a magic link exactly once.

        Raises:
            InvalidMagicLinkError: Bad signature, expired, malformed, unknown,
                already consumed, or owner mismatch (indistinguishable).
            StoreUnavailableError: Revocation store unreachable.

        The link is spent once GETDEL returns it, so Postgres bookkeeping after
        that point is logged on failure instead of failing the login.
        """
        try:
            payload = self._claim(token)
        except TokenError as e:
            logger.info(f"Magic link rejected: {e.reason}")
            raise InvalidMagicLinkError() from e

        try:
            self._audit_log.mark_magic_link_used(payload.link_id)
        except DatabaseUnavailableError:
            logger.error(f"Audit row for consumed magic link of subject {payload.subject_id} not updated")
        try:
            self._auth_db.update_email_verified(payload.subject_id, True)
        except DatabaseUnavailableError:
            logger.error(f"Email verified flag for subject {payload.subject_id} not updated")

        logger.info(f"Magic link consumed for subject {payload.subject_id}")
        return MagicLinkIdentity(subject_id=payload.subject_id, email=payload.email)
