"""Authentication service - orchestrates the three login flows and token lifecycle."""

import logging
from uuid import UUID

from auth.credentials import Credential, MagicLinkCredential, OAuthCredential, PasswordCredential
from auth.database import AuthDatabase, normalize_email
from auth.exceptions import (
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidMagicLinkError,
    RateLimitedError,
)
from auth.login_throttle import LoginThrottle
from auth.magic_link import MagicLinkService
from auth.passwords import PasswordVerifier
from auth.rate_limiter import RateLimiter
from auth.token_service import TokenService
from auth.types import AccessTokenPayload, AuthenticatedUser, AuthProvider, TokenPair, User

logger = logging.getLogger(__name__)


class AuthService:
    """Orchestrates authentication.

    Handles:
    - Registration
    - Login by password, OAuth identity, or magic link
    - Token refresh and logout (one device or all)
    - Profile update
    - Password change and account deletion (both revoke all refresh tokens)
    """

    def __init__(
        self,
        auth_db: AuthDatabase,
        token_service: TokenService,
        magic_link_service: MagicLinkService,
        login_throttle: LoginThrottle,
        rate_limiter: RateLimiter,
        password_verifier: PasswordVerifier,
    ):
        self._auth_db = auth_db
        self._tokens = token_service
        self._magic_links = magic_link_service
        self._throttle = login_throttle
        self._rate_limiter = rate_limiter
        self._passwords = password_verifier

    def _authenticated(self, user: User) -> AuthenticatedUser:
        return AuthenticatedUser(
            user=user,
            tokens=self._tokens.issue_token_pair(user.id, user.email),
        )

    def register(self, email: str, password: str, name: str | None = None) -> AuthenticatedUser:
        """Create a password account and log it in.

        Raises:
            EmailAlreadyRegisteredError: Email already has an account.
        """
        email = normalize_email(email)
        if self._auth_db.get_user_by_email(email) is not None:
            raise EmailAlreadyRegisteredError("Email already registered")

        user = self._auth_db.create_user(
            email,
            AuthProvider.LOCAL,
            password_hash=self._passwords.hash(password),
            name=name,
        )
        logger.info(f"Registered user {user.id}")
        return self._authenticated(user)

    def authenticate(self, credential: Credential) -> AuthenticatedUser:
        """Verify any supported credential and issue a token pair.

        Raises:
            InvalidCredentialsError: Password flow rejected.
            RateLimitedError: Too many failed password attempts.
            InvalidMagicLinkError: Magic link flow rejected.
        """
        if isinstance(credential, PasswordCredential):
            user = self._verify_password(credential)
        elif isinstance(credential, OAuthCredential):
            user = self._verify_oauth(credential)
        elif isinstance(credential, MagicLinkCredential):
            user = self._verify_magic_link(credential)
        else:
            raise TypeError(f"Unsupported credential type: {type(credential).__name__}")
        return self._authenticated(user)

    def _verify_password(self, credential: PasswordCredential) -> User:
        """Throttle check, constant-work verification, then counter bookkeeping."""
        email = normalize_email(credential.email)

        if not self._throttle.may_attempt(email):
            raise RateLimitedError(retry_after_seconds=self._throttle.retry_after_seconds(email))

        user = self._auth_db.get_user_by_email(email)
        password_hash = self._auth_db.get_password_hash(user.id) if user else None

        if password_hash is None:
            valid = self._passwords.verify_dummy(credential.password)
        else:
            valid = self._passwords.verify(password_hash, credential.password)

        if not valid:
            count = self._throttle.record_failure(email)
            logger.info(f"Password login failed for {email} ({count} recent failures)")
            raise InvalidCredentialsError()

        self._throttle.clear(email)
        return user

    def _verify_oauth(self, credential: OAuthCredential) -> User:
        """Find by provider identity or email, linking or creating as needed."""
        user = self._auth_db.get_user_by_provider_id(credential.provider, credential.provider_id)
        if user is None:
            user = self._auth_db.get_user_by_email(normalize_email(credential.email))

        if user is None:
            user = self._auth_db.create_user(
                normalize_email(credential.email),
                credential.provider,
                name=credential.name,
                avatar=credential.avatar,
                provider_id=credential.provider_id,
                email_verified=True,
            )
            logger.info(f"Created user {user.id} from {credential.provider.value} login")
        elif user.provider is not credential.provider:
            user = self._auth_db.link_provider(
                user.id, credential.provider, credential.provider_id, avatar=credential.avatar
            )
            logger.info(f"Linked {credential.provider.value} identity to user {user.id}")
        return user

    def _verify_magic_link(self, credential: MagicLinkCredential) -> User:
        identity = self._magic_links.consume(credential.token)
        user = self._auth_db.get_user_by_id(identity.subject_id)
        if user is None:
            logger.info(f"Magic link consumed for deleted subject {identity.subject_id}")
            raise InvalidMagicLinkError()
        return user

    def request_magic_link(self, email: str) -> None:
        """Email a magic link (provisions the user on first touch).

        Raises:
            RateLimitedError: Too many links requested for this email.
            DeliveryFailedError: Email could not be sent.
        """
        self._rate_limiter.check_rate_limit(email)
        self._magic_links.send(email)

    def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate a refresh token.

        Raises:
            InvalidRefreshTokenError: Token invalid, revoked, or already used.
        """
        return self._tokens.rotate_refresh_token(refresh_token)

    def verify_access_token(self, access_token: str) -> AccessTokenPayload:
        """Authorize an API request.

        Raises:
            InvalidAccessTokenError: Token invalid or expired.
        """
        return self._tokens.verify_access_token(access_token)

    def get_user(self, user_id: UUID) -> User | None:
        return self._auth_db.get_user_by_id(user_id)

    def update_profile(
        self, user_id: UUID, name: str | None = None, avatar: str | None = None
    ) -> User | None:
        """Change display name and/or avatar. Returns None if the user is gone."""
        user = self._auth_db.update_profile(user_id, name=name, avatar=avatar)
        if user is not None:
            logger.info(f"Updated profile for user {user.id}")
        return user

    def logout(self, refresh_token: str) -> None:
        """Revoke one refresh token.

        Raises:
            InvalidRefreshTokenError: Token invalid or already revoked.
        """
        self._tokens.revoke_refresh_token(refresh_token)

    def logout_all(self, user_id: UUID) -> int:
        """Revoke every refresh token that exists at call time."""
        return self._tokens.revoke_all_for_subject(user_id)

    def change_password(self, user_id: UUID, current_password: str, new_password: str) -> None:
        """Replace the password and log out every device.

        Raises:
            InvalidCredentialsError: Current password wrong, or account has none.
        """
        password_hash = self._auth_db.get_password_hash(user_id)
        if password_hash is None or not self._passwords.verify(password_hash, current_password):
            raise InvalidCredentialsError("Current password is incorrect")

        self._auth_db.update_password_hash(user_id, self._passwords.hash(new_password))
        revoked = self._tokens.revoke_all_for_subject(user_id)
        logger.info(f"Password changed for user {user_id}; revoked {revoked} refresh token(s)")

    def delete_account(self, user_id: UUID) -> bool:
        """Revoke all tokens, then delete the user.

        Returns:
            True if user was found and deleted.
        """
        self._tokens.revoke_all_for_subject(user_id)
        deleted = self._auth_db.delete_user(user_id)
        if deleted:
            logger.info(f"Deleted user {user_id}")
        return deleted
