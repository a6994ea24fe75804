"""Authentication: token lifecycle, magic links, and login throttling."""

from auth.exceptions import (
    AuthError,
    InvalidTokenError,
    InvalidAccessTokenError,
    InvalidRefreshTokenError,
    InvalidMagicLinkError,
    InvalidCredentialsError,
    EmailAlreadyRegisteredError,
    RateLimitedError,
    StoreUnavailableError,
    DeliveryFailedError,
    DatabaseUnavailableError,
)
from auth.types import (
    User,
    AuthProvider,
    TokenKind,
    TokenPair,
    AccessTokenPayload,
    RefreshTokenPayload,
    MagicLinkPayload,
    MagicLinkIdentity,
    AuthenticatedUser,
)
from auth.config import AuthConfig
from auth.codec import SigningCodec
from auth.revocation_store import RevocationStore
from auth.audit import TokenAuditLog
from auth.database import AuthDatabase
from auth.token_service import TokenService
from auth.magic_link import MagicLinkService
from auth.login_throttle import LoginThrottle
from auth.rate_limiter import RateLimiter
from auth.passwords import PasswordVerifier
from auth.credentials import Credential, PasswordCredential, OAuthCredential, MagicLinkCredential
from auth.service import AuthService
from auth.security_middleware import BearerAuthMiddleware
from auth.api import create_auth_router
from auth.factory import build_auth_service, build_services
