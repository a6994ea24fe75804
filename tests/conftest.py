"""Shared test fixtures for authgate test suite."""

from unittest.mock import Mock, patch
from uuid import UUID

import fakeredis
import pytest

from auth.audit import TokenAuditLog
from auth.codec import SigningCodec
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.login_throttle import LoginThrottle
from auth.magic_link import MagicLinkService
from auth.rate_limiter import RateLimiter
from auth.revocation_store import RevocationStore
from auth.token_service import TokenService
from auth.types import AuthProvider, User
from clients.email_client import EmailGatewayClient
from clients.valkey_client import ValkeyClient
from utils.timezone import now_utc


# =============================================================================
# TEST USER CONSTANTS
# =============================================================================

# Primary test user - use for single-user tests
TEST_USER_ID = UUID("00000000-0000-0000-0000-000000000001")
TEST_USER_EMAIL = "a@x.com"

# Secondary test user - use for isolation tests
TEST_USER_B_ID = UUID("00000000-0000-0000-0000-000000000002")
TEST_USER_B_EMAIL = "b@x.com"

TEST_JWT_SECRET = "test-jwt-secret-0123456789abcdef0123456789"
TEST_MAGIC_LINK_SECRET = "test-magic-link-secret-fedcba9876543210fedcba"


def make_user(
    user_id: UUID = TEST_USER_ID,
    email: str = TEST_USER_EMAIL,
    provider: AuthProvider = AuthProvider.LOCAL,
    **overrides,
) -> User:
    """Build a directory User the way AuthDatabase would return it."""
    return User(
        id=user_id,
        email=email,
        provider=provider,
        created_at=now_utc(),
        **overrides,
    )


# =============================================================================
# USER FIXTURES
# =============================================================================


@pytest.fixture
def test_user_id() -> UUID:
    """The primary test user's ID."""
    return TEST_USER_ID


@pytest.fixture
def test_user_b_id() -> UUID:
    """The secondary test user's ID (for isolation tests)."""
    return TEST_USER_B_ID


# =============================================================================
# VALKEY FIXTURES
# =============================================================================


@pytest.fixture
def valkey():
    """ValkeyClient backed by a fresh in-process fake server per test.

    Real redis-py command semantics (TTL, GETDEL, MULTI, DEL counts) without a
    running server.
    """
    server = fakeredis.FakeServer()

    def _fake_from_url(url, **kwargs):
        return fakeredis.FakeRedis(server=server, **kwargs)

    with patch("clients.valkey_client.redis.from_url", side_effect=_fake_from_url):
        client = ValkeyClient("redis://fake-valkey:6379/0")
    yield client
    client.close()


@pytest.fixture
def store(valkey) -> RevocationStore:
    return RevocationStore(valkey)


# =============================================================================
# CONFIG AND COLLABORATOR FIXTURES
# =============================================================================


@pytest.fixture
def config() -> AuthConfig:
    """Default lifetimes/limits with test secrets."""
    return AuthConfig(
        jwt_secret=TEST_JWT_SECRET,
        magic_link_secret=TEST_MAGIC_LINK_SECRET,
        app_base_url="https://test.example.com",
    )


@pytest.fixture
def jwt_codec(config) -> SigningCodec:
    return SigningCodec(config.jwt_secret.get_secret_value(), config.jwt_algorithm)


@pytest.fixture
def magic_link_codec(config) -> SigningCodec:
    return SigningCodec(config.magic_link_secret.get_secret_value(), config.jwt_algorithm)


@pytest.fixture
def mock_audit_log():
    """Audit log is write-only; mock it and assert on calls."""
    return Mock(spec=TokenAuditLog)


@pytest.fixture
def mock_auth_db():
    """User directory mock. Tests set return values per scenario."""
    mock = Mock(spec=AuthDatabase)
    mock.get_user_by_email.return_value = None
    mock.get_user_by_id.return_value = None
    mock.get_user_by_provider_id.return_value = None
    mock.get_password_hash.return_value = None
    return mock


@pytest.fixture
def mock_email_client():
    """Mock email client - no actual emails sent in tests."""
    mock = Mock(spec=EmailGatewayClient)
    mock.send_email.return_value = None
    return mock


# =============================================================================
# SERVICE FIXTURES (real store, mocked Postgres + email)
# =============================================================================


@pytest.fixture
def token_service(config, jwt_codec, store, mock_audit_log) -> TokenService:
    return TokenService(
        config=config,
        codec=jwt_codec,
        store=store,
        audit_log=mock_audit_log,
    )


@pytest.fixture
def magic_link_service(
    config, magic_link_codec, store, mock_audit_log, mock_auth_db, mock_email_client
) -> MagicLinkService:
    return MagicLinkService(
        config=config,
        codec=magic_link_codec,
        store=store,
        audit_log=mock_audit_log,
        auth_db=mock_auth_db,
        email_client=mock_email_client,
    )


@pytest.fixture
def login_throttle(store, config) -> LoginThrottle:
    return LoginThrottle(store, config)


@pytest.fixture
def rate_limiter(store, config) -> RateLimiter:
    return RateLimiter(store, config)
