"""Wire clients and services together.

Everything is constructed explicitly and injected; nothing below reads global
state except the Vault lookups used to fill in missing configuration.
"""

import logging

from pydantic import SecretStr

from auth.audit import TokenAuditLog
from auth.codec import SigningCodec
from auth.config import AuthConfig
from auth.database import AuthDatabase
from auth.login_throttle import LoginThrottle
from auth.magic_link import MagicLinkService
from auth.passwords import PasswordVerifier
from auth.rate_limiter import RateLimiter
from auth.revocation_store import RevocationStore
from auth.service import AuthService
from auth.token_service import TokenService
from clients.email_client import EmailGatewayClient
from clients.postgres_client import PostgresClient
from clients.valkey_client import ValkeyClient
from clients.vault_client import (
    get_database_url,
    get_email_config,
    get_signing_secrets,
    get_valkey_url,
)

logger = logging.getLogger(__name__)


def config_from_vault(**overrides) -> AuthConfig:
    """AuthConfig with signing secrets read from Vault."""
    secrets = get_signing_secrets()
    return AuthConfig(
        jwt_secret=SecretStr(secrets["jwt_secret"]),
        magic_link_secret=SecretStr(secrets["magic_link_secret"]),
        **overrides,
    )


def build_services(
    config: AuthConfig,
    valkey: ValkeyClient,
    postgres: PostgresClient,
    email_client: EmailGatewayClient,
) -> AuthService:
    """Assemble the service graph from already-constructed clients."""
    store = RevocationStore(valkey)
    audit_log = TokenAuditLog(postgres)
    auth_db = AuthDatabase(postgres)

    token_service = TokenService(
        config=config,
        codec=SigningCodec(config.jwt_secret.get_secret_value(), config.jwt_algorithm),
        store=store,
        audit_log=audit_log,
    )
    magic_link_service = MagicLinkService(
        config=config,
        codec=SigningCodec(config.magic_link_secret.get_secret_value(), config.jwt_algorithm),
        store=store,
        audit_log=audit_log,
        auth_db=auth_db,
        email_client=email_client,
    )

    return AuthService(
        auth_db=auth_db,
        token_service=token_service,
        magic_link_service=magic_link_service,
        login_throttle=LoginThrottle(store, config),
        rate_limiter=RateLimiter(store, config),
        password_verifier=PasswordVerifier(),
    )


def build_auth_service(config: AuthConfig | None = None) -> AuthService:
    """Production wiring: connection URLs and credentials from Vault."""
    config = config or config_from_vault()

    valkey = ValkeyClient(get_valkey_url(), socket_timeout=config.store_timeout_seconds)
    postgres = PostgresClient(get_database_url())
    email_client = EmailGatewayClient(**get_email_config())

    logger.info("Auth service wired")
    return build_services(config, valkey, postgres, email_client)
