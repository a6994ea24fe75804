"""Authentication configuration."""

from typing import Literal

from pydantic import BaseModel, Field, SecretStr, model_validator

MIN_SECRET_LENGTH = 32


class AuthConfig(BaseModel):
    """
    Authentication configuration.

    All durations are in their natural units (minutes for short-lived tokens,
    days for refresh tokens) to make configuration intuitive. Secrets have no
    defaults: a service must never start with a guessable signing key.
    """

    # Signing
    jwt_secret: SecretStr = Field(
        ...,
        description="HMAC secret for access and refresh tokens (32+ chars)",
    )
    magic_link_secret: SecretStr = Field(
        ...,
        description="HMAC secret for magic link tokens (32+ chars, must differ from jwt_secret)",
    )
    jwt_algorithm: Literal["HS256", "HS384", "HS512"] = Field(
        default="HS256",
        description="The only algorithm accepted when verifying tokens",
    )

    # Token lifetimes
    access_token_expiry_minutes: int = Field(
        default=15,
        description="Access token lifetime",
        ge=1,
        le=60,
    )
    refresh_token_expiry_days: int = Field(
        default=7,
        description="Refresh token lifetime",
        ge=1,
        le=90,
    )
    magic_link_expiry_minutes: int = Field(
        default=15,
        description="How long magic links remain valid",
        ge=5,
        le=60,
    )

    # Failed-login throttling
    max_failed_attempts: int = Field(
        default=5,
        description="Failed password attempts allowed per email per window",
        ge=1,
        le=20,
    )
    failed_attempt_window_minutes: int = Field(
        default=15,
        description="Window anchored at the first failed attempt",
        ge=1,
        le=60,
    )

    # Magic link request limiting
    magic_link_requests_per_window: int = Field(
        default=5,
        description="Magic link requests allowed per email per window",
        ge=1,
        le=50,
    )
    magic_link_request_window_minutes: int = Field(
        default=60,
        description="Window anchored at the first magic link request",
        ge=1,
        le=1440,
    )

    # Infrastructure
    store_timeout_seconds: float = Field(
        default=5.0,
        description="Upper bound for any single Valkey command",
        gt=0,
        le=30,
    )

    # Application
    app_base_url: str = Field(
        default="http://localhost:8000",
        description="Base URL for magic link generation",
    )
    app_name: str = Field(
        default="authgate",
        description="Application name for emails",
    )

    @model_validator(mode="after")
    def _check_secrets(self) -> "AuthConfig":
        for name in ("jwt_secret", "magic_link_secret"):
            if len(getattr(self, name).get_secret_value()) < MIN_SECRET_LENGTH:
                raise ValueError(f"{name} must be at least {MIN_SECRET_LENGTH} characters")
        if self.jwt_secret.get_secret_value() == self.magic_link_secret.get_secret_value():
            raise ValueError("magic_link_secret must differ from jwt_secret")
        return self

    @property
    def access_token_ttl_seconds(self) -> int:
        return self.access_token_expiry_minutes * 60

    @property
    def refresh_token_ttl_seconds(self) -> int:
        return self.refresh_token_expiry_days * 24 * 3600

    @property
    def magic_link_ttl_seconds(self) -> int:
        return self.magic_link_expiry_minutes * 60

    @property
    def failed_attempt_window_seconds(self) -> int:
        return self.failed_attempt_window_minutes * 60

    @property
    def magic_link_request_window_seconds(self) -> int:
        return self.magic_link_request_window_minutes * 60
