"""The closed set of credential flows a user can log in with.

`Credential` is a union of frozen dataclasses; AuthService.authenticate
dispatches on the concrete type. Adding a flow means adding a variant here
and a branch there.
"""

from dataclasses import dataclass, field

from auth.types import AuthProvider


@dataclass(frozen=True)
class PasswordCredential:
    """Email + password, verified against the stored argon2 hash."""

    email: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class OAuthCredential:
    """A federated identity whose provider-side exchange already succeeded."""

    provider: AuthProvider
    provider_id: str
    email: str
    name: str | None = None
    avatar: str | None = None

    def __post_init__(self):
        if self.provider not in (AuthProvider.GOOGLE,):
            raise ValueError(f"Unsupported OAuth provider: {self.provider.value}")
        if not self.email:
            raise ValueError(f"No email provided by {self.provider.value}")


@dataclass(frozen=True)
class MagicLinkCredential:
    """A magic link token from the emailed URL."""

    token: str = field(repr=False)


Credential = PasswordCredential | OAuthCredential | MagicLinkCredential
