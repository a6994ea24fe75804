"""Typed exceptions for auth failures.

Two families:

- TokenError subclasses say exactly which check a token failed. They are
  internal: services log them and chain them as the cause of a boundary error.
- AuthError subclasses are what callers see. Every token failure collapses to
  InvalidTokenError with the same message so responses never reveal which
  check failed.
"""


class TokenError(Exception):
    """Internal: a token failed a specific verification step."""

    reason = "invalid"


class MalformedTokenError(TokenError):
    """Token is not a structurally valid signed token."""

    reason = "malformed"


class InvalidSignatureError(TokenError):
    """Signature did not verify, or the token names a different algorithm."""

    reason = "bad_signature"


class TokenExpiredError(TokenError):
    """Token is past its exp claim."""

    reason = "expired"


class WrongTokenKindError(TokenError):
    """Access token presented where refresh expected, or vice versa."""

    reason = "wrong_kind"


class TokenNotFoundError(TokenError):
    """Token id is absent from the store: revoked, rotated out, consumed, or expired."""

    reason = "not_found"


class OwnerMismatchError(TokenError):
    """Subject recorded in the store disagrees with the token's subject."""

    reason = "owner_mismatch"


class AuthError(Exception):
    """Base class for authentication/authorization errors."""


class InvalidTokenError(AuthError):
    """
    Token is invalid, expired, or already used.

    The message is identical for every cause.
    """

    def __init__(self, message: str = "Invalid or expired token"):
        super().__init__(message)


class InvalidAccessTokenError(InvalidTokenError):
    """Access token rejected."""


class InvalidRefreshTokenError(InvalidTokenError):
    """Refresh token rejected (including the losing side of a rotation race)."""


class InvalidMagicLinkError(InvalidTokenError):
    """Magic link rejected (including a second consumption)."""


class InvalidCredentialsError(AuthError):
    """Email/password (or provider identity) did not verify."""

    def __init__(self, message: str = "Invalid email or password"):
        super().__init__(message)


class EmailAlreadyRegisteredError(AuthError):
    """Registration attempted for an email that already has an account."""


class RateLimitedError(AuthError):
    """Too many attempts. Client should wait before retrying."""

    def __init__(self, retry_after_seconds: int):
        self.retry_after_seconds = retry_after_seconds
        super().__init__(f"Rate limited. Retry after {retry_after_seconds} seconds.")


class StoreUnavailableError(AuthError):
    """
    The revocation store timed out or is unreachable.

    Transient: the caller may retry. End users see a generic failure.
    """


class DeliveryFailedError(AuthError):
    """The email gateway did not accept a magic link message."""


class DatabaseUnavailableError(AuthError):
    """
    Postgres (user directory or token audit log) failed or is unreachable.

    Transient: the caller may retry. End users see a generic failure.
    """
