"""Signed, expiring tokens (JWT via PyJWT).

One SigningCodec per token class, each with its own secret, so a leaked magic
link secret cannot forge access tokens and vice versa.
"""

from datetime import timedelta
from typing import Any

import jwt

from auth.exceptions import InvalidSignatureError, MalformedTokenError, TokenExpiredError
from utils.timezone import now_utc, to_epoch_seconds

_REQUIRED_CLAIMS = ["exp", "iat", "sub"]


class SigningCodec:
    """Sign and verify HMAC JWTs with a single pinned algorithm."""

    def __init__(self, secret: str, algorithm: str = "HS256"):
        if not secret:
            raise ValueError("secret is required")
        self._secret = secret
        self._algorithm = algorithm

    @property
    def algorithm(self) -> str:
        return self._algorithm

    def sign(self, claims: dict[str, Any], ttl: timedelta) -> str:
        """Sign `claims`, stamping iat and exp = iat + ttl."""
        issued_at = now_utc()
        payload = {
            **claims,
            "iat": to_epoch_seconds(issued_at),
            "exp": to_epoch_seconds(issued_at + ttl),
        }
        return jwt.encode(payload, self._secret, algorithm=self._algorithm)

    def verify(self, token: str) -> dict[str, Any]:
        """
        Verify signature and expiry, returning the raw claims.

        Only the configured algorithm is accepted; a token whose header names
        any other algorithm (including "none") fails as a bad signature.
        No leeway is applied to exp.

        Raises:
            MalformedTokenError: Not a decodable JWT, or missing required claims.
            InvalidSignatureError: Signature or algorithm mismatch.
            TokenExpiredError: Past exp.
        """
        if not isinstance(token, str) or token.count(".") != 2:
            raise MalformedTokenError("Token must have three segments")

        try:
            return jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": _REQUIRED_CLAIMS},
                leeway=0,
            )
        except jwt.ExpiredSignatureError as e:
            raise TokenExpiredError(str(e)) from e
        except (jwt.InvalidSignatureError, jwt.InvalidAlgorithmError) as e:
            raise InvalidSignatureError(str(e)) from e
        except jwt.InvalidTokenError as e:
            # DecodeError, MissingRequiredClaimError, ImmatureSignatureError, ...
            raise MalformedTokenError(str(e)) from e
