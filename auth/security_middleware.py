"""Security middleware for FastAPI - bearer access token verification."""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from auth.token_service import TokenService
from auth.exceptions import InvalidAccessTokenError
from api.base import error_json, ErrorCodes


def extract_bearer_token(request: Request) -> str | None:
    """Token from an `Authorization: Bearer <token>` header, or None."""
    header = request.headers.get("Authorization")
    if not header:
        return None
    scheme, _, token = header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class BearerAuthMiddleware(BaseHTTPMiddleware):
    """Middleware that verifies access tokens and sets the request subject.

    For protected routes:
    1. Extracts the access token from the Authorization header
    2. Verifies it via TokenService (stateless: signature + expiry + kind)
    3. Sets subject id and email in request.state

    Public paths bypass authentication entirely.
    """

    PUBLIC_PATHS = [
        "/auth/register",
        "/auth/login",
        "/auth/refresh",
        "/auth/logout",
        "/auth/magic-link",
        "/health",
        "/docs",
        "/openapi.json",
    ]

    def __init__(self, app, token_service: TokenService):
        super().__init__(app)
        self._token_service = token_service

    def _is_public_path(self, path: str) -> bool:
        """Check if path is in public paths list."""
        for public_path in self.PUBLIC_PATHS:
            if path == public_path or path.startswith(public_path + "/"):
                return True
        return False

    async def dispatch(self, request: Request, call_next):
        """Process request through middleware."""
        if self._is_public_path(request.url.path):
            return await call_next(request)

        token = extract_bearer_token(request)
        if token is None:
            return error_json(
                401,
                ErrorCodes.NOT_AUTHENTICATED,
                "Authentication required",
                headers={"WWW-Authenticate": "Bearer"},
            )

        try:
            payload = self._token_service.verify_access_token(token)
        except InvalidAccessTokenError:
            return error_json(
                401,
                ErrorCodes.INVALID_TOKEN,
                "Invalid or expired token",
                headers={"WWW-Authenticate": "Bearer"},
            )

        request.state.user_id = payload.subject_id
        request.state.email = payload.email
        return await call_next(request)
