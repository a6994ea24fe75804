"""HTTP routes for authentication."""

import logging

from fastapi import APIRouter, Request, Query
from fastapi.responses import JSONResponse

from auth.credentials import MagicLinkCredential, PasswordCredential
from auth.exceptions import (
    AuthError,
    DatabaseUnavailableError,
    DeliveryFailedError,
    EmailAlreadyRegisteredError,
    InvalidCredentialsError,
    InvalidTokenError,
    RateLimitedError,
    StoreUnavailableError,
)
from auth.service import AuthService
from auth.types import (
    AuthenticatedUser,
    ChangePasswordRequest,
    LoginRequest,
    MagicLinkRequest,
    RefreshRequest,
    RegisterRequest,
    UpdateProfileRequest,
)
from api.base import success_response, error_json, ErrorCodes

logger = logging.getLogger(__name__)


def _error_for(error: AuthError) -> JSONResponse:
    """Map a boundary error to its HTTP response. Messages never say which check failed."""
    if isinstance(error, RateLimitedError):
        return error_json(
            429,
            ErrorCodes.RATE_LIMITED,
            "Too many attempts. Please try again later.",
            headers={"Retry-After": str(error.retry_after_seconds)},
        )
    if isinstance(error, InvalidTokenError):
        return error_json(401, ErrorCodes.INVALID_TOKEN, "Invalid or expired token")
    if isinstance(error, InvalidCredentialsError):
        return error_json(401, ErrorCodes.INVALID_CREDENTIALS, str(error))
    if isinstance(error, EmailAlreadyRegisteredError):
        return error_json(409, ErrorCodes.ALREADY_EXISTS, "Email already registered")
    if isinstance(error, DeliveryFailedError):
        return error_json(502, ErrorCodes.EMAIL_DELIVERY_FAILED, "Could not send email. Please try again.")
    if isinstance(error, (StoreUnavailableError, DatabaseUnavailableError)):
        return error_json(503, ErrorCodes.SERVICE_UNAVAILABLE, "Service temporarily unavailable")
    logger.error(f"Unmapped auth error: {type(error).__name__}")
    return error_json(401, ErrorCodes.NOT_AUTHENTICATED, "Authentication failed")


def _session_payload(result: AuthenticatedUser) -> dict:
    return {
        "user": result.user.model_dump(mode="json"),
        "tokens": result.tokens.model_dump(mode="json"),
    }


def _require_user(request: Request) -> JSONResponse | None:
    """401 response if middleware did not authenticate this request."""
    if not hasattr(request.state, "user_id"):
        return error_json(401, ErrorCodes.NOT_AUTHENTICATED, "Authentication required")
    return None


def create_auth_router(auth_service: AuthService) -> APIRouter:
    """Create auth router with injected service."""
    router = APIRouter(tags=["auth"])

    @router.post("/register", status_code=201)
    async def register(body: RegisterRequest):
        """Create a password account and return a token pair."""
        try:
            result = auth_service.register(body.email, body.password, name=body.name)
        except AuthError as e:
            return _error_for(e)
        return success_response(_session_payload(result))

    @router.post("/login")
    async def login(body: LoginRequest):
        """Email/password login."""
        try:
            result = auth_service.authenticate(PasswordCredential(body.email, body.password))
        except AuthError as e:
            return _error_for(e)
        return success_response(_session_payload(result))

    @router.post("/refresh")
    async def refresh(body: RefreshRequest):
        """Exchange a refresh token for a new pair. The old one stops working."""
        try:
            tokens = auth_service.refresh(body.refresh_token)
        except AuthError as e:
            return _error_for(e)
        return success_response({"tokens": tokens.model_dump(mode="json")})

    @router.post("/logout")
    async def logout(body: RefreshRequest):
        """Revoke one refresh token.

        Succeeds for already-revoked tokens too: logging out twice is not an error.
        """
        try:
            auth_service.logout(body.refresh_token)
        except InvalidTokenError:
            pass
        except AuthError as e:
            return _error_for(e)
        return success_response({"message": "Logged out successfully"})

    @router.post("/logout-all")
    async def logout_all(request: Request):
        """Revoke every refresh token of the authenticated user."""
        if (denied := _require_user(request)) is not None:
            return denied
        try:
            revoked = auth_service.logout_all(request.state.user_id)
        except AuthError as e:
            return _error_for(e)
        return success_response({"revoked": revoked})

    @router.post("/magic-link")
    async def request_magic_link(body: MagicLinkRequest):
        """Email a magic link. Unknown emails are provisioned on first touch."""
        try:
            auth_service.request_magic_link(body.email)
        except AuthError as e:
            return _error_for(e)
        return success_response({"sent": True})

    @router.get("/magic-link/verify")
    async def verify_magic_link(token: str = Query(None)):
        """Consume a magic link and return a token pair."""
        if not token:
            return error_json(400, ErrorCodes.INVALID_REQUEST, "Token parameter is required")
        try:
            result = auth_service.authenticate(MagicLinkCredential(token))
        except AuthError as e:
            return _error_for(e)
        return success_response(_session_payload(result))

    @router.get("/me")
    async def get_current_user(request: Request):
        """Get current authenticated user."""
        if (denied := _require_user(request)) is not None:
            return denied
        try:
            user = auth_service.get_user(request.state.user_id)
        except AuthError as e:
            return _error_for(e)
        if user is None:
            return error_json(404, ErrorCodes.NOT_FOUND, "User not found")
        return success_response({"user": user.model_dump(mode="json")})

    @router.patch("/me")
    async def update_current_user(request: Request, body: UpdateProfileRequest):
        """Update display name and/or avatar of the authenticated user."""
        if (denied := _require_user(request)) is not None:
            return denied
        try:
            user = auth_service.update_profile(request.state.user_id, name=body.name, avatar=body.avatar)
        except AuthError as e:
            return _error_for(e)
        if user is None:
            return error_json(404, ErrorCodes.NOT_FOUND, "User not found")
        return success_response({"user": user.model_dump(mode="json")})

    @router.post("/change-password")
    async def change_password(request: Request, body: ChangePasswordRequest):
        """Change password; every refresh token is revoked."""
        if (denied := _require_user(request)) is not None:
            return denied
        try:
            auth_service.change_password(
                request.state.user_id, body.current_password, body.new_password
            )
        except AuthError as e:
            return _error_for(e)
        return success_response({"message": "Password changed. Please log in again."})

    @router.delete("/account")
    async def delete_account(request: Request):
        """Delete the authenticated user's account."""
        if (denied := _require_user(request)) is not None:
            return denied
        try:
            deleted = auth_service.delete_account(request.state.user_id)
        except AuthError as e:
            return _error_for(e)
        if not deleted:
            return error_json(404, ErrorCodes.NOT_FOUND, "User not found")
        return success_response({"message": "Account deleted"})

    return router
