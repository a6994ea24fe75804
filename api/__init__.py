"""HTTP response envelope shared by the auth routes and middleware."""

from api.base import (
    APIResponse,
    APIError,
    APIMeta,
    ErrorCodes,
    success_response,
    error_response,
    error_json,
)
