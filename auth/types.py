"""Pydantic models for auth domain."""

from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field


class AuthProvider(Enum):
    """How a user account was first established."""

    LOCAL = "local"
    GOOGLE = "google"
    MAGIC_LINK = "magic_link"


class TokenKind(Enum):
    """Value of the `type` claim on access and refresh tokens."""

    ACCESS = "access"
    REFRESH = "refresh"


class User(BaseModel):
    """A registered user. Never carries the password hash."""

    id: UUID
    email: EmailStr
    name: str | None = None
    avatar: str | None = None
    email_verified: bool = False
    provider: AuthProvider = AuthProvider.LOCAL
    provider_id: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    model_config = {"from_attributes": True}


class AccessTokenPayload(BaseModel):
    """Claims of a stateless access token. Valid purely by signature + expiry."""

    subject_id: UUID = Field(..., alias="sub")
    email: str
    kind: TokenKind = Field(..., alias="type")
    issued_at: datetime = Field(..., alias="iat")
    expires_at: datetime = Field(..., alias="exp")

    model_config = {"frozen": True, "populate_by_name": True}


class RefreshTokenPayload(BaseModel):
    """Claims of a refresh token. `token_id` is the server-side handle."""

    subject_id: UUID = Field(..., alias="sub")
    email: str
    kind: TokenKind = Field(..., alias="type")
    token_id: str = Field(..., alias="jti", min_length=1)
    issued_at: datetime = Field(..., alias="iat")
    expires_at: datetime = Field(..., alias="exp")

    model_config = {"frozen": True, "populate_by_name": True}


class MagicLinkPayload(BaseModel):
    """Claims of a magic link token, signed with the magic link secret."""

    subject_id: UUID = Field(..., alias="sub")
    email: str
    link_id: str = Field(..., alias="jti", min_length=32)
    issued_at: datetime = Field(..., alias="iat")
    expires_at: datetime = Field(..., alias="exp")

    model_config = {"frozen": True, "populate_by_name": True}


class MagicLinkIdentity(BaseModel):
    """Who a consumed magic link authenticated."""

    subject_id: UUID
    email: str


class TokenPair(BaseModel):
    """Access + refresh token handed to the client."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"


class AuthenticatedUser(BaseModel):
    """User info returned after successful authentication."""

    user: User
    tokens: TokenPair


class RegisterRequest(BaseModel):
    """Request payload for password registration."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=128)
    name: str | None = Field(default=None, max_length=100)


class LoginRequest(BaseModel):
    """Request payload for password login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=128)


class RefreshRequest(BaseModel):
    """Request payload carrying a refresh token."""

    refresh_token: str = Field(..., min_length=1)


class MagicLinkRequest(BaseModel):
    """Request payload for magic link."""

    email: EmailStr


class ChangePasswordRequest(BaseModel):
    """Request payload for password change."""

    current_password: str = Field(..., min_length=1, max_length=128)
    new_password: str = Field(..., min_length=8, max_length=128)


class UpdateProfileRequest(BaseModel):
    """Request payload for profile update. Omitted fields are unchanged."""

    name: str | None = Field(default=None, min_length=1, max_length=100)
    avatar: str | None = Field(default=None, max_length=2048)
