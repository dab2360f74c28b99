"""
API request and response models.

These Pydantic v2 models define the HTTP transport contract. They are
intentionally separate from the dataclasses in auth/models.py, which own the
internal domain representation. Route handlers map between the two.

Only id, fullName and email of a user are ever serialized outward; password
hashes and token material stay in the domain layer.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from auth.models import IssuedToken, User

# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class LoginRequest(BaseModel):
    """Request body for POST /api/login."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: str = Field(min_length=1, max_length=255)
    # bcrypt ignores bytes beyond 72; the cap keeps inputs well below abuse sizes.
    password: str = Field(min_length=1, max_length=255)
    name: Optional[str] = Field(default=None, max_length=100, description="Label for this token.")


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class UserResponse(BaseModel):
    """Public view of a user, shared by the API and the page templates."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    full_name: Optional[str] = Field(default=None, alias="fullName")
    email: str

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(id=user.id, full_name=user.full_name, email=user.email)


class AccessTokenResponse(BaseModel):
    """Response for POST /api/login. token is shown once and never again."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    type: str = "bearer"
    token: str
    name: str
    expires_at: Optional[str] = Field(default=None, alias="expiresAt")

    @classmethod
    def from_issued(cls, issued: IssuedToken) -> "AccessTokenResponse":
        return cls(token=issued.value, name=issued.token.name, expires_at=issued.token.expires_at)


class AccessTokenInfo(BaseModel):
    """One row of GET /api/tokens. Never includes the token value."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: int
    name: str
    hint: str
    created_at: Optional[str] = Field(default=None, alias="createdAt")
    last_used_at: Optional[str] = Field(default=None, alias="lastUsedAt")
    expires_at: Optional[str] = Field(default=None, alias="expiresAt")
    current: bool = False


class MessageResponse(BaseModel):
    model_config = ConfigDict(frozen=True)

    message: str


class ErrorDetail(BaseModel):
    """Machine-readable error payload."""

    model_config = ConfigDict(frozen=True)

    code: str
    message: str
    detail: Optional[str] = None


class ErrorResponse(BaseModel):
    """Top-level error envelope returned on 4xx/5xx responses."""

    model_config = ConfigDict(frozen=True)

    error: ErrorDetail


class HealthResponse(BaseModel):
    """Response for GET /api/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    version: str
    database: str = "ok"
