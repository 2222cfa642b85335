"""
API request and response models for SupaGate REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Wire format: camelCase JSON keys (fileName, uploadUrl, totalUsers), which is
what existing front ends send and expect. Python code uses snake_case; the
alias generator translates. populate_by_name lets tests and internal callers
use either spelling.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from auth.models import Profile


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(_CamelModel):
    """Request body for POST /api/register.

    email and password are Optional at the schema level so a missing field
    produces the documented 400 bad_request instead of a 422. Any "role"
    key in the body is ignored -- new accounts always start as "user".
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, str_strip_whitespace=True)

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=255)
    full_name: Optional[str] = Field(default=None, max_length=255)


class UploadRequest(_CamelModel):
    """Request body for POST /api/documents/upload."""

    file_name: Optional[str] = Field(default=None, max_length=255)
    file_type: Optional[str] = Field(default=None, max_length=255)
    bucket: str = Field(default="documents", max_length=63)


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class ProfileResponse(_CamelModel):
    """One profile row as returned to API clients."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    user_id: str
    email: Optional[str]
    full_name: Optional[str]
    role: str
    created_at: Optional[str]

    @classmethod
    def from_profile(cls, profile: Profile) -> "ProfileResponse":
        return cls(
            user_id=profile.user_id,
            email=profile.email,
            full_name=profile.full_name,
            role=profile.role,
            created_at=profile.created_at,
        )


class RegisteredUser(_CamelModel):
    id: str
    email: Optional[str]
    profile: ProfileResponse


class RegisterResponse(_CamelModel):
    """Response for POST /api/register (201)."""

    message: str = "User registered successfully"
    user: RegisteredUser


class MeResponse(_CamelModel):
    """Response for GET /api/me."""

    user_id: str
    email: Optional[str]
    role: str
    display_name: Optional[str] = None


class UploadResponse(_CamelModel):
    """Response for POST /api/documents/upload."""

    message: str = "Signed upload URL generated"
    upload_url: str
    path: str
    token: str
    expires_in: int


class DashboardAdmin(_CamelModel):
    email: Optional[str]
    role: str


class DashboardStats(_CamelModel):
    total_users: int
    recent_users: int


class DashboardResponse(_CamelModel):
    """Response for GET /api/admin/dashboard."""

    message: str = "Admin dashboard data"
    admin: DashboardAdmin
    stats: DashboardStats
    users: list[ProfileResponse] = Field(default_factory=list)


class OAuthProviderInfo(BaseModel):
    """An OAuth provider the login page can offer."""

    name: str
    label: str


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
    """Response for GET /health."""

    model_config = ConfigDict(frozen=True)

    status: str = "ok"
    message: str = "Server is running"
    version: str
    timestamp: str
    components: dict[str, str] = Field(default_factory=dict)
