"""
API request and response models for sessionauth REST endpoints.

These Pydantic v2 models define the HTTP transport contract for the API layer.
They are intentionally separate from the dataclasses in auth/models.py, which
own the internal domain representation. Route handlers map between the two.

Field aliases keep the camelCase names the web client already sends
(lastName1, passwordConfirmation, oldPassword); populate_by_name lets Python
callers use the snake_case names as well.

Request models only bound lengths and shapes. Required-field and
credential rules live in AuthService so they hold for every caller.
Passwords are never whitespace-stripped; the service trims text fields.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from auth.models import ProfileUpdate, Registration, SessionUser, User

_PASSWORD_MAX = 128


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    """Request body for POST /api/v1/auth/register."""

    model_config = ConfigDict(populate_by_name=True)

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)
    password_confirmation: Optional[str] = Field(
        default=None, max_length=_PASSWORD_MAX, alias="passwordConfirmation"
    )
    name: Optional[str] = Field(default=None, max_length=100)
    last_name1: Optional[str] = Field(default=None, max_length=100, alias="lastName1")
    last_name2: Optional[str] = Field(default=None, max_length=100, alias="lastName2")
    tel: Optional[str] = Field(default=None, max_length=30)

    def to_domain(self) -> Registration:
        return Registration(
            email=self.email,
            password=self.password,
            password_confirmation=self.password_confirmation,
            name=self.name,
            last_name1=self.last_name1,
            last_name2=self.last_name2,
            tel=self.tel,
        )


class LoginRequest(BaseModel):
    """Request body for POST /api/v1/auth/login."""

    email: Optional[str] = Field(default=None, max_length=255)
    password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)


class EmailRequest(BaseModel):
    """Request body for POST /email-verification and POST /password-reset."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr


class ConfirmEmailRequest(BaseModel):
    """Request body for POST /email-verification/confirm."""

    model_config = ConfigDict(str_strip_whitespace=True)

    email: EmailStr
    code: str = Field(min_length=1, max_length=64)


class ProfilePatch(BaseModel):
    """Request body for PATCH /api/v1/auth/me.

    There is no email field: the address is pinned to the session. Unknown
    keys (including "email") are ignored, never applied.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    old_password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX, alias="oldPassword")
    name: Optional[str] = Field(default=None, max_length=100)
    last_name1: Optional[str] = Field(default=None, max_length=100, alias="lastName1")
    last_name2: Optional[str] = Field(default=None, max_length=100, alias="lastName2")
    tel: Optional[str] = Field(default=None, max_length=30)
    password: Optional[str] = Field(default=None, max_length=_PASSWORD_MAX)

    def to_domain(self) -> ProfileUpdate:
        return ProfileUpdate(
            name=self.name,
            last_name1=self.last_name1,
            last_name2=self.last_name2,
            tel=self.tel,
            password=self.password,
        )


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------


class SessionUserResponse(BaseModel):
    """The identity snapshot held by the session."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    user_type: str

    @classmethod
    def from_domain(cls, user: SessionUser) -> "SessionUserResponse":
        return cls(id=user.id, email=user.email, user_type=user.user_type)


class SessionResponse(BaseModel):
    """Response for register, login and GET /session.

    landing tells the web client which area to open after login: "admin" for
    admin accounts, "user" for everyone else.
    """

    model_config = ConfigDict(frozen=True)

    message: str
    user: SessionUserResponse
    landing: str


class UserProfileResponse(BaseModel):
    """Full profile of the session user. Never includes the password hash."""

    model_config = ConfigDict(frozen=True)

    id: int
    email: str
    name: str
    last_name1: Optional[str]
    last_name2: Optional[str]
    tel: Optional[str]
    user_type: str
    email_verified: bool
    created_at: str

    @classmethod
    def from_domain(cls, user: User) -> "UserProfileResponse":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            last_name1=user.last_name1,
            last_name2=user.last_name2,
            tel=user.tel,
            user_type=user.user_type,
            email_verified=user.email_verified,
            created_at=user.created_at or "",
        )


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
    """Response for GET /api/v1/health."""

    model_config = ConfigDict(frozen=True)

    status: str = "healthy"
    version: str
    components: dict[str, str]
