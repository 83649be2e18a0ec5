"""
api/routes/v1/auth.py -- Authentication, verification and profile REST endpoints.

Routes:
  POST  /api/v1/auth/register                    -- create account, start session (201)
  POST  /api/v1/auth/login                       -- verify credentials, bind session
  POST  /api/v1/auth/logout                      -- return session to anonymous
  GET   /api/v1/auth/session                     -- current session user (401 if anonymous)
  GET   /api/v1/auth/me                          -- full profile (requires auth)
  PATCH /api/v1/auth/me                          -- update profile, requires oldPassword
  POST  /api/v1/auth/email-verification          -- email a verification code
  POST  /api/v1/auth/email-verification/confirm  -- consume the code, mark verified
  POST  /api/v1/auth/password-reset              -- email a freshly generated password

Every handler is a thin adapter: read the session value object, call one
AuthService operation, write the resulting session back. AuthServiceError
subclasses propagate to the handler in api/main.py, which picks the status.

Security:
  Cache-Control: no-store on every response that carries session state.
  PATCH /me takes the user id and email from the session, never the body.
  Verification and reset requests answer identically for unknown emails
  unless REVEAL_UNKNOWN_EMAILS is set.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from api.models import (
    ConfirmEmailRequest,
    EmailRequest,
    LoginRequest,
    MessageResponse,
    ProfilePatch,
    RegisterRequest,
    SessionResponse,
    SessionUserResponse,
    UserProfileResponse,
)
from auth.dependencies import get_auth_service, get_current_user, load_session, store_session
from auth.models import SessionUser, UserType
from auth.service import AuthService

# Auth policy:
# - POST  /auth/register, /auth/login, /auth/logout:       public
# - POST  /auth/email-verification[/confirm]:             public (the code is the proof)
# - POST  /auth/password-reset:                           public
# - GET   /auth/session:                                  public, 401 when anonymous
# - GET   /auth/me, PATCH /auth/me:                       requires auth (get_current_user)
router = APIRouter()


def _landing(user: SessionUser) -> str:
    return "admin" if user.user_type == UserType.ADMIN.value else "user"


def _session_response(message: str, user: SessionUser, status_code: int = 200) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=SessionResponse(
            message=message,
            user=SessionUserResponse.from_domain(user),
            landing=_landing(user),
        ).model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


@router.post("/auth/register", response_model=SessionResponse, status_code=201)
def register(request: Request, body: RegisterRequest) -> JSONResponse:
    """Create an unverified account and log the caller in as that account.

    No verification email is sent; clients call POST /auth/email-verification.
    """
    service: AuthService = get_auth_service(request)
    session = service.register(body.to_domain(), load_session(request))
    store_session(request, session)
    return _session_response("User registered.", session.user, status_code=201)


@router.post("/auth/login", response_model=SessionResponse)
def login(request: Request, body: LoginRequest) -> JSONResponse:
    """Authenticate with email and password; bind the session.

    Wrong password and unknown email produce the same 401 invalid_credentials.
    """
    service: AuthService = get_auth_service(request)
    session = service.login(body.email, body.password, load_session(request))
    store_session(request, session)
    return _session_response("Logged in.", session.user)


@router.post("/auth/logout", response_model=MessageResponse)
def logout(request: Request) -> JSONResponse:
    """End the authenticated session. Safe to call when already logged out."""
    service: AuthService = get_auth_service(request)
    session = service.logout(load_session(request))
    store_session(request, session)
    resp = JSONResponse(content=MessageResponse(message="Logged out.").model_dump())
    resp.headers["Cache-Control"] = "no-store"
    return resp


@router.get("/auth/session", response_model=SessionResponse)
def check_session(current_user: SessionUser = Depends(get_current_user)) -> JSONResponse:
    """Report the identity bound to the session."""
    return _session_response("User is authenticated.", current_user)


# ---------------------------------------------------------------------------
# Profile (authenticated)
# ---------------------------------------------------------------------------


@router.get("/auth/me", response_model=UserProfileResponse)
def get_profile(request: Request, current_user: SessionUser = Depends(get_current_user)) -> UserProfileResponse:
    """Return the full profile of the logged-in user."""
    service: AuthService = get_auth_service(request)
    return UserProfileResponse.from_domain(service.get_user_data(load_session(request)))


@router.patch("/auth/me", response_model=UserProfileResponse)
def update_profile(
    request: Request,
    body: ProfilePatch,
    current_user: SessionUser = Depends(get_current_user),
) -> UserProfileResponse:
    """Update name, surnames, phone or password after confirming oldPassword.

    The target account is the session's; any email in the body is ignored.
    """
    service: AuthService = get_auth_service(request)
    service.update_profile(current_user.id, body.old_password, body.to_domain())
    return UserProfileResponse.from_domain(service.get_user_data(load_session(request)))


# ---------------------------------------------------------------------------
# Email verification and password reset (public)
# ---------------------------------------------------------------------------


@router.post("/auth/email-verification", response_model=MessageResponse, status_code=202)
def request_email_verification(request: Request, body: EmailRequest) -> MessageResponse:
    """Email a single-use verification code to a registered address."""
    service: AuthService = get_auth_service(request)
    service.request_email_verification(body.email)
    return MessageResponse(message="If the address is registered, a verification code has been sent.")


@router.post("/auth/email-verification/confirm", response_model=MessageResponse)
def confirm_email_verification(request: Request, body: ConfirmEmailRequest) -> MessageResponse:
    """Consume a verification code and mark the address as verified."""
    service: AuthService = get_auth_service(request)
    service.confirm_email_verification(body.email, body.code)
    return MessageResponse(message="Email verified.")


@router.post("/auth/password-reset", response_model=MessageResponse, status_code=202)
def request_password_reset(request: Request, body: EmailRequest) -> JSONResponse:
    """Replace the account password with a generated one and email it."""
    service: AuthService = get_auth_service(request)
    service.request_password_reset(body.email)
    resp = JSONResponse(
        status_code=202,
        content=MessageResponse(message="If the address is registered, a new password has been sent.").model_dump(),
    )
    resp.headers["Cache-Control"] = "no-store"
    return resp
