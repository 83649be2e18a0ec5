"""
auth/dependencies.py -- FastAPI Depends() helpers for session authentication.

The transport-level session is Starlette's SessionMiddleware mapping
(request.session, a signed cookie). These helpers are the only code that
touches it: load_session() turns it into a Session value object and
store_session() writes a Session back after a transition.

try_get_current_user() is the soft variant (returns None when anonymous).
get_current_user() wraps it and raises HTTP 401 if unauthenticated.

Layer rule: no imports from api/. This module may import from fastapi
because it is part of the FastAPI dependency injection system.
"""

from __future__ import annotations

from fastapi import HTTPException, Request

from auth.models import Session, SessionUser
from auth.service import AuthService


def get_auth_service(request: Request) -> AuthService:
    return request.app.state.auth_service


def load_session(request: Request) -> Session:
    """Return the request's session as a value object (Anonymous if none)."""
    return get_auth_service(request).sessions.load(request.session)


def store_session(request: Request, session: Session) -> None:
    """Persist session into the transport cookie for the response."""
    get_auth_service(request).sessions.dump(session, request.session)


def try_get_current_user(request: Request) -> SessionUser | None:
    """Return the bound user snapshot, or None. Never raises."""
    return get_auth_service(request).is_authenticated(load_session(request))


def get_current_user(request: Request) -> SessionUser:
    """Require authentication. Raises HTTP 401 if the session is anonymous.

    Use as a FastAPI dependency:
        @router.get("/protected")
        async def route(user: SessionUser = Depends(get_current_user)): ...
    """
    user = try_get_current_user(request)
    if user is None:
        raise HTTPException(
            status_code=401,
            detail={"code": "unauthorized", "message": "Not authenticated."},
        )
    return user
