"""
auth/sessions.py -- The authentication state machine.

States:
  Anonymous      session.user is None (initial state)
  Authenticated  session.user holds a SessionUser snapshot

Transitions:
  bind(session, user)  Anonymous | Authenticated -> Authenticated
  clear(session)       Authenticated -> Anonymous; Anonymous -> Anonymous

Session is a frozen dataclass, so these transitions are the only way to get
a session in a new state. Each transition also issues a fresh session_id:
an identifier seen while anonymous is never promoted to an authenticated
one (session fixation).

The transport keeps the session between requests (api/ uses Starlette's
signed-cookie SessionMiddleware). load() and dump() convert between the
transport mapping and the value object so no other module reads or writes
session keys directly.
"""

from __future__ import annotations

import logging
import secrets
from collections.abc import Mapping, MutableMapping
from dataclasses import replace
from datetime import datetime, timezone
from enum import Enum

from auth.models import Session, SessionUser, User

logger = logging.getLogger("sessionauth.auth.sessions")

# Keys written into the transport session mapping.
_KEY_ID = "sid"
_KEY_CREATED = "created_at"
_KEY_USER = "user"


class SessionState(str, Enum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


def _new_session_id() -> str:
    # 256 bits; never derived from user data.
    return secrets.token_urlsafe(32)


def state_of(session: Session) -> SessionState:
    return SessionState.AUTHENTICATED if session.user is not None else SessionState.ANONYMOUS


class SessionManager:
    """Creates sessions and performs the two state transitions."""

    def new(self) -> Session:
        """Return a fresh Anonymous session."""
        return Session(session_id=_new_session_id(), created_at=_now_iso())

    def bind(self, session: Session, user: User) -> Session:
        """Authenticate session as user, replacing any previous binding."""
        if user.id is None:
            raise ValueError("cannot bind a session to an unsaved user")
        snapshot = SessionUser(id=user.id, email=user.email, user_type=user.user_type)
        bound = replace(session, session_id=_new_session_id(), user=snapshot, created_at=_now_iso())
        logger.debug("Session bound to user %s", user.id)
        return bound

    def clear(self, session: Session) -> Session:
        """Return session in the Anonymous state. Clearing an anonymous session is a no-op."""
        if session.user is None:
            return session
        return replace(session, session_id=_new_session_id(), user=None, created_at=_now_iso())

    def current_user(self, session: Session | None) -> SessionUser | None:
        """Pure read of the bound snapshot. Never raises."""
        if session is None:
            return None
        return session.user

    # ------------------------------------------------------------------
    # Transport mapping <-> value object
    # ------------------------------------------------------------------

    def load(self, data: Mapping | None) -> Session:
        """Rebuild a Session from a transport mapping.

        Missing or malformed data yields a fresh Anonymous session rather than
        an error: a tampered or outdated cookie is simply not logged in.
        """
        if not data or not isinstance(data.get(_KEY_ID), str):
            return self.new()
        user = None
        raw_user = data.get(_KEY_USER)
        if isinstance(raw_user, Mapping):
            try:
                user = SessionUser(
                    id=int(raw_user["id"]),
                    email=str(raw_user["email"]),
                    user_type=str(raw_user["user_type"]),
                )
            except (KeyError, TypeError, ValueError):
                logger.warning("Discarding malformed session user payload")
                return self.new()
        return Session(
            session_id=data[_KEY_ID],
            created_at=str(data.get(_KEY_CREATED) or _now_iso()),
            user=user,
        )

    def dump(self, session: Session, target: MutableMapping) -> None:
        """Write session into the transport mapping, replacing its contents."""
        target.clear()
        target[_KEY_ID] = session.session_id
        target[_KEY_CREATED] = session.created_at
        if session.user is not None:
            target[_KEY_USER] = {
                "id": session.user.id,
                "email": session.user.email,
                "user_type": session.user.user_type,
            }
