"""
auth/models.py -- Domain dataclasses for authentication entities.

Pattern: Data class (pure data container, zero logic). Dataclasses own domain
shape; stores, the session manager and the service do the work.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CodePurpose(str, Enum):
    """What a verification code authorizes. Part of the code store key."""

    EMAIL_VERIFICATION = "email_verification"
    PASSWORD_RESET = "password_reset"


class UserType(str, Enum):
    ADMIN = "admin"
    STANDARD = "standard"


@dataclass
class User:
    """The system-of-record identity.

    email is stored normalised (stripped, lowercased) and is unique. It is
    never changed by profile updates.

    id is None before the record is written to the database.
    """

    email: str
    hashed_password: str
    name: str = ""
    last_name1: str | None = None
    last_name2: str | None = None
    tel: str | None = None
    user_type: str = UserType.STANDARD.value
    email_verified: bool = False
    id: int | None = None
    created_at: str | None = None


@dataclass(frozen=True)
class VerificationCode:
    """An issued single-use code.

    code_digest is HMAC-SHA256(SECRET_KEY, code). The plaintext code exists
    only in the email that delivers it.
    """

    email: str
    purpose: CodePurpose
    code_digest: str
    issued_at: str  # ISO 8601, UTC
    expires_at: str  # ISO 8601, UTC


@dataclass(frozen=True)
class SessionUser:
    """Snapshot of a user held by a session. Not the full record."""

    id: int
    email: str
    user_type: str


@dataclass(frozen=True)
class Session:
    """Server-side session state bound to one client context.

    Immutable. Only SessionManager produces new instances; user is None in
    the Anonymous state.
    """

    session_id: str
    created_at: str  # ISO 8601, UTC
    user: SessionUser | None = None


@dataclass(frozen=True)
class Registration:
    """Profile data submitted to register a new account."""

    email: str | None
    password: str | None
    name: str | None = None
    last_name1: str | None = None
    last_name2: str | None = None
    tel: str | None = None
    password_confirmation: str | None = None


@dataclass(frozen=True)
class ProfileUpdate:
    """Optional fields for an authenticated profile update.

    None means "leave unchanged". There is deliberately no email field.
    """

    name: str | None = None
    last_name1: str | None = None
    last_name2: str | None = None
    tel: str | None = None
    password: str | None = None
