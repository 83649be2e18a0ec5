"""
auth/service.py -- AuthService: registration, login, sessions, verification, reset.

The only component with cross-cutting policy. It composes the credential
store, the password hasher, the code issuer, the notifier and the session
manager. Every operation returns a value or raises an AuthServiceError
subclass from auth/errors.py.

Ordering: each operation checks its preconditions in a fixed order (input
presence, then lookups, then password comparison) and mutates state only
after every check passed. The one deliberate exception is
request_password_reset(): the new password is stored before the email goes
out, so a DeliveryError there leaves the new password in effect.

Anti-enumeration:
  login()  -- unknown email and wrong password raise the same AuthError and
              both run bcrypt, so neither message nor timing differs.
  request_email_verification() / request_password_reset() -- unknown emails
              succeed silently unless Settings.reveal_unknown_emails is set,
              in which case they raise NotFoundError.

Concurrency: user mutations take a per-email lock; code operations take the
issuer's per-(email, purpose) lock. Lock order is always code key first,
then user key.

Layer rule: no imports from api/.
"""

from __future__ import annotations

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.exc import IntegrityError

from auth.codes import VerificationCodeIssuer
from auth.errors import AuthError, ConflictError, InvalidCodeError, NotFoundError, ValidationError
from auth.locks import KeyedLock
from auth.models import CodePurpose, ProfileUpdate, Registration, Session, SessionUser, User, UserType
from auth.notifier import Notifier, SmtpNotifier
from auth.passwords import DUMMY_HASH, MAX_PASSWORD_BYTES, generate_password, hash_password, verify_password
from auth.sessions import SessionManager
from auth.store import CodeStore, UserStore, normalize_email
from core.config import Settings, get_settings

logger = logging.getLogger("sessionauth.auth")

_BAD_CREDENTIALS = "Invalid email or password."


def _clean(value: str | None) -> str | None:
    """Strip a text field; blank becomes None."""
    if value is None:
        return None
    value = value.strip()
    return value or None


class AuthService:
    """Usage:
    service = AuthService(UserStore(url), VerificationCodeIssuer(CodeStore(url)), SmtpNotifier())
    session = service.register(Registration(email="a@x.com", password="p1"), None)
    session = service.login("a@x.com", "p1", session)
    service.is_authenticated(session)  # SessionUser(id=1, email="a@x.com", ...)
    """

    def __init__(
        self,
        users: UserStore,
        codes: VerificationCodeIssuer,
        notifier: Notifier,
        sessions: SessionManager | None = None,
        settings: Settings | None = None,
    ) -> None:
        self._users = users
        self._codes = codes
        self._notifier = notifier
        self._sessions = sessions or SessionManager()
        self._settings = settings or get_settings()
        self._user_locks = KeyedLock()

    @property
    def sessions(self) -> SessionManager:
        return self._sessions

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(self, data: Registration, session: Session | None) -> Session:
        """Create an unverified user and return session bound to it.

        Does not send a verification email; that is request_email_verification().
        """
        created = self._create_user(data, UserType.STANDARD, email_verified=False)
        logger.info("Registered user %s (%s)", created.id, created.email)
        return self._sessions.bind(session or self._sessions.new(), created)

    def create_admin(self, data: Registration) -> User:
        """Create a verified admin account. Operator-only; no HTTP route calls this."""
        created = self._create_user(data, UserType.ADMIN, email_verified=True)
        logger.info("Created admin user %s (%s)", created.id, created.email)
        return created

    def _create_user(self, data: Registration, user_type: UserType, email_verified: bool) -> User:
        email = _clean(data.email)
        password = data.password
        if not email or not password:
            raise ValidationError("Email and password are required.", code="missing_fields")
        email = self._validated_email(email)
        self._check_password_policy(password)
        if data.password_confirmation is not None and data.password_confirmation != password:
            raise ValidationError("Passwords do not match.", code="password_mismatch")

        if self._users.find_by_email(email) is not None:
            raise ConflictError("An account with that email already exists.", code="email_taken")

        new_user = User(
            email=email,
            hashed_password=hash_password(password),
            name=_clean(data.name) or "",
            last_name1=_clean(data.last_name1),
            last_name2=_clean(data.last_name2),
            tel=_clean(data.tel),
            user_type=user_type.value,
            email_verified=email_verified,
        )
        try:
            return self._users.create(new_user)
        except IntegrityError as exc:
            # A concurrent registration for the same email won the insert.
            raise ConflictError("An account with that email already exists.", code="email_taken") from exc

    def login(self, email: str | None, password: str | None, session: Session | None) -> Session:
        """Verify credentials and return session bound to the user.

        Any existing binding on session is replaced.
        """
        email = _clean(email)
        if not email or not password:
            raise ValidationError("Email and password are required.", code="missing_fields")

        user = self._users.find_by_email(email)
        if user is None:
            # Equalize timing -- do NOT return before running bcrypt.
            verify_password(password, DUMMY_HASH)
            logger.warning("Failed login for %s", normalize_email(email))
            raise AuthError(_BAD_CREDENTIALS, code="invalid_credentials")
        if not verify_password(password, user.hashed_password):
            logger.warning("Failed login for %s", user.email)
            raise AuthError(_BAD_CREDENTIALS, code="invalid_credentials")

        logger.info("User %s logged in", user.id)
        return self._sessions.bind(session or self._sessions.new(), user)

    def logout(self, session: Session | None) -> Session:
        """Return session in the Anonymous state. Idempotent.

        Raises AuthError only when there is no session context at all.
        """
        if session is None:
            raise AuthError("No session to log out of.", code="no_session")
        if session.user is not None:
            logger.info("User %s logged out", session.user.id)
        return self._sessions.clear(session)

    def is_authenticated(self, session: Session | None) -> SessionUser | None:
        return self._sessions.current_user(session)

    def get_user_data(self, session: Session | None) -> User:
        """Return the full record of the user bound to session."""
        current = self._require_user(session)
        user = self._users.find_by_email(current.email)
        if user is None:
            raise NotFoundError("No user found.", code="user_not_found")
        return user

    # ------------------------------------------------------------------
    # Email verification
    # ------------------------------------------------------------------

    def request_email_verification(self, email: str | None) -> None:
        """Issue a verification code for email and send it.

        A previously issued, unconsumed code for the address stops working.
        If sending fails the new code is revoked and DeliveryError propagates.
        """
        user = self._lookup_for_request(email)
        if user is None:
            return
        # Held across issue, send and revoke so a failed send can only revoke
        # its own code, never one a concurrent request issued afterwards.
        with self._codes.exclusive(user.email, CodePurpose.EMAIL_VERIFICATION):
            code = self._codes.issue(user.email, CodePurpose.EMAIL_VERIFICATION)
            try:
                self._notifier.send_verification_email(user.email, code)
            except Exception:
                self._codes.revoke(user.email, CodePurpose.EMAIL_VERIFICATION)
                raise

    def confirm_email_verification(self, email: str | None, code: str | None) -> None:
        """Consume the code and mark the user's email as verified."""
        email = _clean(email)
        if not email or not _clean(code):
            raise InvalidCodeError()
        if not self._codes.validate(email, CodePurpose.EMAIL_VERIFICATION, code):
            logger.warning("Rejected email verification code for %s", normalize_email(email))
            raise InvalidCodeError()

        with self._user_locks.hold(normalize_email(email)):
            user = self._users.find_by_email(email)
            if user is None:
                raise NotFoundError("No user found.", code="user_not_found")
            if not user.email_verified:
                user.email_verified = True
                self._save(user)
        logger.info("Email verified for user %s", user.id)

    # ------------------------------------------------------------------
    # Password reset
    # ------------------------------------------------------------------

    def request_password_reset(self, email: str | None) -> None:
        """Replace the user's password with a generated one and email it.

        The generated password is issued through the code issuer under the
        PASSWORD_RESET key, which supersedes any reset still in flight for the
        address. It is hashed and stored as the current password before the
        email is sent; the plaintext is never stored. The reset record is
        dropped once the attempt ends, delivered or not.
        """
        user = self._lookup_for_request(email)
        if user is None:
            return
        key_email = user.email
        with self._codes.exclusive(key_email, CodePurpose.PASSWORD_RESET), self._user_locks.hold(key_email):
            current = self._users.find_by_email(key_email)
            if current is None:
                raise NotFoundError("No user found.", code="user_not_found")
            new_password = self._codes.issue(key_email, CodePurpose.PASSWORD_RESET, code=generate_password())
            try:
                current.hashed_password = hash_password(new_password)
                self._save(current)
                logger.info("Password reset for user %s", current.id)
                self._notifier.send_password_reset_email(key_email, new_password)
            finally:
                self._codes.revoke(key_email, CodePurpose.PASSWORD_RESET)

    # ------------------------------------------------------------------
    # Profile
    # ------------------------------------------------------------------

    def update_profile(self, user_id: int, current_password: str | None, fields: ProfileUpdate) -> None:
        """Apply the provided fields after re-confirming the current password.

        Email is not updatable here. A new password is re-hashed before storage.
        """
        if not current_password:
            raise ValidationError("The current password is required.", code="current_password_required")
        if fields.password is not None:
            self._check_password_policy(fields.password)

        user = self._users.find_by_id(user_id)
        if user is None:
            raise NotFoundError("No user found.", code="user_not_found")

        with self._user_locks.hold(user.email):
            # Re-read under the lock so a concurrent update is not overwritten.
            user = self._users.find_by_id(user_id)
            if user is None:
                raise NotFoundError("No user found.", code="user_not_found")
            if not verify_password(current_password, user.hashed_password):
                logger.warning("Profile update rejected for user %s: wrong current password", user_id)
                raise AuthError("The current password is incorrect.", code="invalid_current_password")

            changed = []
            for field_name in ("name", "last_name1", "last_name2", "tel"):
                value = getattr(fields, field_name)
                if value is not None:
                    setattr(user, field_name, value.strip())
                    changed.append(field_name)
            if fields.password is not None:
                user.hashed_password = hash_password(fields.password)
                changed.append("password")
            if changed:
                self._save(user)
        logger.info("Profile updated for user %s (%s)", user_id, ", ".join(changed) or "no changes")

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_user(self, session: Session | None) -> SessionUser:
        current = self._sessions.current_user(session)
        if current is None:
            raise AuthError()
        return current

    def _lookup_for_request(self, email: str | None) -> User | None:
        """Find the target of a verification/reset request, honouring the enumeration policy."""
        email = _clean(email)
        if not email:
            raise ValidationError("Email is required.", code="missing_fields")
        user = self._users.find_by_email(email)
        if user is None:
            if self._settings.reveal_unknown_emails:
                raise NotFoundError("No user found.", code="user_not_found")
            logger.info("Ignoring request for unregistered email")
            return None
        return user

    def _validated_email(self, email: str) -> str:
        try:
            info = validate_email(email, check_deliverability=False)
        except EmailNotValidError as exc:
            raise ValidationError("The email address is not valid.", code="invalid_email") from exc
        return normalize_email(info.normalized)

    def _save(self, user: User) -> None:
        """Write user back; a row deleted since it was read is NotFoundError."""
        try:
            self._users.update(user)
        except LookupError as exc:
            raise NotFoundError("No user found.", code="user_not_found") from exc

    def _check_password_policy(self, password: str) -> None:
        if not password.strip():
            raise ValidationError("The password cannot be blank.", code="invalid_password")
        if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
            raise ValidationError(
                f"The password must be at most {MAX_PASSWORD_BYTES} bytes long.",
                code="invalid_password",
            )
        if len(password) < self._settings.password_min_length:
            raise ValidationError(
                f"The password must be at least {self._settings.password_min_length} characters.",
                code="invalid_password",
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def purge_expired_codes(self) -> int:
        return self._codes.purge_expired()

    def ping(self) -> bool:
        """True if the credential store answers a trivial query."""
        return self._users.ping()

    def close(self) -> None:
        self._users.close()
        self._codes.close()


def create_auth_service(settings: Settings | None = None, notifier: Notifier | None = None) -> AuthService:
    """Wire an AuthService against settings.database_url with the SMTP notifier.

    Both stores share one database URL; each owns its own engine.
    """
    settings = settings or get_settings()
    users = UserStore(db_url=settings.database_url)
    codes = VerificationCodeIssuer(CodeStore(db_url=settings.database_url), ttl_seconds=settings.code_ttl_seconds)
    return AuthService(users, codes, notifier or SmtpNotifier(settings), settings=settings)
