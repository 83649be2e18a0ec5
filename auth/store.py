"""
auth/store.py -- SQLAlchemy Core persistence layer for auth entities.

Pattern: Repository + Data Mapper. UserStore and CodeStore are the
repositories; _row_to_user / _row_to_code are the mappers. The service and
route code never touch SQL directly.

Security:
  All queries use bound parameters. No f-strings in SQL.

Concurrency:
  users.email is UNIQUE, so two concurrent registrations for one address
  cannot both insert; the loser gets IntegrityError.

  verification_codes has UNIQUE(email, purpose): at most one code exists per
  key. put() replaces inside one transaction and consume() is a single
  DELETE whose rowcount says whether this caller won, so a code can be
  consumed exactly once even without the issuer's in-process lock.

DB path: auth/sessionauth.db unless DATABASE_URL is set.

Layer rule: no imports from api/.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    Column,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
    create_engine,
    event,
    text,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.models import CodePurpose, User, VerificationCode

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

_metadata = MetaData()

_users = Table(
    "users",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False, unique=True),
    Column("name", String(100), nullable=False),
    Column("last_name1", String(100)),
    Column("last_name2", String(100)),
    Column("tel", String(30)),
    Column("hashed_password", Text, nullable=False),
    Column("user_type", String(30), nullable=False, server_default="standard"),
    Column("email_verified", Boolean, nullable=False, server_default="0"),
    Column("created_at", String(32), nullable=False),
)

_codes = Table(
    "verification_codes",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("email", String(255), nullable=False),
    Column("purpose", String(30), nullable=False),
    Column("code_digest", String(64), nullable=False),  # HMAC-SHA256 hex
    Column("issued_at", String(32), nullable=False),
    Column("expires_at", String(32), nullable=False),
    UniqueConstraint("email", "purpose", name="uq_verification_codes_key"),
)


# ---------------------------------------------------------------------------
# Engine helpers
# ---------------------------------------------------------------------------


def _set_wal_mode(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode for concurrent read safety.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    dbapi_conn.execute("PRAGMA journal_mode=WAL")


def _make_engine(db_url: str) -> Engine:
    connect_args: dict = {}
    if db_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
    engine = create_engine(db_url, connect_args=connect_args)
    if db_url.startswith("sqlite"):
        event.listen(engine, "connect", _set_wal_mode)
    _metadata.create_all(engine)
    return engine


def normalize_email(email: str) -> str:
    return email.strip().lower()


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="microseconds")


# ---------------------------------------------------------------------------
# Credential store
# ---------------------------------------------------------------------------


class UserStore:
    """Repository for User records and their password hashes.

    Usage:
        store = UserStore("sqlite:///:memory:")
        user = store.create(User(email="a@x.com", hashed_password=hash_password("pw"), name="Ana"))
        store.find_by_email("A@X.com")
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = _make_engine(db_url)

    def find_by_email(self, email: str) -> User | None:
        """Look up a user by email (case-insensitive). Returns None if not found."""
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.email == normalize_email(email))).fetchone()
        return _row_to_user(row) if row is not None else None

    def find_by_id(self, user_id: int) -> User | None:
        with self.engine.connect() as conn:
            row = conn.execute(_users.select().where(_users.c.id == user_id)).fetchone()
        return _row_to_user(row) if row is not None else None

    def create(self, user: User) -> User:
        """Insert a new user and return it with id and created_at filled in.

        Raises sqlalchemy.exc.IntegrityError if the email already exists.
        Callers translate that into a conflict.
        """
        created_at = _now_iso()
        email = normalize_email(user.email)
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.insert().values(
                    email=email,
                    name=user.name,
                    last_name1=user.last_name1,
                    last_name2=user.last_name2,
                    tel=user.tel,
                    hashed_password=user.hashed_password,
                    user_type=user.user_type,
                    email_verified=user.email_verified,
                    created_at=created_at,
                )
            )
            user_id = result.inserted_primary_key[0]
        return User(
            id=user_id,
            email=email,
            name=user.name,
            last_name1=user.last_name1,
            last_name2=user.last_name2,
            tel=user.tel,
            hashed_password=user.hashed_password,
            user_type=user.user_type,
            email_verified=user.email_verified,
            created_at=created_at,
        )

    def update(self, user: User) -> None:
        """Write every mutable field of user. email, id and created_at are never changed.

        Raises LookupError if the user no longer exists.
        """
        with self.engine.begin() as conn:
            result = conn.execute(
                _users.update()
                .where(_users.c.id == user.id)
                .values(
                    name=user.name,
                    last_name1=user.last_name1,
                    last_name2=user.last_name2,
                    tel=user.tel,
                    hashed_password=user.hashed_password,
                    user_type=user.user_type,
                    email_verified=user.email_verified,
                )
            )
        if result.rowcount == 0:
            raise LookupError(f"user {user.id} does not exist")

    def count(self) -> int:
        with self.engine.connect() as conn:
            result = conn.execute(text("SELECT COUNT(*) FROM users")).scalar()
        return result or 0

    def ping(self) -> bool:
        """Return True if the database answers a trivial query. Used by /health."""
        try:
            with self.engine.connect() as conn:
                conn.execute(_users.select().limit(1)).fetchall()
        except SQLAlchemyError:
            return False
        return True

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Verification code store
# ---------------------------------------------------------------------------


class CodeStore:
    """Repository for single-use verification codes, keyed by (email, purpose)."""

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = _make_engine(db_url)

    def put(self, email: str, purpose: CodePurpose, code_digest: str, issued_at: str, expires_at: str) -> None:
        """Store a code, replacing any existing one for the same key."""
        email = normalize_email(email)
        with self.engine.begin() as conn:
            conn.execute(_codes.delete().where((_codes.c.email == email) & (_codes.c.purpose == purpose.value)))
            conn.execute(
                _codes.insert().values(
                    email=email,
                    purpose=purpose.value,
                    code_digest=code_digest,
                    issued_at=issued_at,
                    expires_at=expires_at,
                )
            )

    def get_active(self, email: str, purpose: CodePurpose, now: str | None = None) -> VerificationCode | None:
        """Return the unexpired code for the key, or None.

        Expiry is judged here, at read time. There is no background sweep.
        """
        now = now or _now_iso()
        with self.engine.connect() as conn:
            row = conn.execute(
                _codes.select().where(
                    (_codes.c.email == normalize_email(email)) & (_codes.c.purpose == purpose.value)
                )
            ).fetchone()
        if row is None or row.expires_at <= now:
            return None
        return _row_to_code(row)

    def consume(self, email: str, purpose: CodePurpose, code_digest: str | None = None) -> bool:
        """Delete the code for the key and return True if a row was deleted.

        When code_digest is given the row is deleted only if it still holds
        that digest, so two racing consumers cannot both succeed.
        """
        clause = (_codes.c.email == normalize_email(email)) & (_codes.c.purpose == purpose.value)
        if code_digest is not None:
            clause = clause & (_codes.c.code_digest == code_digest)
        with self.engine.begin() as conn:
            result = conn.execute(_codes.delete().where(clause))
        return result.rowcount > 0

    def purge_expired(self, now: str | None = None) -> int:
        """Delete all expired codes. Returns number of rows removed."""
        now = now or _now_iso()
        with self.engine.begin() as conn:
            result = conn.execute(_codes.delete().where(_codes.c.expires_at <= now))
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


# ---------------------------------------------------------------------------
# Row mappers (Data Mapper pattern)
# ---------------------------------------------------------------------------


def _row_to_user(row) -> User:
    return User(
        id=row.id,
        email=row.email,
        name=row.name,
        last_name1=row.last_name1,
        last_name2=row.last_name2,
        tel=row.tel,
        hashed_password=row.hashed_password,
        user_type=row.user_type,
        email_verified=bool(row.email_verified),
        created_at=row.created_at,
    )


def _row_to_code(row) -> VerificationCode:
    return VerificationCode(
        email=row.email,
        purpose=CodePurpose(row.purpose),
        code_digest=row.code_digest,
        issued_at=row.issued_at,
        expires_at=row.expires_at,
    )
