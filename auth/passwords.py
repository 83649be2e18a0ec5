"""
auth/passwords.py -- Password hashing and one-time secret utilities.

Security design decisions:
  Passwords: bcrypt used directly (no passlib wrapper). Bcrypt is the right
       choice for low-entropy secrets because its cost factor makes offline
       brute force expensive. The cost comes from Settings.bcrypt_rounds.
       _DUMMY_HASH enables timing equalization in AuthService.login() so
       response time does not reveal whether an email is registered.

  Verification codes: generated with secrets over an unambiguous alphabet and
       stored as HMAC-SHA256(SECRET_KEY, code). The digest is deterministic so
       the code store can compare without bcrypt's slowness; codes are
       short-lived and single-use, so the HMAC key is what protects a leaked
       table.

  Generated passwords: password reset emails a fresh random password. It is
       hashed with bcrypt like any user-chosen password and never stored in
       plaintext.

Layer rule: no imports from api/. Import from core/ is allowed.
"""

from __future__ import annotations

import hashlib
import hmac
import secrets
import string

import bcrypt

from core.config import get_settings

# Config -- read once at module load via the lru_cache singleton
_settings = get_settings()

# No 0/O, 1/l/I: codes and reset passwords are typed in by hand from an email.
_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
_PASSWORD_ALPHABET = "".join(c for c in string.ascii_letters + string.digits if c not in "0O1lI")


# bcrypt only reads the first 72 bytes of its input; bcrypt>=5 raises
# ValueError beyond that instead of truncating.
MAX_PASSWORD_BYTES = 72


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    plain must encode to at most MAX_PASSWORD_BYTES UTF-8 bytes, otherwise
    bcrypt raises ValueError. AuthService enforces the limit before hashing.
    """
    salt = bcrypt.gensalt(rounds=_settings.bcrypt_rounds)
    return bcrypt.hashpw(plain.encode("utf-8"), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    bcrypt.checkpw compares in constant time. A malformed hash is a mismatch,
    never an exception.
    """
    try:
        return bcrypt.checkpw(plain.encode("utf-8"), hashed.encode("utf-8"))
    except (ValueError, TypeError):
        return False


# Computed once at module load so the first login attempt is not measurably
# slower than subsequent ones.
DUMMY_HASH: str = hash_password("sessionauth_timing_dummy")


def generate_code(length: int | None = None) -> str:
    """Return a random verification code, e.g. 'K7QX2M9D'."""
    n = length or _settings.code_length
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(n))


def generate_password(length: int | None = None) -> str:
    """Return a random password containing at least one digit and one letter."""
    n = length or _settings.reset_password_length
    while True:
        candidate = "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(n))
        if any(c.isdigit() for c in candidate) and any(c.isalpha() for c in candidate):
            return candidate


def digest_code(code: str) -> str:
    """Return HMAC-SHA256(SECRET_KEY, code) as a hex string.

    Codes are case-insensitive for the user; the digest is taken over the
    stripped, uppercased form.
    """
    return hmac.new(
        _settings.secret_key.encode(),
        code.strip().upper().encode(),
        hashlib.sha256,
    ).hexdigest()


def codes_match(candidate_digest: str, stored_digest: str) -> bool:
    """Constant-time digest comparison."""
    return hmac.compare_digest(candidate_digest, stored_digest)
