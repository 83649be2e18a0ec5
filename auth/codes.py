"""
auth/codes.py -- Issue and validate single-use verification codes.

A code is keyed by (email, purpose). Issuing replaces whatever code the key
held; validating consumes it. Both run under a per-key lock so a validation
cannot interleave with another validation or with a re-issue for the same
key. The store's compare-and-delete is the second line: even across
processes, only one consumer can delete the row.

Expiry is a fixed TTL (Settings.code_ttl_seconds, 15 minutes by default)
evaluated when a code is validated. Nothing sweeps expired rows in the
background; purge_expired() is there for an operator or a scheduler.

Validation fails closed: a missing key, a wrong code and an expired code all
return False, and none of them tell the caller which case it was.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from auth.locks import KeyedLock
from auth.models import CodePurpose
from auth.passwords import codes_match, digest_code, generate_code
from auth.store import CodeStore, normalize_email
from core.config import get_settings

logger = logging.getLogger("sessionauth.auth.codes")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _iso(moment: datetime) -> str:
    return moment.isoformat(timespec="microseconds")


class VerificationCodeIssuer:
    """Generates, stores and checks codes for one CodeStore.

    Usage:
        issuer = VerificationCodeIssuer(CodeStore(url))
        code = issuer.issue("a@x.com", CodePurpose.EMAIL_VERIFICATION)
        issuer.validate("a@x.com", CodePurpose.EMAIL_VERIFICATION, code)   # True
        issuer.validate("a@x.com", CodePurpose.EMAIL_VERIFICATION, code)   # False, consumed
    """

    def __init__(
        self,
        store: CodeStore,
        ttl_seconds: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._store = store
        self._ttl = timedelta(seconds=ttl_seconds if ttl_seconds is not None else get_settings().code_ttl_seconds)
        self._clock = clock
        self._locks = KeyedLock()

    @contextmanager
    def exclusive(self, email: str, purpose: CodePurpose) -> Iterator[None]:
        """Hold the per-key lock for a multi-step operation on one key.

        Re-entrant, so issue() and validate() may be called inside it.
        """
        with self._locks.hold((normalize_email(email), purpose.value)):
            yield

    def issue(self, email: str, purpose: CodePurpose, code: str | None = None) -> str:
        """Create a code for the key, invalidating any unconsumed one, and return it.

        The plaintext is returned once for delivery. Only its digest is stored.
        A caller-supplied code (e.g. a generated password) is stored the same way.
        """
        plain = code or generate_code()
        with self.exclusive(email, purpose):
            issued = self._clock()
            self._store.put(
                email,
                purpose,
                digest_code(plain),
                issued_at=_iso(issued),
                expires_at=_iso(issued + self._ttl),
            )
        logger.info("Issued %s code for %s", purpose.value, normalize_email(email))
        return plain

    def validate(self, email: str, purpose: CodePurpose, candidate: str | None) -> bool:
        """Return True and consume the code if candidate matches the active code.

        Returns False for an empty candidate, a missing or expired code, a
        mismatch, or losing a consume race. A mismatch leaves the code active.
        """
        if not candidate or not candidate.strip():
            return False
        candidate_digest = digest_code(candidate)
        with self.exclusive(email, purpose):
            active = self._store.get_active(email, purpose, now=_iso(self._clock()))
            if active is None or not codes_match(candidate_digest, active.code_digest):
                return False
            return self._store.consume(email, purpose, code_digest=active.code_digest)

    def revoke(self, email: str, purpose: CodePurpose) -> bool:
        """Drop the key's code whatever its value. Returns True if one existed."""
        with self.exclusive(email, purpose):
            return self._store.consume(email, purpose)

    def purge_expired(self) -> int:
        removed = self._store.purge_expired(now=_iso(self._clock()))
        if removed:
            logger.info("Purged %d expired verification code(s)", removed)
        return removed

    def close(self) -> None:
        self._store.close()
