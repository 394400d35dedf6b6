"""In-memory OTP challenge store with expiry and single-use consumption."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta

from ephemeral_idp.clock import Clock, utc_now
from ephemeral_idp.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OTPChallenge:
    """One outstanding code for one email."""

    email: str
    code: str
    expiry: datetime

    def is_expired(self, now: datetime) -> bool:
        return now > self.expiry


class OTPStore:
    """Thread-safe in-memory OTP store.

    Each entry maps ``email → OTPChallenge``; issuing again for the same
    email replaces the outstanding challenge.  Expiry is checked on every
    :meth:`verify`, and :meth:`sweep` reclaims entries nobody came back for.

    Every operation, including the read-then-delete in :meth:`verify`, runs
    under one exclusive lock, so a code can be consumed at most once.
    """

    def __init__(
        self,
        ttl_seconds: int | None = None,
        *,
        clock: Clock = utc_now,
        lock: threading.Lock | None = None,
    ) -> None:
        ttl = settings.otp_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._ttl = timedelta(seconds=ttl)
        self._clock = clock
        self._lock = lock or threading.Lock()
        self._challenges: dict[str, OTPChallenge] = {}

    def issue(self, email: str, code: str) -> None:
        """Store *code* for *email*, replacing any outstanding challenge."""
        challenge = OTPChallenge(email=email, code=code, expiry=self._clock() + self._ttl)
        with self._lock:
            replaced = email in self._challenges
            self._challenges[email] = challenge
        logger.info(
            "OTP challenge %s for %s (expires %s)",
            "replaced" if replaced else "issued",
            email,
            challenge.expiry.isoformat(),
        )

    def verify(self, email: str, code: str) -> bool:
        """Return ``True`` and consume the challenge if *code* matches.

        A wrong code leaves the challenge in place so the user can retry
        until it expires.  An expired challenge is removed on sight.
        """
        with self._lock:
            challenge = self._challenges.get(email)
            if challenge is None:
                outcome = "not_found"
            elif challenge.is_expired(self._clock()):
                del self._challenges[email]
                outcome = "expired"
            elif challenge.code != code:
                outcome = "mismatch"
            else:
                del self._challenges[email]
                outcome = "consumed"

        logger.info("OTP verification: email=%s outcome=%s", email, outcome)
        return outcome == "consumed"

    def sweep(self) -> int:
        """Remove every expired challenge and return how many were removed."""
        with self._lock:
            now = self._clock()
            expired = [
                email
                for email, challenge in self._challenges.items()
                if challenge.is_expired(now)
            ]
            for email in expired:
                del self._challenges[email]

        if expired:
            logger.info("Swept %d expired OTP challenge(s)", len(expired))
        return len(expired)

    def __contains__(self, email: object) -> bool:
        with self._lock:
            return email in self._challenges

    def __len__(self) -> int:
        with self._lock:
            return len(self._challenges)
