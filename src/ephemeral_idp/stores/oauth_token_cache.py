"""In-memory cache of third-party OAuth tokens, keyed by user id.

Entries hold whatever the login callback asserted; nothing here validates a
token with the provider.  An entry is never evicted: once stored it stays
until it is replaced by a newer :meth:`OAuthTokenCache.store` or
:meth:`OAuthTokenCache.refresh`.
"""

from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from enum import Enum

from ephemeral_idp.clock import Clock, utc_now
from ephemeral_idp.config import settings

logger = logging.getLogger(__name__)

# Characters of token material shown in logs
LOG_TOKEN_PREFIX = 30

# Last epoch second a datetime can hold (9999-12-31T23:59:59Z)
MAX_EXPIRES_AT = 253402300799


def truncate_token(token: str, max_len: int = LOG_TOKEN_PREFIX) -> str:
    """Shorten *token* for logging."""
    return token if len(token) <= max_len else token[:max_len]


@dataclass(frozen=True)
class OAuthTokenEntry:
    """Token material cached for one user."""

    user_id: str
    email: str
    access_token: str
    refresh_token: str
    expires_at: datetime
    created_at: datetime


class TokenState(str, Enum):
    VALID = "VALID"
    EXPIRING_SOON = "EXPIRING_SOON"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class TokenStatus:
    """One line of :meth:`OAuthTokenCache.status_report`."""

    user_id: str
    email: str
    state: TokenState
    expires_at: datetime
    time_until_expiry: timedelta


class OAuthTokenCache:
    """Thread-safe map of ``user_id → OAuthTokenEntry``.

    Mutations (:meth:`store`, :meth:`refresh`) replace the whole entry under
    the lock; readers get an immutable snapshot and must ask
    :meth:`is_stale` themselves.
    """

    def __init__(
        self,
        stale_buffer_seconds: int | None = None,
        refresh_ttl_seconds: int | None = None,
        *,
        clock: Clock = utc_now,
        lock: threading.Lock | None = None,
    ) -> None:
        if stale_buffer_seconds is None:
            stale_buffer_seconds = settings.oauth_stale_buffer_seconds
        if refresh_ttl_seconds is None:
            refresh_ttl_seconds = settings.oauth_refresh_ttl_seconds
        self._stale_buffer = timedelta(seconds=stale_buffer_seconds)
        self._refresh_ttl = timedelta(seconds=refresh_ttl_seconds)
        self._clock = clock
        self._lock = lock or threading.Lock()
        self._entries: dict[str, OAuthTokenEntry] = {}

    def store(
        self,
        user_id: str,
        email: str,
        access_token: str,
        refresh_token: str,
        expires_at: int,
    ) -> OAuthTokenEntry:
        """Cache the tokens for *user_id*; *expires_at* is epoch seconds."""
        entry = OAuthTokenEntry(
            user_id=user_id,
            email=email,
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=datetime.fromtimestamp(expires_at, tz=UTC),
            created_at=self._clock(),
        )
        with self._lock:
            self._entries[user_id] = entry
            total = len(self._entries)

        logger.info(
            "OAuth token stored: user=%s email=%s access=%s... (len %d) "
            "refresh=%s... (len %d) expires_at=%s total=%d",
            user_id,
            email,
            truncate_token(access_token),
            len(access_token),
            truncate_token(refresh_token),
            len(refresh_token),
            entry.expires_at.isoformat(),
            total,
        )
        return entry

    def lookup(self, user_id: str) -> OAuthTokenEntry | None:
        """Return the cached entry for *user_id* without judging its expiry."""
        with self._lock:
            return self._entries.get(user_id)

    def is_stale(self, entry: OAuthTokenEntry) -> bool:
        """``True`` once *entry* is inside the refresh buffer before expiry."""
        return self._clock() > entry.expires_at - self._stale_buffer

    def refresh(self, entry: OAuthTokenEntry) -> OAuthTokenEntry:
        """Mint a new access token for *entry*'s user and cache it.

        The refresh token is carried forward unchanged.  No provider is
        contacted, so this cannot fail; a real upstream exchange would need
        its own retry and failure handling.

        If the cached entry is no longer *entry* (a newer store or another
        refresh got there first), the cache is left alone and the current
        entry is returned instead.
        """
        refreshed = replace(
            entry,
            access_token=f"refreshed_access_token_{secrets.token_urlsafe(24)}",
            expires_at=self._clock() + self._refresh_ttl,
        )
        with self._lock:
            current = self._entries.get(entry.user_id)
            if current is not None and current is not entry:
                superseded = True
            else:
                superseded = False
                self._entries[entry.user_id] = refreshed

        if superseded:
            logger.info(
                "OAuth refresh for user=%s skipped; entry was replaced meanwhile",
                entry.user_id,
            )
            return current

        logger.info(
            "OAuth token refreshed: user=%s expires_at=%s",
            entry.user_id,
            refreshed.expires_at.isoformat(),
        )
        return refreshed

    def status_report(self) -> list[TokenStatus]:
        """Classify every cached entry without modifying any of them."""
        with self._lock:
            entries = list(self._entries.values())

        now = self._clock()
        report = []
        for entry in entries:
            remaining = entry.expires_at - now
            if remaining < timedelta(0):
                state = TokenState.EXPIRED
            elif remaining < self._stale_buffer:
                state = TokenState.EXPIRING_SOON
            else:
                state = TokenState.VALID
            report.append(
                TokenStatus(
                    user_id=entry.user_id,
                    email=entry.email,
                    state=state,
                    expires_at=entry.expires_at,
                    time_until_expiry=remaining,
                )
            )
        return report

    def log_status(self) -> None:
        report = self.status_report()
        if not report:
            logger.info("OAuth token status: no tokens cached")
            return
        logger.info("OAuth token status: %d cached token(s)", len(report))
        for status in report:
            logger.info(
                "  user=%s email=%s state=%s expires_at=%s remaining=%s",
                status.user_id,
                status.email,
                status.state.value,
                status.expires_at.isoformat(),
                status.time_until_expiry,
            )

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
