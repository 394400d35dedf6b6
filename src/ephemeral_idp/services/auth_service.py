"""Authentication service — turns a verified identity into a bearer token.

Three ways in
-------------
1. Password login: the username is trusted as given (no password check).
2. OTP: ``request_otp`` issues and delivers a code, ``verify_otp``
   consumes it and issues a token.
3. OAuth callback: provider tokens, when present, are cached for later
   use and a token is issued either way.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable

from ephemeral_idp.config import settings
from ephemeral_idp.services.email_service import EmailService
from ephemeral_idp.services.otp_generator import generate_otp
from ephemeral_idp.services.token_signer import TokenSigner
from ephemeral_idp.stores.oauth_token_cache import OAuthTokenCache, OAuthTokenEntry
from ephemeral_idp.stores.otp_store import OTPStore

logger = logging.getLogger(__name__)


class AuthService:
    """Composes the OTP store, OAuth token cache and token signer."""

    def __init__(
        self,
        otp_store: OTPStore,
        token_cache: OAuthTokenCache,
        signer: TokenSigner,
        email_service: EmailService,
        *,
        otp_generator: Callable[[], str] = generate_otp,
        oauth_providers: Iterable[str] | None = None,
    ) -> None:
        self.otp_store = otp_store
        self.token_cache = token_cache
        self._signer = signer
        self._email = email_service
        self._generate_otp = otp_generator
        providers = settings.oauth_providers if oauth_providers is None else oauth_providers
        self._providers = {p.lower() for p in providers}

    def password_login(self, username: str, password: str) -> str:
        logger.info("Password login for %s (password not checked)", username)
        return self._signer.issue(username)

    async def request_otp(self, email: str) -> None:
        """Issue a fresh challenge for *email* and hand the code to delivery."""
        code = self._generate_otp()
        self.otp_store.issue(email, code)
        await self._email.send_otp(email, code)

    def verify_otp(self, email: str, code: str) -> str | None:
        """Return a bearer token if *code* is the outstanding one, else ``None``.

        Unknown email, expired challenge and wrong code all look the same
        to the caller.
        """
        if not self.otp_store.verify(email, code):
            return None
        return self._signer.issue(email)

    def oauth_login(
        self,
        email: str,
        name: str,
        provider: str,
        access_token: str | None = None,
        refresh_token: str | None = None,
        expires_at: int | None = None,
    ) -> str:
        """Cache provider tokens if we track *provider*, then issue a token."""
        logger.info("OAuth login: provider=%s email=%s name=%s", provider, email, name)

        if provider.lower() in self._providers:
            if access_token:
                self.token_cache.store(
                    user_id=email,
                    email=email,
                    access_token=access_token,
                    refresh_token=refresh_token or "",
                    expires_at=expires_at or 0,
                )
            else:
                logger.warning(
                    "OAuth login for %s via %s carried no access token; nothing cached",
                    email,
                    provider,
                )

        return self._signer.issue(email)

    def live_oauth_token(self, user_id: str) -> tuple[OAuthTokenEntry, bool] | None:
        """Return ``(entry, refreshed)`` with the live entry for *user_id*.

        ``refreshed`` is ``True`` when the access token differs from the one
        that was cached at lookup time.  ``None`` if nothing is cached for
        the user.
        """
        entry = self.token_cache.lookup(user_id)
        if entry is None:
            return None
        if not self.token_cache.is_stale(entry):
            return entry, False
        logger.info(
            "OAuth token for %s is stale (expires %s); refreshing",
            user_id,
            entry.expires_at.isoformat(),
        )
        live = self.token_cache.refresh(entry)
        return live, live.access_token != entry.access_token

    def authenticate(self, bearer_token: str) -> str:
        """Return the subject of one of our own bearer tokens."""
        return self._signer.verify(bearer_token)
