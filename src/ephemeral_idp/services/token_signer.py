"""Bearer-token signing and verification using PyJWT."""

from __future__ import annotations

import logging
from datetime import timedelta

import jwt

from ephemeral_idp.clock import Clock, utc_now
from ephemeral_idp.config import settings
from ephemeral_idp.errors import InvalidCredentialError, TokenIssuanceError

logger = logging.getLogger(__name__)


class TokenSigner:
    """Issues HMAC-signed JWTs with a fixed validity window."""

    def __init__(
        self,
        secret: str | None = None,
        algorithm: str | None = None,
        ttl_seconds: int | None = None,
        *,
        clock: Clock = utc_now,
    ) -> None:
        self._secret = secret or settings.jwt_secret
        self._algorithm = algorithm or settings.jwt_algorithm
        ttl = settings.jwt_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._ttl = timedelta(seconds=ttl)
        self._clock = clock

    def issue(self, subject: str) -> str:
        """Return a signed token for *subject*.

        Raises :class:`TokenIssuanceError` if the token cannot be produced.
        """
        if not subject:
            raise TokenIssuanceError("Cannot issue a token without a subject")

        now = self._clock()
        payload = {
            "username": subject,
            "sub": subject,
            "iat": int(now.timestamp()),
            "exp": int((now + self._ttl).timestamp()),
        }
        try:
            token = jwt.encode(payload, self._secret, algorithm=self._algorithm)
        except (jwt.PyJWTError, NotImplementedError, TypeError, ValueError) as exc:
            logger.exception("Failed to sign token for %s", subject)
            raise TokenIssuanceError(str(exc)) from exc

        logger.info("Issued bearer token for %s (valid %s)", subject, self._ttl)
        return token

    def verify(self, token: str) -> str:
        """Decode *token* and return its subject.

        Raises :class:`InvalidCredentialError` for anything that is not a
        current token signed with our secret.
        """
        try:
            payload = jwt.decode(
                token,
                self._secret,
                algorithms=[self._algorithm],
                options={"require": ["exp", "sub"]},
            )
        except jwt.ExpiredSignatureError as exc:
            logger.debug("Bearer token expired")
            raise InvalidCredentialError("Token expired") from exc
        except jwt.InvalidTokenError as exc:
            logger.debug("Invalid bearer token: %s", exc)
            raise InvalidCredentialError("Invalid token") from exc
        return payload["sub"]
