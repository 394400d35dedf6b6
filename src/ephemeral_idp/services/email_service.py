"""Email service — delivers OTP codes via async SMTP."""

from __future__ import annotations

import logging
from email.message import EmailMessage

import aiosmtplib

from ephemeral_idp.config import Settings, settings as default_settings
from ephemeral_idp.errors import OTPDeliveryError

logger = logging.getLogger(__name__)


def mask_email(email: str) -> str:
    """Mask an email for privacy: ``j***n@example.com``."""
    local, sep, domain = email.partition("@")
    if not sep or not local:
        return "***"
    if len(local) <= 2:
        masked_local = local[0] + "***"
    else:
        masked_local = local[0] + "***" + local[-1]
    return f"{masked_local}@{domain}"


class EmailService:
    """Sends OTP emails using the configured SMTP server.

    With no ``smtp_host`` configured the code is written to the log
    instead, which is how codes are picked up during local development.
    """

    def __init__(self, config: Settings | None = None) -> None:
        self._config = config or default_settings

    async def send_otp(self, to_email: str, code: str) -> None:
        """Deliver *code* to *to_email*.

        Raises :class:`OTPDeliveryError` if the SMTP server rejects or
        cannot be reached.
        """
        if not self._config.smtp_host:
            logger.info("📧 OTP for %s: %s  (SMTP not configured, logged only)", to_email, code)
            return

        msg = EmailMessage()
        msg["Subject"] = f"Your {self._config.app_name} sign-in code"
        msg["From"] = self._config.email_from
        msg["To"] = to_email
        msg.set_content(
            f"Your one-time sign-in code is {code}.\n\n"
            f"It expires in {self._config.otp_ttl_seconds // 60} minutes. "
            "If you did not request it, you can ignore this email.\n\n"
            f"The {self._config.app_name} Team"
        )

        logger.info("Sending OTP email to %s", mask_email(to_email))
        try:
            await aiosmtplib.send(
                msg,
                hostname=self._config.smtp_host,
                port=self._config.smtp_port,
                username=self._config.smtp_username or None,
                password=self._config.smtp_password or None,
                start_tls=True,
            )
        except (aiosmtplib.SMTPException, OSError) as exc:
            logger.exception("OTP email to %s failed", mask_email(to_email))
            raise OTPDeliveryError(str(exc)) from exc

        logger.info("OTP email sent to %s", mask_email(to_email))
