"""Ephemeral IdP — configuration loaded from environment."""

from pydantic_settings import BaseSettings

DEFAULT_JWT_SECRET = "dev-only-signing-secret-change-me-before-deploying"


class Settings(BaseSettings):
    """Application-wide settings, loaded from .env or environment variables."""

    # ── Bearer tokens ─────────────────────────────────────
    jwt_secret: str = DEFAULT_JWT_SECRET
    jwt_algorithm: str = "HS256"
    jwt_ttl_seconds: int = 24 * 60 * 60

    # ── OTP challenges ────────────────────────────────────
    otp_ttl_seconds: int = 5 * 60
    otp_sweep_interval_seconds: float = 60.0

    # ── OAuth token cache ─────────────────────────────────
    oauth_providers: list[str] = ["google"]
    oauth_stale_buffer_seconds: int = 5 * 60
    oauth_refresh_ttl_seconds: int = 60 * 60
    oauth_status_interval_seconds: float = 0.0  # 0 disables the report

    # ── OTP delivery (SMTP) ───────────────────────────────
    smtp_host: str = ""
    smtp_port: int = 587
    smtp_username: str = ""
    smtp_password: str = ""
    email_from: str = "no-reply@localhost"

    # ── App ───────────────────────────────────────────────
    app_name: str = "Ephemeral IdP"
    cors_allow_origins: list[str] = ["*"]
    debug: bool = False

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton settings instance
settings = Settings()
