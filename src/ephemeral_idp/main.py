"""FastAPI application entry point."""

import logging
import time
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ephemeral_idp.api.router import router as auth_router
from ephemeral_idp.config import DEFAULT_JWT_SECRET, Settings, settings
from ephemeral_idp.services.auth_service import AuthService
from ephemeral_idp.services.email_service import EmailService
from ephemeral_idp.services.sweeper import PeriodicTask
from ephemeral_idp.services.token_signer import TokenSigner
from ephemeral_idp.stores.oauth_token_cache import OAuthTokenCache
from ephemeral_idp.stores.otp_store import OTPStore

logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)

logger = logging.getLogger(__name__)


def build_auth_service(config: Settings) -> AuthService:
    """Construct the stores and collaborators for one process."""
    return AuthService(
        otp_store=OTPStore(ttl_seconds=config.otp_ttl_seconds),
        token_cache=OAuthTokenCache(
            stale_buffer_seconds=config.oauth_stale_buffer_seconds,
            refresh_ttl_seconds=config.oauth_refresh_ttl_seconds,
        ),
        signer=TokenSigner(
            secret=config.jwt_secret,
            algorithm=config.jwt_algorithm,
            ttl_seconds=config.jwt_ttl_seconds,
        ),
        email_service=EmailService(config),
        oauth_providers=config.oauth_providers,
    )


def create_app(config: Settings | None = None) -> FastAPI:
    config = config or settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Startup / shutdown lifecycle hook."""
        logger.info("Starting %s …", config.app_name)
        if config.jwt_secret == DEFAULT_JWT_SECRET:
            logger.warning("JWT_SECRET not set — using the development default")

        service = build_auth_service(config)
        app.state.auth_service = service

        tasks = [
            PeriodicTask(
                "otp-sweep", config.otp_sweep_interval_seconds, service.otp_store.sweep
            )
        ]
        if config.oauth_status_interval_seconds > 0:
            tasks.append(
                PeriodicTask(
                    "oauth-token-status",
                    config.oauth_status_interval_seconds,
                    service.token_cache.log_status,
                )
            )
        for task in tasks:
            task.start()

        yield

        for task in tasks:
            await task.stop()
        logger.info("Shutting down %s …", config.app_name)

    app = FastAPI(
        title=config.app_name,
        description="Issues short-lived bearer tokens after password, OTP or OAuth login",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors_allow_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Origin", "Content-Length", "Content-Type", "Authorization"],
    )

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        rid = request.headers.get("x-request-id") or uuid.uuid4().hex
        start = time.perf_counter()
        logger.info("REQ rid=%s method=%s path=%s", rid, request.method, request.url.path)
        try:
            response = await call_next(request)
        except Exception:
            dur_ms = int((time.perf_counter() - start) * 1000)
            logger.exception("ERR rid=%s dur_ms=%s path=%s", rid, dur_ms, request.url.path)
            raise
        dur_ms = int((time.perf_counter() - start) * 1000)
        logger.info("RES rid=%s status=%s dur_ms=%s", rid, response.status_code, dur_ms)
        response.headers["X-Request-ID"] = rid
        return response

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info("Rejected malformed request to %s: %s", request.url.path, exc.errors())
        return JSONResponse(status_code=400, content={"detail": "Invalid request format"})

    app.include_router(auth_router)

    @app.get("/health")
    async def health_check():
        """Simple liveness check."""
        return {"status": "healthy", "app": config.app_name}

    return app


app = create_app()
