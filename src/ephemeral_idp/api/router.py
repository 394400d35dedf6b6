"""HTTP routes — login, OTP and OAuth-callback endpoints.

Endpoints
---------
POST /login         → bearer token for a username (password not checked)
POST /send-otp      → issue and deliver an OTP
POST /verify-otp    → consume an OTP, bearer token on success
POST /oauth-login   → cache provider tokens, bearer token
GET  /oauth-token   → live provider token for the bearer's own account
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import BaseModel, Field

from ephemeral_idp.errors import (
    InvalidCredentialError,
    OTPDeliveryError,
    TokenIssuanceError,
)
from ephemeral_idp.services.auth_service import AuthService
from ephemeral_idp.stores.oauth_token_cache import MAX_EXPIRES_AT

logger = logging.getLogger(__name__)

router = APIRouter(tags=["auth"])

_bearer = HTTPBearer(auto_error=False)


# ── Request / response models ────────────────────────────

class LoginRequest(BaseModel):
    username: str = Field(min_length=1)
    password: str = Field(min_length=1)


class TokenResponse(BaseModel):
    token: str


class OTPRequest(BaseModel):
    email: str = Field(min_length=1)


class OTPResponse(BaseModel):
    success: bool
    message: str


class OTPVerifyRequest(BaseModel):
    email: str = Field(min_length=1)
    otp: str = Field(min_length=1)


class OAuthLoginRequest(BaseModel):
    email: str = Field(min_length=1)
    name: str = Field(min_length=1)
    provider: str = Field(min_length=1)
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: int | None = Field(
        default=None, ge=0, le=MAX_EXPIRES_AT, description="Epoch seconds"
    )


class OAuthTokenResponse(BaseModel):
    user_id: str
    email: str
    access_token: str
    expires_at: int
    refreshed: bool


# ── Dependencies ─────────────────────────────────────────

def get_auth_service(request: Request) -> AuthService:
    """The service instance built at startup (see ``main.lifespan``)."""
    return request.app.state.auth_service


def _issue_or_500(issue, *args) -> TokenResponse:
    try:
        return TokenResponse(token=issue(*args))
    except TokenIssuanceError:
        raise HTTPException(status_code=500, detail="Failed to generate token")


# ── Endpoints ────────────────────────────────────────────

@router.post("/login", response_model=TokenResponse)
async def login(body: LoginRequest, service: AuthService = Depends(get_auth_service)):
    """Password login.  The password is accepted as given."""
    return _issue_or_500(service.password_login, body.username, body.password)


@router.post("/send-otp", response_model=OTPResponse)
async def send_otp(body: OTPRequest, service: AuthService = Depends(get_auth_service)):
    """Issue a one-time code for the email and deliver it."""
    try:
        await service.request_otp(body.email)
    except OTPDeliveryError:
        raise HTTPException(status_code=502, detail="Failed to deliver OTP")
    return OTPResponse(success=True, message="OTP sent successfully")


@router.post("/verify-otp", response_model=TokenResponse)
async def verify_otp(
    body: OTPVerifyRequest, service: AuthService = Depends(get_auth_service)
):
    """Exchange a valid OTP for a bearer token."""
    try:
        token = service.verify_otp(body.email, body.otp)
    except TokenIssuanceError:
        raise HTTPException(status_code=500, detail="Failed to generate token")
    if token is None:
        raise HTTPException(status_code=401, detail="Invalid or expired OTP")
    return TokenResponse(token=token)


@router.post("/oauth-login", response_model=TokenResponse)
async def oauth_login(
    body: OAuthLoginRequest, service: AuthService = Depends(get_auth_service)
):
    """Federated login callback from the front end."""
    return _issue_or_500(
        service.oauth_login,
        body.email,
        body.name,
        body.provider,
        body.access_token,
        body.refresh_token,
        body.expires_at,
    )


@router.get("/oauth-token", response_model=OAuthTokenResponse)
async def oauth_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer),
    service: AuthService = Depends(get_auth_service),
):
    """Return the caller's cached provider token, refreshing it if stale."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    try:
        user_id = service.authenticate(credentials.credentials)
    except InvalidCredentialError:
        raise HTTPException(status_code=401, detail="Invalid bearer token")

    live = service.live_oauth_token(user_id)
    if live is None:
        raise HTTPException(status_code=404, detail="No OAuth token cached for this user")

    entry, refreshed = live
    return OAuthTokenResponse(
        user_id=entry.user_id,
        email=entry.email,
        access_token=entry.access_token,
        expires_at=int(entry.expires_at.timestamp()),
        refreshed=refreshed,
    )
