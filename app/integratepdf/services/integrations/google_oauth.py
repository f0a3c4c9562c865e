"""
Google OAuth consent flow for the Sheets integration.

The state parameter is a short-lived JWT carrying the caller's identity,
signed with the OAuth client secret, so the callback can attribute the
connection without a session.
"""

import logging
import time
from typing import Any
from urllib.parse import urlencode

import httpx
import jwt

from .base import IntegrationError, network_error, response_error_message

logger = logging.getLogger(__name__)

GOOGLE_AUTH_URL = "https://accounts.google.com/o/oauth2/v2/auth"
GOOGLE_TOKEN_URL = "https://oauth2.googleapis.com/token"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v2/userinfo"

GOOGLE_SCOPES = " ".join(
    [
        "https://www.googleapis.com/auth/spreadsheets",
        "https://www.googleapis.com/auth/drive.file",
        "https://www.googleapis.com/auth/userinfo.email",
        "https://www.googleapis.com/auth/userinfo.profile",
    ]
)

STATE_TTL_SECONDS = 5 * 60


class OAuthStateError(Exception):
    """Raised when the callback state is missing, forged or expired."""

    pass


def create_state(external_id: str, signing_key: str, now: float | None = None) -> str:
    issued_at = int(now if now is not None else time.time())
    return jwt.encode(
        {"sub": external_id, "iat": issued_at, "exp": issued_at + STATE_TTL_SECONDS},
        signing_key,
        algorithm="HS256",
    )


def verify_state(state: str, signing_key: str) -> str:
    """Return the identity id carried by the state."""
    try:
        claims = jwt.decode(state, signing_key, algorithms=["HS256"], options={"require": ["sub", "exp"]})
    except jwt.ExpiredSignatureError as e:
        raise OAuthStateError("State parameter expired") from e
    except jwt.PyJWTError as e:
        raise OAuthStateError("Invalid state parameter") from e
    return claims["sub"]


def build_authorization_url(client_id: str, redirect_uri: str, state: str) -> str:
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "scope": GOOGLE_SCOPES,
        "access_type": "offline",
        "prompt": "consent",
        "state": state,
    }
    return f"{GOOGLE_AUTH_URL}?{urlencode(params)}"


async def exchange_code(
    code: str,
    client_id: str,
    client_secret: str,
    redirect_uri: str,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    """Exchange an authorization code for tokens."""
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.post(
                GOOGLE_TOKEN_URL,
                data={
                    "client_id": client_id,
                    "client_secret": client_secret,
                    "code": code,
                    "grant_type": "authorization_code",
                    "redirect_uri": redirect_uri,
                },
            )
    except httpx.HTTPError as e:
        raise network_error(e) from e

    if response.is_error:
        logger.error("Google token exchange failed: %s", response_error_message(response))
        raise IntegrationError(
            code="GOOGLE_TOKEN_EXCHANGE_FAILED",
            message="Token exchange failed",
            details=response_error_message(response),
        )
    return response.json()


async def fetch_user_info(
    access_token: str,
    timeout: float = 30.0,
    transport: httpx.AsyncBaseTransport | None = None,
) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=timeout, transport=transport) as client:
            response = await client.get(
                GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"}
            )
    except httpx.HTTPError as e:
        raise network_error(e) from e

    if response.is_error:
        raise IntegrationError(
            code="GOOGLE_USER_INFO_FAILED",
            message="Failed to get user info from Google",
            details=response_error_message(response),
        )
    return response.json()


def build_integration_config(
    tokens: dict[str, Any], user_info: dict[str, Any], client_id: str
) -> dict[str, Any]:
    """Integration config from a token response; secrets are encrypted by the caller."""
    expires_in = tokens.get("expires_in")
    return {
        "access_token": tokens["access_token"],
        "refresh_token": tokens.get("refresh_token"),
        "client_id": client_id,
        "user_email": user_info.get("email"),
        "user_name": user_info.get("name"),
        "expires_at": int(time.time()) + int(expires_in) if expires_in else None,
        "scope": tokens.get("scope") or GOOGLE_SCOPES,
    }
