"""
Router for Google Sheets: the OAuth flow and spreadsheet access.

Handles:
- Building the consent URL for the signed-in user
- The OAuth callback, which creates a google_sheets integration
- Fetching or creating a spreadsheet with the active integration
"""

import logging
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse, RedirectResponse
from sqlalchemy.orm import Session

from ..auth import Identity, get_current_identity, get_current_user
from ..config import get_settings
from ..database import get_db
from ..models import SpreadsheetCreateRequest, SpreadsheetResponse
from ..models_db import Integration, IntegrationType, User, utcnow
from ..services.encryption import EncryptionError, decrypt_config, encrypt_config
from ..services.integrations import IntegrationError, get_pusher
from ..services.integrations.google_oauth import (
    OAuthStateError,
    build_authorization_url,
    build_integration_config,
    create_state,
    exchange_code,
    fetch_user_info,
    verify_state,
)
from ..services.integrations.google_sheets import list_sheet_titles
from ..services.push_service import apply_config_updates

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations/google-sheets", tags=["google-sheets"])


def _redirect_uri() -> str:
    settings = get_settings()
    return settings.google_redirect_uri or f"{settings.app_url}/integrations/google-sheets/callback"


def _dashboard_redirect(query: str) -> RedirectResponse:
    return RedirectResponse(
        f"{get_settings().app_url}/dashboard?{query}",
        status_code=status.HTTP_302_FOUND,
    )


@router.get("/auth")
async def google_sheets_auth(
    identity: Identity = Depends(get_current_identity),
) -> dict[str, str]:
    """Return the Google consent URL; the client navigates to it."""
    settings = get_settings()
    if not settings.google_client_id or not settings.google_client_secret:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Google OAuth not configured",
        )

    state = create_state(identity.external_id, settings.google_client_secret)
    return {
        "authorization_url": build_authorization_url(
            settings.google_client_id, _redirect_uri(), state
        )
    }


@router.get("/callback")
async def google_sheets_callback(
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    db: Session = Depends(get_db),
) -> RedirectResponse:
    """
    Finish the consent flow.

    The caller is identified by the signed state, since the browser arrives
    here from Google without an API token. Every outcome redirects back to
    the dashboard with a success or error query parameter. A new integration
    is created on each successful connection.
    """
    settings = get_settings()

    if error:
        logger.error("Google OAuth error: %s", error)
        return _dashboard_redirect(f"error=google_oauth_error&message={quote(error)}")

    if not code or not state:
        return _dashboard_redirect("error=missing_oauth_params")

    if not settings.google_client_id or not settings.google_client_secret:
        return _dashboard_redirect("error=oauth_not_configured")

    try:
        external_id = verify_state(state, settings.google_client_secret)
    except OAuthStateError as e:
        logger.warning("Rejected OAuth state: %s", e)
        return _dashboard_redirect("error=invalid_state")

    user = db.query(User).filter(User.external_id == external_id).first()
    if user is None:
        logger.error("OAuth callback for unknown identity %s", external_id)
        return _dashboard_redirect("error=user_not_found")

    try:
        tokens = await exchange_code(
            code,
            settings.google_client_id,
            settings.google_client_secret,
            _redirect_uri(),
            timeout=settings.http_timeout,
        )
    except IntegrationError as e:
        logger.error("Token exchange failed: %s", e)
        return _dashboard_redirect("error=token_exchange_failed")

    try:
        user_info = await fetch_user_info(tokens["access_token"], timeout=settings.http_timeout)
    except IntegrationError as e:
        logger.error("Failed to get user info from Google: %s", e)
        return _dashboard_redirect("error=user_info_failed")

    config = build_integration_config(tokens, user_info, settings.google_client_id)
    config["client_secret"] = settings.google_client_secret
    try:
        config = encrypt_config(config)
    except EncryptionError as e:
        logger.error("Cannot encrypt Google tokens: %s", e)
        return _dashboard_redirect("error=integration_creation_failed")

    now = utcnow()
    integration = Integration(
        user_id=user.id,
        integration_type=IntegrationType.GOOGLE_SHEETS,
        integration_name=f"Google Sheets - {now:%Y-%m-%d %H:%M}",
        config=config,
        is_active=True,
        last_sync=now,
    )
    db.add(integration)
    db.commit()

    logger.info("Connected Google Sheets integration %s for user %s", integration.id, user.id)
    return _dashboard_redirect("success=google_sheets_connected")


# =============================================================================
# Spreadsheets
# =============================================================================


def _active_sheets_integration(db: Session, user: User) -> Integration:
    integration = (
        db.query(Integration)
        .filter(
            Integration.user_id == user.id,
            Integration.integration_type == IntegrationType.GOOGLE_SHEETS,
            Integration.is_active.is_(True),
        )
        .order_by(Integration.created_at.desc())
        .first()
    )
    if integration is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Google Sheets integration not found",
        )
    return integration


def _decrypted_config(integration: Integration) -> dict:
    try:
        return decrypt_config(integration.config or {})
    except EncryptionError as e:
        logger.error("Cannot decrypt config of integration %s: %s", integration.id, e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read integration credentials",
        )


def _spreadsheet_response(spreadsheet: dict, spreadsheet_id: str) -> SpreadsheetResponse:
    return SpreadsheetResponse(
        spreadsheet_id=spreadsheet_id,
        title=(spreadsheet.get("properties") or {}).get("title"),
        url=spreadsheet.get("spreadsheetUrl")
        or f"https://docs.google.com/spreadsheets/d/{spreadsheet_id}",
        sheets=list_sheet_titles(spreadsheet),
    )


def _provider_error(action: str, e: IntegrationError) -> JSONResponse:
    logger.error("Failed to %s spreadsheet: %s", action, e)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"error": f"Failed to {action} spreadsheet", "details": str(e), "code": e.code},
    )


@router.get("/spreadsheets", response_model=SpreadsheetResponse)
async def get_spreadsheet(
    spreadsheet_id: str | None = Query(default=None, alias="spreadsheetId"),
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Look up a spreadsheet through the caller's active Google Sheets integration."""
    if not spreadsheet_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Spreadsheet ID is required",
        )
    integration = _active_sheets_integration(db, user)

    try:
        spreadsheet, updates = await get_pusher(IntegrationType.GOOGLE_SHEETS).fetch_spreadsheet(
            _decrypted_config(integration), spreadsheet_id
        )
    except IntegrationError as e:
        return _provider_error("fetch", e)

    if updates:
        apply_config_updates(integration, updates)
        db.commit()
    return _spreadsheet_response(spreadsheet, spreadsheet_id)


@router.post("/spreadsheets", response_model=SpreadsheetResponse)
async def create_spreadsheet(
    request: SpreadsheetCreateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """Create a spreadsheet with the caller's active Google Sheets integration."""
    title = (request.title or "").strip()
    if not title:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Spreadsheet title is required",
        )
    integration = _active_sheets_integration(db, user)

    try:
        spreadsheet, updates = await get_pusher(IntegrationType.GOOGLE_SHEETS).new_spreadsheet(
            _decrypted_config(integration), title
        )
    except IntegrationError as e:
        return _provider_error("create", e)

    if updates:
        apply_config_updates(integration, updates)
        db.commit()
    logger.info("Created spreadsheet %s for user %s", spreadsheet["spreadsheetId"], user.id)
    return _spreadsheet_response(spreadsheet, spreadsheet["spreadsheetId"])
