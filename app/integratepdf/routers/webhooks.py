"""
Router for identity provider webhooks.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from ..config import get_settings
from ..database import get_db
from ..models import WebhookResponse
from ..services.identity_webhook import (
    SVIX_HEADERS,
    MalformedEventError,
    WebhookVerificationError,
    dispatch_event,
    verify_webhook,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/identity", response_model=WebhookResponse)
async def identity_webhook(
    request: Request,
    db: Session = Depends(get_db),
) -> WebhookResponse:
    """
    Provision users from identity provider events.

    Handles user.created, user.updated and user.deleted; any other event is
    acknowledged and ignored.
    """
    secret = get_settings().webhook_signing_secret
    if not secret:
        logger.error("WEBHOOK_SIGNING_SECRET is not configured")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook secret not configured",
        )

    headers = {name: request.headers.get(name) for name in SVIX_HEADERS}
    if not all(headers.values()):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing svix headers",
        )

    payload = await request.body()
    try:
        event = verify_webhook(payload, headers, secret)
    except WebhookVerificationError as e:
        logger.warning("Rejected webhook %s: %s", headers["svix-id"], e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid signature",
        )
    except MalformedEventError as e:
        logger.warning("Malformed webhook %s: %s", headers["svix-id"], e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )

    event_type = event["type"]
    try:
        handled = dispatch_event(db, event)
    except MalformedEventError as e:
        logger.warning("Malformed webhook %s: %s", headers["svix-id"], e)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(e),
        )
    return WebhookResponse(
        success=True,
        event=event_type,
        message="Webhook processed successfully" if handled else "Event ignored",
    )
