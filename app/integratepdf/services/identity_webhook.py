"""
Identity provider webhook handling.

Handles:
- Svix signature verification (svix-id / svix-timestamp / svix-signature)
- Provisioning, updating and deleting internal users from user.* events
"""

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from svix.webhooks import Webhook
from svix.webhooks import WebhookVerificationError as SvixVerificationError

from ..config import get_settings
from ..models_db import SubscriptionTier, User

logger = logging.getLogger(__name__)

SVIX_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


class WebhookVerificationError(Exception):
    """Raised when a webhook payload cannot be authenticated."""

    pass


class MalformedEventError(Exception):
    """Raised when an authenticated event does not have the expected shape."""

    pass


def verify_webhook(payload: bytes, headers: dict[str, str], secret: str) -> dict[str, Any]:
    """
    Authenticate a webhook delivery and return the decoded event.

    Args:
        payload: Raw request body.
        headers: The svix-id, svix-timestamp and svix-signature headers.
        secret: Signing secret (``whsec_...``).

    Raises:
        WebhookVerificationError: On a bad secret, timestamp, signature or body.
        MalformedEventError: If the body is not a JSON object with a string ``type``.
    """
    try:
        event = Webhook(secret).verify(payload, headers)
    except SvixVerificationError as e:
        raise WebhookVerificationError(str(e)) from e
    except ValueError as e:
        # Undecodable secret or body
        raise WebhookVerificationError(str(e)) from e

    if not isinstance(event, dict):
        raise MalformedEventError("Webhook body is not a JSON object")
    if not isinstance(event.get("type"), str):
        raise MalformedEventError("Webhook event has no type")
    return event


def _primary_email(data: dict[str, Any]) -> str | None:
    addresses = data.get("email_addresses") or []
    primary_id = data.get("primary_email_address_id")
    for address in addresses:
        if primary_id and address.get("id") == primary_id:
            return address.get("email_address")
    return addresses[0].get("email_address") if addresses else None


def handle_user_created(db: Session, data: dict[str, Any]) -> User:
    """Insert the user unless it already exists."""
    existing = db.query(User).filter(User.external_id == data["id"]).first()
    if existing:
        logger.info("User %s already exists, skipping creation", data["id"])
        return existing

    user = User(
        external_id=data["id"],
        email=_primary_email(data),
        first_name=data.get("first_name"),
        last_name=data.get("last_name"),
        avatar_url=data.get("image_url"),
        subscription_tier=SubscriptionTier.FREE,
        documents_processed=0,
        monthly_limit=get_settings().default_monthly_limit,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        # Created concurrently by a first authenticated request
        db.rollback()
        return db.query(User).filter(User.external_id == data["id"]).one()
    db.refresh(user)
    logger.info("Created user %s for identity %s", user.id, data["id"])
    return user


def handle_user_updated(db: Session, data: dict[str, Any]) -> User:
    """Update profile fields, creating the user if the create event was missed."""
    user = db.query(User).filter(User.external_id == data["id"]).first()
    if user is None:
        return handle_user_created(db, data)

    user.email = _primary_email(data)
    user.first_name = data.get("first_name")
    user.last_name = data.get("last_name")
    user.avatar_url = data.get("image_url")
    db.commit()
    logger.info("Updated user %s", user.id)
    return user


def handle_user_deleted(db: Session, data: dict[str, Any]) -> bool:
    """Delete the user and everything it owns. Returns False if unknown."""
    user = db.query(User).filter(User.external_id == data.get("id")).first()
    if user is None:
        logger.info("Delete event for unknown identity %s", data.get("id"))
        return False
    db.delete(user)
    db.commit()
    logger.info("Deleted user for identity %s", data.get("id"))
    return True


EVENT_HANDLERS = {
    "user.created": handle_user_created,
    "user.updated": handle_user_updated,
    "user.deleted": handle_user_deleted,
}


def dispatch_event(db: Session, event: dict[str, Any]) -> bool:
    """
    Run the handler for an event. Returns False for ignored event types.

    Raises:
        MalformedEventError: If a user event carries no object ``data`` with a string ``id``.
    """
    handler = EVENT_HANDLERS.get(event.get("type") or "")
    if handler is None:
        logger.info("Ignoring webhook event %s", event.get("type"))
        return False

    data = event.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("id"), str) or not data["id"]:
        raise MalformedEventError(f"{event['type']} event has no user id")
    handler(db, data)
    return True
