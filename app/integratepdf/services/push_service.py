"""
Pushing extracted data to a user's integration.

Every attempt, successful or not, is recorded in push history. There are no
automatic retries; the caller resubmits.
"""

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy.orm import Session

from ..models_db import Document, Integration, PushHistory, User, utcnow
from .encryption import EncryptionError, decrypt_config, encrypt_config
from .integrations import (
    ConnectionTestResult,
    ExtractedFieldData,
    IntegrationError,
    IntegrationNotImplementedError,
    get_pusher,
)

logger = logging.getLogger(__name__)


@dataclass
class PushOutcome:
    """Result of one push attempt as recorded in history."""

    success: bool
    history: PushHistory
    external_id: str | None = None
    result: dict[str, Any] = field(default_factory=dict)
    error: str | None = None
    not_implemented: bool = False


def apply_config_updates(integration: Integration, updates: dict[str, Any]) -> None:
    """Merge refreshed credentials into the stored config, encrypting secrets. Caller commits."""
    if updates:
        integration.config = {**(integration.config or {}), **encrypt_config(updates)}


async def push_document_data(
    db: Session,
    user: User,
    integration: Integration,
    document: Document | None,
    fields: list[ExtractedFieldData],
    mapping: dict[str, str] | None = None,
) -> PushOutcome:
    """
    Push fields to the integration and record the attempt.

    Args:
        db: Database session.
        user: Owner of the integration.
        integration: Destination.
        document: Source document, if known.
        fields: Fields to push.
        mapping: Optional field_key -> destination column/property.

    Returns:
        PushOutcome; failures are reported in it rather than raised.
    """
    error: str | None = None
    not_implemented = False
    push_result = None

    try:
        pusher = get_pusher(integration.integration_type)
        config = decrypt_config(integration.config or {})
        push_result = await pusher.push(
            fields,
            mapping or {},
            config,
            document_name=document.filename if document else "",
        )
    except IntegrationNotImplementedError as e:
        error, not_implemented = str(e), True
    except IntegrationError as e:
        logger.warning(
            "Push to integration %s failed (%s, retryable=%s): %s",
            integration.id,
            e.code,
            e.retryable,
            e,
        )
        error = str(e)
    except EncryptionError as e:
        logger.error("Cannot decrypt config of integration %s: %s", integration.id, e)
        error = str(e)
    except Exception as e:
        logger.exception("Unexpected error pushing to integration %s", integration.id)
        error = f"Unexpected error during push: {e}"

    now = utcnow()
    history = PushHistory(
        user_id=user.id,
        document_id=document.id if document else None,
        integration_id=integration.id,
        success=push_result is not None,
        external_id=push_result.external_id if push_result else None,
        error_message=error,
        pushed_at=now,
    )
    db.add(history)

    if push_result is not None:
        integration.last_sync = now
        apply_config_updates(integration, push_result.config_updates)
    db.commit()
    db.refresh(history)

    if push_result is None:
        return PushOutcome(False, history, error=error, not_implemented=not_implemented)

    logger.info(
        "Pushed %d field(s) to %s integration %s: %s",
        len(fields),
        integration.integration_type.value,
        integration.id,
        push_result.external_id,
    )
    return PushOutcome(
        True, history, external_id=push_result.external_id, result=push_result.raw
    )


async def check_integration_connection(
    integration_type: str, config: dict[str, Any]
) -> ConnectionTestResult:
    """Check credentials for an integration type; config may hold encrypted secrets."""
    pusher = get_pusher(integration_type)
    return await pusher.test_connection(decrypt_config(config))
