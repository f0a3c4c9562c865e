"""
Router for integration endpoints.

Handles:
- Integration CRUD (secrets encrypted at rest, masked in responses)
- Connection tests for saved and unsaved credentials
- Pushing a document's extracted data to an integration
- Reading a Notion database schema for field mapping
"""

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ..auth import get_current_user, get_owned_document, get_owned_integration
from ..database import get_db
from ..models import (
    ConnectionTestRequest,
    ConnectionTestResponse,
    IntegrationCreateRequest,
    IntegrationResponse,
    IntegrationUpdateRequest,
    NotionDatabaseRequest,
    NotionDatabaseResponse,
    NotionPropertyResponse,
    PushRequest,
    PushResponse,
)
from ..models_db import ExtractedField, Integration, IntegrationType, User, utcnow
from ..services.encryption import (
    MASKED_VALUE,
    SECRET_CONFIG_KEYS,
    EncryptionError,
    decrypt_config,
    encrypt_config,
    mask_config,
)
from ..services.integrations import (
    ExtractedFieldData,
    IntegrationError,
    IntegrationNotImplementedError,
    get_pusher,
)
from ..services.push_service import check_integration_connection, push_document_data

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/integrations", tags=["integrations"])


def to_response(integration: Integration) -> IntegrationResponse:
    return IntegrationResponse(
        id=integration.id,
        integration_type=integration.integration_type,
        integration_name=integration.integration_name,
        config=mask_config(integration.config or {}),
        is_active=integration.is_active,
        last_sync=integration.last_sync,
        created_at=integration.created_at,
        updated_at=integration.updated_at,
    )


def _encrypt_config_or_500(config: dict[str, Any]) -> dict[str, Any]:
    try:
        return encrypt_config(config)
    except EncryptionError as e:
        logger.error("Cannot encrypt integration config: %s", e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to secure integration credentials",
        )


def merge_config(existing: dict[str, Any], update: dict[str, Any]) -> dict[str, Any]:
    """
    Apply a config update from a client.

    Secrets sent back in their masked form keep the stored value; every
    other key in the update replaces the stored one.
    """
    incoming = {
        key: value
        for key, value in update.items()
        if not (key in SECRET_CONFIG_KEYS and value == MASKED_VALUE)
    }
    return {**existing, **_encrypt_config_or_500(incoming)}


# =============================================================================
# CRUD
# =============================================================================


@router.get("", response_model=list[IntegrationResponse])
async def list_integrations(
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> list[IntegrationResponse]:
    integrations = (
        db.query(Integration)
        .filter(Integration.user_id == user.id)
        .order_by(Integration.created_at.desc())
        .all()
    )
    return [to_response(i) for i in integrations]


@router.post("", response_model=IntegrationResponse, status_code=status.HTTP_201_CREATED)
async def create_integration(
    request: IntegrationCreateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> IntegrationResponse:
    """Create an integration from manually entered credentials."""
    if request.type is None or not request.config:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Missing required fields",
        )

    integration = Integration(
        user_id=user.id,
        integration_type=request.type,
        integration_name=request.name or request.type.value,
        config=_encrypt_config_or_500(request.config),
        is_active=True,
    )
    db.add(integration)
    db.commit()
    db.refresh(integration)

    logger.info("Created %s integration %s", request.type.value, integration.id)
    return to_response(integration)


@router.get("/{integration_id}", response_model=IntegrationResponse)
async def get_integration(
    integration_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> IntegrationResponse:
    return to_response(get_owned_integration(db, user, integration_id))


@router.patch("/{integration_id}", response_model=IntegrationResponse)
async def update_integration(
    integration_id: str,
    request: IntegrationUpdateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> IntegrationResponse:
    integration = get_owned_integration(db, user, integration_id)

    if request.name is not None:
        integration.integration_name = request.name
    if request.config is not None:
        integration.config = merge_config(integration.config or {}, request.config)
    if request.is_active is not None:
        integration.is_active = request.is_active
    db.commit()
    db.refresh(integration)

    logger.info("Updated integration %s", integration.id)
    return to_response(integration)


@router.delete("/{integration_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_integration(
    integration_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> Response:
    integration = get_owned_integration(db, user, integration_id)
    db.delete(integration)
    db.commit()
    logger.info("Deleted integration %s", integration_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Connection Tests
# =============================================================================


async def _run_connection_test(integration_type, config: dict[str, Any]) -> ConnectionTestResponse:
    try:
        result = await check_integration_connection(integration_type, config)
    except IntegrationNotImplementedError as e:
        raise HTTPException(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            detail=str(e),
        )
    except (IntegrationError, EncryptionError) as e:
        return ConnectionTestResponse(success=False, message=str(e))
    return ConnectionTestResponse(
        success=result.success, message=result.message, details=result.details
    )


@router.post("/test-connection", response_model=ConnectionTestResponse)
async def check_unsaved_connection(
    request: ConnectionTestRequest,
    user: User = Depends(get_current_user),
) -> ConnectionTestResponse:
    """Check credentials before saving them."""
    return await _run_connection_test(request.type, request.config)


@router.post("/{integration_id}/test", response_model=ConnectionTestResponse)
async def check_saved_connection(
    integration_id: str,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> ConnectionTestResponse:
    """Check a saved integration; success marks it active and synced."""
    integration = get_owned_integration(db, user, integration_id)
    response = await _run_connection_test(integration.integration_type, integration.config or {})

    if response.success:
        integration.last_sync = utcnow()
        integration.is_active = True
        db.commit()
    return response


# =============================================================================
# Push
# =============================================================================


@router.post("/{integration_id}/push", response_model=PushResponse)
async def push_to_integration(
    integration_id: str,
    request: PushRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Push a document's extracted data.

    Uses the fields in the request body, or the document's stored fields
    when none are sent. Each call creates a new external record.
    """
    integration = get_owned_integration(db, user, integration_id)
    document = get_owned_document(db, user, request.document_id)

    if request.data is not None:
        fields = [
            ExtractedFieldData(f.field_key, f.field_value, f.confidence) for f in request.data
        ]
    else:
        stored = (
            db.query(ExtractedField)
            .filter(ExtractedField.document_id == document.id, ExtractedField.user_id == user.id)
            .order_by(ExtractedField.created_at)
            .all()
        )
        fields = [ExtractedFieldData(f.field_key, f.field_value, f.confidence) for f in stored]

    if not fields:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No extracted data to push",
        )

    outcome = await push_document_data(db, user, integration, document, fields, request.mapping)

    if outcome.not_implemented:
        return JSONResponse(
            status_code=status.HTTP_501_NOT_IMPLEMENTED,
            content={"success": False, "error": outcome.error},
        )
    if not outcome.success:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"success": False, "error": outcome.error},
        )

    return PushResponse(
        success=True,
        integration_id=integration.id,
        external_id=outcome.external_id,
        pushed_at=outcome.history.pushed_at,
        result=outcome.result,
    )


# =============================================================================
# Notion Database Schema
# =============================================================================


@router.post("/notion/database/{database_id}", response_model=NotionDatabaseResponse)
async def get_notion_database(
    database_id: str,
    request: NotionDatabaseRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
):
    """
    Read a Notion database's properties so the client can build a mapping.

    The key comes from the request, or from a saved Notion integration of
    the caller when `integration_id` is given.
    """
    api_key = request.api_key if request.api_key != MASKED_VALUE else None
    if request.integration_id:
        integration = get_owned_integration(db, user, request.integration_id)
        if integration.integration_type != IntegrationType.NOTION:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Integration is not a Notion integration",
            )
        try:
            api_key = api_key or decrypt_config(integration.config or {}).get("api_key")
        except EncryptionError as e:
            logger.error("Cannot decrypt config of integration %s: %s", integration.id, e)
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail="Failed to read integration credentials",
            )

    if not api_key or not database_id.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="API key and database ID are required",
        )

    try:
        database = await get_pusher(IntegrationType.NOTION).describe_database(
            {"api_key": api_key}, database_id
        )
    except IntegrationError as e:
        logger.warning("Fetching Notion database %s failed: %s", database_id, e)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": str(e), "code": e.code},
        )

    return NotionDatabaseResponse(
        id=database.id,
        title=database.title,
        url=database.url,
        properties={
            name: NotionPropertyResponse(
                id=prop.id, name=prop.name, type=prop.type, options=prop.options
            )
            for name, prop in database.properties.items()
        },
    )
