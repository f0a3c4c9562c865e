"""
Router for the caller's profile and usage.
"""

import logging
import math

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models import UsageResponse, UserProfileResponse, UserProfileUpdateRequest
from ..models_db import User

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/profile", response_model=UserProfileResponse)
async def get_profile(user: User = Depends(get_current_user)) -> UserProfileResponse:
    return UserProfileResponse.model_validate(user)


@router.put("/profile", response_model=UserProfileResponse)
async def update_profile(
    request: UserProfileUpdateRequest,
    db: Session = Depends(get_db),
    user: User = Depends(get_current_user),
) -> UserProfileResponse:
    """Update the editable profile fields; omitted fields are left unchanged."""
    if request.first_name is not None:
        user.first_name = request.first_name
    if request.last_name is not None:
        user.last_name = request.last_name
    db.commit()
    db.refresh(user)
    logger.info("Updated profile of user %s", user.id)
    return UserProfileResponse.model_validate(user)


@router.get("/usage", response_model=UsageResponse)
async def get_usage(user: User = Depends(get_current_user)) -> UsageResponse:
    """Documents uploaded against the monthly limit."""
    if user.monthly_limit > 0:
        percentage = math.floor(user.documents_processed / user.monthly_limit * 100 + 0.5)
    else:
        percentage = 100
    return UsageResponse(
        subscription_tier=user.subscription_tier,
        documents_processed=user.documents_processed,
        monthly_limit=user.monthly_limit,
        remaining=max(0, user.monthly_limit - user.documents_processed),
        usage_percentage=min(percentage, 100),
    )
