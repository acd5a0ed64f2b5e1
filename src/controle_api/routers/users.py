"""Admin users router - account provisioning for managers."""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Request, status

from controle_api.dependencies import get_user_provisioning_service
from controle_api.models.domain.identity import Manager
from controle_api.models.dto.users import (
    BatchUserRequest,
    BatchUserResponse,
    UserCreateRequest,
    UserProfileResponse,
)
from controle_api.security.auth import require_manager
from controle_api.security.rate_limit import USER_BATCH_LIMIT, USER_CREATE_LIMIT, limiter
from controle_api.services.user_provisioning_service import UserProvisioningService

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/batch", response_model=BatchUserResponse)
@limiter.limit(USER_BATCH_LIMIT)
async def create_users_batch(
    request: Request,
    body: BatchUserRequest,
    current_user: Annotated[Manager, Depends(require_manager)],
    service: Annotated[UserProvisioningService, Depends(get_user_provisioning_service)],
) -> BatchUserResponse:
    """Create many users, one after another.

    Individual failures are reported per item; the request itself only
    fails when ``users`` is empty.
    """
    logger.info(f"Batch provisioning of {len(body.users)} users started by {current_user.email}")
    return await service.provision_batch(body.users)


@router.post(
    "",
    response_model=UserProfileResponse,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
)
@limiter.limit(USER_CREATE_LIMIT)
async def create_user(
    request: Request,
    body: UserCreateRequest,
    current_user: Annotated[Manager, Depends(require_manager)],
    service: Annotated[UserProvisioningService, Depends(get_user_provisioning_service)],
) -> UserProfileResponse:
    """Create a single user with identity account and profile."""
    return await service.create_user(body, actor_id=current_user.id)
