from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.db.database import get_db
from zvonok.permissions.constants import MAX_MASK, Permission
from zvonok.permissions.dependencies import require_permission
from zvonok.permissions.scopes import ScopeKind
from zvonok.services import overrides as override_service

router = APIRouter()


class OverrideRequest(BaseModel):
    role_id: Optional[int] = None
    user_id: Optional[int] = None
    allowed: int = Field(0, ge=0, le=MAX_MASK)
    denied: int = Field(0, ge=0, le=MAX_MASK)


class OverrideResponse(BaseModel):
    id: int
    role_id: Optional[int]
    user_id: Optional[int]
    allowed_permissions: int
    denied_permissions: int

    class Config:
        from_attributes = True


manage_folder_permissions = require_permission(
    Permission.MANAGE_PERMISSIONS, ScopeKind.FOLDER, scope_param="folder_id",
)
manage_channel_permissions = require_permission(
    Permission.MANAGE_PERMISSIONS, ScopeKind.CHANNEL, scope_param="channel_id",
)


@router.get("/folders/{folder_id}/overrides", response_model=List[OverrideResponse])
async def list_folder_overrides(
    folder_id: int,
    current_user: dict = Depends(manage_folder_permissions),
    db: AsyncSession = Depends(get_db),
):
    return await override_service.list_folder_overrides(db, folder_id)


@router.put("/folders/{folder_id}/overrides", response_model=OverrideResponse)
async def set_folder_override(
    folder_id: int,
    request: OverrideRequest,
    current_user: dict = Depends(manage_folder_permissions),
    db: AsyncSession = Depends(get_db),
):
    return await override_service.set_folder_override(
        db,
        folder_id,
        role_id=request.role_id,
        user_id=request.user_id,
        allowed=request.allowed,
        denied=request.denied,
    )


@router.delete("/folders/{folder_id}/overrides", status_code=status.HTTP_204_NO_CONTENT)
async def remove_folder_override(
    folder_id: int,
    role_id: Optional[int] = None,
    user_id: Optional[int] = None,
    current_user: dict = Depends(manage_folder_permissions),
    db: AsyncSession = Depends(get_db),
):
    await override_service.remove_folder_override(db, folder_id, role_id=role_id, user_id=user_id)


@router.get("/channels/{channel_id}/overrides", response_model=List[OverrideResponse])
async def list_channel_overrides(
    channel_id: int,
    current_user: dict = Depends(manage_channel_permissions),
    db: AsyncSession = Depends(get_db),
):
    return await override_service.list_channel_overrides(db, channel_id)


@router.put("/channels/{channel_id}/overrides", response_model=OverrideResponse)
async def set_channel_override(
    channel_id: int,
    request: OverrideRequest,
    current_user: dict = Depends(manage_channel_permissions),
    db: AsyncSession = Depends(get_db),
):
    return await override_service.set_channel_override(
        db,
        channel_id,
        role_id=request.role_id,
        user_id=request.user_id,
        allowed=request.allowed,
        denied=request.denied,
    )


@router.delete("/channels/{channel_id}/overrides", status_code=status.HTTP_204_NO_CONTENT)
async def remove_channel_override(
    channel_id: int,
    role_id: Optional[int] = None,
    user_id: Optional[int] = None,
    current_user: dict = Depends(manage_channel_permissions),
    db: AsyncSession = Depends(get_db),
):
    await override_service.remove_channel_override(db, channel_id, role_id=role_id, user_id=user_id)
