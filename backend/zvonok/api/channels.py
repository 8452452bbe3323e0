from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.api.servers import EffectivePermissionsResponse, effective_permissions_response
from zvonok.core.security import get_current_user
from zvonok.db.database import get_db
from zvonok.db.enums import ChannelType
from zvonok.permissions import checks
from zvonok.permissions.constants import Permission
from zvonok.permissions.dependencies import get_permission_service, require_permission
from zvonok.permissions.scopes import ScopeKind
from zvonok.permissions.service import PermissionService
from zvonok.services import channels as channel_service

router = APIRouter()


class FolderCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    position: int = 0
    collapsed: bool = False


class ChannelCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    type: ChannelType = ChannelType.text
    topic: Optional[str] = None
    position: int = 0
    user_limit: int = Field(10, ge=0)
    slow_mode_seconds: Optional[int] = Field(None, ge=0)
    nsfw: bool = False


class ChannelResponse(BaseModel):
    id: int
    folder_id: int
    name: str
    type: ChannelType
    topic: Optional[str]
    position: Optional[int]
    user_limit: Optional[int]
    slow_mode_seconds: Optional[int]
    nsfw: Optional[bool]

    class Config:
        from_attributes = True


class FolderResponse(BaseModel):
    id: int
    server_id: int
    name: str
    position: Optional[int]
    collapsed: Optional[bool]

    class Config:
        from_attributes = True


class FolderWithChannelsResponse(FolderResponse):
    channels: List[ChannelResponse] = []


@router.get("/servers/{server_id}/folders", response_model=List[FolderWithChannelsResponse])
async def list_visible_folders(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
    db: AsyncSession = Depends(get_db),
):
    """Folders and channels of a server, limited to what the caller can view."""
    user_id = current_user["user_id"]
    await checks.require_server_member(service, user_id, server_id)

    visible = []
    for folder in await channel_service.list_folders(db, server_id):
        if not await service.can_view_folder(user_id, folder.id):
            continue
        channels = [
            ChannelResponse.model_validate(channel)
            for channel in await channel_service.list_channels(db, folder.id)
            if await service.can_view_channel(user_id, channel.id)
        ]
        # folder.channels is not eager-loaded
        folder_fields = FolderResponse.model_validate(folder).model_dump()
        visible.append(FolderWithChannelsResponse(**folder_fields, channels=channels))
    return visible


@router.post("/servers/{server_id}/folders", response_model=FolderResponse, status_code=status.HTTP_201_CREATED)
async def create_folder(
    server_id: int,
    request: FolderCreateRequest,
    current_user: dict = Depends(require_permission(Permission.MANAGE_CHANNELS, ScopeKind.SERVER, scope_param="server_id")),
    db: AsyncSession = Depends(get_db),
):
    return await channel_service.create_folder(
        db, server_id, request.name, position=request.position, collapsed=request.collapsed,
    )


@router.delete("/folders/{folder_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_folder(
    folder_id: int,
    current_user: dict = Depends(require_permission(Permission.MANAGE_CHANNELS, ScopeKind.FOLDER, scope_param="folder_id")),
    db: AsyncSession = Depends(get_db),
):
    folder = await channel_service.get_folder(db, folder_id)
    await channel_service.delete_folder(db, folder)


@router.post("/folders/{folder_id}/channels", response_model=ChannelResponse, status_code=status.HTTP_201_CREATED)
async def create_channel(
    folder_id: int,
    request: ChannelCreateRequest,
    current_user: dict = Depends(require_permission(Permission.MANAGE_CHANNELS, ScopeKind.FOLDER, scope_param="folder_id")),
    db: AsyncSession = Depends(get_db),
):
    return await channel_service.create_channel(
        db,
        folder_id,
        request.name,
        type=request.type,
        topic=request.topic,
        position=request.position,
        user_limit=request.user_limit,
        slow_mode_seconds=request.slow_mode_seconds,
        nsfw=request.nsfw,
    )


@router.get("/channels/{channel_id}", response_model=ChannelResponse)
async def get_channel(
    channel_id: int,
    current_user: dict = Depends(require_permission(Permission.VIEW_CHANNEL, ScopeKind.CHANNEL, scope_param="channel_id")),
    db: AsyncSession = Depends(get_db),
):
    return await channel_service.get_channel(db, channel_id)


@router.delete("/channels/{channel_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_channel(
    channel_id: int,
    current_user: dict = Depends(require_permission(Permission.MANAGE_CHANNELS, ScopeKind.CHANNEL, scope_param="channel_id")),
    db: AsyncSession = Depends(get_db),
):
    channel = await channel_service.get_channel(db, channel_id)
    await channel_service.delete_channel(db, channel)


@router.get("/folders/{folder_id}/permissions/me", response_model=EffectivePermissionsResponse)
async def my_folder_permissions(
    folder_id: int,
    current_user: dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
):
    mask = await service.get_effective_permissions(current_user["user_id"], folder_id, ScopeKind.FOLDER)
    return effective_permissions_response(ScopeKind.FOLDER, folder_id, mask)


@router.get("/channels/{channel_id}/permissions/me", response_model=EffectivePermissionsResponse)
async def my_channel_permissions(
    channel_id: int,
    current_user: dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
):
    mask = await service.get_effective_permissions(current_user["user_id"], channel_id, ScopeKind.CHANNEL)
    return effective_permissions_response(ScopeKind.CHANNEL, channel_id, mask)
