from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.core.logging import api_logger
from zvonok.core.security import get_current_user
from zvonok.db.database import get_db
from zvonok.permissions import checks
from zvonok.permissions.constants import Permission, permission_names
from zvonok.permissions.dependencies import get_permission_service, require_permission
from zvonok.permissions.exceptions import PermissionDenied
from zvonok.permissions.scopes import ScopeKind
from zvonok.permissions.service import PermissionService
from zvonok.services import members as member_service
from zvonok.services import servers as server_service

router = APIRouter()


class ServerCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    max_members: Optional[int] = Field(None, ge=1)


class ServerUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    max_members: Optional[int] = Field(None, ge=1)


class ServerResponse(BaseModel):
    id: int
    name: str
    owner_id: int
    max_members: int

    class Config:
        from_attributes = True


class MemberResponse(BaseModel):
    id: int
    user_id: int
    server_id: int
    nickname: Optional[str]
    personal_permissions: int
    joined_at: Optional[datetime]

    class Config:
        from_attributes = True


class EffectivePermissionsResponse(BaseModel):
    scope: ScopeKind
    scope_id: int
    permissions: int
    names: List[str]


def effective_permissions_response(scope: ScopeKind, scope_id: int, mask: int) -> EffectivePermissionsResponse:
    return EffectivePermissionsResponse(
        scope=scope, scope_id=scope_id, permissions=mask, names=permission_names(mask),
    )


@router.post("", response_model=ServerResponse, status_code=status.HTTP_201_CREATED)
async def create_server(
    request: ServerCreateRequest,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    return await server_service.create_server(
        db, current_user["user_id"], request.name, max_members=request.max_members,
    )


@router.get("/{server_id}", response_model=ServerResponse)
async def get_server(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
    db: AsyncSession = Depends(get_db),
):
    server = await server_service.get_server(db, server_id)
    await checks.require_server_member(service, current_user["user_id"], server_id)
    return server


@router.patch("/{server_id}", response_model=ServerResponse)
async def update_server(
    server_id: int,
    request: ServerUpdateRequest,
    current_user: dict = Depends(require_permission(Permission.MANAGE_SERVER, ScopeKind.SERVER, scope_param="server_id")),
    db: AsyncSession = Depends(get_db),
):
    server = await server_service.get_server(db, server_id)
    return await server_service.update_server(db, server, name=request.name, max_members=request.max_members)


@router.delete("/{server_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_server(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    server = await server_service.get_server(db, server_id)
    if server.owner_id != current_user["user_id"]:
        api_logger.info(
            f"[PERMS_DENIED] user_id={current_user['user_id']} server_id={server_id} not the owner"
        )
        raise PermissionDenied("SERVER_OWNER")
    await server_service.delete_server(db, server)


@router.get("/{server_id}/members", response_model=List[MemberResponse])
async def list_members(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
    db: AsyncSession = Depends(get_db),
):
    await checks.require_server_member(service, current_user["user_id"], server_id)
    return await member_service.list_active_members(db, server_id)


@router.post("/{server_id}/join", response_model=MemberResponse)
async def join_server(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    server = await server_service.get_server(db, server_id)
    return await member_service.join_server(db, server, current_user["user_id"])


@router.post("/{server_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_server(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
):
    server = await server_service.get_server(db, server_id)
    await member_service.leave_server(db, server, current_user["user_id"])


@router.delete("/{server_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def kick_member(
    server_id: int,
    user_id: int,
    current_user: dict = Depends(require_permission(Permission.KICK_MEMBERS, ScopeKind.SERVER, scope_param="server_id")),
    db: AsyncSession = Depends(get_db),
):
    server = await server_service.get_server(db, server_id)
    await member_service.kick_member(db, server, user_id, current_user["user_id"])


@router.get("/{server_id}/permissions/me", response_model=EffectivePermissionsResponse)
async def my_server_permissions(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
):
    mask = await service.get_user_server_permissions(current_user["user_id"], server_id)
    return effective_permissions_response(ScopeKind.SERVER, server_id, mask)
