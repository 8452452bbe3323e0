from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.core.security import get_current_user
from zvonok.db.database import get_db
from zvonok.permissions import checks
from zvonok.permissions.constants import MAX_MASK, Permission, has_permission
from zvonok.permissions.dependencies import get_permission_service, require_permission
from zvonok.permissions.scopes import ScopeKind
from zvonok.permissions.service import PermissionService
from zvonok.services import members as member_service
from zvonok.services import roles as role_service

router = APIRouter()

manage_roles = require_permission(Permission.MANAGE_ROLES, ScopeKind.SERVER, scope_param="server_id")


class RoleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    permissions: int = Field(0, ge=0, le=MAX_MASK)
    color: str = Field("#ffffff", pattern=r"^#[0-9a-fA-F]{6}$")
    position: int = 0
    mentionable: bool = True


class RoleUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    permissions: Optional[int] = Field(None, ge=0, le=MAX_MASK)
    color: Optional[str] = Field(None, pattern=r"^#[0-9a-fA-F]{6}$")
    position: Optional[int] = None
    mentionable: Optional[bool] = None
    is_active: Optional[bool] = None


class RoleResponse(BaseModel):
    id: int
    server_id: int
    name: str
    color: Optional[str]
    position: int
    permissions: int
    mentionable: Optional[bool]
    is_everyone: bool
    is_active: bool

    class Config:
        from_attributes = True


class MemberRoleResponse(BaseModel):
    member_id: int
    role_id: int
    assigned_by_id: Optional[int]
    assigned_at: Optional[datetime]

    class Config:
        from_attributes = True


class PersonalPermissionsRequest(BaseModel):
    permissions: int = Field(..., ge=0, le=MAX_MASK)


class NicknameRequest(BaseModel):
    nickname: Optional[str] = Field(None, max_length=32)


async def require_admin_to_grant_admin(
    service: PermissionService, user_id: int, server_id: int, mask: int,
) -> None:
    # Only administrators may hand out ADMINISTRATOR
    if has_permission(mask, Permission.ADMINISTRATOR):
        await checks.require_permission(service, user_id, server_id, ScopeKind.SERVER, Permission.ADMINISTRATOR)


@router.get("/{server_id}/roles", response_model=List[RoleResponse])
async def list_roles(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
    db: AsyncSession = Depends(get_db),
):
    await checks.require_server_member(service, current_user["user_id"], server_id)
    return await role_service.list_active_roles(db, server_id)


@router.get("/{server_id}/roles/me", response_model=List[int])
async def my_roles(
    server_id: int,
    current_user: dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
):
    roles = await service.get_user_server_roles(current_user["user_id"], server_id)
    return [role.id for role in roles]


@router.post("/{server_id}/roles", response_model=RoleResponse, status_code=status.HTTP_201_CREATED)
async def create_role(
    server_id: int,
    request: RoleCreateRequest,
    current_user: dict = Depends(manage_roles),
    service: PermissionService = Depends(get_permission_service),
    db: AsyncSession = Depends(get_db),
):
    await require_admin_to_grant_admin(service, current_user["user_id"], server_id, request.permissions)
    return await role_service.create_role(
        db,
        server_id,
        request.name,
        permissions=request.permissions,
        color=request.color,
        position=request.position,
        mentionable=request.mentionable,
    )


@router.patch("/{server_id}/roles/{role_id}", response_model=RoleResponse)
async def update_role(
    server_id: int,
    role_id: int,
    request: RoleUpdateRequest,
    current_user: dict = Depends(manage_roles),
    service: PermissionService = Depends(get_permission_service),
    db: AsyncSession = Depends(get_db),
):
    role = await role_service.get_role_for_server(db, server_id, role_id)
    if request.permissions is not None:
        await require_admin_to_grant_admin(service, current_user["user_id"], server_id, request.permissions)
    return await role_service.update_role(
        db,
        role,
        name=request.name,
        color=request.color,
        position=request.position,
        permissions=request.permissions,
        mentionable=request.mentionable,
        is_active=request.is_active,
    )


@router.delete("/{server_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_role(
    server_id: int,
    role_id: int,
    current_user: dict = Depends(manage_roles),
    db: AsyncSession = Depends(get_db),
):
    role = await role_service.get_role_for_server(db, server_id, role_id)
    await role_service.delete_role(db, role)


@router.put("/{server_id}/members/{user_id}/roles/{role_id}", response_model=MemberRoleResponse)
async def assign_role(
    server_id: int,
    user_id: int,
    role_id: int,
    current_user: dict = Depends(manage_roles),
    service: PermissionService = Depends(get_permission_service),
    db: AsyncSession = Depends(get_db),
):
    role = await role_service.get_role_for_server(db, server_id, role_id)
    await require_admin_to_grant_admin(service, current_user["user_id"], server_id, role.permissions)
    member = await member_service.get_active_member(db, user_id, server_id)
    return await member_service.assign_role(db, member, role, assigned_by_id=current_user["user_id"])


@router.delete("/{server_id}/members/{user_id}/roles/{role_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_role(
    server_id: int,
    user_id: int,
    role_id: int,
    current_user: dict = Depends(manage_roles),
    db: AsyncSession = Depends(get_db),
):
    role = await role_service.get_role_for_server(db, server_id, role_id)
    member = await member_service.get_active_member(db, user_id, server_id)
    await member_service.remove_role(db, member, role)


@router.put("/{server_id}/members/{user_id}/permissions", status_code=status.HTTP_204_NO_CONTENT)
async def set_personal_permissions(
    server_id: int,
    user_id: int,
    request: PersonalPermissionsRequest,
    current_user: dict = Depends(manage_roles),
    service: PermissionService = Depends(get_permission_service),
    db: AsyncSession = Depends(get_db),
):
    await require_admin_to_grant_admin(service, current_user["user_id"], server_id, request.permissions)
    member = await member_service.get_active_member(db, user_id, server_id)
    await member_service.set_personal_permissions(db, member, request.permissions)


@router.patch("/{server_id}/members/{user_id}/nickname", status_code=status.HTTP_204_NO_CONTENT)
async def update_nickname(
    server_id: int,
    user_id: int,
    request: NicknameRequest,
    current_user: dict = Depends(get_current_user),
    service: PermissionService = Depends(get_permission_service),
    db: AsyncSession = Depends(get_db),
):
    if user_id == current_user["user_id"]:
        needed = Permission.CHANGE_NICKNAME
    else:
        needed = Permission.MANAGE_NICKNAMES
    await checks.require_permission(service, current_user["user_id"], server_id, ScopeKind.SERVER, needed)
    member = await member_service.get_active_member(db, user_id, server_id)
    await member_service.update_nickname(db, member, request.nickname)
