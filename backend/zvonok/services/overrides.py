"""
Folder and channel permission overrides.

An override row targets exactly one role or exactly one user and carries an
allow mask and a deny mask. Writes are upserts keyed on (scope, target).
"""
from typing import Optional, Union

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.core.logging import servers_logger
from zvonok.db.models import ChannelPermissionOverride, FolderPermissionOverride
from zvonok.permissions.constants import MAX_MASK, NOTHING
from zvonok.permissions.exceptions import OverrideTargetError
from zvonok.services.channels import get_channel_server_id, get_folder
from zvonok.services.exceptions import InvalidPermissionMask, PermissionOverrideNotFound
from zvonok.services.roles import get_role_for_server

OverrideModel = Union[type[FolderPermissionOverride], type[ChannelPermissionOverride]]


def validate_override_target(role_id: Optional[int], user_id: Optional[int]) -> None:
    """Exactly one of ``role_id`` / ``user_id`` must be set."""
    if (role_id is None) == (user_id is None):
        raise OverrideTargetError(role_id, user_id)


def validate_mask(mask: int) -> int:
    if mask < 0 or mask > MAX_MASK:
        raise InvalidPermissionMask(mask)
    return mask


def _scope_column(model: OverrideModel):
    if model is FolderPermissionOverride:
        return FolderPermissionOverride.folder_id
    return ChannelPermissionOverride.channel_id


async def _find_override(
    db: AsyncSession,
    model: OverrideModel,
    scope_id: int,
    role_id: Optional[int],
    user_id: Optional[int],
):
    query = select(model).where(_scope_column(model) == scope_id)
    if role_id is not None:
        query = query.where(model.role_id == role_id)
    else:
        query = query.where(model.user_id == user_id)
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def _upsert_override(
    db: AsyncSession,
    model: OverrideModel,
    scope_id: int,
    server_id: int,
    role_id: Optional[int],
    user_id: Optional[int],
    allowed: int,
    denied: int,
):
    validate_override_target(role_id, user_id)
    validate_mask(allowed)
    validate_mask(denied)
    if role_id is not None:
        # Raises 404 for roles of another server
        await get_role_for_server(db, server_id, role_id)

    override = await _find_override(db, model, scope_id, role_id, user_id)
    if override:
        override.allowed_permissions = allowed
        override.denied_permissions = denied
    else:
        override = model(
            role_id=role_id,
            user_id=user_id,
            allowed_permissions=allowed,
            denied_permissions=denied,
        )
        setattr(override, _scope_column(model).key, scope_id)
        db.add(override)

    await db.commit()
    await db.refresh(override)
    servers_logger.info(
        "override_set",
        table=model.__tablename__,
        scope_id=scope_id,
        role_id=role_id,
        user_id=user_id,
        allowed=allowed,
        denied=denied,
    )
    return override


async def set_folder_override(
    db: AsyncSession,
    folder_id: int,
    role_id: Optional[int] = None,
    user_id: Optional[int] = None,
    allowed: int = NOTHING,
    denied: int = NOTHING,
) -> FolderPermissionOverride:
    folder = await get_folder(db, folder_id)
    return await _upsert_override(
        db, FolderPermissionOverride, folder_id, folder.server_id, role_id, user_id, allowed, denied,
    )


async def set_channel_override(
    db: AsyncSession,
    channel_id: int,
    role_id: Optional[int] = None,
    user_id: Optional[int] = None,
    allowed: int = NOTHING,
    denied: int = NOTHING,
) -> ChannelPermissionOverride:
    server_id = await get_channel_server_id(db, channel_id)
    return await _upsert_override(
        db, ChannelPermissionOverride, channel_id, server_id, role_id, user_id, allowed, denied,
    )


async def _remove_override(
    db: AsyncSession,
    model: OverrideModel,
    scope_id: int,
    role_id: Optional[int],
    user_id: Optional[int],
) -> None:
    validate_override_target(role_id, user_id)
    override = await _find_override(db, model, scope_id, role_id, user_id)
    if not override:
        raise PermissionOverrideNotFound()
    await db.delete(override)
    await db.commit()
    servers_logger.info(
        "override_removed", table=model.__tablename__, scope_id=scope_id, role_id=role_id, user_id=user_id,
    )


async def remove_folder_override(
    db: AsyncSession,
    folder_id: int,
    role_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> None:
    await _remove_override(db, FolderPermissionOverride, folder_id, role_id, user_id)


async def remove_channel_override(
    db: AsyncSession,
    channel_id: int,
    role_id: Optional[int] = None,
    user_id: Optional[int] = None,
) -> None:
    await _remove_override(db, ChannelPermissionOverride, channel_id, role_id, user_id)


async def list_folder_overrides(db: AsyncSession, folder_id: int) -> list[FolderPermissionOverride]:
    result = await db.execute(
        select(FolderPermissionOverride)
        .where(FolderPermissionOverride.folder_id == folder_id)
        .order_by(FolderPermissionOverride.id)
    )
    return list(result.scalars().all())


async def list_channel_overrides(db: AsyncSession, channel_id: int) -> list[ChannelPermissionOverride]:
    result = await db.execute(
        select(ChannelPermissionOverride)
        .where(ChannelPermissionOverride.channel_id == channel_id)
        .order_by(ChannelPermissionOverride.id)
    )
    return list(result.scalars().all())
