from typing import Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from zvonok.db.models import (
    Channel,
    ChannelFolder,
    ChannelPermissionOverride,
    FolderPermissionOverride,
    ServerMember,
    ServerMemberRole,
)
from zvonok.permissions.exceptions import MalformedOverrideError, ScopeNotFound
from zvonok.permissions.stores import MemberSnapshot, OverrideSnapshot, RoleSnapshot


def _member_query():
    # populate_existing: never answer from rows cached in the session identity map
    return (
        select(ServerMember)
        .execution_options(populate_existing=True)
        .options(selectinload(ServerMember.member_roles).selectinload(ServerMemberRole.role))
        .where(ServerMember.is_active.is_(True))
    )


def to_member_snapshot(member: ServerMember) -> MemberSnapshot:
    roles = tuple(
        RoleSnapshot(
            id=mr.role.id,
            server_id=mr.role.server_id,
            name=mr.role.name,
            permissions=mr.role.permissions or 0,
            position=mr.role.position or 0,
            is_everyone=bool(mr.role.is_everyone),
            is_active=bool(mr.role.is_active),
        )
        for mr in member.member_roles
        if mr.role is not None
    )
    return MemberSnapshot(
        id=member.id,
        user_id=member.user_id,
        server_id=member.server_id,
        personal_permissions=member.personal_permissions or 0,
        is_active=bool(member.is_active),
        roles=roles,
    )


def to_override_snapshot(row) -> OverrideSnapshot:
    if (row.role_id is None) == (row.user_id is None):
        raise MalformedOverrideError(row.__tablename__, row.id)
    return OverrideSnapshot(
        id=row.id,
        allowed=row.allowed_permissions or 0,
        denied=row.denied_permissions or 0,
        role_id=row.role_id,
        user_id=row.user_id,
    )


async def get_active_member(
    db: AsyncSession,
    user_id: int,
    server_id: int,
) -> Optional[MemberSnapshot]:
    result = await db.execute(
        _member_query()
        .where(ServerMember.user_id == user_id)
        .where(ServerMember.server_id == server_id)
    )
    member = result.scalar_one_or_none()
    return to_member_snapshot(member) if member else None


async def get_active_member_by_folder(
    db: AsyncSession,
    user_id: int,
    folder_id: int,
) -> Optional[MemberSnapshot]:
    result = await db.execute(
        _member_query()
        .join(ChannelFolder, ChannelFolder.server_id == ServerMember.server_id)
        .where(ServerMember.user_id == user_id)
        .where(ChannelFolder.id == folder_id)
    )
    member = result.scalar_one_or_none()
    return to_member_snapshot(member) if member else None


async def get_active_member_by_channel(
    db: AsyncSession,
    user_id: int,
    channel_id: int,
) -> Optional[MemberSnapshot]:
    result = await db.execute(
        _member_query()
        .join(ChannelFolder, ChannelFolder.server_id == ServerMember.server_id)
        .join(Channel, Channel.folder_id == ChannelFolder.id)
        .where(ServerMember.user_id == user_id)
        .where(Channel.id == channel_id)
    )
    member = result.scalar_one_or_none()
    return to_member_snapshot(member) if member else None


async def get_folder_overrides_for_roles(
    db: AsyncSession,
    folder_id: int,
    role_ids: Sequence[int],
) -> list[OverrideSnapshot]:
    if not role_ids:
        return []
    result = await db.execute(
        select(FolderPermissionOverride)
        .execution_options(populate_existing=True)
        .where(FolderPermissionOverride.folder_id == folder_id)
        .where(FolderPermissionOverride.role_id.in_(list(role_ids)))
        .order_by(FolderPermissionOverride.id)
    )
    return [to_override_snapshot(row) for row in result.scalars().all()]


async def get_folder_override_for_user(
    db: AsyncSession,
    folder_id: int,
    user_id: int,
) -> Optional[OverrideSnapshot]:
    result = await db.execute(
        select(FolderPermissionOverride)
        .execution_options(populate_existing=True)
        .where(FolderPermissionOverride.folder_id == folder_id)
        .where(FolderPermissionOverride.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    return to_override_snapshot(row) if row else None


async def get_channel_overrides_for_roles(
    db: AsyncSession,
    channel_id: int,
    role_ids: Sequence[int],
) -> list[OverrideSnapshot]:
    if not role_ids:
        return []
    result = await db.execute(
        select(ChannelPermissionOverride)
        .execution_options(populate_existing=True)
        .where(ChannelPermissionOverride.channel_id == channel_id)
        .where(ChannelPermissionOverride.role_id.in_(list(role_ids)))
        .order_by(ChannelPermissionOverride.id)
    )
    return [to_override_snapshot(row) for row in result.scalars().all()]


async def get_channel_override_for_user(
    db: AsyncSession,
    channel_id: int,
    user_id: int,
) -> Optional[OverrideSnapshot]:
    result = await db.execute(
        select(ChannelPermissionOverride)
        .execution_options(populate_existing=True)
        .where(ChannelPermissionOverride.channel_id == channel_id)
        .where(ChannelPermissionOverride.user_id == user_id)
    )
    row = result.scalar_one_or_none()
    return to_override_snapshot(row) if row else None


async def get_channel_folder_id(db: AsyncSession, channel_id: int) -> int:
    result = await db.execute(select(Channel.folder_id).where(Channel.id == channel_id))
    folder_id = result.scalar_one_or_none()
    if folder_id is None:
        raise ScopeNotFound("channel", channel_id)
    return folder_id


class SQLAlchemyPermissionStore:
    """MembershipStore and OverrideStore backed by one AsyncSession."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_active_member(self, user_id: int, server_id: int) -> Optional[MemberSnapshot]:
        return await get_active_member(self.db, user_id, server_id)

    async def get_active_member_by_folder(self, user_id: int, folder_id: int) -> Optional[MemberSnapshot]:
        return await get_active_member_by_folder(self.db, user_id, folder_id)

    async def get_active_member_by_channel(self, user_id: int, channel_id: int) -> Optional[MemberSnapshot]:
        return await get_active_member_by_channel(self.db, user_id, channel_id)

    async def get_folder_overrides_for_roles(self, folder_id: int, role_ids: Sequence[int]) -> list[OverrideSnapshot]:
        return await get_folder_overrides_for_roles(self.db, folder_id, role_ids)

    async def get_folder_override_for_user(self, folder_id: int, user_id: int) -> Optional[OverrideSnapshot]:
        return await get_folder_override_for_user(self.db, folder_id, user_id)

    async def get_channel_overrides_for_roles(self, channel_id: int, role_ids: Sequence[int]) -> list[OverrideSnapshot]:
        return await get_channel_overrides_for_roles(self.db, channel_id, role_ids)

    async def get_channel_override_for_user(self, channel_id: int, user_id: int) -> Optional[OverrideSnapshot]:
        return await get_channel_override_for_user(self.db, channel_id, user_id)

    async def get_channel_folder_id(self, channel_id: int) -> int:
        return await get_channel_folder_id(self.db, channel_id)
