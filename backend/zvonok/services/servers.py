from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.core.config import settings
from zvonok.core.logging import log_operation, servers_logger
from zvonok.db.enums import ChannelType
from zvonok.db.models import (
    Channel,
    ChannelFolder,
    ChannelPermissionOverride,
    FolderPermissionOverride,
    Server,
    ServerMember,
    ServerMemberRole,
    ServerRole,
)
from zvonok.permissions.constants import NOTHING, Permission
from zvonok.services.channels import create_channel, create_folder
from zvonok.services.exceptions import ServerNotFound
from zvonok.services.roles import EVERYONE_ROLE_NAME, OWNER_ROLE_NAME, create_role

DEFAULT_FOLDER_NAME = "General"
DEFAULT_TEXT_CHANNEL_NAME = "general"
DEFAULT_VOICE_CHANNEL_NAME = "Voice"
OWNER_ROLE_COLOR = "#ff0000"
OWNER_ROLE_POSITION = 1000


@log_operation("create_server", servers_logger)
async def create_server(
    db: AsyncSession,
    owner_id: int,
    name: str,
    max_members: Optional[int] = None,
) -> Server:
    """
    Create a server with everything it needs to be usable.

    In a single transaction: the server row, the everyone role, an Owner role
    carrying ADMINISTRATOR, the owner's membership holding both roles, and a
    default folder with one text and one voice channel. Nothing is left behind
    if any step fails.
    """
    try:
        server = Server(
            name=name,
            owner_id=owner_id,
            max_members=max_members or settings.DEFAULT_MAX_MEMBERS,
            is_active=True,
        )
        db.add(server)
        await db.flush()

        everyone = await create_role(
            db,
            server.id,
            EVERYONE_ROLE_NAME,
            permissions=settings.EVERYONE_ROLE_PERMISSIONS,
            position=0,
            mentionable=False,
            is_everyone=True,
            commit=False,
        )
        owner_role = await create_role(
            db,
            server.id,
            OWNER_ROLE_NAME,
            permissions=int(Permission.ADMINISTRATOR),
            color=OWNER_ROLE_COLOR,
            position=OWNER_ROLE_POSITION,
            commit=False,
        )

        member = ServerMember(
            user_id=owner_id,
            server_id=server.id,
            personal_permissions=NOTHING,
            is_active=True,
            joined_at=datetime.now(timezone.utc),
        )
        db.add(member)
        await db.flush()
        db.add_all([
            ServerMemberRole(member_id=member.id, role_id=everyone.id, assigned_by_id=owner_id),
            ServerMemberRole(member_id=member.id, role_id=owner_role.id, assigned_by_id=owner_id),
        ])

        folder = await create_folder(db, server.id, DEFAULT_FOLDER_NAME, commit=False)
        await create_channel(db, folder.id, DEFAULT_TEXT_CHANNEL_NAME, ChannelType.text, commit=False)
        await create_channel(db, folder.id, DEFAULT_VOICE_CHANNEL_NAME, ChannelType.voice, position=1, commit=False)

        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(server)
    servers_logger.info("server_created", server_id=server.id, owner_id=owner_id)
    return server


async def get_server(db: AsyncSession, server_id: int) -> Server:
    result = await db.execute(
        select(Server).where(Server.id == server_id, Server.is_active.is_(True))
    )
    server = result.scalar_one_or_none()
    if not server:
        raise ServerNotFound(server_id)
    return server


async def update_server(
    db: AsyncSession,
    server: Server,
    name: Optional[str] = None,
    max_members: Optional[int] = None,
) -> Server:
    if name is not None:
        server.name = name
    if max_members is not None:
        server.max_members = max_members
    await db.commit()
    await db.refresh(server)
    servers_logger.info("server_updated", server_id=server.id)
    return server


@log_operation("delete_server", servers_logger)
async def delete_server(db: AsyncSession, server: Server) -> None:
    """Hard delete of a server and every row hanging off it."""
    server_id = server.id
    folder_ids = select(ChannelFolder.id).where(ChannelFolder.server_id == server_id)
    channel_ids = select(Channel.id).where(Channel.folder_id.in_(folder_ids))
    member_ids = select(ServerMember.id).where(ServerMember.server_id == server_id)

    try:
        await db.execute(
            delete(ChannelPermissionOverride).where(ChannelPermissionOverride.channel_id.in_(channel_ids))
        )
        await db.execute(
            delete(FolderPermissionOverride).where(FolderPermissionOverride.folder_id.in_(folder_ids))
        )
        await db.execute(delete(Channel).where(Channel.folder_id.in_(folder_ids)))
        await db.execute(delete(ChannelFolder).where(ChannelFolder.server_id == server_id))
        await db.execute(delete(ServerMemberRole).where(ServerMemberRole.member_id.in_(member_ids)))
        await db.execute(delete(ServerMember).where(ServerMember.server_id == server_id))
        await db.execute(delete(ServerRole).where(ServerRole.server_id == server_id))
        await db.execute(delete(Server).where(Server.id == server_id))
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    servers_logger.info("server_deleted", server_id=server_id)
