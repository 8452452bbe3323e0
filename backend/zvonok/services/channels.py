from typing import Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.core.logging import servers_logger
from zvonok.db.enums import ChannelType
from zvonok.db.models import Channel, ChannelFolder, ChannelPermissionOverride, FolderPermissionOverride
from zvonok.services.exceptions import ChannelFolderNotFound, ChannelNotFound


async def get_folder(db: AsyncSession, folder_id: int) -> ChannelFolder:
    result = await db.execute(select(ChannelFolder).where(ChannelFolder.id == folder_id))
    folder = result.scalar_one_or_none()
    if not folder:
        raise ChannelFolderNotFound(folder_id)
    return folder


async def get_channel(db: AsyncSession, channel_id: int) -> Channel:
    result = await db.execute(select(Channel).where(Channel.id == channel_id))
    channel = result.scalar_one_or_none()
    if not channel:
        raise ChannelNotFound(channel_id)
    return channel


async def get_channel_server_id(db: AsyncSession, channel_id: int) -> int:
    result = await db.execute(
        select(ChannelFolder.server_id)
        .join(Channel, Channel.folder_id == ChannelFolder.id)
        .where(Channel.id == channel_id)
    )
    server_id = result.scalar_one_or_none()
    if server_id is None:
        raise ChannelNotFound(channel_id)
    return server_id


async def list_folders(db: AsyncSession, server_id: int) -> list[ChannelFolder]:
    result = await db.execute(
        select(ChannelFolder)
        .where(ChannelFolder.server_id == server_id, ChannelFolder.is_active.is_(True))
        .order_by(ChannelFolder.position, ChannelFolder.id)
    )
    return list(result.scalars().all())


async def list_channels(db: AsyncSession, folder_id: int) -> list[Channel]:
    result = await db.execute(
        select(Channel)
        .where(Channel.folder_id == folder_id, Channel.is_active.is_(True))
        .order_by(Channel.position, Channel.id)
    )
    return list(result.scalars().all())


async def create_folder(
    db: AsyncSession,
    server_id: int,
    name: str,
    position: int = 0,
    collapsed: bool = False,
    commit: bool = True,
) -> ChannelFolder:
    folder = ChannelFolder(server_id=server_id, name=name, position=position, collapsed=collapsed)
    db.add(folder)
    if commit:
        await db.commit()
        await db.refresh(folder)
    else:
        await db.flush()
    servers_logger.info("folder_created", server_id=server_id, folder_id=folder.id)
    return folder


async def create_channel(
    db: AsyncSession,
    folder_id: int,
    name: str,
    type: ChannelType = ChannelType.text,
    topic: Optional[str] = None,
    position: int = 0,
    user_limit: int = 10,
    slow_mode_seconds: Optional[int] = None,
    nsfw: bool = False,
    commit: bool = True,
) -> Channel:
    channel = Channel(
        folder_id=folder_id,
        name=name,
        type=type,
        topic=topic,
        position=position,
        user_limit=user_limit,
        slow_mode_seconds=slow_mode_seconds,
        nsfw=nsfw,
    )
    db.add(channel)
    if commit:
        await db.commit()
        await db.refresh(channel)
    else:
        await db.flush()
    servers_logger.info("channel_created", folder_id=folder_id, channel_id=channel.id)
    return channel


async def delete_channel(db: AsyncSession, channel: Channel) -> None:
    """Hard delete; the channel's overrides go with it."""
    channel_id = channel.id
    await db.execute(
        delete(ChannelPermissionOverride).where(ChannelPermissionOverride.channel_id == channel_id)
    )
    await db.execute(delete(Channel).where(Channel.id == channel_id))
    await db.commit()
    servers_logger.info("channel_deleted", channel_id=channel_id)


async def delete_folder(db: AsyncSession, folder: ChannelFolder) -> None:
    """Hard delete of a folder together with its channels and every override attached to either."""
    folder_id = folder.id
    channel_ids = select(Channel.id).where(Channel.folder_id == folder_id)
    await db.execute(
        delete(ChannelPermissionOverride).where(ChannelPermissionOverride.channel_id.in_(channel_ids))
    )
    await db.execute(delete(Channel).where(Channel.folder_id == folder_id))
    await db.execute(
        delete(FolderPermissionOverride).where(FolderPermissionOverride.folder_id == folder_id)
    )
    await db.execute(delete(ChannelFolder).where(ChannelFolder.id == folder_id))
    await db.commit()
    servers_logger.info("folder_deleted", folder_id=folder_id)
