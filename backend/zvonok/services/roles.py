from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.core.logging import servers_logger
from zvonok.db.models import ServerRole
from zvonok.permissions.constants import NOTHING
from zvonok.services.exceptions import (
    CannotDeleteEveryoneRole,
    CannotDisableEveryoneRole,
    ServerRoleNotFound,
)

EVERYONE_ROLE_NAME = "everyone"
OWNER_ROLE_NAME = "Owner"


async def get_role(db: AsyncSession, role_id: int) -> ServerRole:
    result = await db.execute(select(ServerRole).where(ServerRole.id == role_id))
    role = result.scalar_one_or_none()
    if not role:
        raise ServerRoleNotFound(role_id)
    return role


async def get_role_for_server(db: AsyncSession, server_id: int, role_id: int) -> ServerRole:
    """Fetch a role, refusing ids that belong to another server."""
    result = await db.execute(
        select(ServerRole).where(ServerRole.id == role_id, ServerRole.server_id == server_id)
    )
    role = result.scalar_one_or_none()
    if not role:
        raise ServerRoleNotFound(role_id)
    return role


async def get_everyone_role(db: AsyncSession, server_id: int) -> ServerRole:
    result = await db.execute(
        select(ServerRole).where(ServerRole.server_id == server_id, ServerRole.is_everyone.is_(True))
    )
    role = result.scalar_one_or_none()
    if not role:
        servers_logger.error("server has no everyone role", server_id=server_id)
        raise ServerRoleNotFound(0)
    return role


async def list_active_roles(db: AsyncSession, server_id: int) -> list[ServerRole]:
    result = await db.execute(
        select(ServerRole)
        .where(ServerRole.server_id == server_id, ServerRole.is_active.is_(True))
        .order_by(ServerRole.position.desc(), ServerRole.id)
    )
    return list(result.scalars().all())


async def create_role(
    db: AsyncSession,
    server_id: int,
    name: str,
    permissions: int = NOTHING,
    color: str = "#ffffff",
    position: int = 0,
    mentionable: bool = True,
    is_everyone: bool = False,
    commit: bool = True,
) -> ServerRole:
    role = ServerRole(
        server_id=server_id,
        name=name,
        permissions=permissions,
        color=color,
        position=position,
        mentionable=mentionable,
        is_everyone=is_everyone,
        is_active=True,
    )
    db.add(role)
    if commit:
        await db.commit()
        await db.refresh(role)
    else:
        await db.flush()
    servers_logger.info("role_created", server_id=server_id, role_id=role.id, permissions=permissions)
    return role


async def update_role(
    db: AsyncSession,
    role: ServerRole,
    name: Optional[str] = None,
    color: Optional[str] = None,
    position: Optional[int] = None,
    permissions: Optional[int] = None,
    mentionable: Optional[bool] = None,
    is_active: Optional[bool] = None,
) -> ServerRole:
    """Apply the given changes; ``None`` leaves a field untouched."""
    if name is not None:
        role.name = name
    if color is not None:
        role.color = color
    if position is not None:
        role.position = position
    if permissions is not None:
        role.permissions = permissions
    if mentionable is not None:
        role.mentionable = mentionable
    if is_active is not None:
        if not is_active and role.is_everyone:
            raise CannotDisableEveryoneRole()
        role.is_active = is_active

    await db.commit()
    await db.refresh(role)
    servers_logger.info("role_updated", server_id=role.server_id, role_id=role.id)
    return role


async def delete_role(db: AsyncSession, role: ServerRole) -> None:
    """Soft delete: the row stays so assignments and overrides keep their foreign keys."""
    if role.is_everyone:
        raise CannotDeleteEveryoneRole()
    role.is_active = False
    await db.commit()
    servers_logger.info("role_deleted", server_id=role.server_id, role_id=role.id)
