from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.core.logging import servers_logger
from zvonok.db.models import Server, ServerMember, ServerMemberRole, ServerRole
from zvonok.permissions.constants import NOTHING
from zvonok.services.exceptions import (
    CannotKickServerOwner,
    CannotKickYourself,
    CannotRemoveEveryoneRole,
    OwnerCannotLeaveServer,
    RoleServerMismatch,
    ServerMemberLimitReached,
    ServerMemberNotFound,
    ServerMemberRoleNotFound,
)
from zvonok.services.roles import get_everyone_role


async def get_member(db: AsyncSession, user_id: int, server_id: int) -> Optional[ServerMember]:
    """Membership row regardless of whether it is still active."""
    result = await db.execute(
        select(ServerMember).where(ServerMember.user_id == user_id, ServerMember.server_id == server_id)
    )
    return result.scalar_one_or_none()


async def get_active_member(db: AsyncSession, user_id: int, server_id: int) -> ServerMember:
    member = await get_member(db, user_id, server_id)
    if not member or not member.is_active:
        raise ServerMemberNotFound(user_id, server_id)
    return member


async def list_active_members(db: AsyncSession, server_id: int) -> list[ServerMember]:
    result = await db.execute(
        select(ServerMember)
        .where(ServerMember.server_id == server_id, ServerMember.is_active.is_(True))
        .order_by(ServerMember.joined_at, ServerMember.id)
    )
    return list(result.scalars().all())


async def count_active_members(db: AsyncSession, server_id: int) -> int:
    result = await db.execute(
        select(func.count(ServerMember.id))
        .where(ServerMember.server_id == server_id, ServerMember.is_active.is_(True))
    )
    return result.scalar_one()


async def get_member_role_ids(db: AsyncSession, member_id: int) -> list[int]:
    result = await db.execute(
        select(ServerMemberRole.role_id).where(ServerMemberRole.member_id == member_id)
    )
    return [row[0] for row in result.all()]


async def add_member(db: AsyncSession, server: Server, user_id: int) -> ServerMember:
    """Create the membership row and give it the everyone role. Flushes, does not commit."""
    member = ServerMember(
        user_id=user_id,
        server_id=server.id,
        personal_permissions=NOTHING,
        is_active=True,
        joined_at=datetime.now(timezone.utc),
    )
    db.add(member)
    await db.flush()

    everyone = await get_everyone_role(db, server.id)
    db.add(ServerMemberRole(member_id=member.id, role_id=everyone.id, assigned_by_id=user_id))
    await db.flush()
    return member


async def join_server(db: AsyncSession, server: Server, user_id: int) -> ServerMember:
    """
    Make ``user_id`` an active member of ``server``.

    Joining twice is a no-op. A former member is reactivated with a fresh
    join timestamp and the everyone role; roles held before leaving are not
    restored.
    """
    member = await get_member(db, user_id, server.id)
    if member and member.is_active:
        return member

    if await count_active_members(db, server.id) >= server.max_members:
        raise ServerMemberLimitReached(server.max_members)

    if member:
        member.is_active = True
        member.left_at = None
        member.joined_at = datetime.now(timezone.utc)
        member.personal_permissions = NOTHING
        everyone = await get_everyone_role(db, server.id)
        db.add(ServerMemberRole(member_id=member.id, role_id=everyone.id, assigned_by_id=user_id))
    else:
        member = await add_member(db, server, user_id)

    await db.commit()
    await db.refresh(member)
    servers_logger.info("member_joined", server_id=server.id, user_id=user_id)
    return member


async def _deactivate(db: AsyncSession, member: ServerMember) -> None:
    member.is_active = False
    member.left_at = datetime.now(timezone.utc)
    await db.execute(delete(ServerMemberRole).where(ServerMemberRole.member_id == member.id))
    await db.commit()


async def leave_server(db: AsyncSession, server: Server, user_id: int) -> None:
    if server.owner_id == user_id:
        raise OwnerCannotLeaveServer()
    member = await get_active_member(db, user_id, server.id)
    await _deactivate(db, member)
    servers_logger.info("member_left", server_id=server.id, user_id=user_id)


async def kick_member(db: AsyncSession, server: Server, target_user_id: int, actor_user_id: int) -> None:
    if server.owner_id == target_user_id:
        raise CannotKickServerOwner()
    if target_user_id == actor_user_id:
        raise CannotKickYourself()
    member = await get_active_member(db, target_user_id, server.id)
    await _deactivate(db, member)
    servers_logger.info(
        "member_kicked", server_id=server.id, user_id=target_user_id, actor_id=actor_user_id,
    )


async def assign_role(
    db: AsyncSession,
    member: ServerMember,
    role: ServerRole,
    assigned_by_id: Optional[int] = None,
) -> ServerMemberRole:
    """Idempotent: assigning a role the member already holds returns the existing row."""
    if role.server_id != member.server_id:
        raise RoleServerMismatch()

    result = await db.execute(
        select(ServerMemberRole).where(
            ServerMemberRole.member_id == member.id, ServerMemberRole.role_id == role.id
        )
    )
    existing = result.scalar_one_or_none()
    if existing:
        return existing

    assignment = ServerMemberRole(member_id=member.id, role_id=role.id, assigned_by_id=assigned_by_id)
    db.add(assignment)
    await db.commit()
    await db.refresh(assignment)
    servers_logger.info(
        "role_assigned", server_id=member.server_id, member_id=member.id, role_id=role.id,
    )
    return assignment


async def remove_role(db: AsyncSession, member: ServerMember, role: ServerRole) -> None:
    """Drop the assignment only; the role itself is untouched."""
    if role.is_everyone:
        raise CannotRemoveEveryoneRole()
    result = await db.execute(
        select(ServerMemberRole).where(
            ServerMemberRole.member_id == member.id, ServerMemberRole.role_id == role.id
        )
    )
    assignment = result.scalar_one_or_none()
    if not assignment:
        raise ServerMemberRoleNotFound(member.id, role.id)
    await db.delete(assignment)
    await db.commit()
    servers_logger.info(
        "role_removed", server_id=member.server_id, member_id=member.id, role_id=role.id,
    )


async def set_personal_permissions(db: AsyncSession, member: ServerMember, permissions: int) -> ServerMember:
    member.personal_permissions = permissions
    await db.commit()
    await db.refresh(member)
    servers_logger.info(
        "personal_permissions_set", server_id=member.server_id, member_id=member.id, permissions=permissions,
    )
    return member


async def update_nickname(db: AsyncSession, member: ServerMember, nickname: Optional[str]) -> ServerMember:
    member.nickname = nickname.strip() if nickname and nickname.strip() else None
    await db.commit()
    await db.refresh(member)
    return member
