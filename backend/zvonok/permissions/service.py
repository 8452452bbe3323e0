from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.core.logging import log_permission_decision, permissions_logger
from zvonok.permissions.constants import Permission
from zvonok.permissions.exceptions import MalformedOverrideError, ScopeNotFound
from zvonok.permissions.repository import SQLAlchemyPermissionStore
from zvonok.permissions.resolver import (
    active_roles,
    channel_effective_mask,
    folder_effective_mask,
    has_admin_role,
    resolve_channel,
    resolve_folder,
    resolve_server,
    role_permissions,
)
from zvonok.permissions.scopes import ScopeKind
from zvonok.permissions.stores import MembershipStore, MemberSnapshot, OverrideStore, RoleSnapshot


class PermissionService:
    """Resolve whether a user may do something in a server, folder or channel.

    Holds no state between calls; every decision is re-evaluated against the
    stores. Lookup failures and inconsistent rows fail closed (deny).
    """

    def __init__(self, members: MembershipStore, overrides: OverrideStore):
        self.members = members
        self.overrides = overrides

    @classmethod
    def for_session(cls, db: AsyncSession) -> "PermissionService":
        store = SQLAlchemyPermissionStore(db)
        return cls(store, store)

    async def _load_member(self, user_id: int, scope_id: int, scope_kind: ScopeKind) -> Optional[MemberSnapshot]:
        if scope_kind is ScopeKind.SERVER:
            member = await self.members.get_active_member(user_id, scope_id)
        elif scope_kind is ScopeKind.FOLDER:
            member = await self.members.get_active_member_by_folder(user_id, scope_id)
        else:
            member = await self.members.get_active_member_by_channel(user_id, scope_id)
        if member is None or not member.is_active:
            return None
        return member

    async def has_permission(
        self,
        user_id: int,
        scope_id: int,
        scope_kind: ScopeKind | str,
        permission: Permission,
    ) -> bool:
        """
        Decide whether ``user_id`` holds ``permission`` in the given scope.

        Non-members and inactive members are refused. Any active role carrying
        ADMINISTRATOR is allowed unconditionally, explicit denies included.
        Otherwise role grants, scope overrides and personal grants are merged
        with deny-wins precedence.
        """
        scope_kind = ScopeKind(scope_kind)
        try:
            member = await self._load_member(user_id, scope_id, scope_kind)
            if member is None:
                allowed = False
            else:
                roles = active_roles(member)
                if has_admin_role(roles):
                    allowed = True
                elif scope_kind is ScopeKind.SERVER:
                    allowed = resolve_server(member, roles, permission)
                elif scope_kind is ScopeKind.FOLDER:
                    allowed = await resolve_folder(self.overrides, member, roles, scope_id, permission)
                else:
                    allowed = await resolve_channel(self.overrides, member, roles, scope_id, permission)
        except ScopeNotFound as e:
            permissions_logger.warning(
                "[PERMS] scope not found, denying",
                user_id=user_id, scope=scope_kind.value, scope_id=scope_id, missing=str(e),
            )
            return False
        except MalformedOverrideError as e:
            permissions_logger.critical(
                "[PERMS] malformed override row, denying",
                error=e, user_id=user_id, scope=scope_kind.value, scope_id=scope_id,
            )
            return False
        except SQLAlchemyError as e:
            permissions_logger.error(
                "[PERMS] lookup failed, denying",
                error=e, user_id=user_id, scope=scope_kind.value, scope_id=scope_id,
            )
            return False

        log_permission_decision(user_id, scope_kind.value, scope_id, permission.name, allowed)
        return allowed

    async def has_permission_in_server(self, user_id: int, server_id: int, permission: Permission) -> bool:
        return await self.has_permission(user_id, server_id, ScopeKind.SERVER, permission)

    async def has_permission_in_folder(self, user_id: int, folder_id: int, permission: Permission) -> bool:
        return await self.has_permission(user_id, folder_id, ScopeKind.FOLDER, permission)

    async def has_permission_in_channel(self, user_id: int, channel_id: int, permission: Permission) -> bool:
        return await self.has_permission(user_id, channel_id, ScopeKind.CHANNEL, permission)

    # Convenience aliases; keep these free of resolution logic.

    async def can_view(self, user_id: int, channel_id: int) -> bool:
        return await self.has_permission_in_channel(user_id, channel_id, Permission.VIEW_CHANNEL)

    async def can_view_channel(self, user_id: int, channel_id: int) -> bool:
        return await self.can_view(user_id, channel_id)

    async def can_view_folder(self, user_id: int, folder_id: int) -> bool:
        return await self.has_permission_in_folder(user_id, folder_id, Permission.VIEW_CHANNEL)

    async def can_send_messages(self, user_id: int, channel_id: int) -> bool:
        return await self.has_permission_in_channel(user_id, channel_id, Permission.SEND_MESSAGES)

    async def can_manage_channels(
        self,
        user_id: int,
        scope_id: int,
        scope_kind: ScopeKind | str = ScopeKind.SERVER,
    ) -> bool:
        return await self.has_permission(user_id, scope_id, scope_kind, Permission.MANAGE_CHANNELS)

    async def can_manage_server(self, user_id: int, server_id: int) -> bool:
        return await self.has_permission_in_server(user_id, server_id, Permission.MANAGE_SERVER)

    async def can_manage_roles(self, user_id: int, server_id: int) -> bool:
        return await self.has_permission_in_server(user_id, server_id, Permission.MANAGE_ROLES)

    async def can_kick_members(self, user_id: int, server_id: int) -> bool:
        return await self.has_permission_in_server(user_id, server_id, Permission.KICK_MEMBERS)

    async def can_ban_members(self, user_id: int, server_id: int) -> bool:
        return await self.has_permission_in_server(user_id, server_id, Permission.BAN_MEMBERS)

    async def can_create_invites(self, user_id: int, server_id: int) -> bool:
        return await self.has_permission_in_server(user_id, server_id, Permission.CREATE_INVITE)

    async def is_server_member(self, user_id: int, server_id: int) -> bool:
        return await self._load_member(user_id, server_id, ScopeKind.SERVER) is not None

    async def get_user_server_roles(self, user_id: int, server_id: int) -> list[RoleSnapshot]:
        member = await self._load_member(user_id, server_id, ScopeKind.SERVER)
        if member is None:
            return []
        return active_roles(member)

    async def get_effective_permissions(
        self,
        user_id: int,
        scope_id: int,
        scope_kind: ScopeKind | str,
    ) -> int:
        """
        Effective mask for a scope, for clients that render controls up front.

        Returns 0 for non-members and the bare ADMINISTRATOR bit for
        administrators (clients treat it as "everything").
        """
        scope_kind = ScopeKind(scope_kind)
        try:
            member = await self._load_member(user_id, scope_id, scope_kind)
            if member is None:
                return 0
            roles = active_roles(member)
            if has_admin_role(roles):
                return int(Permission.ADMINISTRATOR)
            if scope_kind is ScopeKind.SERVER:
                return role_permissions(roles) | member.personal_permissions
            if scope_kind is ScopeKind.FOLDER:
                return await folder_effective_mask(self.overrides, member, roles, scope_id)
            return await channel_effective_mask(self.overrides, member, roles, scope_id)
        except (ScopeNotFound, MalformedOverrideError, SQLAlchemyError) as e:
            permissions_logger.error(
                "[PERMS] effective mask lookup failed, returning nothing",
                error=e, user_id=user_id, scope=scope_kind.value, scope_id=scope_id,
            )
            return 0

    async def get_user_server_permissions(self, user_id: int, server_id: int) -> int:
        return await self.get_effective_permissions(user_id, server_id, ScopeKind.SERVER)
