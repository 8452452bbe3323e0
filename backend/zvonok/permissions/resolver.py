"""
Permission resolution for server, folder and channel scopes.

Every scope merges its sources into an ``(allowed, denied)`` pair of masks
and then applies deny-wins: a bit present in ``denied`` is refused no matter
how many sources allow it. Channels inherit the folder's already-resolved
effective mask (``allowed & ~denied``) as their starting point, so a channel
override can both re-grant a bit the folder denied and deny a bit the folder
allowed.

The ADMINISTRATOR bypass is not applied here; see PermissionService.
"""
from typing import Iterable, Optional, Sequence

from zvonok.permissions.constants import Permission, has_permission
from zvonok.permissions.stores import MemberSnapshot, OverrideSnapshot, OverrideStore, RoleSnapshot


def active_roles(member: MemberSnapshot) -> list[RoleSnapshot]:
    """Roles assigned to the member that still count; disabled roles grant nothing."""
    return [role for role in member.roles if role.is_active]


def role_permissions(roles: Iterable[RoleSnapshot]) -> int:
    mask = 0
    for role in roles:
        mask |= role.permissions
    return mask


def has_admin_role(roles: Iterable[RoleSnapshot]) -> bool:
    return any(has_permission(role.permissions, Permission.ADMINISTRATOR) for role in roles)


def merge_overrides(
    allowed: int,
    denied: int,
    overrides: Iterable[Optional[OverrideSnapshot]],
) -> tuple[int, int]:
    for override in overrides:
        if override is None:
            continue
        allowed |= override.allowed
        denied |= override.denied
    return allowed, denied


def effective_mask(allowed: int, denied: int) -> int:
    return allowed & ~denied


def decide(allowed: int, denied: int, permission: Permission) -> bool:
    if has_permission(denied, permission):
        return False
    return has_permission(allowed, permission)


def resolve_server(member: MemberSnapshot, roles: Sequence[RoleSnapshot], permission: Permission) -> bool:
    """Server scope has no overrides: role grants plus personal grants."""
    mask = role_permissions(roles) | member.personal_permissions
    return has_permission(mask, permission)


async def folder_masks(
    store: OverrideStore,
    member: MemberSnapshot,
    roles: Sequence[RoleSnapshot],
    folder_id: int,
) -> tuple[int, int]:
    # Server-level role grants are the floor for folder scope
    allowed = role_permissions(roles)
    denied = 0

    role_overrides = await store.get_folder_overrides_for_roles(folder_id, [role.id for role in roles])
    allowed, denied = merge_overrides(allowed, denied, role_overrides)

    personal_override = await store.get_folder_override_for_user(folder_id, member.user_id)
    allowed, denied = merge_overrides(allowed, denied, [personal_override])

    allowed |= member.personal_permissions
    return allowed, denied


async def folder_effective_mask(
    store: OverrideStore,
    member: MemberSnapshot,
    roles: Sequence[RoleSnapshot],
    folder_id: int,
) -> int:
    allowed, denied = await folder_masks(store, member, roles, folder_id)
    return effective_mask(allowed, denied)


async def resolve_folder(
    store: OverrideStore,
    member: MemberSnapshot,
    roles: Sequence[RoleSnapshot],
    folder_id: int,
    permission: Permission,
) -> bool:
    allowed, denied = await folder_masks(store, member, roles, folder_id)
    return decide(allowed, denied, permission)


async def channel_masks(
    store: OverrideStore,
    member: MemberSnapshot,
    roles: Sequence[RoleSnapshot],
    channel_id: int,
) -> tuple[int, int]:
    folder_id = await store.get_channel_folder_id(channel_id)

    # The folder mask already holds role and personal grants minus folder-level
    # denies. Neither is ORed in again, or a folder deny could never stick.
    allowed = await folder_effective_mask(store, member, roles, folder_id)
    denied = 0

    role_overrides = await store.get_channel_overrides_for_roles(channel_id, [role.id for role in roles])
    allowed, denied = merge_overrides(allowed, denied, role_overrides)

    personal_override = await store.get_channel_override_for_user(channel_id, member.user_id)
    allowed, denied = merge_overrides(allowed, denied, [personal_override])
    return allowed, denied


async def channel_effective_mask(
    store: OverrideStore,
    member: MemberSnapshot,
    roles: Sequence[RoleSnapshot],
    channel_id: int,
) -> int:
    allowed, denied = await channel_masks(store, member, roles, channel_id)
    return effective_mask(allowed, denied)


async def resolve_channel(
    store: OverrideStore,
    member: MemberSnapshot,
    roles: Sequence[RoleSnapshot],
    channel_id: int,
    permission: Permission,
) -> bool:
    allowed, denied = await channel_masks(store, member, roles, channel_id)
    return decide(allowed, denied, permission)
