from enum import IntFlag


class Permission(IntFlag):
    """Capability bits packed into a single 64-bit mask.

    Bit positions are persisted in role, member and override rows, so they
    must never be renumbered.
    """
    NOTHING = 0

    # Basic
    VIEW_CHANNEL = 1 << 0
    SEND_MESSAGES = 1 << 1
    READ_MESSAGE_HISTORY = 1 << 2

    # Message formatting
    EMBED_LINKS = 1 << 3
    ATTACH_FILES = 1 << 4

    # Editing other members' messages
    EDIT_MESSAGES = 1 << 5

    # Voice
    CONNECT = 1 << 6
    SPEAK = 1 << 7
    MUTE_MEMBERS = 1 << 8
    DEAFEN_MEMBERS = 1 << 9
    MOVE_MEMBERS = 1 << 10

    # Message moderation
    MANAGE_MESSAGES = 1 << 11

    # Channels and folders
    MANAGE_CHANNELS = 1 << 12
    MANAGE_PERMISSIONS = 1 << 13

    # Server
    CHANGE_NICKNAME = 1 << 14
    MANAGE_NICKNAMES = 1 << 15
    KICK_MEMBERS = 1 << 16
    BAN_MEMBERS = 1 << 17
    MANAGE_ROLES = 1 << 18
    MANAGE_SERVER = 1 << 19
    CREATE_INVITE = 1 << 20

    # Bypasses every other check (interpreted by PermissionService only)
    ADMINISTRATOR = 1 << 21


NOTHING = 0
ALL_PERMISSIONS = 0
for _permission in Permission:
    ALL_PERMISSIONS |= int(_permission)

MAX_MASK = (1 << 63) - 1


def has_permission(mask: int, permission: Permission) -> bool:
    return (mask & int(permission)) != 0


def add_permission(mask: int, permission: Permission) -> int:
    return mask | int(permission)


def remove_permission(mask: int, permission: Permission) -> int:
    # int() first: ~ on an IntFlag drops bits outside the defined members
    return mask & ~int(permission)


def permission_names(mask: int) -> list[str]:
    """Names of the known capabilities set in ``mask``, lowest bit first."""
    return [p.name for p in Permission if p and has_permission(mask, p)]
