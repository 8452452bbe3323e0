from .constants import (
    ALL_PERMISSIONS,
    NOTHING,
    Permission,
    add_permission,
    has_permission,
    remove_permission,
)
from .scopes import ScopeKind
from .service import PermissionService

__all__ = [
    "ALL_PERMISSIONS",
    "NOTHING",
    "Permission",
    "PermissionService",
    "ScopeKind",
    "add_permission",
    "has_permission",
    "remove_permission",
]
