"""
Call-site enforcement helpers.
Turn a negative decision into a 403 for handlers that already know the scope.
"""
from zvonok.core.logging import permissions_logger
from .constants import Permission
from .exceptions import PermissionDenied
from .scopes import ScopeKind
from .service import PermissionService


async def require_permission(
    service: PermissionService,
    user_id: int,
    scope_id: int,
    scope_kind: ScopeKind | str,
    permission: Permission,
) -> None:
    """Raise 403 if the user lacks ``permission`` in the scope."""
    if await service.has_permission(user_id, scope_id, scope_kind, permission):
        return
    permissions_logger.info(
        f"[PERMS_DENIED] user_id={user_id} scope={ScopeKind(scope_kind).value} "
        f"scope_id={scope_id} permission={permission.name}"
    )
    raise PermissionDenied(permission.name)


async def require_server_member(service: PermissionService, user_id: int, server_id: int) -> None:
    if not await service.is_server_member(user_id, server_id):
        permissions_logger.info(f"[PERMS_DENIED] user_id={user_id} server_id={server_id} not a member")
        raise PermissionDenied("SERVER_MEMBERSHIP")
