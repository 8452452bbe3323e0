from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from zvonok.core.security import get_current_user
from zvonok.db.database import get_db
from zvonok.permissions import checks
from zvonok.permissions.constants import Permission
from zvonok.permissions.scopes import ScopeKind
from zvonok.permissions.service import PermissionService


def get_permission_service(db: AsyncSession = Depends(get_db)) -> PermissionService:
    return PermissionService.for_session(db)


def require_permission(
    permission: Permission,
    scope_kind: ScopeKind,
    *,
    scope_param: str,
):
    """
    Route dependency enforcing ``permission`` on the scope named by a path
    parameter, e.g. ``require_permission(Permission.MANAGE_CHANNELS,
    ScopeKind.SERVER, scope_param="server_id")``.

    Returns the authenticated user dict so handlers can reuse it.
    """
    async def dependency(
        request: Request,
        service: PermissionService = Depends(get_permission_service),
        user=Depends(get_current_user),
    ):
        scope_id = int(request.path_params[scope_param])
        await checks.require_permission(service, user["user_id"], scope_id, scope_kind, permission)
        return user

    return dependency
