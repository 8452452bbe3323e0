from fastapi import HTTPException, status


class PermissionDenied(HTTPException):
    def __init__(self, permission: str):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Missing permission: {permission}",
        )


class OverrideTargetError(HTTPException):
    """An override must target exactly one of a role or a user."""

    def __init__(self, role_id: int | None, user_id: int | None):
        if role_id is None and user_id is None:
            detail = "Permission override needs a role or a user target"
        else:
            detail = "Permission override cannot target a role and a user at the same time"
        super().__init__(
            status_code=422,
            detail=detail,
        )
        self.role_id = role_id
        self.user_id = user_id


class ScopeNotFound(LookupError):
    """A folder or channel id did not resolve to a server."""

    def __init__(self, kind: str, scope_id: int):
        super().__init__(f"{kind} {scope_id} not found")
        self.kind = kind
        self.scope_id = scope_id


class MalformedOverrideError(RuntimeError):
    """A stored override row violates the role/user XOR invariant."""

    def __init__(self, table: str, override_id: int | None):
        super().__init__(f"{table} row {override_id} targets both or neither of role/user")
        self.table = table
        self.override_id = override_id
