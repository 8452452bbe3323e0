from fastapi import HTTPException, status


class ServerNotFound(HTTPException):
    def __init__(self, server_id: int):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Server {server_id} not found")


class ServerRoleNotFound(HTTPException):
    def __init__(self, role_id: int):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Role {role_id} not found")


class ServerMemberNotFound(HTTPException):
    def __init__(self, user_id: int, server_id: int):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"User {user_id} is not a member of server {server_id}",
        )


class ServerMemberRoleNotFound(HTTPException):
    def __init__(self, member_id: int, role_id: int):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Role {role_id} is not assigned to member {member_id}",
        )


class ChannelFolderNotFound(HTTPException):
    def __init__(self, folder_id: int):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Folder {folder_id} not found")


class ChannelNotFound(HTTPException):
    def __init__(self, channel_id: int):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=f"Channel {channel_id} not found")


class PermissionOverrideNotFound(HTTPException):
    def __init__(self):
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail="Permission override not found")


class CannotDisableEveryoneRole(HTTPException):
    def __init__(self):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail="The @everyone role cannot be disabled")


class CannotDeleteEveryoneRole(HTTPException):
    def __init__(self):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail="The @everyone role cannot be deleted")


class CannotRemoveEveryoneRole(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="The @everyone role cannot be removed from a member",
        )


class OwnerCannotLeaveServer(HTTPException):
    def __init__(self):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail="The server owner cannot leave the server")


class CannotKickYourself(HTTPException):
    def __init__(self):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail="You cannot kick yourself")


class CannotKickServerOwner(HTTPException):
    def __init__(self):
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail="The server owner cannot be kicked")


class ServerMemberLimitReached(HTTPException):
    def __init__(self, max_members: int):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Server has reached its member limit ({max_members})",
        )


class RoleServerMismatch(HTTPException):
    def __init__(self):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail="Role and target belong to different servers",
        )


class InvalidPermissionMask(HTTPException):
    def __init__(self, mask: int):
        super().__init__(
            status_code=422,
            detail=f"Permission mask {mask} is out of range",
        )
