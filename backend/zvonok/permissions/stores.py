"""
Read-side interfaces consumed by the permission resolver.

The resolver never touches ORM objects or sessions directly. Stores hand it
frozen snapshots, so every role or override row is seen either fully or not
at all, and concurrent writers cannot change data mid-decision.
"""
from dataclasses import dataclass, field
from typing import Optional, Protocol, Sequence


@dataclass(frozen=True)
class RoleSnapshot:
    id: int
    server_id: int
    name: str
    permissions: int
    position: int = 0
    is_everyone: bool = False
    is_active: bool = True


@dataclass(frozen=True)
class MemberSnapshot:
    id: int
    user_id: int
    server_id: int
    personal_permissions: int = 0
    is_active: bool = True
    roles: tuple[RoleSnapshot, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class OverrideSnapshot:
    id: int
    allowed: int
    denied: int
    role_id: Optional[int] = None
    user_id: Optional[int] = None


class MembershipStore(Protocol):
    async def get_active_member(self, user_id: int, server_id: int) -> Optional[MemberSnapshot]:
        ...

    async def get_active_member_by_channel(self, user_id: int, channel_id: int) -> Optional[MemberSnapshot]:
        ...

    async def get_active_member_by_folder(self, user_id: int, folder_id: int) -> Optional[MemberSnapshot]:
        ...


class OverrideStore(Protocol):
    async def get_folder_overrides_for_roles(
        self, folder_id: int, role_ids: Sequence[int]
    ) -> list[OverrideSnapshot]:
        ...

    async def get_folder_override_for_user(self, folder_id: int, user_id: int) -> Optional[OverrideSnapshot]:
        ...

    async def get_channel_overrides_for_roles(
        self, channel_id: int, role_ids: Sequence[int]
    ) -> list[OverrideSnapshot]:
        ...

    async def get_channel_override_for_user(self, channel_id: int, user_id: int) -> Optional[OverrideSnapshot]:
        ...

    async def get_channel_folder_id(self, channel_id: int) -> int:
        """Raise ScopeNotFound when the channel does not exist."""
        ...
