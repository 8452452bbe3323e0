import pytest
from sqlalchemy import func, select

from zvonok.db.enums import ChannelType
from zvonok.db.models import (
    Channel,
    ChannelFolder,
    ChannelPermissionOverride,
    FolderPermissionOverride,
    ServerMember,
    ServerMemberRole,
    ServerRole,
)
from zvonok.permissions.constants import Permission
from zvonok.services import channels as channel_service
from zvonok.services import members as member_service
from zvonok.services import overrides as override_service
from zvonok.services import roles as role_service
from zvonok.services import servers as server_service
from zvonok.services.exceptions import (
    CannotDeleteEveryoneRole,
    CannotDisableEveryoneRole,
    CannotKickServerOwner,
    CannotKickYourself,
    CannotRemoveEveryoneRole,
    OwnerCannotLeaveServer,
    RoleServerMismatch,
    ServerMemberLimitReached,
    ServerMemberNotFound,
    ServerMemberRoleNotFound,
    ServerNotFound,
)


async def count(db, model, *criteria) -> int:
    query = select(func.count()).select_from(model)
    if criteria:
        query = query.where(*criteria)
    result = await db.execute(query)
    return result.scalar_one()


@pytest.mark.asyncio
async def test_create_server_layout(test_session, make_user):
    owner = await make_user("owner")

    server = await server_service.create_server(test_session, owner.id, "Guild")

    roles = await role_service.list_active_roles(test_session, server.id)
    assert [r.name for r in roles] == ["Owner", "everyone"]
    owner_role, everyone = roles
    assert owner_role.permissions == int(Permission.ADMINISTRATOR)
    assert everyone.is_everyone and not everyone.mentionable

    member = await member_service.get_active_member(test_session, owner.id, server.id)
    assert sorted(await member_service.get_member_role_ids(test_session, member.id)) == sorted(
        [everyone.id, owner_role.id]
    )

    folders = await channel_service.list_folders(test_session, server.id)
    assert [f.name for f in folders] == ["General"]
    channels = await channel_service.list_channels(test_session, folders[0].id)
    assert [(c.name, c.type) for c in channels] == [("general", ChannelType.text), ("Voice", ChannelType.voice)]


@pytest.mark.asyncio
async def test_join_is_idempotent_and_assigns_everyone(test_session, make_user):
    owner = await make_user("owner")
    guest = await make_user("guest")
    server = await server_service.create_server(test_session, owner.id, "Guild")

    first = await member_service.join_server(test_session, server, guest.id)
    second = await member_service.join_server(test_session, server, guest.id)

    assert first.id == second.id
    everyone = await role_service.get_everyone_role(test_session, server.id)
    assert await member_service.get_member_role_ids(test_session, first.id) == [everyone.id]
    assert await member_service.count_active_members(test_session, server.id) == 2


@pytest.mark.asyncio
async def test_rejoin_reactivates_without_old_roles(test_session, make_user):
    owner = await make_user("owner")
    guest = await make_user("guest")
    server = await server_service.create_server(test_session, owner.id, "Guild")
    member = await member_service.join_server(test_session, server, guest.id)
    helper = await role_service.create_role(test_session, server.id, "Helper", permissions=int(Permission.MANAGE_MESSAGES))
    await member_service.assign_role(test_session, member, helper)

    await member_service.leave_server(test_session, server, guest.id)
    left = await member_service.get_member(test_session, guest.id, server.id)
    assert left.is_active is False
    assert left.left_at is not None

    rejoined = await member_service.join_server(test_session, server, guest.id)

    assert rejoined.id == member.id
    assert rejoined.is_active is True
    assert rejoined.left_at is None
    everyone = await role_service.get_everyone_role(test_session, server.id)
    assert await member_service.get_member_role_ids(test_session, rejoined.id) == [everyone.id]


@pytest.mark.asyncio
async def test_member_limit(test_session, make_user):
    owner = await make_user("owner")
    first = await make_user("first")
    second = await make_user("second")
    server = await server_service.create_server(test_session, owner.id, "Tiny", max_members=2)

    await member_service.join_server(test_session, server, first.id)
    with pytest.raises(ServerMemberLimitReached):
        await member_service.join_server(test_session, server, second.id)


@pytest.mark.asyncio
async def test_owner_cannot_leave_or_be_kicked(test_session, make_user):
    owner = await make_user("owner")
    mod = await make_user("mod")
    server = await server_service.create_server(test_session, owner.id, "Guild")
    await member_service.join_server(test_session, server, mod.id)

    with pytest.raises(OwnerCannotLeaveServer):
        await member_service.leave_server(test_session, server, owner.id)
    with pytest.raises(CannotKickServerOwner):
        await member_service.kick_member(test_session, server, owner.id, mod.id)
    with pytest.raises(CannotKickYourself):
        await member_service.kick_member(test_session, server, mod.id, mod.id)


@pytest.mark.asyncio
async def test_kick_removes_member(test_session, make_user):
    owner = await make_user("owner")
    guest = await make_user("guest")
    server = await server_service.create_server(test_session, owner.id, "Guild")
    await member_service.join_server(test_session, server, guest.id)

    await member_service.kick_member(test_session, server, guest.id, owner.id)

    with pytest.raises(ServerMemberNotFound):
        await member_service.get_active_member(test_session, guest.id, server.id)
    with pytest.raises(ServerMemberNotFound):
        await member_service.kick_member(test_session, server, guest.id, owner.id)


@pytest.mark.asyncio
async def test_everyone_role_is_protected(test_session, make_user):
    owner = await make_user("owner")
    server = await server_service.create_server(test_session, owner.id, "Guild")
    everyone = await role_service.get_everyone_role(test_session, server.id)
    member = await member_service.get_active_member(test_session, owner.id, server.id)

    with pytest.raises(CannotDisableEveryoneRole):
        await role_service.update_role(test_session, everyone, is_active=False)
    with pytest.raises(CannotDeleteEveryoneRole):
        await role_service.delete_role(test_session, everyone)
    with pytest.raises(CannotRemoveEveryoneRole):
        await member_service.remove_role(test_session, member, everyone)


@pytest.mark.asyncio
async def test_role_assignment_rules(test_session, make_user):
    owner = await make_user("owner")
    other_owner = await make_user("other")
    server = await server_service.create_server(test_session, owner.id, "Guild")
    other = await server_service.create_server(test_session, other_owner.id, "Other")
    member = await member_service.get_active_member(test_session, owner.id, server.id)

    helper = await role_service.create_role(test_session, server.id, "Helper")
    first = await member_service.assign_role(test_session, member, helper, assigned_by_id=owner.id)
    again = await member_service.assign_role(test_session, member, helper)
    assert first.id == again.id

    foreign = await role_service.create_role(test_session, other.id, "Foreign")
    with pytest.raises(RoleServerMismatch):
        await member_service.assign_role(test_session, member, foreign)

    await member_service.remove_role(test_session, member, helper)
    with pytest.raises(ServerMemberRoleNotFound):
        await member_service.remove_role(test_session, member, helper)


@pytest.mark.asyncio
async def test_deleted_role_is_soft_deleted(test_session, make_user):
    owner = await make_user("owner")
    server = await server_service.create_server(test_session, owner.id, "Guild")
    helper = await role_service.create_role(test_session, server.id, "Helper")

    await role_service.delete_role(test_session, helper)

    assert helper.id not in [r.id for r in await role_service.list_active_roles(test_session, server.id)]
    assert await count(test_session, ServerRole, ServerRole.id == helper.id) == 1


@pytest.mark.asyncio
async def test_nickname_is_trimmed(test_session, make_user):
    owner = await make_user("owner")
    server = await server_service.create_server(test_session, owner.id, "Guild")
    member = await member_service.get_active_member(test_session, owner.id, server.id)

    await member_service.update_nickname(test_session, member, "  boss  ")
    assert member.nickname == "boss"
    await member_service.update_nickname(test_session, member, "   ")
    assert member.nickname is None


@pytest.mark.asyncio
async def test_update_server(test_session, make_user):
    owner = await make_user("owner")
    server = await server_service.create_server(test_session, owner.id, "Guild")

    updated = await server_service.update_server(test_session, server, name="Renamed", max_members=50)

    assert updated.name == "Renamed"
    assert updated.max_members == 50


@pytest.mark.asyncio
async def test_delete_folder_takes_overrides_along(test_session, make_user):
    owner = await make_user("owner")
    server = await server_service.create_server(test_session, owner.id, "Guild")
    everyone = await role_service.get_everyone_role(test_session, server.id)
    folder = await channel_service.create_folder(test_session, server.id, "Private")
    channel = await channel_service.create_channel(test_session, folder.id, "secret")
    await override_service.set_folder_override(test_session, folder.id, role_id=everyone.id, denied=1)
    await override_service.set_channel_override(test_session, channel.id, user_id=owner.id, allowed=1)
    folder_id, channel_id = folder.id, channel.id

    await channel_service.delete_folder(test_session, folder)

    assert await count(test_session, ChannelFolder, ChannelFolder.id == folder_id) == 0
    assert await count(test_session, Channel, Channel.id == channel_id) == 0
    assert await count(test_session, FolderPermissionOverride, FolderPermissionOverride.folder_id == folder_id) == 0
    assert await count(test_session, ChannelPermissionOverride, ChannelPermissionOverride.channel_id == channel_id) == 0


@pytest.mark.asyncio
async def test_delete_server_cascades(test_session, make_user):
    owner = await make_user("owner")
    guest = await make_user("guest")
    server = await server_service.create_server(test_session, owner.id, "Guild")
    await member_service.join_server(test_session, server, guest.id)
    everyone = await role_service.get_everyone_role(test_session, server.id)
    folder = (await channel_service.list_folders(test_session, server.id))[0]
    channel = (await channel_service.list_channels(test_session, folder.id))[0]
    await override_service.set_folder_override(test_session, folder.id, role_id=everyone.id, denied=2)
    await override_service.set_channel_override(test_session, channel.id, role_id=everyone.id, allowed=2)
    server_id = server.id

    await server_service.delete_server(test_session, server)

    with pytest.raises(ServerNotFound):
        await server_service.get_server(test_session, server_id)
    assert await count(test_session, ServerMember, ServerMember.server_id == server_id) == 0
    assert await count(test_session, ServerRole, ServerRole.server_id == server_id) == 0
    assert await count(test_session, ChannelFolder, ChannelFolder.server_id == server_id) == 0
    assert await count(test_session, ServerMemberRole) == 0
    assert await count(test_session, FolderPermissionOverride) == 0
    assert await count(test_session, ChannelPermissionOverride) == 0
