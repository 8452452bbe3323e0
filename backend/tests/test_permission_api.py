import pytest

from zvonok.permissions.constants import Permission

VIEW = int(Permission.VIEW_CHANNEL)
SEND = int(Permission.SEND_MESSAGES)


async def create_guild(client, headers) -> dict:
    resp = await client.post("/api/servers", json={"name": "Guild"}, headers=headers)
    assert resp.status_code == 201
    server = resp.json()
    resp = await client.get(f"/api/servers/{server['id']}/folders", headers=headers)
    assert resp.status_code == 200
    folder = resp.json()[0]
    return {"server": server, "folder": folder, "channel": folder["channels"][0]}


async def everyone_role_id(client, server_id, headers) -> int:
    resp = await client.get(f"/api/servers/{server_id}/roles", headers=headers)
    assert resp.status_code == 200
    return next(r["id"] for r in resp.json() if r["is_everyone"])


@pytest.mark.asyncio
async def test_health(client):
    resp = await client.get("/healthz")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"

    resp = await client.get("/readyz")
    assert resp.status_code == 200
    assert resp.json()["checks"] == {"database": "ok"}


@pytest.mark.asyncio
async def test_requests_need_a_token(client):
    resp = await client.post("/api/servers", json={"name": "Guild"})
    assert resp.status_code in (401, 403)

    resp = await client.post("/api/servers", json={"name": "Guild"}, headers={"Authorization": "Bearer nope"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_request_id_header(client, make_user, auth_headers):
    owner = await make_user("owner")
    resp = await client.post(
        "/api/servers", json={"name": "Guild"}, headers={**auth_headers(owner), "X-Request-ID": "abc123"},
    )
    assert resp.headers["X-Request-ID"] == "abc123"


@pytest.mark.asyncio
async def test_owner_sees_admin_mask(client, make_user, auth_headers):
    owner = await make_user("owner")
    headers = auth_headers(owner)
    guild = await create_guild(client, headers)

    resp = await client.get(f"/api/servers/{guild['server']['id']}/permissions/me", headers=headers)

    assert resp.status_code == 200
    body = resp.json()
    assert body["scope"] == "server"
    assert body["permissions"] == int(Permission.ADMINISTRATOR)
    assert body["names"] == ["ADMINISTRATOR"]


@pytest.mark.asyncio
async def test_folder_deny_channel_exception_over_http(client, make_user, auth_headers):
    owner = await make_user("owner")
    guest = await make_user("guest")
    owner_headers, guest_headers = auth_headers(owner), auth_headers(guest)
    guild = await create_guild(client, owner_headers)
    server_id = guild["server"]["id"]
    folder_id = guild["folder"]["id"]
    channel_id = guild["channel"]["id"]

    resp = await client.post(f"/api/servers/{server_id}/join", headers=guest_headers)
    assert resp.status_code == 200
    everyone_id = await everyone_role_id(client, server_id, owner_headers)

    resp = await client.put(
        f"/api/folders/{folder_id}/overrides",
        json={"role_id": everyone_id, "denied": SEND},
        headers=owner_headers,
    )
    assert resp.status_code == 200
    resp = await client.put(
        f"/api/channels/{channel_id}/overrides",
        json={"role_id": everyone_id, "allowed": SEND},
        headers=owner_headers,
    )
    assert resp.status_code == 200

    folder_perms = (await client.get(f"/api/folders/{folder_id}/permissions/me", headers=guest_headers)).json()
    channel_perms = (await client.get(f"/api/channels/{channel_id}/permissions/me", headers=guest_headers)).json()
    assert "SEND_MESSAGES" not in folder_perms["names"]
    assert "SEND_MESSAGES" in channel_perms["names"]


@pytest.mark.asyncio
async def test_hidden_channels_are_filtered(client, make_user, auth_headers):
    owner = await make_user("owner")
    guest = await make_user("guest")
    owner_headers, guest_headers = auth_headers(owner), auth_headers(guest)
    guild = await create_guild(client, owner_headers)
    server_id = guild["server"]["id"]
    channel_id = guild["channel"]["id"]
    await client.post(f"/api/servers/{server_id}/join", headers=guest_headers)

    resp = await client.put(
        f"/api/channels/{channel_id}/overrides",
        json={"user_id": guest.id, "denied": VIEW},
        headers=owner_headers,
    )
    assert resp.status_code == 200

    folders = (await client.get(f"/api/servers/{server_id}/folders", headers=guest_headers)).json()
    visible = [c["id"] for f in folders for c in f["channels"]]
    assert channel_id not in visible
    assert len(visible) == 1

    resp = await client.get(f"/api/channels/{channel_id}", headers=guest_headers)
    assert resp.status_code == 403
    assert resp.json()["detail"] == "Missing permission: VIEW_CHANNEL"


@pytest.mark.asyncio
async def test_plain_member_cannot_manage(client, make_user, auth_headers):
    owner = await make_user("owner")
    guest = await make_user("guest")
    owner_headers, guest_headers = auth_headers(owner), auth_headers(guest)
    guild = await create_guild(client, owner_headers)
    server_id = guild["server"]["id"]
    await client.post(f"/api/servers/{server_id}/join", headers=guest_headers)

    resp = await client.patch(f"/api/servers/{server_id}", json={"name": "Mine"}, headers=guest_headers)
    assert resp.status_code == 403
    resp = await client.post(f"/api/servers/{server_id}/roles", json={"name": "Hacker"}, headers=guest_headers)
    assert resp.status_code == 403
    resp = await client.post(f"/api/servers/{server_id}/folders", json={"name": "Mine"}, headers=guest_headers)
    assert resp.status_code == 403
    resp = await client.get(f"/api/folders/{guild['folder']['id']}/overrides", headers=guest_headers)
    assert resp.status_code == 403
    resp = await client.delete(f"/api/servers/{server_id}/members/{owner.id}", headers=guest_headers)
    assert resp.status_code == 403
    resp = await client.delete(f"/api/servers/{server_id}", headers=guest_headers)
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_non_member_cannot_read_server(client, make_user, auth_headers):
    owner = await make_user("owner")
    stranger = await make_user("stranger")
    guild = await create_guild(client, auth_headers(owner))

    resp = await client.get(f"/api/servers/{guild['server']['id']}", headers=auth_headers(stranger))
    assert resp.status_code == 403
    resp = await client.get(f"/api/channels/{guild['channel']['id']}", headers=auth_headers(stranger))
    assert resp.status_code == 403


@pytest.mark.asyncio
async def test_moderator_role_flow(client, make_user, auth_headers):
    owner = await make_user("owner")
    mod = await make_user("mod")
    guest = await make_user("guest")
    owner_headers, mod_headers = auth_headers(owner), auth_headers(mod)
    guild = await create_guild(client, owner_headers)
    server_id = guild["server"]["id"]
    await client.post(f"/api/servers/{server_id}/join", headers=mod_headers)
    await client.post(f"/api/servers/{server_id}/join", headers=auth_headers(guest))

    resp = await client.post(
        f"/api/servers/{server_id}/roles",
        json={"name": "Moderator", "permissions": int(Permission.KICK_MEMBERS | Permission.MANAGE_ROLES)},
        headers=owner_headers,
    )
    assert resp.status_code == 201
    moderator_id = resp.json()["id"]
    resp = await client.put(f"/api/servers/{server_id}/members/{mod.id}/roles/{moderator_id}", headers=owner_headers)
    assert resp.status_code == 200

    resp = await client.get(f"/api/servers/{server_id}/roles/me", headers=mod_headers)
    assert moderator_id in resp.json()

    # Managing roles does not include handing out ADMINISTRATOR
    resp = await client.post(
        f"/api/servers/{server_id}/roles",
        json={"name": "Root", "permissions": int(Permission.ADMINISTRATOR)},
        headers=mod_headers,
    )
    assert resp.status_code == 403

    resp = await client.delete(f"/api/servers/{server_id}/members/{guest.id}", headers=mod_headers)
    assert resp.status_code == 204
    resp = await client.delete(f"/api/servers/{server_id}/members/{owner.id}", headers=mod_headers)
    assert resp.status_code == 409


@pytest.mark.asyncio
async def test_malformed_override_request_is_422(client, make_user, auth_headers):
    owner = await make_user("owner")
    headers = auth_headers(owner)
    guild = await create_guild(client, headers)

    resp = await client.put(
        f"/api/folders/{guild['folder']['id']}/overrides",
        json={"role_id": None, "user_id": None, "denied": SEND},
        headers=headers,
    )
    assert resp.status_code == 422


@pytest.mark.asyncio
async def test_leave_and_owner_delete(client, make_user, auth_headers):
    owner = await make_user("owner")
    guest = await make_user("guest")
    owner_headers, guest_headers = auth_headers(owner), auth_headers(guest)
    guild = await create_guild(client, owner_headers)
    server_id = guild["server"]["id"]
    await client.post(f"/api/servers/{server_id}/join", headers=guest_headers)

    resp = await client.post(f"/api/servers/{server_id}/leave", headers=owner_headers)
    assert resp.status_code == 409
    resp = await client.post(f"/api/servers/{server_id}/leave", headers=guest_headers)
    assert resp.status_code == 204
    resp = await client.get(f"/api/servers/{server_id}", headers=guest_headers)
    assert resp.status_code == 403

    resp = await client.delete(f"/api/servers/{server_id}", headers=owner_headers)
    assert resp.status_code == 204
    resp = await client.get(f"/api/servers/{server_id}", headers=owner_headers)
    assert resp.status_code == 404
