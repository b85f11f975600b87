import uuid
from datetime import datetime, timedelta, timezone

import pytest

from conftest import auth_headers, days_ago


@pytest.fixture
def make_admin(make_user):
    async def _make():
        return await make_user("moderator", is_admin=True)

    return _make


@pytest.mark.asyncio
async def test_admin_routes_require_admin(client, make_user):
    regular = await make_user("regular")
    assert (await client.get("/admin/stats")).status_code == 401

    response = await client.get("/admin/stats", headers=auth_headers(regular))
    assert response.status_code == 403
    assert response.json() == {"error": "Admin access required"}


@pytest.mark.asyncio
async def test_admin_by_configured_username(client, make_user):
    root = await make_user("root")
    assert (await client.get("/admin/stats", headers=auth_headers(root))).status_code == 200
    assert (await client.get("/auth/me", headers=auth_headers(root))).json()["isAdmin"] is True


@pytest.mark.asyncio
async def test_dashboard_stats(client, make_admin, make_user, make_vibe):
    admin = await make_admin()
    now = datetime.now(timezone.utc)
    online = await make_user("online", last_active_at=now - timedelta(minutes=1))
    await make_user("idle", last_active_at=now - timedelta(hours=30))
    await make_user("banned", deleted_at=now)
    await make_vibe(online)
    await make_vibe(online, vibe_date=days_ago(1))

    stats = (await client.get("/admin/stats", headers=auth_headers(admin))).json()
    assert stats["totalUsers"] == 3
    assert stats["bannedUsers"] == 1
    assert stats["totalVibes"] == 2
    assert stats["vibesToday"] == 1
    assert stats["onlineNow"] == 1


@pytest.mark.asyncio
async def test_ban_and_unban(client, make_admin, make_user, make_vibe):
    admin = await make_admin()
    troll = await make_user("troll")
    vibe = await make_vibe(troll)
    headers = auth_headers(admin)

    response = await client.post(f"/admin/users/{troll.id}/ban", json={"reason": "spam"}, headers=headers)
    assert response.status_code == 200
    assert (await client.post(f"/admin/users/{troll.id}/ban", headers=headers)).status_code == 404

    assert (await client.patch("/users/me/presence", headers=auth_headers(troll))).status_code == 403
    assert (await client.get("/users/troll")).status_code == 404
    assert (await client.get(f"/vibes/{vibe.id}")).status_code == 404

    banned = (await client.get("/admin/users", params={"status": "banned"}, headers=headers)).json()
    assert [u["username"] for u in banned["users"]] == ["troll"]

    assert (await client.post(f"/admin/users/{troll.id}/unban", headers=headers)).status_code == 200
    assert (await client.patch("/users/me/presence", headers=auth_headers(troll))).status_code == 200
    assert (await client.post(f"/admin/users/{troll.id}/unban", headers=headers)).status_code == 404


@pytest.mark.asyncio
async def test_admin_cannot_ban_self_or_unknown(client, make_admin):
    admin = await make_admin()
    headers = auth_headers(admin)
    assert (await client.post(f"/admin/users/{admin.id}/ban", headers=headers)).status_code == 400
    assert (await client.post(f"/admin/users/{uuid.uuid4()}/ban", headers=headers)).status_code == 404


@pytest.mark.asyncio
async def test_list_users_search_and_counts(client, make_admin, make_user, make_vibe, make_follow):
    admin = await make_admin()
    alice = await make_user("alice")
    bob = await make_user("bob", display_name="Alice's friend")
    await make_user("carol")
    await make_vibe(alice)
    await make_follow(bob, alice)

    body = (await client.get("/admin/users", params={"search": "ALICE"}, headers=auth_headers(admin))).json()
    by_name = {u["username"]: u for u in body["users"]}
    assert set(by_name) == {"alice", "bob"}
    assert (by_name["alice"]["vibeCount"], by_name["alice"]["followerCount"]) == (1, 1)

    page = (await client.get("/admin/users", params={"limit": 2}, headers=auth_headers(admin))).json()
    assert len(page["users"]) == 2
    assert page["hasMore"] is True


@pytest.mark.asyncio
async def test_admin_removes_any_vibe(client, make_admin, make_user, make_vibe):
    admin = await make_admin()
    author = await make_user("author")
    vibe = await make_vibe(author)
    headers = auth_headers(admin)

    assert (await client.delete(f"/admin/vibes/{vibe.id}", headers=headers)).status_code == 200
    assert (await client.delete(f"/admin/vibes/{vibe.id}", headers=headers)).status_code == 404
