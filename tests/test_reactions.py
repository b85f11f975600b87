import uuid
from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from conftest import auth_headers, days_ago
from vibecode.models import Reaction, Vibe


@pytest.mark.asyncio
async def test_react_then_duplicate_is_conflict(client, make_user, make_vibe):
    author = await make_user("author")
    fan = await make_user("fan")
    vibe = await make_vibe(author)

    first = await client.post(f"/vibes/{vibe.id}/reactions", headers=auth_headers(fan))
    assert first.status_code == 200
    assert first.json() == {"success": True, "reactionCount": 1}

    second = await client.post(f"/vibes/{vibe.id}/reactions", headers=auth_headers(fan))
    assert second.status_code == 409
    assert second.json() == {"error": "Already reacted to this vibe"}


@pytest.mark.asyncio
async def test_counter_tracks_reaction_rows(client, session_factory, make_user, make_vibe):
    author = await make_user("author")
    fans = [await make_user(f"fan{i}") for i in range(3)]
    vibe = await make_vibe(author)

    for fan in fans:
        await client.post(f"/vibes/{vibe.id}/reactions", headers=auth_headers(fan))
    response = await client.delete(f"/vibes/{vibe.id}/reactions", headers=auth_headers(fans[0]))
    assert response.json() == {"success": True, "reactionCount": 2}

    async with session_factory() as db:
        stored = await db.scalar(select(Vibe.reaction_count).where(Vibe.id == vibe.id))
        rows = await db.scalar(select(func.count()).select_from(Reaction).where(Reaction.vibe_id == vibe.id))
    assert stored == rows == 2


@pytest.mark.asyncio
async def test_remove_missing_reaction_is_not_found(client, make_user, make_vibe):
    author = await make_user("author")
    fan = await make_user("fan")
    vibe = await make_vibe(author)

    response = await client.delete(f"/vibes/{vibe.id}/reactions", headers=auth_headers(fan))
    assert response.status_code == 404
    assert response.json() == {"error": "Reaction not found"}

    response = await client.delete(f"/vibes/{uuid.uuid4()}/reactions", headers=auth_headers(fan))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_react_to_unknown_vibe_is_not_found(client, make_user):
    fan = await make_user("fan")
    response = await client.post(f"/vibes/{uuid.uuid4()}/reactions", headers=auth_headers(fan))
    assert response.status_code == 404
    assert response.json() == {"error": "Vibe not found"}


@pytest.mark.asyncio
async def test_reaction_requires_auth(client, make_user, make_vibe):
    author = await make_user("author")
    vibe = await make_vibe(author)
    response = await client.post(f"/vibes/{vibe.id}/reactions")
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_has_vibed_is_per_viewer(client, make_user, make_vibe):
    author = await make_user("author")
    fan = await make_user("fan")
    other = await make_user("other")
    vibe = await make_vibe(author, vibe_date=days_ago(0))
    await client.post(f"/vibes/{vibe.id}/reactions", headers=auth_headers(fan))

    as_fan = (await client.get(f"/vibes/{vibe.id}", headers=auth_headers(fan))).json()
    as_other = (await client.get(f"/vibes/{vibe.id}", headers=auth_headers(other))).json()
    anonymous = (await client.get(f"/vibes/{vibe.id}")).json()

    assert as_fan["hasVibed"] is True
    assert as_other["hasVibed"] is False
    assert anonymous["hasVibed"] is False
    assert as_fan["reactionCount"] == anonymous["reactionCount"] == 1


@pytest.mark.asyncio
async def test_list_reactions(client, make_user, make_vibe):
    author = await make_user("author")
    fan = await make_user("fan")
    vibe = await make_vibe(author)
    await client.post(f"/vibes/{vibe.id}/reactions", headers=auth_headers(fan))

    body = (await client.get(f"/vibes/{vibe.id}/reactions")).json()
    assert body["total"] == 1
    assert body["reactions"][0]["user"]["username"] == "fan"


@pytest.mark.asyncio
async def test_vibes_of_banned_authors_take_no_reactions(client, make_user, make_vibe):
    author = await make_user("author", deleted_at=datetime.now(timezone.utc))
    fan = await make_user("fan")
    vibe = await make_vibe(author)

    assert (await client.get(f"/vibes/{vibe.id}")).status_code == 404
    response = await client.post(f"/vibes/{vibe.id}/reactions", headers=auth_headers(fan))
    assert response.status_code == 404
    assert response.json() == {"error": "Vibe not found"}
    assert (await client.get(f"/vibes/{vibe.id}/reactions")).status_code == 404


@pytest.mark.asyncio
async def test_concurrent_duplicate_reaction_is_conflict(client, session_factory, make_user, make_vibe, race_db):
    author = await make_user("author")
    fan = await make_user("fan")
    vibe = await make_vibe(author)

    async def _same_reaction_from_another_tab():
        async with session_factory() as db:
            db.add(Reaction(vibe_id=vibe.id, user_id=fan.id))
            await db.commit()

    # lookups: vibe visibility, then the duplicate check
    race_db(_same_reaction_from_another_tab, after_lookup=2)
    response = await client.post(f"/vibes/{vibe.id}/reactions", headers=auth_headers(fan))
    assert response.status_code == 409
    assert response.json() == {"error": "Already reacted to this vibe"}

    async with session_factory() as db:
        rows = await db.scalar(select(func.count()).select_from(Reaction).where(Reaction.vibe_id == vibe.id))
    assert rows == 1
