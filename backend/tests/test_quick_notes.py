"""Tests for the quick notes API."""

import pytest
from sqlalchemy import select

from app.models import AuditLog


async def _note(client, agent, content="Great call handling today", category="PERFORMANCE", private=False):
    resp = await client.post("/api/quick-notes", json={
        "agentId": agent.id, "content": content, "category": category, "isPrivate": private,
    })
    assert resp.status_code == 201, resp.text
    return resp.json()


@pytest.mark.asyncio
class TestCreateNote:
    async def test_team_leader_notes_team_member(self, users, client_for, db_session):
        client = await client_for(users.tl)
        note = await _note(client, users.agent, content="  Needs work on greetings  ")
        assert note["authorId"] == users.tl.id
        assert note["content"] == "Needs work on greetings"
        assert note["isPrivate"] is False

        audit = (await db_session.execute(select(AuditLog))).scalars().one()
        assert (audit.action, audit.resource) == ("CREATE", "quick_note")

    async def test_team_leader_cannot_note_other_team(self, users, client_for):
        client = await client_for(users.tl)
        resp = await client.post("/api/quick-notes", json={
            "agentId": users.agent3.id, "content": "x", "category": "OTHER",
        })
        assert resp.status_code == 403

    async def test_agent_notes_self_only(self, users, client_for):
        client = await client_for(users.agent)
        await _note(client, users.agent, content="Reminder: training Friday", category="TRAINING")
        resp = await client.post("/api/quick-notes", json={
            "agentId": users.agent2.id, "content": "x", "category": "OTHER",
        })
        assert resp.status_code == 403

    @pytest.mark.parametrize("body", [
        {"content": "", "category": "OTHER"},
        {"content": "x" * 501, "category": "OTHER"},
        {"content": "ok", "category": "GOSSIP"},
    ])
    async def test_validation(self, users, client_for, body):
        client = await client_for(users.tl)
        resp = await client.post("/api/quick-notes", json={"agentId": users.agent.id, **body})
        assert resp.status_code == 400


@pytest.mark.asyncio
class TestListNotes:
    async def _seed(self, users, client_for):
        tl = await client_for(users.tl)
        await _note(tl, users.agent, content="Public praise for Alice")
        await _note(tl, users.agent, content="Private concern about Alice", category="BEHAVIOR", private=True)
        await _note(tl, users.agent2, content="Bob should shadow a senior", category="TRAINING")
        tl2 = await client_for(users.tl2)
        await _note(tl2, users.agent3, content="Cara escalations improving")

    async def test_agent_sees_public_notes_about_self(self, users, client_for):
        await self._seed(users, client_for)
        agent = await client_for(users.agent)
        data = (await agent.get("/api/quick-notes")).json()
        assert [n["content"] for n in data["quickNotes"]] == ["Public praise for Alice"]

    async def test_team_leader_sees_own_and_team_notes(self, users, client_for):
        await self._seed(users, client_for)
        tl = await client_for(users.tl)
        assert (await tl.get("/api/quick-notes")).json()["total"] == 3

        tl2 = await client_for(users.tl2)
        data = (await tl2.get("/api/quick-notes")).json()
        assert [n["content"] for n in data["quickNotes"]] == ["Cara escalations improving"]

    async def test_manager_sees_everything(self, users, client_for):
        await self._seed(users, client_for)
        manager = await client_for(users.manager)
        assert (await manager.get("/api/quick-notes")).json()["total"] == 4

    async def test_filters(self, users, client_for):
        await self._seed(users, client_for)
        manager = await client_for(users.manager)

        by_agent = (await manager.get("/api/quick-notes", params={"agentId": users.agent.id})).json()
        assert by_agent["total"] == 2

        by_category = (await manager.get("/api/quick-notes", params={"category": "TRAINING"})).json()
        assert [n["agentId"] for n in by_category["quickNotes"]] == [users.agent2.id]

        by_search = (await manager.get("/api/quick-notes", params={"search": "alice"})).json()
        assert by_search["total"] == 2

    async def test_pagination(self, users, client_for):
        await self._seed(users, client_for)
        manager = await client_for(users.manager)
        page = (await manager.get("/api/quick-notes", params={"page": 2, "limit": 3})).json()
        assert page["total"] == 4
        assert page["pages"] == 2
        assert page["page"] == 2
        assert len(page["quickNotes"]) == 1
        # Newest first: the oldest note is last
        assert page["quickNotes"][0]["content"] == "Public praise for Alice"

    async def test_new_note_invalidates_cached_lists(self, users, client_for):
        manager = await client_for(users.manager)
        assert (await manager.get("/api/quick-notes")).json()["total"] == 0

        await self._seed(users, client_for)
        assert (await manager.get("/api/quick-notes")).json()["total"] == 4

    async def test_requires_login(self, anon_client):
        assert (await anon_client.get("/api/quick-notes")).status_code == 401


@pytest.mark.asyncio
class TestDeleteNote:
    async def test_author_deletes(self, users, client_for):
        tl = await client_for(users.tl)
        note = await _note(tl, users.agent)
        resp = await tl.delete(f"/api/quick-notes/{note['id']}")
        assert resp.status_code == 200
        assert (await tl.get("/api/quick-notes")).json()["total"] == 0

    async def test_non_author_forbidden(self, users, client_for):
        note = await _note(await client_for(users.tl), users.agent)
        manager = await client_for(users.manager)
        assert (await manager.delete(f"/api/quick-notes/{note['id']}")).status_code == 403

    async def test_admin_deletes_any(self, users, client_for):
        note = await _note(await client_for(users.tl), users.agent)
        admin = await client_for(users.admin)
        assert (await admin.delete(f"/api/quick-notes/{note['id']}")).status_code == 200

    async def test_missing(self, users, client_for):
        admin = await client_for(users.admin)
        resp = await admin.delete("/api/quick-notes/31337")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Quick note not found"}

    async def test_writes_commit_before_invalidating(self, users, client_for, write_order):
        tl = await client_for(users.tl)
        note = await _note(tl, users.agent)
        assert "commit" in write_order[:write_order.index("invalidate")]

        write_order.clear()
        assert (await tl.delete(f"/api/quick-notes/{note['id']}")).status_code == 200
        assert "commit" in write_order[:write_order.index("invalidate")]
