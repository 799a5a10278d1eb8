"""Tests for the agents API."""

import pytest

from app.models import AgentMetric


async def _metric(db, agent_id: int, month: int, year: int, percentage: float):
    db.add(AgentMetric(agent_id=agent_id, month=month, year=year, percentage=percentage, total_score=percentage))
    await db.flush()


@pytest.mark.asyncio
class TestListAgents:
    async def test_manager_sees_every_agent(self, users, client_for):
        client = await client_for(users.manager)
        resp = await client.get("/api/agents")
        assert resp.status_code == 200
        ids = {a["id"] for a in resp.json()}
        assert ids == {users.agent.id, users.agent2.id, users.agent3.id}

    async def test_team_leader_sees_own_team(self, users, client_for):
        client = await client_for(users.tl)
        resp = await client.get("/api/agents")
        assert resp.status_code == 200
        assert {a["id"] for a in resp.json()} == {users.agent.id, users.agent2.id}

    async def test_agent_is_forbidden(self, users, client_for):
        client = await client_for(users.agent)
        resp = await client.get("/api/agents")
        assert resp.status_code == 403
        assert resp.json() == {"error": "Forbidden"}

    async def test_unauthenticated(self, anon_client):
        resp = await anon_client.get("/api/agents")
        assert resp.status_code == 401

    async def test_inactive_agents_are_hidden(self, users, db_session, client_for):
        users.agent3.is_active = False
        await db_session.flush()
        client = await client_for(users.admin)
        ids = {a["id"] for a in (await client.get("/api/agents")).json()}
        assert users.agent3.id not in ids

    async def test_average_uses_six_most_recent(self, users, db_session, client_for):
        # Seven months; the oldest (0%) must be ignored
        await _metric(db_session, users.agent.id, 1, 2025, 0.0)
        for month, pct in zip(range(2, 8), (80.0, 90.0, 70.0, 85.0, 95.0, 75.5)):
            await _metric(db_session, users.agent.id, month, 2025, pct)

        client = await client_for(users.tl)
        rows = {a["id"]: a for a in (await client.get("/api/agents")).json()}

        assert rows[users.agent.id]["metricsCount"] == 6
        assert rows[users.agent.id]["averageScore"] == 82.6
        assert rows[users.agent2.id]["averageScore"] == 0
        assert rows[users.agent2.id]["metricsCount"] == 0


@pytest.mark.asyncio
class TestGetAgent:
    async def test_agent_can_read_self(self, users, client_for):
        client = await client_for(users.agent)
        resp = await client.get(f"/api/agents/{users.agent.id}")
        assert resp.status_code == 200
        data = resp.json()
        assert data["email"] == "agent@example.com"
        assert data["teamLeaderName"] == "Tess Leader"

    async def test_agent_cannot_read_teammate(self, users, client_for):
        client = await client_for(users.agent)
        resp = await client.get(f"/api/agents/{users.agent2.id}")
        assert resp.status_code == 403

    async def test_team_leader_reads_team_member(self, users, client_for):
        client = await client_for(users.tl)
        assert (await client.get(f"/api/agents/{users.agent2.id}")).status_code == 200

    async def test_team_leader_cannot_read_other_team(self, users, client_for):
        client = await client_for(users.tl)
        assert (await client.get(f"/api/agents/{users.agent3.id}")).status_code == 403

    async def test_missing_agent_is_404_for_admin(self, users, client_for):
        client = await client_for(users.admin)
        resp = await client.get("/api/agents/99999")
        assert resp.status_code == 404
        assert resp.json() == {"error": "Agent not found"}

    async def test_missing_agent_is_403_outside_scope(self, users, client_for):
        client = await client_for(users.tl)
        assert (await client.get("/api/agents/99999")).status_code == 403

    async def test_non_agent_user_is_404(self, users, client_for):
        client = await client_for(users.manager)
        assert (await client.get(f"/api/agents/{users.tl.id}")).status_code == 404

    async def test_non_numeric_id_is_400(self, users, client_for):
        client = await client_for(users.manager)
        resp = await client.get("/api/agents/abc")
        assert resp.status_code == 400
        assert resp.json()["error"] == "Validation failed"
