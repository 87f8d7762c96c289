"""API tests — routes driven through FastAPI's TestClient with backends overridden."""
import httpx
import pytest
from fastapi.testclient import TestClient
from unittest.mock import AsyncMock, MagicMock, patch

from quest.agents.orchestrator import PRIMARY_AGENT, AgentOrchestrator
from quest.api import deps
from quest.api.auth import get_current_user
from quest.api.server import app
from quest.providers import serper

USER_ID = "user_1"


class _MemoryAgentStore:
    def __init__(self):
        self.values = {}

    async def get(self, user_id):
        return self.values.get(user_id)

    async def set(self, user_id, agent_id):
        self.values[user_id] = agent_id

    async def close(self):
        pass


class _StreamingLLM:
    async def stream(self, messages, system="", max_tokens=1024):
        for part in ("Let's ", "prepare."):
            yield part


@pytest.fixture
def db():
    return AsyncMock()


@pytest.fixture
def graph():
    return AsyncMock()


@pytest.fixture
def store():
    return _MemoryAgentStore()


@pytest.fixture
def client(db, graph, store):
    orchestrator = AgentOrchestrator(store=store, llm=MagicMock(), threshold=0.7)
    app.dependency_overrides[get_current_user] = lambda: USER_ID
    app.dependency_overrides[deps.get_db] = lambda: db
    app.dependency_overrides[deps.get_graph] = lambda: graph
    app.dependency_overrides[deps.get_llm] = lambda: _StreamingLLM()
    app.dependency_overrides[deps.get_orchestrator] = lambda: orchestrator
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


# ─────────────────────── Health and auth ──────────────────────────────────────


def test_health_is_public():
    resp = TestClient(app).get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_missing_bearer_is_401():
    resp = TestClient(app).get("/goals")
    assert resp.status_code == 401
    assert resp.json() == {"error": "Unauthorized"}


# ─────────────────────── Error mapping ────────────────────────────────────────


def test_body_validation_is_400(client):
    resp = client.post("/trinity", json={"service": "s", "pledge": "p"})
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("quest: ")


def test_value_error_is_400(client):
    resp = client.get("/repo/bogus")
    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid repo layer: bogus"}


def test_permission_error_is_403(client):
    resp = client.post("/admin/prompts/seed")
    assert resp.status_code == 403
    assert resp.json() == {"error": "Only admins can seed prompts"}


def test_not_found_is_404(client, db):
    db.get_active_trinity.return_value = None
    resp = client.get("/trinity")
    assert resp.status_code == 404
    assert resp.json() == {"error": "No active trinity statement"}


def test_trinity_conflict_is_409(client, db):
    db.get_active_trinity.return_value = {"quest": "existing"}
    resp = client.post("/trinity", json={"quest": "q", "service": "s", "pledge": "p"})
    assert resp.status_code == 409
    db.create_trinity.assert_not_called()


def test_backend_failure_is_500(client, db):
    db.get_layer.side_effect = RuntimeError("Database unavailable")
    resp = client.get("/repo/surface")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Database unavailable"}


def test_upstream_failure_is_500(client):
    with patch.object(serper, "search", AsyncMock(side_effect=httpx.ConnectError("refused"))):
        resp = client.post("/search/serper", json={"query": "acme"})
    assert resp.status_code == 500
    assert resp.json() == {"error": "Upstream service error"}


def test_unexpected_failure_is_generic_500(client, db):
    db.list_goals.side_effect = ZeroDivisionError("boom")
    resp = client.get("/goals")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}


def test_internal_key_error_is_500_not_404(client, db):
    db.list_goals.side_effect = KeyError("owner_id")
    resp = client.get("/goals")
    assert resp.status_code == 500
    assert resp.json() == {"error": "Internal server error"}


def test_malformed_okr_id_is_400(client, db):
    resp = client.patch("/okrs/not-a-uuid/key-results/kr1", json={"current_value": 3})
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("okr_id: ")
    db.get_okr.assert_not_called()


def test_malformed_goal_and_task_ids_are_400(client, db):
    resp = client.post("/goals/not-a-uuid/tasks", json={"title": "Draft"})
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("goal_id: ")
    resp = client.patch("/tasks/bad", json={"status": "done"})
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("task_id: ")


# ─────────────────────── Repo and trinity ─────────────────────────────────────


def test_update_surface_layer(client, db):
    db.update_layer.return_value = {"name": "Ana", "headline": "Engineer"}
    resp = client.post("/repo/surface", json={"data": {"headline": "Engineer"}})
    assert resp.status_code == 200
    assert resp.json() == {"success": True, "layer": "surface", "data": {"name": "Ana", "headline": "Engineer"}}
    db.update_layer.assert_awaited_once_with(USER_ID, "surface", {"headline": "Engineer"}, merge=True)


def test_grant_access_to_self_rejected(client, db):
    resp = client.post("/repo/access", json={"granted_to_id": USER_ID, "access_level": "working"})
    assert resp.status_code == 400
    db.create_grant.assert_not_called()


def test_view_repo_limited_by_grant(client, db):
    db.get_active_grant.return_value = {"access_level": "working"}
    db.get_profile.return_value = {
        "surface_repo": {"name": "Bo"},
        "working_repo": {"projects": ["x"]},
        "personal_repo": {"secret": True},
        "deep_repo": {"traits": []},
    }
    resp = client.get("/repo/view/user_2")
    body = resp.json()
    assert resp.status_code == 200
    assert body["access_level"] == "working"
    assert set(body["layers"]) == {"surface", "working"}


def test_revoke_missing_grant_is_404(client, db):
    db.revoke_grant.return_value = False
    resp = client.delete("/repo/access/user_2")
    assert resp.status_code == 404
    assert resp.json() == {"error": "No active grant for user_2"}


def test_create_trinity_seals_and_syncs_graph(client, db, graph):
    db.get_active_trinity.return_value = None
    db.create_trinity.side_effect = lambda user_id, record, prefs: {"user_id": user_id, **record}
    resp = client.post("/trinity", json={"quest": "Grow", "service": "Mentor", "pledge": "Weekly"})
    assert resp.status_code == 200
    trinity = resp.json()["trinity"]
    assert len(trinity["quest_seal"]) == 64
    assert trinity["trinity_type_description"] == "Foundation"
    graph.merge_trinity.assert_awaited_once()


# ─────────────────────── Goals ────────────────────────────────────────────────


def test_create_goal_suggests_tasks(client, db):
    db.create_goal.side_effect = lambda user_id, goal: {"id": "g1", **goal}
    resp = client.post("/goals", json={"title": "Learn Rust", "goal_type": "learning"})
    assert resp.status_code == 200
    goal = resp.json()["goal"]
    assert goal["id"] == "g1"
    assert goal["suggested_tasks"]


def test_create_goal_rejects_unknown_type(client, db):
    resp = client.post("/goals", json={"title": "x", "goal_type": "dream"})
    assert resp.status_code == 400
    assert resp.json()["error"].startswith("goal_type: ")


# ─────────────────────── Prompts ──────────────────────────────────────────────


def test_select_prompts_blends_and_logs_usage(client, db):
    db.prompts_by_tags.return_value = [
        {"id": "p2", "name": "interview", "prompt_type": "specialized", "content": "Prep {{role}}.", "variables": {}},
        {"id": "p1", "name": "base", "prompt_type": "base", "content": "You coach.", "variables": {}},
    ]
    resp = client.post("/prompts/select", json={"tags": ["interview"], "variables": {"role": "PM"}})
    body = resp.json()
    assert resp.status_code == 200
    assert body["selected"] == ["interview", "base"]
    assert body["prompt"]["content"].startswith("You coach.")
    assert db.log_prompt_usage.await_count == 2


def test_select_prompts_with_nothing_seeded_is_404(client, db):
    db.list_prompts.return_value = []
    resp = client.post("/prompts/select", json={})
    assert resp.status_code == 404


# ─────────────────────── Agents ───────────────────────────────────────────────


def test_current_agent_defaults_to_primary(client):
    resp = client.post("/agents/orchestrate", json={"action": "current"})
    assert resp.json() == {"agent_id": PRIMARY_AGENT}


def test_hand_back_resets_active_agent(client, store):
    store.values[USER_ID] = "productivity"
    resp = client.post("/agents/orchestrate", json={"action": "hand_back", "reason": "done"})
    assert resp.json() == {"success": True, "agent_id": PRIMARY_AGENT}
    assert store.values[USER_ID] == PRIMARY_AGENT


def test_analyze_requires_message(client):
    resp = client.post("/agents/orchestrate", json={"action": "analyze", "message": "  "})
    assert resp.status_code == 400
    assert resp.json() == {"error": "message is required"}


def test_list_agents(client):
    resp = client.post("/agents/orchestrate", json={"action": "list"})
    ids = [a["agent_id"] for a in resp.json()["agents"]]
    assert PRIMARY_AGENT in ids and "productivity" in ids


# ─────────────────────── Search ───────────────────────────────────────────────


def test_serper_search_passes_through(client):
    fake = AsyncMock(return_value={"success": True, "results": []})
    with patch.object(serper, "search", fake):
        resp = client.post("/search/serper", json={"query": "  acme  ", "num": 5})
    assert resp.json() == {"success": True, "results": []}
    fake.assert_awaited_once_with("acme", "search", 5)


def test_blank_search_query_is_400(client):
    resp = client.post("/search/linkup", json={"query": " "})
    assert resp.status_code == 400


# ─────────────────────── Hume CLM ─────────────────────────────────────────────


def test_hume_clm_streams_sse(client, db):
    db.get_profile.return_value = None
    db.list_goals.return_value = []
    db.get_active_trinity.return_value = None
    db.list_conversation_turns.return_value = []
    resp = client.post(
        "/hume/clm",
        json={"messages": [{"role": "user", "content": "interview tips?"}], "custom_session_id": "user_ana_1"},
    )
    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    events = [e for e in resp.text.split("\n\n") if e]
    assert events[-1] == "data: [DONE]"
    assert '"content": "Let\'s "' in resp.text
    db.get_profile.assert_awaited_once_with("ana")
    db.store_conversation_turn.assert_awaited_once()


# ─────────────────────── Workspaces ───────────────────────────────────────────


@pytest.fixture
def foreign_workspace(db):
    db.get_workspace.return_value = {"id": "ws_other", "owner_id": "user_2", "collaborators": []}
    return "ws_other"


def test_upload_to_another_users_workspace_is_404(client, db, foreign_workspace):
    resp = client.post(
        f"/workspaces/{foreign_workspace}/documents",
        files={"file": ("pricing.txt", b"Atlas costs $10.", "text/plain")},
    )
    assert resp.status_code == 404
    assert resp.json() == {"error": "Workspace not found or access denied"}
    db.store_document.assert_not_called()


def test_search_in_another_users_workspace_is_404(client, db, foreign_workspace):
    resp = client.post(f"/workspaces/{foreign_workspace}/search", json={"query": "pricing"})
    assert resp.status_code == 404
    db.search_document_chunks.assert_not_called()


def test_chat_in_another_users_workspace_is_404(client, db, foreign_workspace):
    resp = client.post(f"/workspaces/{foreign_workspace}/chat", json={"query": "pricing?"})
    assert resp.status_code == 404
    db.search_document_chunks.assert_not_called()


def test_missing_workspace_is_404(client, db):
    db.get_workspace.return_value = None
    resp = client.post("/workspaces/ws_missing/search", json={"query": "pricing"})
    assert resp.status_code == 404
