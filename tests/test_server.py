"""HTTP surface tests through FastAPI's TestClient."""

import pytest
from fastapi.testclient import TestClient

import server
from classes import settings
from classes.agent_pipeline import AgentPipeline
from classes.entities import AiAutomation
from classes.rate_limiter import RateLimiter

from conftest import ai_reply, wire_call


@pytest.fixture
def replies():
    return []


@pytest.fixture
def limiter():
    return RateLimiter(max_requests=2, window_seconds=60)


@pytest.fixture
def client(session_factory, scripted, replies, limiter):
    def pipeline_override():
        chat = scripted(*replies)
        return AgentPipeline(session_factory, chat_client_factory=lambda: chat, rate_limiter=limiter)

    server.app.dependency_overrides[server.get_session_factory] = lambda: session_factory
    server.app.dependency_overrides[server.get_pipeline] = pipeline_override
    try:
        yield TestClient(server.app)
    finally:
        server.app.dependency_overrides.clear()


class TestAiAgentEndpoint:
    def test_executes_and_reports_rate_headers(self, client, replies):
        replies.append(ai_reply(wire_call("create_project", {"name": "Infra"}, "c1")))
        resp = client.post("/ai-agent", json={"instruction": "new project Infra"}, headers={"x-forwarded-for": "10.1.1.1"})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["operations"][0]["tool"] == "create_project"
        assert "logId" in body
        assert "executionTimeMs" in body
        assert resp.headers["X-RateLimit-Limit"] == "2"
        assert resp.headers["X-RateLimit-Remaining"] == "1"

    def test_preview_alias(self, client, replies):
        replies.append(ai_reply(wire_call("create_project", {"name": "Infra"}, "c1")))
        resp = client.post("/ai-agent", json={"prompt": "new project Infra", "preview": True})

        body = resp.json()
        assert resp.status_code == 200
        assert body["preview"] is True
        assert body["plan"][0]["function"]["name"] == "create_project"
        assert body["operations"][0]["description"] == 'Create project "Infra"'

    def test_missing_instruction(self, client):
        resp = client.post("/ai-agent", json={})
        assert resp.status_code == 400
        assert resp.json()["message"] == "Instruction is required"

    def test_backend_reply_text_does_not_pick_the_status(self, client, replies):
        replies.append(ai_reply(content="Instruction is required"))
        resp = client.post("/ai-agent", json={"instruction": "do something"})

        assert resp.status_code == 200
        assert resp.json()["success"] is False
        assert resp.json()["message"] == "Instruction is required"

    def test_missing_api_key_is_a_server_error(self, client, session_factory):
        server.app.dependency_overrides[server.get_pipeline] = lambda: AgentPipeline(session_factory)
        resp = client.post("/ai-agent", json={"instruction": "x"})

        assert resp.status_code == 500
        assert resp.json()["message"] == "Reasoning backend API key not configured"
        assert "configError" not in resp.json()

    def test_rate_limited(self, client):
        for _ in range(2):
            client.post("/ai-agent", json={"instruction": "x"}, headers={"x-forwarded-for": "10.2.2.2"})
        resp = client.post("/ai-agent", json={"instruction": "x"}, headers={"x-forwarded-for": "10.2.2.2"})

        assert resp.status_code == 429
        assert resp.json()["message"] == "Rate limit exceeded"
        assert "Retry-After" in resp.headers
        assert resp.headers["X-RateLimit-Remaining"] == "0"

    def test_backend_failure_is_a_server_error(self, client, replies):
        def throttled(messages):
            raise RuntimeError("Rate limit reached for model llama")

        replies.append(throttled)
        resp = client.post("/ai-agent", json={"instruction": "x"})

        assert resp.status_code == 500
        assert resp.json()["message"] == "Rate limit exceeded"
        assert "Retry-After" not in resp.headers


class TestLogsEndpoint:
    def test_lists_logs(self, client, replies):
        replies.append(ai_reply(wire_call("create_project", {"name": "Infra"}, "c1")))
        client.post("/ai-agent", json={"instruction": "new project"})

        resp = client.get("/ai-logs", params={"limit": 10})
        assert resp.status_code == 200
        [log] = resp.json()["data"]
        assert log["prompt"] == "new project"
        assert log["operations"][0]["tool"] == "create_project"


class TestAutomationEndpoints:
    def test_run_requires_id(self, client):
        assert client.post("/ai-automations/run", json={}).status_code == 400

    def test_run_unknown(self, client):
        resp = client.post("/ai-automations/run", json={"id": "missing"})
        assert resp.status_code == 404
        assert resp.json()["detail"] == "AI automation not found"

    def test_run_one(self, client, replies, session_factory):
        session = session_factory()
        try:
            row = AiAutomation(name="Weekly", prompt="create project Weekly", schedule="weekly", day_of_week=1)
            session.add(row)
            session.commit()
            automation_id = row.id
        finally:
            session.close()

        replies.append(ai_reply(wire_call("create_project", {"name": "Weekly"}, "c1")))
        resp = client.post("/ai-automations/run", json={"id": automation_id})

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["automationId"] == automation_id
        assert body["operationsCount"] == 1

    def test_cron_secret_checked(self, client, monkeypatch):
        monkeypatch.setattr(settings, "CRON_SECRET", "s3cret")

        assert client.post("/ai-automations/execute").status_code == 401
        assert client.post("/ai-automations/execute", headers={"x-cron-secret": "wrong"}).status_code == 401

        resp = client.post("/ai-automations/execute", headers={"x-cron-secret": "s3cret"})
        assert resp.status_code == 200
        assert resp.json()["processedCount"] == 0
