"""Integration tests for API endpoints."""
import pytest
from conftest import FakeGatewayFactory, ScriptedGateway, artifact_path, critique_json, design_json
from httpx import ASGITransport, AsyncClient

from polyplex.core.task.models import Task, TaskStatus
from polyplex.main import build_services, create_app


def _gateway(score=96):
    return ScriptedGateway(
        design=design_json(["src/counter.py", "src/app.py"]),
        implement=lambda user: f"# {artifact_path(user)}",
        critique=critique_json(score),
    )


@pytest.fixture
def app(settings, store):
    application = create_app(settings=settings, store=store)
    # Lifespan doesn't run in test; wire the services manually.
    build_services(application, settings, store, FakeGatewayFactory(_gateway(), settings))
    return application


@pytest.fixture
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c
    await app.state.scheduler.shutdown()
    await app.state.lifecycle.drain()


async def _seed_task(store, status=TaskStatus.PENDING_APPROVAL, score=95) -> Task:
    async with store.edit() as snapshot:
        task = Task(prompt="build a counter", status=status, score=score, depth=2)
        snapshot.tasks.append(task)
    return task


@pytest.mark.asyncio
async def test_health_check(client):
    response = await client.get("/api/v1/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_prompt_runs_pipeline_in_background(client, app):
    response = await client.post("/api/v1/prompt", json={"prompt": "build a counter"})
    assert response.status_code == 202
    task_id = response.json()["task_id"]

    await app.state.lifecycle.drain()

    response = await client.get(f"/api/v1/tasks/{task_id}")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "pending_approval"
    assert data["score"] == 96
    assert data["depth"] == 2
    assert [a["path"] for a in data["artifacts"]] == ["src/counter.py", "src/app.py"]


@pytest.mark.asyncio
async def test_blank_prompt_is_rejected(client):
    response = await client.post("/api/v1/prompt", json={"prompt": "   "})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unknown_task_is_404(client):
    response = await client.get("/api/v1/tasks/task-nope")
    assert response.status_code == 404
    assert response.json()["error"] == "TaskNotFoundError"


@pytest.mark.asyncio
async def test_approve_then_approve_again(client, store):
    task = await _seed_task(store)

    first = await client.post(f"/api/v1/tasks/{task.id}/approve")
    assert first.status_code == 200
    assert first.json()["entry"]["score"] == 95

    second = await client.post(f"/api/v1/tasks/{task.id}/approve")
    assert second.status_code == 409
    assert second.json()["error"] == "InvalidTransitionError"

    state = (await client.get("/api/v1/state")).json()
    assert len(state["stream"]) == 1


@pytest.mark.asyncio
async def test_reject_creates_retry(client, store, app):
    task = await _seed_task(store, status=TaskStatus.NEEDS_WORK)

    response = await client.post(f"/api/v1/tasks/{task.id}/reject", json={"feedback": "use sqlite"})
    assert response.status_code == 200
    body = response.json()
    assert body["ok"] is True

    await app.state.lifecycle.drain()
    state = (await client.get("/api/v1/state")).json()
    assert state["wisdom"] == ["use sqlite"]
    child = next(t for t in state["tasks"] if t["id"] == body["new_task_id"])
    assert child["parent_id"] == task.id
    assert "use sqlite" in child["prompt"]


@pytest.mark.asyncio
async def test_delete_task_and_stream_entry(client, store):
    task = await _seed_task(store)
    entry = (await client.post(f"/api/v1/tasks/{task.id}/approve")).json()["entry"]

    assert (await client.delete(f"/api/v1/tasks/{task.id}")).status_code == 200
    state = (await client.get("/api/v1/state")).json()
    assert state["tasks"] == []
    assert state["stream"][0]["id"] == entry["id"]

    assert (await client.delete(f"/api/v1/stream/{entry['id']}")).status_code == 200
    assert (await client.delete(f"/api/v1/stream/{entry['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_reset_keeps_wisdom(client, store):
    async with store.edit() as snapshot:
        snapshot.wisdom.append("lesson")
    await _seed_task(store)

    assert (await client.post("/api/v1/reset")).status_code == 200

    state = (await client.get("/api/v1/state")).json()
    assert state == {"tasks": [], "stream": [], "wisdom": ["lesson"]}


@pytest.mark.asyncio
async def test_settings_round_trip(client):
    response = await client.put("/api/v1/settings", json={"auto_approve": True, "auto_approve_threshold": 95})
    assert response.status_code == 200
    assert response.json()["auto_approve"] is True

    data = (await client.get("/api/v1/settings")).json()
    assert data["auto_approve_threshold"] == 95
    assert data["default_provider"] == "openai"


@pytest.mark.asyncio
async def test_settings_threshold_out_of_range(client):
    response = await client.put("/api/v1/settings", json={"auto_approve_threshold": 0})
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_providers_never_expose_keys(client):
    data = (await client.get("/api/v1/providers")).json()
    assert data["default_provider"] == "openai"
    assert data["providers"]["openai"] is True
    assert "key" not in str(data).lower()


@pytest.mark.asyncio
async def test_orchestrator_start_and_stop(client, app):
    state = (await client.get("/api/v1/orchestrator")).json()
    assert state["enabled"] is False

    response = await client.post(
        "/api/v1/orchestrator/start",
        json={"seed_prompt": "improve the counter", "target_count": 2, "tick_seconds": 60},
    )
    assert response.status_code == 200
    started = response.json()
    assert started["enabled"] is True
    assert started["goal"] == 2
    assert started["total_created"] == 1

    stopped = (await client.post("/api/v1/orchestrator/stop")).json()
    assert stopped["enabled"] is False
    assert app.state.scheduler.running is False
