from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from taskboard.database import get_db
from taskboard.main import app

MISSING_ID = "0123456789abcdef01234567"


@pytest.mark.asyncio
async def test_create_then_complete_task(client: AsyncClient):
    resp = await client.post("/api/tasks", json={"title": "Buy milk"})
    assert resp.status_code == 201
    body = resp.json()
    assert body["success"] is True
    assert body["message"] == "Task created successfully"
    task = body["data"]
    assert task["title"] == "Buy milk"
    assert task["completed"] is False
    assert task["status"] == "pending"
    assert len(task["id"]) == 24

    resp = await client.put(f"/api/tasks/{task['id']}", json={"completed": True})
    assert resp.status_code == 200
    updated = resp.json()["data"]
    assert updated["completed"] is True
    assert updated["status"] == "completed"
    assert updated["title"] == "Buy milk"
    assert updated["createdAt"] == task["createdAt"]

    resp = await client.get("/api/tasks", params={"completed": "true"})
    body = resp.json()
    assert body["count"] == 1
    assert [t["id"] for t in body["data"]] == [task["id"]]


@pytest.mark.asyncio
async def test_partial_update_leaves_other_fields(client: AsyncClient):
    resp = await client.post(
        "/api/tasks", json={"title": "Write report", "description": "Quarterly numbers"}
    )
    task = resp.json()["data"]

    resp = await client.put(f"/api/tasks/{task['id']}", json={"completed": True})
    updated = resp.json()["data"]
    assert updated["title"] == "Write report"
    assert updated["description"] == "Quarterly numbers"


@pytest.mark.asyncio
async def test_title_is_trimmed(client: AsyncClient):
    resp = await client.post("/api/tasks", json={"title": "   Call mom  "})
    assert resp.status_code == 201
    assert resp.json()["data"]["title"] == "Call mom"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload, field",
    [
        ({}, "title"),
        ({"title": "   "}, "title"),
        ({"title": "x" * 201}, "title"),
        ({"title": "ok", "description": "d" * 1001}, "description"),
    ],
)
async def test_invalid_task_rejected(client: AsyncClient, payload, field):
    resp = await client.post("/api/tasks", json=payload)
    assert resp.status_code == 400
    body = resp.json()
    assert body["success"] is False
    assert body["error"] == "Validation failed"
    assert any(d["field"] == field for d in body["details"])


@pytest.mark.asyncio
async def test_blank_title_message(client: AsyncClient):
    resp = await client.post("/api/tasks", json={"title": "  "})
    assert resp.json()["details"] == [{"field": "title", "message": "Task title is required"}]


@pytest.mark.asyncio
async def test_null_title_on_update_rejected(client: AsyncClient):
    task = (await client.post("/api/tasks", json={"title": "Keep me"})).json()["data"]
    resp = await client.put(f"/api/tasks/{task['id']}", json={"title": None})
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_missing_task_is_404(client: AsyncClient):
    for method in ("GET", "PUT", "DELETE"):
        kwargs = {"json": {"completed": True}} if method == "PUT" else {}
        resp = await client.request(method, f"/api/tasks/{MISSING_ID}", **kwargs)
        assert resp.status_code == 404
        assert resp.json() == {
            "success": False,
            "error": "Task not found",
            "timestamp": resp.json()["timestamp"],
        }


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "method, body",
    [("GET", None), ("PUT", {"title": "Renamed"}), ("DELETE", None)],
)
async def test_malformed_id_rejected_before_store(method, body):
    session = AsyncMock()

    async def override_get_db():
        yield session

    app.dependency_overrides[get_db] = override_get_db
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as ac:
            resp = await ac.request(method, "/api/tasks/not-an-id", json=body)
    finally:
        app.dependency_overrides.clear()

    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid task ID format"
    session.get.assert_not_called()
    session.exec.assert_not_called()
    session.delete.assert_not_called()
    session.commit.assert_not_called()


@pytest.mark.asyncio
async def test_delete_returns_summary(client: AsyncClient):
    task = (await client.post("/api/tasks", json={"title": "Temp"})).json()["data"]
    resp = await client.delete(f"/api/tasks/{task['id']}")
    assert resp.status_code == 200
    assert resp.json()["data"] == {"id": task["id"], "title": "Temp"}

    resp = await client.get(f"/api/tasks/{task['id']}")
    assert resp.status_code == 404


@pytest.mark.asyncio
async def test_list_filters_by_completion(client: AsyncClient):
    done = (await client.post("/api/tasks", json={"title": "Done"})).json()["data"]
    await client.post("/api/tasks", json={"title": "Open"})
    await client.put(f"/api/tasks/{done['id']}", json={"completed": True})

    pending = (await client.get("/api/tasks", params={"completed": "false"})).json()
    assert [t["title"] for t in pending["data"]] == ["Open"]

    everything = (await client.get("/api/tasks")).json()
    assert everything["count"] == 2
    assert "source" not in everything
