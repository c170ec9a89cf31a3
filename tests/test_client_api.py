import json

import httpx
import pytest

from taskboard.client.api import ApiError, TaskboardClient
from taskboard.main import app

TASK = {
    "id": "65a1b2c3d4e5f60718293a4b",
    "title": "Buy milk",
    "description": None,
    "completed": False,
    "createdAt": "2024-01-01T10:00:00Z",
    "updatedAt": "2024-01-01T10:00:00Z",
}


def _client(handler) -> TaskboardClient:
    return TaskboardClient(base_url="http://api.test/api", transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_list_tasks_parses_envelope():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            200, json={"success": True, "message": "ok", "data": [TASK], "count": 1}
        )

    async with _client(handler) as client:
        listing = await client.list_tasks(completed=False)

    assert seen[0].url.path == "/api/tasks"
    assert seen[0].url.params["completed"] == "false"
    assert listing.count == 1
    assert listing.items[0].title == "Buy milk"
    assert listing.items[0].status == "pending"


@pytest.mark.asyncio
async def test_server_error_message_is_surfaced():
    def handler(request):
        return httpx.Response(409, json={"success": False, "error": "User with this email already exists"})

    async with _client(handler) as client:
        with pytest.raises(ApiError) as exc:
            await client.create_user({"name": "Ann", "email": "a@x.io"})

    assert exc.value.message == "User with this email already exists"
    assert exc.value.status_code == 409


@pytest.mark.asyncio
async def test_validation_details_are_appended():
    def handler(request):
        return httpx.Response(
            400,
            json={
                "success": False,
                "error": "Validation failed",
                "details": [{"field": "title", "message": "Task title is required"}],
            },
        )

    async with _client(handler) as client:
        with pytest.raises(ApiError) as exc:
            await client.create_task("  ")

    assert exc.value.message == "Validation failed: title: Task title is required"
    assert exc.value.details[0]["field"] == "title"


@pytest.mark.asyncio
async def test_default_message_without_body():
    def handler(request):
        return httpx.Response(502, text="Bad gateway")

    async with _client(handler) as client:
        with pytest.raises(ApiError) as exc:
            await client.list_tasks()

    assert exc.value.message == "Failed to fetch tasks"
    assert exc.value.status_code == 502


@pytest.mark.asyncio
async def test_transport_failure_has_no_status():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    async with _client(handler) as client:
        with pytest.raises(ApiError) as exc:
            await client.list_users()

    assert exc.value.message == "Failed to fetch users"
    assert exc.value.status_code is None


@pytest.mark.asyncio
async def test_update_task_sends_only_changes():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "message": "ok", "data": {**TASK, "completed": True}})

    async with _client(handler) as client:
        task = await client.update_task(TASK["id"], completed=True)

    assert bodies == [{"completed": True}]
    assert task.completed is True


@pytest.mark.asyncio
async def test_bulk_delete_waits_for_all_then_raises():
    deleted = []

    def handler(request):
        task_id = request.url.path.rsplit("/", 1)[-1]
        if task_id == "bad":
            return httpx.Response(404, json={"success": False, "error": "Task not found"})
        deleted.append(task_id)
        return httpx.Response(200, json={"success": True, "message": "ok", "data": {"id": task_id, "title": "t"}})

    async with _client(handler) as client:
        with pytest.raises(ApiError) as exc:
            await client.delete_tasks(["a", "bad", "c"])

    assert exc.value.message == "Task not found"
    assert sorted(deleted) == ["a", "c"]


@pytest.mark.asyncio
async def test_bulk_delete_success():
    def handler(request):
        task_id = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(200, json={"success": True, "message": "ok", "data": {"id": task_id, "title": "t"}})

    async with _client(handler) as client:
        results = await client.delete_tasks(["a", "b"])

    assert [r["id"] for r in results] == ["a", "b"]


@pytest.mark.asyncio
async def test_health_lives_outside_api_prefix():
    paths = []

    def handler(request):
        paths.append(request.url.path)
        return httpx.Response(200, json={"status": "OK", "services": {}})

    async with _client(handler) as client:
        assert (await client.health())["status"] == "OK"

    assert paths == ["/health"]


@pytest.mark.asyncio
async def test_against_running_app(client):
    """Same client, pointed at the ASGI app instead of a mock."""
    api = TaskboardClient(
        base_url="http://testserver/api", transport=httpx.ASGITransport(app=app)
    )
    async with api:
        created = await api.create_task("From the client", "via ASGI")
        listing = await api.list_tasks()
        assert [t.id for t in listing.items] == [created.id]

        with pytest.raises(ApiError) as exc:
            await api.get_task("0123456789abcdef01234567")
        assert exc.value.status_code == 404
        assert exc.value.message == "Task not found"

        await api.set_cache_value("k", {"v": 1}, ttl=30)
        assert (await api.get_cache_value("k")).value == {"v": 1}
        assert await api.redis_keys() == ["k"]
