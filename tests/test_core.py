import io
import json
from datetime import datetime, timezone

import structlog

from taskboard.core.config import Settings
from taskboard.core.exceptions import validation_details
from taskboard.core.ids import is_object_id, new_object_id
from taskboard.core.logging_config import configure_logging
from taskboard.core.responses import Envelope, error_body
from taskboard.schemas import TaskRead


def test_object_ids_are_hex_and_ordered():
    ids = [new_object_id() for _ in range(50)]
    assert all(is_object_id(i) for i in ids)
    assert len(set(ids)) == 50
    # same second, rising counter
    assert ids[0][:8] <= ids[-1][:8]


def test_is_object_id_rejects_other_shapes():
    assert is_object_id("65A1B2C3D4E5F60718293A4B")
    assert not is_object_id("65a1b2c3d4e5f60718293a4")
    assert not is_object_id("zza1b2c3d4e5f60718293a4b")
    assert not is_object_id("")
    assert not is_object_id(None)


def test_validation_details_flatten_locations():
    errors = [
        {"loc": ("body", "profile", "bio"), "msg": "String should have at most 500 characters"},
        {"loc": ("query", "completed"), "msg": "Value error, Field cannot be null"},
        {"loc": ("body",), "msg": "Field required"},
    ]
    assert validation_details(errors) == [
        {"field": "profile.bio", "message": "String should have at most 500 characters"},
        {"field": "completed", "message": "Field cannot be null"},
        {"field": "body", "message": "Field required"},
    ]


def test_envelope_omits_empty_meta():
    body = Envelope[list[int]](message="ok", data=[1]).model_dump(mode="json")
    assert set(body) == {"success", "message", "data", "timestamp"}

    body = Envelope[list[int]](message="ok", data=[1], count=1, source="cache").model_dump(mode="json")
    assert body["count"] == 1 and body["source"] == "cache"


def test_error_body_shape():
    body = error_body("Route not found", path="/x")
    assert body["success"] is False
    assert body["error"] == "Route not found"
    assert body["path"] == "/x"
    assert "details" not in body


def test_error_and_success_timestamps_share_format():
    success = Envelope[int](message="ok", data=1).model_dump(mode="json")["timestamp"]
    failure = error_body("Route not found")["timestamp"]
    assert success.endswith("Z") and failure.endswith("Z")
    assert "+00:00" not in failure


def test_task_read_uses_camel_case():
    now = datetime(2024, 5, 1, tzinfo=timezone.utc)
    read = TaskRead(id="a" * 24, title="t", completed=True, created_at=now, updated_at=now)
    dumped = read.model_dump(by_alias=True)
    assert dumped["createdAt"] == now
    assert dumped["status"] == "completed"


def test_json_logging_outside_development():
    stream = io.StringIO()
    configure_logging(Settings(environment="production", log_level="INFO"), stream=stream)
    structlog.get_logger("taskboard.test").info("User created", user_id="abc")

    line = json.loads(stream.getvalue().strip().splitlines()[-1])
    assert line["event"] == "User created"
    assert line["user_id"] == "abc"
    assert line["level"] == "info"
    assert "timestamp" in line


def test_settings_defaults(monkeypatch):
    monkeypatch.delenv("CACHE_BACKEND", raising=False)
    settings = Settings(_env_file=None)
    assert settings.users_cache_key == "users:all"
    assert settings.users_cache_ttl_seconds == 300
    assert settings.port == 5000
    assert settings.cache_backend == "redis"
