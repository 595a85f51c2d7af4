from __future__ import annotations

import json
import logging

from fastapi.testclient import TestClient
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from attendance_server.config import Settings
from attendance_server.database import get_db, serialize_doc
from attendance_server.errors import duplicate_key_field
from attendance_server.logging_config import CustomJsonFormatter
from attendance_server.main import create_app


class UnreachableDb:
    def command(self, name):
        raise ServerSelectionTimeoutError("no servers")


def preflight(client, origin):
    return client.options(
        "/api/auth/login",
        headers={"Origin": origin, "Access-Control-Request-Method": "POST"},
    )


def test_health_reports_unreachable_database():
    app = create_app()
    app.dependency_overrides[get_db] = UnreachableDb
    response = TestClient(app).get("/health")
    assert response.status_code == 503
    assert response.json()["database"] == "disconnected"


def test_unknown_route_uses_error_body(client):
    response = client.get("/api/nothing-here")
    assert response.status_code == 404
    assert response.json()["status"] == "fail"


def test_cors_in_development_echoes_any_origin():
    app = create_app(Settings(ENVIRONMENT="development"))
    response = preflight(TestClient(app), "http://192.168.1.20:3000")
    assert response.headers["access-control-allow-origin"] == "http://192.168.1.20:3000"
    assert response.headers["access-control-allow-credentials"] == "true"


def test_cors_in_production_uses_allow_list():
    app = create_app(Settings(ENVIRONMENT="production", CORS_ORIGINS="http://portal.uni.edu, http://localhost:3000"))
    client = TestClient(app)
    allowed = preflight(client, "http://portal.uni.edu")
    assert allowed.headers["access-control-allow-origin"] == "http://portal.uni.edu"
    denied = preflight(client, "http://evil.example")
    assert "access-control-allow-origin" not in denied.headers


def test_cors_outside_development_ignores_foreign_origins(monkeypatch):
    monkeypatch.delenv("ENVIRONMENT", raising=False)
    monkeypatch.delenv("NODE_ENV", raising=False)
    unset = Settings(_env_file=None)
    staging = Settings(ENVIRONMENT="staging")
    assert unset.ENVIRONMENT == "production"
    assert staging.ENVIRONMENT == "staging"

    for config in (unset, staging):
        assert not config.is_development()
        response = preflight(TestClient(create_app(config)), "http://evil.example")
        assert "access-control-allow-origin" not in response.headers


def test_environment_aliases():
    assert Settings(ENVIRONMENT="prod").is_production()
    assert Settings(ENVIRONMENT="dev").is_development()
    assert Settings(ENVIRONMENT="TEST").ENVIRONMENT == "testing"


def test_duplicate_key_field_name():
    exc = DuplicateKeyError("E11000 duplicate key", 11000, {"keyValue": {"email": "a@uni.edu"}})
    assert duplicate_key_field(exc) == "email"
    assert duplicate_key_field(DuplicateKeyError("E11000", 11000)) == "unique field"


def test_serialize_doc_hides_password_and_stringifies_ids():
    from datetime import datetime

    from bson import ObjectId

    oid = ObjectId()
    doc = serialize_doc({"_id": oid, "password": "hash", "ids": [oid], "at": datetime(2026, 1, 2, 3, 4, 5)})
    assert doc == {"id": str(oid), "ids": [str(oid)], "at": "2026-01-02T03:04:05"}


def test_json_log_lines_carry_request_fields():
    record = logging.LogRecord("attendance_server", logging.INFO, __file__, 1, "GET /health 200", None, None)
    record.status_code = 200
    line = json.loads(CustomJsonFormatter("%(message)s").format(record))
    assert line["message"] == "GET /health 200"
    assert line["level"] == "INFO"
    assert line["logger"] == "attendance_server"
    assert line["status_code"] == 200
