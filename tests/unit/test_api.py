"""
Unit tests -- FastAPI endpoints (DB and introspection monkeypatched).
"""
import pytest
from fastapi.testclient import TestClient

from askguard.api.main import app
from askguard.api.routers import ask as ask_router
from askguard.copilot import service, tenant
from askguard.copilot.models import Provenance, SqlStatement
from askguard.core.config import Settings
from askguard.db import introspection

client = TestClient(app)


@pytest.fixture(autouse=True)
def offline(monkeypatch):
    monkeypatch.setattr(tenant, "get_settings", lambda: Settings(default_tenant_id=None))
    monkeypatch.setattr(service, "execute_readonly", lambda sql, timeout_ms=None: [{"n": 3}])


def _external(monkeypatch, text):
    monkeypatch.setattr(
        service, "generate_sql",
        lambda question, tenant_id, date_range=None, provider=None:
            SqlStatement(text=text, provenance=Provenance.EXTERNAL),
    )


# ── Health + catalog ───────────────────────────────────

def test_health():
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


def test_catalog():
    r = client.get("/catalog")
    assert r.status_code == 200
    data = r.json()
    names = [t["name"] for t in data["tables"]]
    assert "daily_check" in names and "wm_check" in names
    assert data["tenant_column"] == "restaurant_id"
    assert data["max_limit"] == 1000
    assert "daily_check.qid = template.id" in data["joins"]
    assert "FROM_UNIXTIME" in data["time_functions"]
    assert "opening_checks" in data["intents"]
    assert any(line.startswith("- daily_check:") for line in data["completion_rules"])


# ── POST /ask ──────────────────────────────────────────

def test_ask_template_success():
    r = client.post("/ask", json={"question": "opening checks today", "restaurant_id": 74,
                                  "mode": "mock"})
    assert r.status_code == 200
    data = r.json()
    assert data["provenance"] == "template"
    assert data["intent"] == "opening_checks"
    assert data["restaurant_id"] == 74
    assert data["tenant_source"] == "caller"
    assert data["rows"] == [{"n": 3}]
    assert data["answer"].startswith("Yes, 3 n for restaurant 74")
    assert data["executed"] is True
    assert "restaurant_id = 74" in data["sql"]
    assert set(data["date_range"]) >= {"start", "end"}
    assert isinstance(data["latency_ms"], int)


def test_ask_restaurant_in_question_wins():
    r = client.post("/ask", json={"question": "closing checks for restaurant 61",
                                  "restaurant_id": 74, "mode": "mock"})
    assert r.status_code == 200
    assert r.json()["restaurant_id"] == 61


def test_ask_without_tenant_is_400():
    r = client.post("/ask", json={"question": "opening checks", "mode": "mock"})
    assert r.status_code == 400
    assert "restaurant" in r.json()["error"].lower()


def test_ask_guard_rejection_is_400(monkeypatch):
    _external(monkeypatch, "SELECT * FROM wm_check WHERE restaurant_id = 74 LIMIT 5000")
    r = client.post("/ask", json={"question": "show wm rows", "restaurant_id": 74, "mode": "mock"})
    assert r.status_code == 400
    data = r.json()
    assert data["error"] == "Generated SQL rejected by guard."
    assert data["reason"] == "LIMIT exceeds bound (5000 > 1000)"
    assert data["sql_attempt"].startswith("SELECT *")


def test_ask_scope_failure_is_400(monkeypatch):
    _external(monkeypatch, "SELECT id FROM wm_check WHERE restaurant_id = 61 LIMIT 5")
    r = client.post("/ask", json={"question": "show wm rows", "restaurant_id": 74, "mode": "mock"})
    assert r.status_code == 400
    data = r.json()
    assert "restaurant_id filter" in data["error"]
    assert data["restaurant_id"] == 74
    assert "restaurant_id = 61" in data["sql_attempt"]


def test_ask_execution_failure_is_500(monkeypatch):
    def failing(sql, timeout_ms=None):
        raise RuntimeError("Unknown column 'x'")

    monkeypatch.setattr(service, "execute_readonly", failing)
    r = client.post("/ask", json={"question": "opening checks", "restaurant_id": 74, "mode": "mock"})
    assert r.status_code == 500
    assert r.json() == {"error": "execution failed", "detail": "Unknown column 'x'"}


def test_ask_unexpected_error_is_500(monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("openai_api_key is not set")

    monkeypatch.setattr(ask_router, "service_ask", broken)
    r = client.post("/ask", json={"question": "anything", "restaurant_id": 74})
    assert r.status_code == 500
    assert r.json()["error"] == "Server error while answering question."


def test_ask_dry_run():
    r = client.post("/ask", json={"question": "opening checks", "restaurant_id": 74,
                                  "mode": "mock", "execute": False})
    assert r.status_code == 200
    data = r.json()
    assert data["executed"] is False
    assert data["rows"] == []


@pytest.mark.parametrize("body", [
    {},
    {"question": ""},
    {"question": "opening checks", "restaurant_id": -1},
])
def test_ask_request_validation(body):
    assert client.post("/ask", json=body).status_code == 422


# ── POST /ask/explain ──────────────────────────────────

def test_explain():
    r = client.post("/ask/explain", json={"question": "hot holding failures last week",
                                          "restaurant_id": 74, "mode": "mock"})
    assert r.status_code == 200
    data = r.json()
    assert data["intent"] == "hot_holding_readings"
    assert data["guard_ok"] is True
    assert data["guard_reason"] is None
    assert data["scope_ok"] is True
    assert "h.status = 0" in data["sql"]
    assert "rows" not in data


def test_explain_shows_rejection(monkeypatch):
    _external(monkeypatch, "SELECT id FROM wm_check WHERE restaurant_id = 61 LIMIT 5")
    r = client.post("/ask/explain", json={"question": "show wm rows", "restaurant_id": 74,
                                          "mode": "mock"})
    assert r.status_code == 200
    data = r.json()
    assert data["provenance"] == "external"
    assert data["guard_ok"] is True
    assert data["scope_ok"] is False


# ── Introspection ──────────────────────────────────────

def test_db_tables(monkeypatch):
    monkeypatch.setattr(introspection, "list_tables", lambda: ["daily_check", "users"])
    r = client.get("/db/tables")
    assert r.status_code == 200
    assert r.json() == {"ok": True, "tables": ["daily_check", "users"], "allowed": ["daily_check"]}


def test_db_tables_error(monkeypatch):
    def failing():
        raise ConnectionError("db down")

    monkeypatch.setattr(introspection, "list_tables", failing)
    r = client.get("/db/tables")
    assert r.status_code == 500
    assert r.json()["ok"] is False


def test_db_columns_requires_table():
    r = client.get("/db/columns")
    assert r.status_code == 400
    assert r.json()["message"] == "Add ?table=your_table_name"


@pytest.mark.parametrize("table", ["users", "daily_check;drop"])
def test_db_columns_rejects_unknown_tables(table):
    r = client.get("/db/columns", params={"table": table})
    assert r.status_code == 400
    assert r.json()["ok"] is False


def test_db_columns(monkeypatch):
    cols = [{"name": "id", "type": "INTEGER", "nullable": False}]
    monkeypatch.setattr(introspection, "_load_columns", lambda table: cols)
    introspection.get_schema_cache().invalidate()
    r = client.get("/db/columns", params={"table": "Daily_Check"})
    assert r.status_code == 200
    assert r.json() == {"ok": True, "table": "daily_check", "columns": cols}
    introspection.get_schema_cache().invalidate()
