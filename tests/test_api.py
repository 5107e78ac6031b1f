from datetime import date, datetime, timezone

import httpx
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

from auth import dependencies as auth_dependencies
from dashboard import service as dashboard_service
from integrations import repository as integrations_repository
from integrations import service as integrations_service
from integrations.base import IntegrationError
from integrations.google import CalendarIntegration
from main import app
from tasks import repository as tasks_repository
from workflows import engine
from workflows import repository as workflows_repository


def _client_as(user):
    app.dependency_overrides[auth_dependencies.get_current_user] = lambda: user
    return TestClient(app)


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


def test_health():
    resp = TestClient(app).get("/health")

    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert "timestamp" in resp.json()


def test_unknown_route_uses_error_envelope():
    resp = TestClient(app).get("/api/nothing-here")

    assert resp.status_code == 404
    assert resp.json() == {"error": "Route not found"}


def test_protected_route_requires_token():
    resp = TestClient(app).get("/api/tasks")

    assert resp.status_code == 401
    assert "error" in resp.json()


def test_notifications_socket_rejects_bad_token():
    client = TestClient(app)

    with pytest.raises(WebSocketDisconnect) as info:
        with client.websocket_connect("/ws/notifications?token=not-a-jwt"):
            pass
    assert info.value.code == 1008


def test_create_task_defaults_priority(monkeypatch, current_user):
    created = {}

    async def fake_create_task(**kwargs):
        created.update(kwargs)
        return {"id": 1, "user_id": kwargs["user_id"], "title": kwargs["title"], "priority": kwargs["priority"]}

    monkeypatch.setattr(tasks_repository, "create_task", fake_create_task)

    resp = _client_as(current_user).post("/api/tasks", json={"title": "  Write report  "})

    assert resp.status_code == 200
    assert created["title"] == "Write report"
    assert created["priority"] == "MEDIUM"
    assert created["user_id"] == 7


def test_create_task_validation_errors(current_user):
    resp = _client_as(current_user).post("/api/tasks", json={"title": "", "priority": "SOMEDAY"})

    assert resp.status_code == 400
    body = resp.json()
    assert body["error"] == "Validation failed"
    assert len(body["details"]) == 2


def test_list_tasks_passes_filters(monkeypatch, current_user):
    seen = {}

    async def fake_list_tasks(**kwargs):
        seen.update(kwargs)
        return [{"id": 1, "title": "A", "status": "PENDING"}]

    monkeypatch.setattr(tasks_repository, "list_tasks", fake_list_tasks)

    resp = _client_as(current_user).get("/api/tasks?status=PENDING&limit=10&offset=20")

    assert resp.status_code == 200
    assert resp.json()["count"] == 1
    assert seen == {"user_id": 7, "status": "PENDING", "limit": 10, "offset": 20}


def test_get_missing_task_is_404(monkeypatch, current_user):
    async def fake_get_task(task_id, *, user_id):
        return None

    monkeypatch.setattr(tasks_repository, "get_task", fake_get_task)

    resp = _client_as(current_user).get("/api/tasks/42")

    assert resp.status_code == 404
    assert resp.json() == {"error": "Task not found"}


def test_completing_a_task_stamps_completed_at(monkeypatch, current_user):
    seen = {}

    async def fake_update_task(task_id, *, user_id, changes):
        seen.update(changes)
        return {"id": task_id, **changes}

    monkeypatch.setattr(tasks_repository, "update_task", fake_update_task)

    resp = _client_as(current_user).patch("/api/tasks/3", json={"status": "COMPLETED"})

    assert resp.status_code == 200
    assert isinstance(seen["completed_at"], datetime)
    assert seen["completed_at"].tzinfo is not None


def test_reopening_a_task_clears_completed_at(monkeypatch, current_user):
    seen = {}

    async def fake_update_task(task_id, *, user_id, changes):
        seen.update(changes)
        return {"id": task_id, **changes}

    monkeypatch.setattr(tasks_repository, "update_task", fake_update_task)

    resp = _client_as(current_user).patch("/api/tasks/3", json={"status": "IN_PROGRESS", "priority": None})

    assert resp.status_code == 200
    assert seen == {"status": "IN_PROGRESS", "completed_at": None}


def test_delete_missing_task_is_404(monkeypatch, current_user):
    async def fake_delete_task(task_id, *, user_id):
        return False

    monkeypatch.setattr(tasks_repository, "delete_task", fake_delete_task)

    resp = _client_as(current_user).delete("/api/tasks/3")

    assert resp.status_code == 404


@pytest.mark.parametrize(
    "trigger",
    [
        {"type": "webhook"},
        {"type": "schedule", "cron": "every day"},
    ],
)
def test_create_workflow_rejects_bad_triggers(trigger, current_user):
    resp = _client_as(current_user).post("/api/workflows", json={"name": "W", "trigger": trigger, "steps": []})

    assert resp.status_code == 400
    assert resp.json()["error"] == "Validation failed"


def test_create_workflow_rejects_foreign_integration(monkeypatch, current_user):
    async def fake_user_owns_integrations(user_id, ids):
        assert ids == [99]
        return False

    monkeypatch.setattr(integrations_repository, "user_owns_integrations", fake_user_owns_integrations)

    resp = _client_as(current_user).post(
        "/api/workflows",
        json={
            "name": "W",
            "trigger": {"type": "manual"},
            "steps": [{"action": "send_email", "integration_id": 99, "parameters": {}}],
        },
    )

    assert resp.status_code == 400
    assert resp.json() == {"error": "Invalid integration for this user"}


def test_create_workflow_stores_ordered_steps(monkeypatch, current_user):
    stored = {}

    async def fake_create_workflow(**kwargs):
        stored.update(kwargs)
        return {"id": 5, "user_id": kwargs["user_id"], "name": kwargs["name"], "trigger": kwargs["trigger"]}

    async def fake_list_steps(ids):
        return [
            {
                "id": 1,
                "workflow_id": 5,
                "integration_id": None,
                "step_order": 0,
                "action": "wait",
                "parameters": {"seconds": 1},
                "output_variable": None,
                "stop_on_error": False,
            }
        ]

    monkeypatch.setattr(workflows_repository, "create_workflow", fake_create_workflow)
    monkeypatch.setattr(workflows_repository, "list_steps", fake_list_steps)

    resp = _client_as(current_user).post(
        "/api/workflows",
        json={
            "name": "Morning digest",
            "trigger": {"type": "schedule", "cron": "0 9 * * 1-5"},
            "steps": [{"action": "wait", "parameters": {"seconds": 1}}],
        },
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["id"] == 5
    assert body["steps"][0]["action"] == "wait"
    assert body["steps"][0]["integration"] is None
    assert stored["steps"][0]["stop_on_error"] is False


def test_execute_missing_workflow_is_404(monkeypatch, current_user):
    async def fake_get_workflow(workflow_id, *, user_id):
        return None

    monkeypatch.setattr(workflows_repository, "get_workflow", fake_get_workflow)

    resp = _client_as(current_user).post("/api/workflows/8/execute")

    assert resp.status_code == 404
    assert resp.json() == {"error": "Workflow not found"}


def test_execute_workflow_passes_trigger_data(monkeypatch, current_user):
    ran = {}

    async def fake_get_workflow(workflow_id, *, user_id):
        return {"id": workflow_id, "user_id": user_id, "name": "W", "trigger": {"type": "manual"}}

    async def fake_list_steps(ids):
        return []

    async def fake_execute_workflow(workflow, trigger_data):
        ran["workflow"] = workflow
        ran["data"] = trigger_data
        return {"id": 1, "workflow_id": workflow["id"], "status": "COMPLETED", "result": [], "error": None}

    monkeypatch.setattr(workflows_repository, "get_workflow", fake_get_workflow)
    monkeypatch.setattr(workflows_repository, "list_steps", fake_list_steps)
    monkeypatch.setattr(engine, "execute_workflow", fake_execute_workflow)

    resp = _client_as(current_user).post("/api/workflows/8/execute", json={"data": {"source": "button"}})

    assert resp.status_code == 200
    assert resp.json()["status"] == "COMPLETED"
    assert ran["data"] == {"source": "button"}
    assert ran["workflow"]["steps"] == []


def test_count_today_events_handles_dates_and_datetimes():
    events = [
        {"start": "2026-10-05T09:00:00+00:00"},
        {"start": "2026-10-05"},
        {"start": "2026-10-06T09:00:00Z"},
        {"start": None},
        {"start": "garbage"},
    ]

    assert dashboard_service.count_today_events(events, today=date(2026, 10, 5)) == 2


async def test_dashboard_survives_provider_failure(monkeypatch):
    class BrokenGmail:
        async def get_recent_data(self):
            raise IntegrationError("GMAIL request failed: 500")

    class FakeCalendar:
        async def get_recent_data(self):
            return [
                {"summary": "Standup", "start": "2026-10-05T09:30:00+00:00"},
                {"summary": "Offsite", "start": "2026-10-07"},
            ]

    async def fake_list_connected(user_id):
        return [
            {"id": 1, "type": "GMAIL", "name": "Gmail", "is_connected": True, "last_sync": None},
            {"id": 2, "type": "GOOGLE_CALENDAR", "name": "Google Calendar", "is_connected": True, "last_sync": None},
        ]

    async def fake_status_counts(user_id):
        return {"PENDING": 2, "COMPLETED": 3}

    async def fake_count_overdue(user_id):
        return 1

    monkeypatch.setattr(integrations_repository, "list_connected", fake_list_connected)
    monkeypatch.setattr(tasks_repository, "status_counts", fake_status_counts)
    monkeypatch.setattr(tasks_repository, "count_overdue", fake_count_overdue)
    monkeypatch.setattr(
        integrations_service,
        "client_for",
        lambda row: BrokenGmail() if row["type"] == "GMAIL" else FakeCalendar(),
    )

    dashboard = await dashboard_service.get_dashboard(
        user_id=7,
        now=datetime(2026, 10, 5, 12, 0, tzinfo=timezone.utc),
    )

    assert dashboard["tasks"] == {"total": 5, "pending": 2, "in_progress": 0, "completed": 3, "overdue": 1}
    assert dashboard["integrations"]["connected"] == 2
    assert dashboard["integrations"]["total"] == 6
    assert dashboard["emails"] == {"unread": 0, "recent": []}
    assert dashboard["calendar"]["today_events"] == 1
    assert len(dashboard["calendar"]["upcoming_events"]) == 2


async def test_dashboard_survives_provider_returning_html(monkeypatch):
    def html_gateway(request):
        return httpx.Response(200, text="<html>bad gateway</html>", headers={"content-type": "text/html"})

    async def fake_list_connected(user_id):
        return [{"id": 1, "type": "GOOGLE_CALENDAR", "name": "Google Calendar", "is_connected": True, "last_sync": None}]

    async def fake_status_counts(user_id):
        return {}

    async def fake_count_overdue(user_id):
        return 0

    monkeypatch.setattr(integrations_repository, "list_connected", fake_list_connected)
    monkeypatch.setattr(tasks_repository, "status_counts", fake_status_counts)
    monkeypatch.setattr(tasks_repository, "count_overdue", fake_count_overdue)
    monkeypatch.setattr(
        integrations_service,
        "client_for",
        lambda row: CalendarIntegration(
            {"id": row["id"], "type": "GOOGLE_CALENDAR", "access_token": "ya29"},
            transport=httpx.MockTransport(html_gateway),
        ),
    )

    dashboard = await dashboard_service.get_dashboard(user_id=7)

    assert dashboard["integrations"]["connected"] == 1
    assert dashboard["calendar"] == {"upcoming_events": [], "today_events": 0}


async def test_analytics_window_follows_timeframe(monkeypatch):
    seen = {}

    async def fake_completion_trend(user_id, *, since):
        seen["tasks_since"] = since
        return [{"day": date(2026, 10, 1), "count": 2}]

    async def fake_execution_trend(user_id, *, since):
        seen["workflows_since"] = since
        return []

    monkeypatch.setattr(tasks_repository, "completion_trend", fake_completion_trend)
    monkeypatch.setattr(workflows_repository, "execution_trend", fake_execution_trend)

    now = datetime(2026, 10, 31, tzinfo=timezone.utc)
    analytics = await dashboard_service.get_analytics(user_id=7, timeframe="30d", now=now)

    assert analytics == {
        "task_trends": [{"day": "2026-10-01", "count": 2}],
        "workflow_trends": [],
        "timeframe": "30d",
        "period": "30 days",
    }
    assert seen["tasks_since"] == datetime(2026, 10, 1, tzinfo=timezone.utc)
    assert dashboard_service.timeframe_days("whatever") == 7
