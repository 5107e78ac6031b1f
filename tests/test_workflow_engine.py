import json

import httpx
import pytest

from core.notifications import hub
from integrations import repository as integrations_repository
from integrations import service as integrations_service
from tasks import service as tasks_service
from workflows import engine
from workflows import repository as workflows_repository


class FakeWorkflowStore:
    def __init__(self):
        self.created = []
        self.finished = []
        self.touched = []

    async def create_execution(self, *, workflow_id, status, trigger_data):
        self.created.append({"workflow_id": workflow_id, "status": status, "trigger_data": trigger_data})
        return {"id": 100 + len(self.created), "workflow_id": workflow_id, "status": status}

    async def finish_execution(self, execution_id, *, status, result, error):
        row = {"id": execution_id, "status": status, "result": result, "error": error}
        self.finished.append(row)
        return row

    async def touch_last_run(self, workflow_id):
        self.touched.append(workflow_id)


@pytest.fixture
def store(monkeypatch):
    fake = FakeWorkflowStore()
    monkeypatch.setattr(workflows_repository, "create_execution", fake.create_execution)
    monkeypatch.setattr(workflows_repository, "finish_execution", fake.finish_execution)
    monkeypatch.setattr(workflows_repository, "touch_last_run", fake.touch_last_run)
    return fake


@pytest.fixture
def published(monkeypatch):
    sent = []

    async def fake_publish(user_id, payload):
        sent.append((user_id, payload))
        return 0

    monkeypatch.setattr(hub, "publish", fake_publish)
    return sent


def _workflow(*steps):
    return {
        "id": 3,
        "user_id": 7,
        "name": "Test",
        "steps": [{"step_order": i, **step} for i, step in enumerate(steps)],
    }


def test_resolve_variables_handles_paths_types_and_unknowns():
    variables = {
        "trigger": {"email": {"subject": "Invoice #12", "from": "billing@example.com"}},
        "count": 3,
        "items": [{"name": "first"}],
    }

    assert engine.resolve_variables("Re: {{trigger.email.subject}}", variables) == "Re: Invoice #12"
    assert engine.resolve_variables("{{count}}", variables) == 3
    assert engine.resolve_variables("{{trigger.email}}", variables) == variables["trigger"]["email"]
    assert engine.resolve_variables("n={{count}}", variables) == "n=3"
    assert engine.resolve_variables("{{items.0.name}}", variables) == "first"
    assert engine.resolve_variables("hi {{missing.value}}", variables) == "hi {{missing.value}}"
    assert engine.resolve_variables("{{missing}}", variables) == "{{missing}}"
    assert engine.resolve_variables(
        {"to": ["{{trigger.email.from}}"], "n": 5, "flag": None},
        variables,
    ) == {"to": ["billing@example.com"], "n": 5, "flag": None}


@pytest.mark.parametrize(
    ("actual", "operator", "expected", "result"),
    [
        ("a", "equals", "a", True),
        ("a", "not_equals", "a", False),
        ("hello world", "contains", "world", True),
        (["x", "y"], "contains", "y", True),
        (None, "contains", "x", False),
        ("10", "greater_than", 9, True),
        (2, "less_than", "1.5", False),
    ],
)
def test_evaluate_condition(actual, operator, expected, result):
    assert engine.evaluate_condition(actual, operator, expected) is result


def test_evaluate_condition_rejects_unknown_operator_and_non_numbers():
    with pytest.raises(engine.WorkflowStepError, match="Unknown operator"):
        engine.evaluate_condition(1, "between", 2)
    with pytest.raises(engine.WorkflowStepError):
        engine.evaluate_condition("abc", "greater_than", 1)


async def test_execute_workflow_chains_outputs_and_completes(monkeypatch, store, published):
    created_tasks = []

    async def fake_create_task(**kwargs):
        created_tasks.append(kwargs)
        return {"id": 55, "title": kwargs["title"]}

    monkeypatch.setattr(tasks_service, "create_task", fake_create_task)

    workflow = _workflow(
        {
            "action": "create_task",
            "parameters": {"title": "Reply to {{trigger.email.from}}", "priority": "HIGH"},
            "output_variable": "task",
        },
        {
            "action": "condition",
            "parameters": {"variable": "task.id", "operator": "equals", "value": 55},
            "output_variable": "check",
        },
    )
    execution = await engine.execute_workflow(workflow, {"email": {"from": "bob@example.com"}})

    assert execution["status"] == "COMPLETED"
    assert execution["error"] is None
    assert store.created[0]["status"] == "RUNNING"
    assert store.created[0]["trigger_data"] == {"email": {"from": "bob@example.com"}}
    assert created_tasks[0]["title"] == "Reply to bob@example.com"
    assert created_tasks[0]["user_id"] == 7
    assert execution["result"] == [
        {"step": 0, "action": "create_task", "success": True, "result": {"id": 55, "title": "Reply to bob@example.com"}},
        {"step": 1, "action": "condition", "success": True, "result": {"condition": True}},
    ]
    assert store.touched == [3]
    assert published == [
        (7, {"type": "workflow_execution", "workflow_id": 3, "execution_id": 101, "status": "COMPLETED", "error": None})
    ]


async def test_failing_step_without_stop_on_error_continues(store, published):
    workflow = _workflow(
        {"action": "teleport", "parameters": {}},
        {"action": "wait", "parameters": {"seconds": 0}},
    )
    execution = await engine.execute_workflow(workflow, {})

    assert execution["status"] == "COMPLETED"
    assert execution["result"][0] == {
        "step": 0,
        "action": "teleport",
        "success": False,
        "error": "Unknown action type: teleport",
    }
    assert execution["result"][1]["success"] is True


async def test_stop_on_error_fails_the_execution(monkeypatch, store, published):
    async def fake_get_connected_by_type(user_id, integration_type):
        return None

    monkeypatch.setattr(integrations_repository, "get_connected_by_type", fake_get_connected_by_type)

    workflow = _workflow(
        {"action": "send_slack_message", "parameters": {"channel": "#a", "text": "hi"}, "stop_on_error": True},
        {"action": "wait", "parameters": {"seconds": 0}},
    )
    execution = await engine.execute_workflow(workflow, {})

    assert execution["status"] == "FAILED"
    assert execution["error"] == "Slack integration not connected"
    assert len(execution["result"]) == 1
    assert store.touched == []
    assert published[0][1]["status"] == "FAILED"


async def test_provider_step_prefers_the_step_integration(monkeypatch, store, published):
    calls = []

    async def fake_get_integration(integration_id, *, user_id):
        return {"id": integration_id, "type": "GMAIL", "user_id": user_id}

    async def fake_run_action(row, action, params):
        calls.append((row["id"], action, params))
        return {"id": "sent-1"}

    monkeypatch.setattr(integrations_repository, "get_integration", fake_get_integration)
    monkeypatch.setattr(integrations_service, "run_action", fake_run_action)

    workflow = _workflow(
        {
            "action": "send_email",
            "integration_id": 12,
            "parameters": {"to": "{{trigger.to}}", "subject": "Hi", "body": "Hello"},
        }
    )
    execution = await engine.execute_workflow(workflow, {"to": "bob@example.com"})

    assert execution["status"] == "COMPLETED"
    assert calls == [(12, "send_email", {"to": "bob@example.com", "subject": "Hi", "body": "Hello"})]


async def test_http_request_step_returns_status_and_json(store, published):
    def handler(request):
        assert request.method == "POST"
        assert json.loads(request.content) == {"subject": "Invoice"}
        return httpx.Response(201, json={"accepted": True})

    workflow = _workflow(
        {
            "action": "http_request",
            "parameters": {
                "url": "https://hooks.example.com/in",
                "method": "post",
                "body": {"subject": "{{trigger.subject}}"},
            },
            "output_variable": "hook",
        }
    )
    execution = await engine.execute_workflow(
        workflow,
        {"subject": "Invoice"},
        transport=httpx.MockTransport(handler),
    )

    assert execution["result"][0]["result"] == {"status": 201, "data": {"accepted": True}}


async def test_http_request_rejects_invalid_url(store, published):
    workflow = _workflow({"action": "http_request", "parameters": {"url": "file:///etc/passwd"}})
    execution = await engine.execute_workflow(workflow, {})

    assert execution["result"][0]["success"] is False
    assert execution["result"][0]["error"] == "Invalid URL: file:///etc/passwd"


async def test_wait_is_capped(monkeypatch, store, published):
    slept = []

    async def fake_sleep(seconds):
        slept.append(seconds)

    monkeypatch.setenv("WORKFLOW_MAX_WAIT_S", "2")
    monkeypatch.setattr(engine.asyncio, "sleep", fake_sleep)

    execution = await engine.execute_workflow(_workflow({"action": "wait", "parameters": {"seconds": 60}}), {})

    assert slept == [2.0]
    assert execution["result"][0]["result"] == {"waited": 2.0}
