from unittest.mock import Mock

import pytest
from fastapi.testclient import TestClient

from asyncops.config import settings
from asyncops.dependencies import get_launcher, get_repo, get_waiter
from asyncops.errors import SubmissionError, WaitTimeout
from asyncops.main import app
from asyncops.services.launcher import StartResult
from asyncops.storage.payloads import PayloadReference
from asyncops.storage.repo import now_ms
from asyncops.storage.schema import OperationRecord, OperationStatus

HEADERS = {"X-API-Token": settings.api_token}


@pytest.fixture
def launcher():
    return Mock()


@pytest.fixture
def waiter():
    return Mock()


@pytest.fixture
def client(repo, launcher, waiter):
    app.dependency_overrides[get_repo] = lambda: repo
    app.dependency_overrides[get_launcher] = lambda: launcher
    app.dependency_overrides[get_waiter] = lambda: waiter
    yield TestClient(app)
    app.dependency_overrides.clear()


def _create(repo, operation_id="op-1"):
    ts = now_ms()
    repo.create(OperationRecord(
        id=operation_id, task_handle="handle-1", description="d", operation_type="ES Index",
        created_at=ts, updated_at=ts,
    ))


def test_requires_token(client):
    assert client.get("/asyncOperations/op-1").status_code == 401


def test_start_operation(client, launcher):
    launcher.start.return_value = StartResult(id="op-1", task_handle="handle-1")

    r = client.post("/asyncOperations", headers=HEADERS, json={
        "functionId": "echo",
        "description": "Some description",
        "operationType": "ES Index",
        "payload": [1, 2, 3],
    })

    assert r.status_code == 201
    assert r.json() == {"id": "op-1", "taskHandle": "handle-1"}
    launcher.start.assert_called_once_with(
        function_id="echo",
        cluster_id=settings.default_cluster,
        task_definition_id=settings.default_task_definition,
        description="Some description",
        operation_type="ES Index",
        payload=[1, 2, 3],
    )


def test_start_operation_with_payload_uri(client, launcher):
    launcher.start.return_value = StartResult(id="op-1", task_handle="handle-1")

    r = client.post("/asyncOperations", headers=HEADERS, json={
        "functionId": "echo",
        "clusterId": "gpu",
        "description": "d",
        "operationType": "ES Index",
        "payloadUri": "s3://bucket/key.json",
    })

    assert r.status_code == 201
    kwargs = launcher.start.call_args.kwargs
    assert kwargs["payload"] == PayloadReference("s3://bucket/key.json")
    assert kwargs["cluster_id"] == "gpu"


def test_start_operation_rejects_two_payload_sources(client):
    r = client.post("/asyncOperations", headers=HEADERS, json={
        "functionId": "echo",
        "description": "d",
        "operationType": "ES Index",
        "payload": {},
        "payloadUri": "s3://bucket/key.json",
    })

    assert r.status_code == 422


def test_submission_error_is_service_unavailable(client, launcher):
    launcher.start.side_effect = SubmissionError("no capacity")

    r = client.post("/asyncOperations", headers=HEADERS, json={
        "functionId": "echo", "description": "d", "operationType": "ES Index", "payload": {},
    })

    assert r.status_code == 503
    assert r.json()["detail"] == "no capacity"


def test_get_operation(client, repo):
    _create(repo)
    repo.update_terminal("op-1", OperationStatus.SUCCEEDED, [1, 2, 3])

    r = client.get("/asyncOperations/op-1", headers=HEADERS)

    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "SUCCEEDED"
    assert body["output"] == "[1,2,3]"
    assert body["taskHandle"] == "handle-1"
    assert body["updatedAt"] > body["createdAt"]


def test_get_unknown_operation(client):
    assert client.get("/asyncOperations/nope", headers=HEADERS).status_code == 404


def test_get_operation_waits_for_completion(client, repo, waiter):
    _create(repo)
    done = repo.get("op-1").model_copy(update={"status": OperationStatus.TASK_FAILED, "output": '{"message":"x"}'})
    waiter.wait.return_value = done

    r = client.get("/asyncOperations/op-1", params={"wait": "true"}, headers=HEADERS)

    assert r.json()["status"] == "TASK_FAILED"
    waiter.wait.assert_called_once_with("op-1", "handle-1", timeout=settings.max_status_longpoll_seconds)


def test_get_operation_wait_timeout_returns_current_record(client, repo, waiter):
    _create(repo)
    waiter.wait.side_effect = WaitTimeout("slow")

    r = client.get("/asyncOperations/op-1", params={"wait": "true"}, headers=HEADERS)

    assert r.status_code == 200
    assert r.json()["status"] == "RUNNING"


@pytest.mark.parametrize(
    "body",
    [
        {"functionId": "echo", "description": "d", "operationType": "ES Index"},
        {"functionId": "echo", "description": "d", "operationType": "ES Index", "payloadUri": ""},
    ],
)
def test_start_operation_requires_a_payload_source(client, launcher, body):
    r = client.post("/asyncOperations", headers=HEADERS, json=body)

    assert r.status_code == 422
    launcher.start.assert_not_called()


def test_start_operation_accepts_explicit_null_payload(client, launcher):
    launcher.start.return_value = StartResult(id="op-1", task_handle="handle-1")

    r = client.post("/asyncOperations", headers=HEADERS, json={
        "functionId": "echo", "description": "d", "operationType": "ES Index", "payload": None,
    })

    assert r.status_code == 201
    assert launcher.start.call_args.kwargs["payload"] is None
