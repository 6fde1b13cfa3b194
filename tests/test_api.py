"""Tests for the FastAPI host."""

import time

import pytest
from fastapi.testclient import TestClient

import api.main as api_main
from contract_workflow.config import WorkflowConfig


@pytest.fixture
def client(monkeypatch):
    monkeypatch.setattr(api_main, "config", WorkflowConfig(reviewer_mode="rules", hitl_timeout_seconds=5))
    with TestClient(api_main.app) as test_client:
        yield test_client


def _wait_for(predicate, attempts=100, interval=0.05):
    for _ in range(attempts):
        value = predicate()
        if value:
            return value
        time.sleep(interval)
    raise AssertionError("condition not reached in time")


def _wait_for_status(client, run_id):
    def finished():
        body = client.get(f"/runs/{run_id}").json()
        return body if body["status"] != "running" else None
    return _wait_for(finished)


def _wait_for_approval(client, run_id):
    def pending():
        items = client.get("/approvals").json()["pending"]
        return [item for item in items if item["run_id"] == run_id]
    return _wait_for(pending)[0]


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_graph(client):
    mermaid = client.get("/graph").json()["mermaid"]
    assert mermaid.startswith("flowchart TD")
    assert "hitl_rejection_confirm" in mermaid


def test_low_risk_sample_completes(client):
    started = client.post("/runs", json={"sample": "low"})
    assert started.status_code == 200
    run_id = started.json()["run_id"]

    body = _wait_for_status(client, run_id)

    assert body["status"] == "completed"
    assert body["decision"]["decision"] == "Approved"
    assert body["decision"]["final_risk_score"] == 10
    assert any("Risk assessment" in line for line in body["progress"])


def test_high_risk_sample_waits_for_human(client):
    run_id = client.post("/runs", json={"sample": "high"}).json()["run_id"]

    approval = _wait_for_approval(client, run_id)
    assert approval["request_type"] == "rejection_confirm"
    assert client.get(f"/runs/{run_id}").json()["pending_approval"]["request_id"] == approval["request_id"]

    answer = client.post(f"/approvals/{approval['request_id']}", json={"approved": True, "comment": "agreed"})
    assert answer.status_code == 200

    body = _wait_for_status(client, run_id)
    assert body["decision"]["decision"] == "Rejected"
    assert "agreed" in body["decision"]["decision_summary"]


def test_run_can_be_cancelled(client):
    run_id = client.post("/runs", json={"contract": {
        "SupplierName": "Risky Corp",
        "ContractValue": 600000,
        "ContractTermMonths": 36,
        "PaymentTerms": "Advance payment",
        "DeliveryTerms": "FOB Origin",
        "HasPenaltyClause": False,
        "HasAutoRenewal": True,
    }}).json()["run_id"]
    _wait_for_approval(client, run_id)

    assert client.post(f"/runs/{run_id}/cancel").status_code == 200
    body = _wait_for_status(client, run_id)

    assert body["status"] == "cancelled"
    assert client.post(f"/runs/{run_id}/cancel").status_code == 409


def test_invalid_requests(client):
    assert client.post("/runs", json={}).status_code == 400
    assert client.post("/runs", json={"sample": "enormous"}).status_code == 400
    assert client.get("/runs/does-not-exist").status_code == 404
    assert client.post("/approvals/does-not-exist", json={"approved": True}).status_code == 404
