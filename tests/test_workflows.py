"""Tests for workflow definitions, the execution engine and approvals."""

from __future__ import annotations

from tms_api import events

STEPS = [
    {"step_number": 1, "step_name": "Check credit", "step_type": "ACTION"},
    {"step_number": 2, "step_name": "Manager sign-off", "step_type": "APPROVAL"},
    {"step_number": 3, "step_name": "Notify sales", "step_type": "NOTIFICATION"},
]


def workflow(client, headers, steps=None, **kw) -> dict:
    body = {"name": "Credit hold release", "trigger_type": "MANUAL", "steps": steps or STEPS, **kw}
    r = client.post("/v1/workflows", json=body, headers=headers)
    assert r.status_code == 201
    return r.json()


def execute(client, headers, workflow_id: int, **kw) -> dict:
    r = client.post(f"/v1/workflows/{workflow_id}/execute",
                    json={"entity_type": "ORDER", "entity_id": "42", **kw}, headers=headers)
    assert r.status_code == 201
    return r.json()


def approval_for(client, headers, execution_id: int) -> dict:
    approvals = client.get("/v1/approvals", params={"entity_id": str(execution_id)}, headers=headers).json()
    return approvals["data"][0]


class TestDefinitions:
    def test_create_orders_steps(self, client, headers) -> None:
        steps = list(reversed(STEPS))
        w = workflow(client, headers, steps=steps)
        assert w["status"] == "ACTIVE"
        assert w["version"] == 1
        assert [st["step_number"] for st in w["steps"]] == [1, 2, 3]

    def test_validate(self, client, headers) -> None:
        ok = client.post("/v1/workflows/validate", json={"name": "X", "steps": STEPS}, headers=headers).json()
        assert ok == {"valid": True, "issues": []}

        bad = client.post("/v1/workflows/validate", json={
            "name": "X", "trigger_type": "EVENT",
            "steps": [{"step_number": 1, "step_type": "ACTION"}, {"step_number": 1, "step_type": "ACTION"}],
        }, headers=headers).json()
        assert bad["valid"] is False
        assert bad["issues"] == ["Duplicate step number 1", "Event triggers require triggerEvent"]

    def test_update_replaces_steps_and_bumps_version(self, client, headers) -> None:
        w = workflow(client, headers)
        r = client.patch(f"/v1/workflows/{w['id']}",
                         json={"steps": [{"step_number": 1, "step_type": "ACTION"}]}, headers=headers)
        body = r.json()
        assert body["version"] == 2
        assert [st["step_name"] for st in body["steps"]] == ["Step 1"]

    def test_inactive_workflow_cannot_run(self, client, headers) -> None:
        w = workflow(client, headers)
        client.post(f"/v1/workflows/{w['id']}/deactivate", headers=headers)
        r = client.post(f"/v1/workflows/{w['id']}/execute", json={}, headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Workflow is inactive"

        client.post(f"/v1/workflows/{w['id']}/activate", headers=headers)
        assert client.post(f"/v1/workflows/{w['id']}/execute", json={}, headers=headers).status_code == 201


class TestExecution:
    def test_runs_to_completion_without_approval(self, client, headers) -> None:
        completed = []
        events.on("workflow.completed")(completed.append)
        w = workflow(client, headers, steps=[STEPS[0], STEPS[2]])
        run = execute(client, headers, w["id"])
        assert run["status"] == "COMPLETED"
        assert completed[0]["executionId"] == run["executionId"]

        detail = client.get(f"/v1/executions/{run['executionId']}", headers=headers).json()
        assert [(st["step_number"], st["status"]) for st in detail["steps"]] == [(1, "COMPLETED"), (3, "COMPLETED")]

        stats = client.get(f"/v1/workflows/{w['id']}/stats", headers=headers).json()
        assert stats["totals"] == {"COMPLETED": 1}
        assert stats["lastExecutedAt"] is not None

    def test_approval_parks_then_resumes(self, client, headers) -> None:
        w = workflow(client, headers)
        run = execute(client, headers, w["id"])
        assert run["status"] == "WAITING"

        req = approval_for(client, headers, run["executionId"])
        assert req["approver_ids"] == ["u1"]
        assert req["custom_fields"]["workflowExecutionId"] == run["executionId"]
        assert client.get("/v1/approvals/pending", headers=headers).json()["total"] == 1

        r = client.post(f"/v1/approvals/{req['id']}/approve", json={"comments": "ok"}, headers=headers)
        assert r.json()["status"] == "APPROVED"
        detail = client.get(f"/v1/executions/{run['executionId']}", headers=headers).json()
        assert detail["status"] == "COMPLETED"
        assert [st["status"] for st in detail["steps"]] == ["COMPLETED"] * 3

        r = client.post(f"/v1/approvals/{req['id']}/approve", json={}, headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Approval request already decided"

    def test_only_approvers_decide(self, client, headers) -> None:
        w = workflow(client, headers)
        run = execute(client, headers, w["id"], approver_ids=["manager"])
        req = approval_for(client, headers, run["executionId"])
        r = client.post(f"/v1/approvals/{req['id']}/approve", json={}, headers=headers)
        assert r.status_code == 403
        assert r.json()["detail"] == "User is not an approver"

        boss = {"X-Tenant-Id": "t1", "X-User-Id": "manager"}
        r = client.post(f"/v1/approvals/{req['id']}/delegate", json={"delegate_to_user_id": "u1"}, headers=boss)
        assert r.json()["approver_ids"] == ["manager", "u1"]
        assert client.post(f"/v1/approvals/{req['id']}/approve", json={}, headers=headers).status_code == 200

    def test_reject_fails_execution_and_retry_reruns(self, client, headers) -> None:
        w = workflow(client, headers)
        run = execute(client, headers, w["id"])
        req = approval_for(client, headers, run["executionId"])
        r = client.post(f"/v1/approvals/{req['id']}/reject", json={"reason": "Over limit"}, headers=headers)
        assert r.json()["status"] == "REJECTED"

        detail = client.get(f"/v1/executions/{run['executionId']}", headers=headers).json()
        assert detail["status"] == "FAILED"
        assert detail["error_message"] == "Over limit"

        r = client.post(f"/v1/executions/{run['executionId']}/retry", json={"from_step_number": 2}, headers=headers)
        assert r.json()["status"] == "WAITING"
        logs = client.get(f"/v1/executions/{run['executionId']}/logs", headers=headers).json()
        assert [(entry["step_number"], entry["retry_count"]) for entry in logs] == [(1, 0), (2, 1)]

        assert client.get("/v1/approvals/stats", headers=headers).json() == {
            "total": 2, "pending": 1, "approved": 0, "rejected": 1}

    def test_cancel_and_retry_rules(self, client, headers) -> None:
        w = workflow(client, headers)
        waiting = execute(client, headers, w["id"])["executionId"]
        r = client.post(f"/v1/executions/{waiting}/retry", json={}, headers=headers)
        assert r.status_code == 400

        r = client.post(f"/v1/executions/{waiting}/cancel", json={"reason": "Duplicate"}, headers=headers)
        assert r.json()["status"] == "CANCELLED"
        r = client.post(f"/v1/executions/{waiting}/cancel", json={}, headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Execution cannot be cancelled"

    def test_retry_closes_earlier_approval(self, client, headers) -> None:
        w = workflow(client, headers)
        eid = execute(client, headers, w["id"])["executionId"]
        first = approval_for(client, headers, eid)
        client.post(f"/v1/executions/{eid}/cancel", json={"reason": "Wrong customer"}, headers=headers)
        assert client.get(f"/v1/approvals/{first['id']}", headers=headers).json()["status"] == "CANCELLED"

        r = client.post(f"/v1/executions/{eid}/retry", json={}, headers=headers)
        assert r.json()["status"] == "WAITING"
        second = approval_for(client, headers, eid)
        assert second["id"] != first["id"]

        r = client.post(f"/v1/approvals/{first['id']}/approve", json={}, headers=headers)
        assert r.status_code == 400
        assert r.json()["detail"] == "Approval request already decided"
        assert client.get(f"/v1/executions/{eid}", headers=headers).json()["status"] == "WAITING"

        client.post(f"/v1/approvals/{second['id']}/approve", json={}, headers=headers)
        assert client.get(f"/v1/executions/{eid}", headers=headers).json()["status"] == "COMPLETED"

    def test_unknown_execution(self, client, headers) -> None:
        r = client.get("/v1/executions/999", headers=headers)
        assert r.status_code == 404
