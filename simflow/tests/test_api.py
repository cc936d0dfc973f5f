import uuid

import pytest
from fastapi.testclient import TestClient

from simflow.db.session import get_db, get_session_factory
from simflow.main import create_app

MANAGER = {"X-User-Id": "mgr-1", "X-User-Name": "Maria Manager", "X-User-Role": "Manager"}
ADMIN = {"X-User-Id": "adm-1", "X-User-Name": "Ada Admin", "X-User-Role": "Admin"}
ENGINEER = {"X-User-Id": "eng-1", "X-User-Name": "Erik Engineer", "X-User-Role": "Engineer"}
END_USER = {"X-User-Id": "usr-1", "X-User-Name": "Uma User", "X-User-Role": "End-User"}

API = "/api/v1"


@pytest.fixture
def client(session_factory):
    app = create_app()

    def _db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    with TestClient(app) as c:
        yield c


def _create_project(client, name="Frontal crash", total_hours=100, headers=MANAGER, **extra):
    r = client.post(f"{API}/projects", json={"name": name, "total_hours": total_hours, **extra}, headers=headers)
    assert r.status_code == 201, r.text
    return r.json()


def test_health(client):
    r = client.get(f"{API}/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"
    assert "X-Request-Id" in r.headers


def test_request_id_is_echoed(client):
    r = client.get(f"{API}/health", headers={"X-Request-Id": "abc-123"})
    assert r.headers["X-Request-Id"] == "abc-123"


def test_missing_identity_is_401(client):
    assert client.get(f"{API}/projects").status_code == 401
    bad = {**MANAGER, "X-User-Role": "Janitor"}
    assert client.get(f"{API}/projects", headers=bad).status_code == 401


def test_role_gates(client):
    r = client.post(f"{API}/projects", json={"name": "x", "total_hours": 1}, headers=ENGINEER)
    assert r.status_code == 403
    r = client.get(f"{API}/admin/jobs", headers=MANAGER)
    assert r.status_code == 403


def test_create_and_read_project(client):
    p = _create_project(client, category="Safety")

    assert p["status"] == "Active"
    assert p["availableHours"] == 100
    assert p["code"].endswith(p["createdAtIso"][:4])
    assert "On Hold" in p["validNextStatuses"]

    r = client.get(f"{API}/projects/{p['projectId']}", headers=END_USER)
    assert r.status_code == 200
    assert r.json()["name"] == "Frontal crash"

    listing = client.get(f"{API}/projects", params={"status": "Active"}, headers=END_USER).json()
    assert listing["total"] == 1


def test_create_project_validation(client):
    r = client.post(f"{API}/projects", json={"name": "x", "total_hours": -1}, headers=MANAGER)
    assert r.status_code == 422
    r = client.post(f"{API}/projects", json={"name": "x", "total_hours": 1, "bogus": 1}, headers=MANAGER)
    assert r.status_code == 422


def test_unknown_project_is_404(client):
    r = client.get(f"{API}/projects/{uuid.uuid4()}", headers=MANAGER)
    assert r.status_code == 404


def test_transition_and_history(client):
    p = _create_project(client)
    pid = p["projectId"]

    r = client.post(f"{API}/projects/{pid}/transition", json={"to_status": "On Hold"}, headers=MANAGER)
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "ReasonRequired"

    r = client.post(
        f"{API}/projects/{pid}/transition",
        json={"to_status": "On Hold", "reason": "Waiting on CAD"},
        headers=MANAGER,
    )
    assert r.status_code == 200
    assert r.json()["status"] == "On Hold"

    r = client.post(f"{API}/projects/{pid}/transition", json={"to_status": "Pending"}, headers=MANAGER)
    assert r.status_code == 400
    detail = r.json()["detail"]
    assert detail["code"] == "InvalidTransition"
    assert detail["details"]["from_status"] == "On Hold"

    entries = client.get(f"{API}/projects/{pid}/history", headers=END_USER).json()["entries"]
    assert [(e["fromStatus"], e["toStatus"]) for e in entries] == [(None, "Active"), ("Active", "On Hold")]


def test_stale_transition_is_409(client):
    pid = _create_project(client)["projectId"]
    client.post(f"{API}/projects/{pid}/transition", json={"to_status": "Completed"}, headers=MANAGER)

    r = client.post(
        f"{API}/projects/{pid}/transition",
        json={"to_status": "Archived", "expected_status": "Active"},
        headers=MANAGER,
    )

    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "StaleState"


def test_hours_endpoints(client):
    src = _create_project(client, name="Source", total_hours=100)
    dst = _create_project(client, name="Target", total_hours=10)
    sid = src["projectId"]

    r = client.post(f"{API}/projects/{sid}/hours/allocate", json={"hours": 40}, headers=MANAGER)
    assert r.status_code == 200
    assert r.json()["project"]["usedHours"] == 40
    assert r.json()["transaction"]["balanceAfter"] == 40

    r = client.post(f"{API}/projects/{sid}/hours/allocate", json={"hours": 70}, headers=MANAGER)
    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "InsufficientBudget"

    r = client.post(f"{API}/projects/{sid}/hours/adjust", json={"hours": 0}, headers=MANAGER)
    assert r.status_code == 200
    assert r.json()["transaction"] is None

    r = client.post(f"{API}/projects/{sid}/hours/extend", json={"hours": 20, "reason": "CR-7"}, headers=MANAGER)
    assert r.json()["project"]["totalHours"] == 120

    r = client.post(
        f"{API}/projects/{sid}/hours/rollover",
        json={"target_project_id": dst["projectId"], "hours": 30},
        headers=MANAGER,
    )
    assert r.status_code == 200
    body = r.json()
    assert body["source"]["totalHours"] == 90
    assert body["target"]["totalHours"] == 40
    assert [t["budgetDelta"] for t in body["transactions"]] == [-30, 30]

    ledger = client.get(f"{API}/projects/{sid}/hours", headers=END_USER).json()
    assert ledger["balanced"] is True
    assert [t["seq"] for t in ledger["transactions"]] == [1, 2, 3]

    r = client.post(f"{API}/projects/{sid}/hours/allocate", json={"hours": 5}, headers=ENGINEER)
    assert r.status_code == 403


def test_request_flow_end_to_end(client):
    p = _create_project(client, total_hours=50)

    r = client.post(
        f"{API}/requests",
        json={"project_id": p["projectId"], "title": "Pole impact", "description": "FMVSS 214", "vendor": "ACME"},
        headers=END_USER,
    )
    assert r.status_code == 201, r.text
    rid = r.json()["requestId"]

    for status in ("Feasibility Review", "Resource Allocation"):
        r = client.post(f"{API}/requests/{rid}/status", json={"to_status": status}, headers=MANAGER)
        assert r.status_code == 200, r.text

    r = client.post(f"{API}/requests/{rid}/status", json={"to_status": "Engineering Review"}, headers=MANAGER)
    assert r.status_code == 400

    r = client.post(
        f"{API}/requests/{rid}/assign",
        json={"engineer_id": "eng-1", "engineer_name": "Erik Engineer", "estimated_hours": 20},
        headers=ENGINEER,
    )
    assert r.status_code == 403

    r = client.post(
        f"{API}/requests/{rid}/assign",
        json={"engineer_id": "eng-1", "engineer_name": "Erik Engineer", "estimated_hours": 20},
        headers=MANAGER,
    )
    assert r.status_code == 200
    assert r.json()["allocatedHours"] == 20

    r = client.post(
        f"{API}/requests/{rid}/discussions",
        json={"reason": "Need more runs", "suggested_hours": 30},
        headers=ENGINEER,
    )
    assert r.status_code == 201, r.text
    did = r.json()["discussionId"]

    r = client.post(f"{API}/requests/{rid}/discussions", json={"reason": "again"}, headers=ENGINEER)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "DiscussionAlreadyPending"

    r = client.post(f"{API}/discussions/{did}/review", json={"action": "approve"}, headers=MANAGER)
    assert r.status_code == 200
    assert r.json()["status"] == "Approved"

    r = client.post(f"{API}/discussions/{did}/review", json={"action": "deny"}, headers=MANAGER)
    assert r.status_code == 409
    assert r.json()["detail"]["code"] == "AlreadyReviewed"

    r = client.post(f"{API}/requests/{rid}/status", json={"to_status": "In Progress"}, headers=ENGINEER)
    assert r.status_code == 200
    r = client.post(f"{API}/requests/{rid}/complete", json={"actual_hours": 28}, headers=ENGINEER)
    assert r.status_code == 200
    assert r.json()["status"] == "Completed"

    project = client.get(f"{API}/projects/{p['projectId']}", headers=MANAGER).json()
    assert project["usedHours"] == 28

    activity = client.get(f"{API}/requests/{rid}/activity", headers=MANAGER).json()["entries"]
    assert activity[0]["action"] == "created"
    assert activity[-1]["action"] == "completed"


def test_request_on_suspended_project_is_rejected(client):
    p = _create_project(client, headers=ADMIN)
    client.post(
        f"{API}/projects/{p['projectId']}/transition",
        json={"to_status": "Suspended", "reason": "Audit"},
        headers=MANAGER,
    )

    r = client.post(
        f"{API}/requests",
        json={"project_id": p["projectId"], "title": "t", "description": "d", "vendor": "v"},
        headers=END_USER,
    )

    assert r.status_code == 400
    assert r.json()["detail"]["code"] == "ProjectNotAcceptingRequests"


def test_admin_runs_deadline_sweep(client):
    listing = client.get(f"{API}/admin/jobs", headers=ADMIN).json()
    assert "deadline_sweep" in [j["name"] for j in listing["jobs"]]

    r = client.post(f"{API}/admin/jobs/deadline_sweep/run", headers=ADMIN)
    assert r.status_code == 200
    assert r.json()["status"] == "success"
    assert r.json()["result"]["expired_count"] == 0

    assert client.post(f"{API}/admin/jobs/nope/run", headers=ADMIN).status_code == 404


class _DownSession:
    def execute(self, *a, **kw):
        from sqlalchemy.exc import OperationalError

        raise OperationalError("SELECT 1", {}, Exception("connection refused"))

    def close(self):
        pass


def test_database_outage_is_503(client):
    client.app.dependency_overrides[get_db] = lambda: _DownSession()

    r = client.get(f"{API}/health", headers={"X-Request-Id": "rid-9"})

    assert r.status_code == 503
    assert r.json()["detail"]["code"] == "DatabaseError"
    assert r.json()["detail"]["requestId"] == "rid-9"


def test_hours_with_unknown_request_is_404(client):
    pid = _create_project(client)["projectId"]

    r = client.post(
        f"{API}/projects/{pid}/hours/allocate",
        json={"hours": 5, "request_id": str(uuid.uuid4())},
        headers=MANAGER,
    )

    assert r.status_code == 404
    assert r.json()["detail"]["code"] == "NotFound"
    assert client.get(f"{API}/projects/{pid}", headers=MANAGER).json()["usedHours"] == 0


def test_manual_release_then_unassign_releases_once(client):
    pid = _create_project(client, total_hours=100)["projectId"]
    ids = []
    for title, hours in (("First", 20), ("Second", 50)):
        rid = client.post(
            f"{API}/requests",
            json={"project_id": pid, "title": title, "description": "d", "vendor": "ACME"},
            headers=END_USER,
        ).json()["requestId"]
        for status in ("Feasibility Review", "Resource Allocation"):
            client.post(f"{API}/requests/{rid}/status", json={"to_status": status}, headers=MANAGER)
        r = client.post(
            f"{API}/requests/{rid}/assign",
            json={"engineer_id": "eng-1", "engineer_name": "Erik Engineer", "estimated_hours": hours},
            headers=MANAGER,
        )
        assert r.status_code == 200, r.text
        ids.append(rid)

    r = client.post(
        f"{API}/projects/{pid}/hours/deallocate",
        json={"hours": 20, "request_id": ids[0]},
        headers=MANAGER,
    )
    assert r.status_code == 200, r.text
    r = client.post(f"{API}/requests/{ids[0]}/unassign", json={}, headers=MANAGER)
    assert r.status_code == 200, r.text

    assert client.get(f"{API}/projects/{pid}", headers=MANAGER).json()["usedHours"] == 50
