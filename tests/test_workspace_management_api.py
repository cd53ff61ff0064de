"""
Workspace management API tests.

Exercises /api/v1/projects/<pid>/workspace/management end to end:
status codes, error envelope, alias routing and the identity/owner gate.
"""

from app.models import db as _db
from app.models.project import Project, ProjectWorkspace
from app.models.workspace import ProjectWorkspaceTask

BASE = "/api/v1/projects"
MANAGER = {"X-User-Id": "1", "X-User-Roles": "project_manager"}
VIEWER = {"X-User-Id": "1"}
FOREIGN_MANAGER = {"X-User-Id": "999", "X-User-Roles": "project_manager"}
ADMIN = {"X-User-Id": "50", "X-User-Roles": "admin"}


def _url(pid, suffix=""):
    return f"{BASE}/{pid}/workspace/management{suffix}"


def test_get_snapshot_creates_workspace(client, project):
    res = client.get(_url(project.id), headers=VIEWER)
    assert res.status_code == 200
    body = res.get_json()
    assert body["project"]["id"] == project.id
    assert len(body["integrations"]) == 3


def test_get_snapshot_unknown_project(client):
    res = client.get(_url(9999), headers=VIEWER)
    assert res.status_code == 404
    assert res.get_json()["code"] == "ERR_NOT_FOUND"


def test_list_projects(client, project):
    res = client.get(f"{BASE}/workspace/management", headers=VIEWER)
    assert res.status_code == 200
    body = res.get_json()
    assert body["total"] == 1
    assert body["items"][0]["title"] == "Website relaunch"


def test_create_update_delete_task(client, project):
    res = client.post(_url(project.id, "/tasks"), json={"title": "Wireframes", "priority": "High"}, headers=MANAGER)
    assert res.status_code == 201
    task = res.get_json()
    assert task["priority"] == "high"

    res = client.put(_url(project.id, f"/task/{task['id']}"), json={"status": "blocked"}, headers=MANAGER)
    assert res.status_code == 200
    assert res.get_json()["status"] == "blocked"

    res = client.delete(_url(project.id, f"/tasks/{task['id']}"), headers=MANAGER)
    assert res.status_code == 204
    assert _db.session.get(ProjectWorkspaceTask, task["id"]) is None


def test_create_unsupported_entity(client, project):
    res = client.post(_url(project.id, "/widgets"), json={"title": "x"}, headers=MANAGER)
    assert res.status_code == 400
    body = res.get_json()
    assert body["error"] == "Unsupported workspace entity."
    assert body["code"] == "ERR_VALIDATION_INVALID"


def test_create_invalid_payload_returns_details(client, project):
    res = client.post(_url(project.id, "/tasks"), json={"title": "x", "status": "someday"}, headers=MANAGER)
    assert res.status_code == 400
    assert "status" in res.get_json()["details"]


def test_delete_missing_record(client, project):
    res = client.delete(_url(project.id, "/tasks/9999"), headers=MANAGER)
    assert res.status_code == 404


def test_update_summary(client, project):
    res = client.put(_url(project.id, "/summary"), json={"progressPercent": 60, "status": "in_progress"},
                     headers=MANAGER)
    assert res.status_code == 200
    workspace = res.get_json()["workspace"]
    assert workspace["progress_percent"] == 60.0
    assert workspace["status"] == "in_progress"


def test_update_integration_via_entity_route(client, project):
    snapshot = client.get(_url(project.id), headers=VIEWER).get_json()
    slack = next(i for i in snapshot["integrations"] if i["provider"] == "slack")

    res = client.put(_url(project.id, f"/integrations/{slack['id']}"), json={"status": "error"}, headers=MANAGER)
    assert res.status_code == 200
    assert res.get_json()["status"] == "error"


def test_non_json_body_rejected(client, project):
    res = client.post(_url(project.id, "/tasks"), data="title=x", content_type="text/plain", headers=MANAGER)
    assert res.status_code == 415


# ── Identity & ownership ─────────────────────────────────────────────────


def test_missing_identity_is_rejected(client, project):
    assert client.get(_url(project.id)).status_code == 403
    assert client.get(f"{BASE}/workspace/management").status_code == 403

    res = client.post(_url(project.id, "/tasks"), json={"title": "Anonymous"})
    assert res.status_code == 403
    assert res.get_json()["error"] == "Authentication required."
    assert _db.session.query(ProjectWorkspaceTask).count() == 0
    assert _db.session.query(ProjectWorkspace).count() == 0


def test_viewer_cannot_mutate(client, project):
    res = client.post(_url(project.id, "/tasks"), json={"title": "Wireframes"}, headers=VIEWER)
    assert res.status_code == 403
    assert res.get_json()["code"] == "ERR_FORBIDDEN"

    res = client.put(_url(project.id, "/summary"), json={"status": "in_progress"}, headers=VIEWER)
    assert res.status_code == 403


def test_foreign_owner_gets_not_found(client, project):
    task = client.post(_url(project.id, "/tasks"), json={"title": "Wireframes"}, headers=MANAGER).get_json()

    assert client.get(_url(project.id), headers=FOREIGN_MANAGER).status_code == 404
    res = client.delete(_url(project.id, f"/tasks/{task['id']}"), headers=FOREIGN_MANAGER)
    assert res.status_code == 404
    assert res.get_json()["error"] == "Project not found."
    res = client.put(_url(project.id, f"/tasks/{task['id']}"), json={"title": "Mine"}, headers=FOREIGN_MANAGER)
    assert res.status_code == 404
    res = client.post(_url(project.id, "/tasks"), json={"title": "Intruder"}, headers=FOREIGN_MANAGER)
    assert res.status_code == 404

    assert _db.session.get(ProjectWorkspaceTask, task["id"]) is not None
    assert _db.session.query(ProjectWorkspaceTask).count() == 1


def test_foreign_owner_project_list_is_empty(client, project):
    body = client.get(f"{BASE}/workspace/management", headers=FOREIGN_MANAGER).get_json()
    assert body == {"items": [], "total": 0}


def test_admin_may_act_for_owner(client, project):
    res = client.get(_url(project.id) + "?owner_id=1", headers=ADMIN)
    assert res.status_code == 200
    res = client.post(_url(project.id, "/tasks") + "?owner_id=1", json={"title": "Audit"}, headers=ADMIN)
    assert res.status_code == 201


def test_acting_for_other_owner_requires_admin(client, project):
    other = Project(owner_id=2, title="Other")
    _db.session.add(other)
    _db.session.commit()
    res = client.get(_url(other.id) + "?owner_id=2", headers=MANAGER)
    assert res.status_code == 403
