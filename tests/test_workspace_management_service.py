"""
Workspace management service tests.

Covers:
    - Lazy, idempotent workspace creation with default integrations
    - Generic create / update / delete through the entity registry
    - Validation failures perform no writes (not even the lazy workspace)
    - Cross-workspace record access is reported as not found
    - Snapshot summary + timeline aggregation
    - Integration and summary handlers
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select

import app.services.workspace_management_service as svc
from app.core.exceptions import NotFoundError, ValidationError
from app.models import db as _db
from app.models.project import DEFAULT_INTEGRATIONS, Project, ProjectIntegration, ProjectWorkspace
from app.models.workspace import ProjectWorkspaceTask

OWNER_ID = 1
OTHER_OWNER_ID = 2


def _make_project(owner_id=1, title="Side project"):
    p = Project(owner_id=owner_id, title=title, description="")
    _db.session.add(p)
    _db.session.commit()
    return p


def _count(model):
    return _db.session.execute(select(func.count(model.id))).scalar()


def _iso(delta_hours):
    return (datetime.now(timezone.utc) + timedelta(hours=delta_hours)).isoformat()


# ═════════════════════════════════════════════════════════════════════════
# Bootstrap
# ═════════════════════════════════════════════════════════════════════════


class TestWorkspaceBootstrap:
    def test_first_access_creates_workspace_and_integrations(self, project):
        snapshot = svc.get_project_workspace_management(OWNER_ID, project.id)

        assert snapshot["workspace"]["status"] == "planning"
        assert snapshot["workspace"]["project_id"] == project.id
        assert _count(ProjectWorkspace) == 1
        providers = sorted(i["provider"] for i in snapshot["integrations"])
        assert providers == sorted(i["provider"] for i in DEFAULT_INTEGRATIONS)
        assert all(i["status"] == "connected" for i in snapshot["integrations"])

    def test_repeated_access_is_idempotent(self, project):
        svc.get_project_workspace_management(OWNER_ID, project.id)
        svc.get_project_workspace_management(OWNER_ID, project.id)

        assert _count(ProjectWorkspace) == 1
        assert _count(ProjectIntegration) == len(DEFAULT_INTEGRATIONS)

    def test_missing_default_integration_is_backfilled(self, project):
        svc.get_project_workspace_management(OWNER_ID, project.id)
        slack = _db.session.execute(
            select(ProjectIntegration).where(ProjectIntegration.provider == "slack")
        ).scalar_one()
        _db.session.delete(slack)
        _db.session.commit()

        snapshot = svc.get_project_workspace_management(OWNER_ID, project.id)
        assert "slack" in {i["provider"] for i in snapshot["integrations"]}

    def test_unknown_project(self):
        with pytest.raises(NotFoundError, match="Project not found."):
            svc.get_project_workspace_management(OWNER_ID, 9999)

    def test_project_id_required(self):
        with pytest.raises(ValidationError):
            svc.get_project_workspace_management(OWNER_ID, None)

    def test_snapshot_has_every_section(self, project):
        snapshot = svc.get_project_workspace_management(OWNER_ID, project.id)
        for key in (
            "project", "workspace", "summary", "timeline", "budgets", "objectives", "tasks",
            "meetings", "calendar_events", "role_assignments", "submissions", "invites",
            "hr_records", "time_entries", "workspace_objects", "documents", "chat_messages",
            "integrations",
        ):
            assert key in snapshot
        assert snapshot["timeline"] is None


# ═════════════════════════════════════════════════════════════════════════
# Generic mutations
# ═════════════════════════════════════════════════════════════════════════


class TestEntityMutations:
    def test_create_task_via_alias(self, project):
        record = svc.create_workspace_entity(OWNER_ID, project.id, "task", {"title": "Wireframes", "progressPercent": 25})

        assert record["title"] == "Wireframes"
        assert record["status"] == "planned"
        assert record["progress_percent"] == 25.0
        snapshot = svc.get_project_workspace_management(OWNER_ID, project.id)
        assert [t["id"] for t in snapshot["tasks"]] == [record["id"]]

    def test_unsupported_entity_writes_nothing(self, project):
        with pytest.raises(ValidationError, match="Unsupported workspace entity."):
            svc.create_workspace_entity(OWNER_ID, project.id, "widgets", {"title": "x"})
        assert _count(ProjectWorkspace) == 0
        assert _count(ProjectIntegration) == 0

    def test_invalid_payload_writes_nothing(self, project):
        with pytest.raises(ValidationError, match="status must be one of"):
            svc.create_workspace_entity(OWNER_ID, project.id, "tasks", {"title": "x", "status": "someday"})
        assert _count(ProjectWorkspace) == 0
        assert _count(ProjectWorkspaceTask) == 0

    def test_create_for_unknown_project(self):
        with pytest.raises(NotFoundError):
            svc.create_workspace_entity(OWNER_ID, 4242, "tasks", {"title": "x"})

    def test_update_task_partial(self, project):
        record = svc.create_workspace_entity(OWNER_ID, project.id, "tasks", {"title": "Wireframes"})
        updated = svc.update_workspace_entity(OWNER_ID, project.id, "tasks", record["id"], {"status": "in_progress"})

        assert updated["status"] == "in_progress"
        assert updated["title"] == "Wireframes"

    def test_update_requires_record_id(self, project):
        with pytest.raises(ValidationError, match="record_id is required"):
            svc.mutate_workspace_entity(OWNER_ID, project.id, "tasks", {"status": "blocked"}, is_update=True)

    def test_update_record_of_other_workspace_is_not_found(self, project):
        other = _make_project(owner_id=OTHER_OWNER_ID, title="Other")
        record = svc.create_workspace_entity(OTHER_OWNER_ID, other.id, "tasks", {"title": "Theirs"})

        with pytest.raises(NotFoundError, match="Task not found."):
            svc.update_workspace_entity(OWNER_ID, project.id, "tasks", record["id"], {"title": "Mine now"})

        task = _db.session.get(ProjectWorkspaceTask, record["id"])
        _db.session.refresh(task)
        assert task.title == "Theirs"

    def test_delete_task(self, project):
        record = svc.create_workspace_entity(OWNER_ID, project.id, "tasks", {"title": "Wireframes"})
        assert svc.delete_workspace_entity(OWNER_ID, project.id, "tasks", record["id"]) == {"success": True}
        assert _count(ProjectWorkspaceTask) == 0

    def test_delete_missing_record_leaves_table_unchanged(self, project):
        svc.create_workspace_entity(OWNER_ID, project.id, "tasks", {"title": "Keep me"})

        with pytest.raises(NotFoundError):
            svc.delete_workspace_entity(OWNER_ID, project.id, "tasks", 9999)
        assert _count(ProjectWorkspaceTask) == 1

    def test_budget_numbers_are_floats_in_snapshot(self, project):
        svc.create_workspace_entity(OWNER_ID, project.id, "budget-lines", {
            "category": "Design", "label": "Logo", "plannedAmount": 1200, "actualAmount": "300.50",
        })
        budgets = svc.get_project_workspace_management(OWNER_ID, project.id)["budgets"]
        assert budgets[0]["planned_amount"] == 1200.0
        assert budgets[0]["actual_amount"] == 300.5
        assert isinstance(budgets[0]["planned_amount"], float)


# ═════════════════════════════════════════════════════════════════════════
# Summary & timeline
# ═════════════════════════════════════════════════════════════════════════


class TestSummary:
    def test_summary_aggregates(self, project):
        pid = project.id
        svc.create_workspace_entity(OWNER_ID, pid, "budget-lines", {"category": "A", "label": "a", "plannedAmount": 100, "actualAmount": 40})
        svc.create_workspace_entity(OWNER_ID, pid, "budget-lines", {"category": "B", "label": "b", "plannedAmount": 50, "actualAmount": 10})
        svc.create_workspace_entity(OWNER_ID, pid, "tasks", {"title": "done", "status": "completed"})
        svc.create_workspace_entity(OWNER_ID, pid, "tasks", {"title": "doing", "status": "in_progress"})
        svc.create_workspace_entity(OWNER_ID, pid, "tasks", {"title": "dropped", "status": "cancelled"})
        svc.create_workspace_entity(OWNER_ID, pid, "time-entries", {"memberName": "Sam", "entryDate": "2024-06-03", "hours": 2.5})
        svc.create_workspace_entity(OWNER_ID, pid, "time-entries", {"memberName": "Sam", "entryDate": "2024-06-04", "hours": 4})
        svc.create_workspace_entity(OWNER_ID, pid, "objectives", {"title": "Launch", "status": "at_risk"})
        svc.create_workspace_entity(OWNER_ID, pid, "invites", {"email": "a@example.com", "role": "Viewer", "status": "accepted"})
        svc.create_workspace_entity(OWNER_ID, pid, "invites", {"email": "b@example.com", "role": "Viewer"})

        summary = svc.get_project_workspace_management(OWNER_ID, pid)["summary"]

        assert summary["budget"] == {"planned": 150.0, "actual": 50.0}
        assert summary["tasks"] == {"total": 3, "completed": 1, "active": 1}
        assert summary["time"]["total_hours"] == 6.5
        assert summary["objectives"] == {"total": 1, "at_risk": 1}
        assert summary["collaboration"] == {"invites_sent": 2, "invites_accepted": 1}
        assert summary["next_meeting"] is None

    def test_next_meeting_is_earliest_future_meeting(self, project):
        pid = project.id
        svc.create_workspace_entity(OWNER_ID, pid, "meetings", {"title": "Past", "scheduledAt": _iso(-5)})
        later = svc.create_workspace_entity(OWNER_ID, pid, "meetings", {"title": "Later", "scheduledAt": _iso(48)})
        soon = svc.create_workspace_entity(OWNER_ID, pid, "meetings", {"title": "Soon", "scheduledAt": _iso(2), "organizerName": "Dana"})

        summary = svc.get_project_workspace_management(OWNER_ID, pid)["summary"]
        assert summary["next_meeting"]["id"] == soon["id"]
        assert summary["next_meeting"]["organizer"] == "Dana"
        assert summary["next_meeting"]["id"] != later["id"]

    def test_timeline_spans_tasks_and_events(self, project):
        pid = project.id
        svc.create_workspace_entity(OWNER_ID, pid, "tasks", {
            "title": "Build", "startDate": "2024-03-01T00:00:00Z", "dueDate": "2024-03-20T00:00:00Z",
        })
        svc.create_workspace_entity(OWNER_ID, pid, "calendar-events", {
            "title": "Launch", "startAt": "2024-04-01T09:00:00Z", "endAt": "2024-04-02T09:00:00Z",
        })

        timeline = svc.get_project_workspace_management(OWNER_ID, pid)["timeline"]
        assert timeline["start_date"].startswith("2024-03-01T00:00:00")
        assert timeline["end_date"].startswith("2024-04-02T09:00:00")

    def test_build_timeline_without_dates(self):
        assert svc.build_timeline([{"start_date": None}], []) is None


# ═════════════════════════════════════════════════════════════════════════
# Integrations & summary updates
# ═════════════════════════════════════════════════════════════════════════


class TestIntegrationAndSummaryUpdates:
    def test_update_integration_status(self, project):
        snapshot = svc.get_project_workspace_management(OWNER_ID, project.id)
        github = next(i for i in snapshot["integrations"] if i["provider"] == "github")

        updated = svc.update_workspace_entity(OWNER_ID, project.id, "integrations", github["id"], {
            "status": "disconnected", "metadata": {"repository": "acme/site"},
        })
        assert updated["status"] == "disconnected"
        assert updated["metadata"] == {"repository": "acme/site"}

    def test_update_integration_rejects_unknown_status(self, project):
        snapshot = svc.get_project_workspace_management(OWNER_ID, project.id)
        integration_id = snapshot["integrations"][0]["id"]
        with pytest.raises(ValidationError):
            svc.update_integration(OWNER_ID, project.id, integration_id, {"status": "flaky"})

    def test_update_integration_of_other_project(self, project):
        other = _make_project(owner_id=OTHER_OWNER_ID)
        theirs = svc.get_project_workspace_management(OTHER_OWNER_ID, other.id)["integrations"][0]
        with pytest.raises(NotFoundError):
            svc.update_integration(OWNER_ID, project.id, theirs["id"], {"status": "error"})

    def test_update_summary_returns_snapshot(self, project):
        snapshot = svc.update_workspace_summary(OWNER_ID, project.id, {
            "title": "Relaunch v2", "progressPercent": 45, "riskLevel": "High",
            "nextMilestone": "Sign-off", "nextMilestoneDueAt": "2024-07-01T00:00:00Z",
        })
        assert snapshot["project"]["title"] == "Relaunch v2"
        assert snapshot["workspace"]["progress_percent"] == 45.0
        assert snapshot["workspace"]["risk_level"] == "high"
        assert snapshot["workspace"]["next_milestone"] == "Sign-off"

    def test_update_summary_validation_writes_nothing(self, project):
        with pytest.raises(ValidationError):
            svc.update_workspace_summary(OWNER_ID, project.id, {"title": "New", "riskLevel": "extreme"})
        _db.session.refresh(project)
        assert project.title == "Website relaunch"
        assert _count(ProjectWorkspace) == 0

    def test_summary_via_generic_update(self, project):
        snapshot = svc.update_workspace_entity(OWNER_ID, project.id, "summary", None, {"status": "in_progress"})
        assert snapshot["workspace"]["status"] == "in_progress"


class TestProjectList:
    def test_lists_projects_with_workspace_fields(self, project):
        second = _make_project(title="Second")
        svc.get_project_workspace_management(OWNER_ID, second.id)

        items = {p["id"]: p for p in svc.list_workspace_projects(OWNER_ID)}
        assert items[project.id]["workspace_id"] is None
        assert items[second.id]["workspace_id"] is not None
        assert items[second.id]["progress_percent"] == 0.0
        assert items[second.id]["risk_level"] == "low"

    def test_lists_only_the_owners_projects(self, project):
        other = _make_project(owner_id=OTHER_OWNER_ID, title="Other")

        assert [p["id"] for p in svc.list_workspace_projects(OWNER_ID)] == [project.id]
        assert [p["id"] for p in svc.list_workspace_projects(OTHER_OWNER_ID)] == [other.id]


# ═════════════════════════════════════════════════════════════════════════
# Ownership
# ═════════════════════════════════════════════════════════════════════════


class TestOwnership:
    def test_snapshot_of_foreign_project_is_not_found(self, project):
        with pytest.raises(NotFoundError, match="Project not found."):
            svc.get_project_workspace_management(OTHER_OWNER_ID, project.id)
        assert _count(ProjectWorkspace) == 0
        assert _count(ProjectIntegration) == 0

    def test_create_in_foreign_project_writes_nothing(self, project):
        with pytest.raises(NotFoundError):
            svc.create_workspace_entity(OTHER_OWNER_ID, project.id, "tasks", {"title": "Intruder"})
        assert _count(ProjectWorkspace) == 0
        assert _count(ProjectWorkspaceTask) == 0

    def test_update_and_delete_in_foreign_project(self, project):
        record = svc.create_workspace_entity(OWNER_ID, project.id, "tasks", {"title": "Mine"})

        with pytest.raises(NotFoundError):
            svc.update_workspace_entity(OTHER_OWNER_ID, project.id, "tasks", record["id"], {"title": "Theirs"})
        with pytest.raises(NotFoundError):
            svc.delete_workspace_entity(OTHER_OWNER_ID, project.id, "tasks", record["id"])

        task = _db.session.get(ProjectWorkspaceTask, record["id"])
        _db.session.refresh(task)
        assert task.title == "Mine"

    def test_summary_and_integration_of_foreign_project(self, project):
        integration_id = svc.get_project_workspace_management(OWNER_ID, project.id)["integrations"][0]["id"]

        with pytest.raises(NotFoundError):
            svc.update_workspace_summary(OTHER_OWNER_ID, project.id, {"title": "Hijacked"})
        with pytest.raises(NotFoundError):
            svc.update_integration(OTHER_OWNER_ID, project.id, integration_id, {"status": "error"})

        _db.session.refresh(project)
        assert project.title == "Website relaunch"
