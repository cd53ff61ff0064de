"""
Project workspace management service.

Business logic behind ``/projects/<pid>/workspace/management``:
  - Lazy, idempotent workspace creation with default integrations
  - Read-only snapshot of all thirteen workspace sub-tables + summary + timeline
  - Generic create/update/delete of sub-entities through the entity registry
  - Dedicated handlers for integrations and the workspace summary

Ownership:
  Every entry point takes the acting ``owner_id`` and loads the project
  through ``get_scoped`` before touching the workspace. A project of a
  different owner is reported as not found.

Transactions:
  Every mutation validates its payload first (no I/O), then locks the
  workspace row and the target record with SELECT ... FOR UPDATE, applies
  the change and commits. Any exception rolls the session back and is
  re-raised unchanged.
"""

from __future__ import annotations

import logging

from sqlalchemy import select

from app.core.exceptions import ValidationError
from app.models import db, utcnow
from app.models.project import (
    DEFAULT_INTEGRATIONS,
    PROJECT_INTEGRATION_STATUSES,
    PROJECT_RISK_LEVELS,
    PROJECT_STATUSES,
    Project,
    ProjectIntegration,
    ProjectWorkspace,
)
from app.services.helpers.normalizers import (
    coerce_datetime,
    ensure_enum,
    normalize_keys,
    normalize_numeric,
    optional_string,
    parse_date_value,
    parse_number,
    require_string,
)
from app.services.helpers.scoped_queries import get_scoped
from app.services.workspace_registry import (
    ENTITY_CONFIG,
    WorkspaceEntity,
    normalize_entity_key,
    resolve_entity,
)

logger = logging.getLogger(__name__)


def _require_project_id(project_id):
    if not project_id:
        raise ValidationError("project_id is required.", details={"project_id": "required"})


# ═════════════════════════════════════════════════════════════════════════════
# Workspace bootstrap
# ═════════════════════════════════════════════════════════════════════════════


def ensure_workspace(owner_id: int, project_id: int) -> tuple[Project, ProjectWorkspace]:
    """Return (project, workspace), creating the workspace and default integrations if absent.

    Runs inside the caller's transaction and does not commit. The project is
    loaded inside the owner scope first, so a foreign project never gets a
    workspace. The workspace row is read with FOR UPDATE so concurrent
    first-access requests serialise on it.

    Raises:
        NotFoundError: Project does not exist or belongs to another owner.
    """
    project = get_scoped(Project, project_id, owner_id=owner_id, label="Project")

    workspace = db.session.execute(
        select(ProjectWorkspace)
        .where(ProjectWorkspace.project_id == project_id)
        .with_for_update()
    ).scalar_one_or_none()
    if workspace is None:
        workspace = ProjectWorkspace(
            project_id=project_id,
            status="planning",
            progress_percent=0,
            risk_level="low",
            next_milestone=None,
            notes=None,
        )
        db.session.add(workspace)
        db.session.flush()
        logger.info("Workspace created", extra={"project_id": project_id, "workspace_id": workspace.id})

    existing = set(
        db.session.execute(
            select(ProjectIntegration.provider)
            .where(ProjectIntegration.project_id == project_id)
            .with_for_update()
        ).scalars().all()
    )
    for integration in DEFAULT_INTEGRATIONS:
        if integration["provider"] in existing:
            continue
        db.session.add(ProjectIntegration(
            project_id=project_id,
            provider=integration["provider"],
            status="connected",
            meta=dict(integration["metadata"]),
        ))
    db.session.flush()
    return project, workspace


# ═════════════════════════════════════════════════════════════════════════════
# Snapshot
# ═════════════════════════════════════════════════════════════════════════════


def build_summary(project, workspace, budgets, tasks, time_entries, objectives, invites, meetings, now=None) -> dict:
    """Aggregate headline numbers for the workspace header."""
    now = now or utcnow()

    upcoming = []
    for meeting in meetings:
        scheduled = coerce_datetime(meeting.get("scheduled_at"))
        if scheduled and scheduled >= now:
            upcoming.append((scheduled, meeting))
    upcoming.sort(key=lambda pair: pair[0])
    next_meeting = upcoming[0][1] if upcoming else None

    return {
        "project_id": project["id"],
        "project_title": project["title"],
        "workspace_id": workspace["id"],
        "budget": {
            "planned": sum(item.get("planned_amount") or 0 for item in budgets),
            "actual": sum(item.get("actual_amount") or 0 for item in budgets),
        },
        "tasks": {
            "total": len(tasks),
            "completed": sum(1 for t in tasks if t.get("status") == "completed"),
            "active": sum(1 for t in tasks if t.get("status") not in ("completed", "cancelled")),
        },
        "time": {
            "total_hours": sum(entry.get("hours") or 0 for entry in time_entries),
        },
        "objectives": {
            "total": len(objectives),
            "at_risk": sum(1 for o in objectives if "risk" in (o.get("status") or "")),
        },
        "collaboration": {
            "invites_sent": len(invites),
            "invites_accepted": sum(1 for i in invites if i.get("status") == "accepted"),
        },
        "next_meeting": (
            {
                "id": next_meeting["id"],
                "title": next_meeting["title"],
                "scheduled_at": next_meeting["scheduled_at"],
                "organizer": next_meeting.get("organizer_name"),
            }
            if next_meeting
            else None
        ),
    }


def build_timeline(tasks, events) -> dict | None:
    """Earliest/latest of task start/due and event start/end, or None when no dates."""
    dates = []
    for task in tasks:
        dates.extend((task.get("start_date"), task.get("due_date")))
    for event in events:
        dates.extend((event.get("start_at"), event.get("end_at")))

    ordered = sorted(d for d in (coerce_datetime(value) for value in dates) if d is not None)
    if not ordered:
        return None
    return {"start_date": ordered[0].isoformat(), "end_date": ordered[-1].isoformat()}


def _load_entity_rows(entity: WorkspaceEntity, workspace_id: int) -> list[dict]:
    config = ENTITY_CONFIG[entity]
    stmt = (
        select(config.model)
        .where(config.model.workspace_id == workspace_id)
        .order_by(*config.order_by(), config.model.id)
    )
    rows = db.session.execute(stmt).scalars().all()
    return [normalize_numeric(row.to_dict(), config.numeric_fields) for row in rows]


def _serialize_snapshot(project: Project, workspace: ProjectWorkspace) -> dict:
    sections = {
        ENTITY_CONFIG[entity].snapshot_key: _load_entity_rows(entity, workspace.id)
        for entity in WorkspaceEntity
    }
    integrations = db.session.execute(
        select(ProjectIntegration)
        .where(ProjectIntegration.project_id == project.id)
        .order_by(ProjectIntegration.provider)
    ).scalars().all()

    project_dict = project.to_dict()
    workspace_dict = workspace.to_dict()
    summary = build_summary(
        project_dict,
        workspace_dict,
        budgets=sections["budgets"],
        tasks=sections["tasks"],
        time_entries=sections["time_entries"],
        objectives=sections["objectives"],
        invites=sections["invites"],
        meetings=sections["meetings"],
    )
    return {
        "project": project_dict,
        "workspace": workspace_dict,
        "summary": summary,
        "timeline": build_timeline(sections["tasks"], sections["calendar_events"]),
        **sections,
        "integrations": [i.to_dict() for i in integrations],
    }


def get_project_workspace_management(owner_id: int, project_id: int) -> dict:
    """Full workspace snapshot for one project.

    Creates the workspace on first access (the only write this performs).

    Returns:
        Dict with project, workspace, summary, timeline, one list per
        sub-entity (budgets, objectives, tasks, meetings, calendar_events,
        role_assignments, submissions, invites, hr_records, time_entries,
        workspace_objects, documents, chat_messages) and integrations.

    Raises:
        ValidationError: project_id missing.
        NotFoundError: Project does not exist or belongs to another owner.
    """
    _require_project_id(project_id)
    try:
        project, workspace = ensure_workspace(owner_id, project_id)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return _serialize_snapshot(project, workspace)


def list_workspace_projects(owner_id: int) -> list[dict]:
    """The owner's projects with their workspace headline fields, most recently updated first."""
    stmt = (
        Project.select_for_owner(owner_id)
        .add_columns(ProjectWorkspace)
        .outerjoin(ProjectWorkspace, ProjectWorkspace.project_id == Project.id)
        .order_by(Project.updated_at.desc(), Project.created_at.desc(), Project.id.desc())
    )
    result = []
    for project, workspace in db.session.execute(stmt).all():
        result.append({
            "id": project.id,
            "title": project.title,
            "status": project.status,
            "owner_id": project.owner_id,
            "workspace_id": workspace.id if workspace else None,
            "progress_percent": float(workspace.progress_percent) if workspace else None,
            "risk_level": workspace.risk_level if workspace else None,
        })
    return result


# ═════════════════════════════════════════════════════════════════════════════
# Generic entity mutation
# ═════════════════════════════════════════════════════════════════════════════


def mutate_workspace_entity(
    owner_id: int,
    project_id: int,
    entity,
    payload: dict | None = None,
    record_id: int | None = None,
    is_update: bool = False,
    is_delete: bool = False,
):
    """Create, update or delete one workspace sub-entity.

    Order of operations: resolve entity key → validate payload → lock
    workspace → lock target record → write → commit. Steps before the
    workspace lock perform no I/O.

    Args:
        owner_id: Owner scope the project must belong to.
        project_id: Owning project.
        entity: WorkspaceEntity or any accepted alias string.
        payload: Field values (snake_case or camelCase keys).
        record_id: Target row for update/delete.
        is_update / is_delete: Operation selector; neither means create.

    Returns:
        Serialised record, or ``{"success": True}`` for delete.

    Raises:
        ValidationError: Unsupported entity, bad payload, missing record_id.
        NotFoundError: Project not found for the owner, or record not found
            within the workspace.
    """
    kind = resolve_entity(entity)
    _require_project_id(project_id)
    config = ENTITY_CONFIG[kind]

    updates = None
    if is_delete:
        if not record_id:
            raise ValidationError("record_id is required for delete operations.")
    else:
        if is_update and not record_id:
            raise ValidationError("record_id is required for update operations.")
        updates = config.prepare(payload or {}, is_update=is_update)

    try:
        _, workspace = ensure_workspace(owner_id, project_id)

        if is_delete:
            existing = get_scoped(config.model, record_id, workspace_id=workspace.id, lock=True, label=config.label)
            db.session.delete(existing)
            db.session.commit()
            logger.info(
                "Workspace entity deleted",
                extra={"project_id": project_id, "entity": kind.value, "record_id": record_id},
            )
            return {"success": True}

        if is_update:
            record = get_scoped(config.model, record_id, workspace_id=workspace.id, lock=True, label=config.label)
            for field, value in updates.items():
                setattr(record, field, value)
        else:
            record = config.model(workspace_id=workspace.id, **updates)
            db.session.add(record)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info(
        "Workspace entity %s", "updated" if is_update else "created",
        extra={"project_id": project_id, "entity": kind.value, "record_id": record.id},
    )
    return normalize_numeric(record.to_dict(), config.numeric_fields)


def update_integration(owner_id: int, project_id: int, record_id: int, payload: dict | None = None) -> dict:
    """Update status / connected_at / metadata of one project integration."""
    _require_project_id(project_id)
    if not record_id:
        raise ValidationError("record_id is required.")

    data = normalize_keys(payload)
    updates = {}
    if "status" in data:
        updates["status"] = ensure_enum(data["status"], PROJECT_INTEGRATION_STATUSES, "status")
    if "connected_at" in data:
        updates["connected_at"] = parse_date_value(data["connected_at"], "connected_at")
    if "metadata" in data:
        updates["meta"] = data["metadata"]

    try:
        get_scoped(Project, project_id, owner_id=owner_id, label="Project")
        integration = get_scoped(
            ProjectIntegration, record_id, project_id=project_id, lock=True, label="Integration",
        )
        for field, value in updates.items():
            setattr(integration, field, value)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    logger.info("Integration updated", extra={"project_id": project_id, "integration_id": record_id})
    return integration.to_dict()


def update_workspace_summary(owner_id: int, project_id: int, payload: dict | None = None) -> dict:
    """Update project title/description and workspace headline fields; return the new snapshot."""
    _require_project_id(project_id)
    data = normalize_keys(payload)

    project_updates = {}
    if "title" in data:
        project_updates["title"] = require_string(data["title"], "title")
    if "description" in data:
        project_updates["description"] = optional_string(data["description"]) or ""

    workspace_updates = {}
    if "status" in data:
        workspace_updates["status"] = ensure_enum(data["status"], PROJECT_STATUSES, "status")
    if "progress_percent" in data:
        workspace_updates["progress_percent"] = parse_number(
            data["progress_percent"], "progress_percent", allow_null=False, min_value=0, max_value=100,
        )
    if "risk_level" in data:
        workspace_updates["risk_level"] = ensure_enum(data["risk_level"], PROJECT_RISK_LEVELS, "risk_level")
    if "next_milestone" in data:
        workspace_updates["next_milestone"] = optional_string(data["next_milestone"])
    if "next_milestone_due_at" in data:
        workspace_updates["next_milestone_due_at"] = parse_date_value(
            data["next_milestone_due_at"], "next_milestone_due_at",
        )
    if "notes" in data:
        workspace_updates["notes"] = optional_string(data["notes"])

    try:
        project, workspace = ensure_workspace(owner_id, project_id)
        for field, value in project_updates.items():
            setattr(project, field, value)
        for field, value in workspace_updates.items():
            setattr(workspace, field, value)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if project_updates or workspace_updates:
        logger.info(
            "Workspace summary updated",
            extra={"project_id": project_id, "fields": sorted({**project_updates, **workspace_updates})},
        )
    return _serialize_snapshot(project, workspace)


# ── Public wrappers used by the blueprint ────────────────────────────────


def create_workspace_entity(owner_id, project_id, entity, payload=None):
    return mutate_workspace_entity(owner_id, project_id, entity, payload)


def update_workspace_entity(owner_id, project_id, entity, record_id, payload=None):
    """Route integrations/summary to their handlers; everything else through the registry."""
    key = normalize_entity_key(entity)
    if key == "integrations":
        return update_integration(owner_id, project_id, record_id, payload)
    if key == "summary":
        return update_workspace_summary(owner_id, project_id, payload)
    return mutate_workspace_entity(owner_id, project_id, entity, payload, record_id=record_id, is_update=True)


def delete_workspace_entity(owner_id, project_id, entity, record_id):
    return mutate_workspace_entity(owner_id, project_id, entity, {}, record_id=record_id, is_delete=True)
