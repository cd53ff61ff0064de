"""
Workspace entity registry.

Maps each generic workspace sub-resource (``WorkspaceEntity``) to its ORM
model, a human label, a ``prepare`` validator and the decimal columns that
are coerced to floats in snapshots. ``resolve_entity`` turns the URL
segment (``budget-lines``, ``budget_line``, ``budgetLines`` ...) into an
enum member without touching the database.

``prepare(payload, is_update=False)`` returns a dict of model attributes.
On create every required field must be present; on update only the keys
present in the payload are validated and returned. JSON ``metadata`` is
returned under the ``meta`` attribute.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass
from typing import Callable

from app.core.exceptions import ValidationError
from app.models.workspace import (
    ProjectWorkspaceBudgetLine,
    ProjectWorkspaceCalendarEvent,
    ProjectWorkspaceChatMessage,
    ProjectWorkspaceDocument,
    ProjectWorkspaceHrRecord,
    ProjectWorkspaceInvite,
    ProjectWorkspaceMeeting,
    ProjectWorkspaceObject,
    ProjectWorkspaceObjective,
    ProjectWorkspaceRoleAssignment,
    ProjectWorkspaceSubmission,
    ProjectWorkspaceTask,
    ProjectWorkspaceTimeEntry,
    WORKSPACE_BUDGET_STATUSES,
    WORKSPACE_HR_STATUSES,
    WORKSPACE_INVITE_STATUSES,
    WORKSPACE_MEETING_STATUSES,
    WORKSPACE_OBJECT_TYPES,
    WORKSPACE_ROLE_STATUSES,
    WORKSPACE_SUBMISSION_STATUSES,
    WORKSPACE_TASK_PRIORITIES,
    WORKSPACE_TASK_STATUSES,
    WORKSPACE_TIME_ENTRY_STATUSES,
)
from app.services.helpers.normalizers import (
    ensure_enum,
    list_or_none,
    normalize_keys,
    optional_string,
    parse_boolean,
    parse_date_value,
    parse_number,
    require_string,
    snake_case,
)


class WorkspaceEntity(str, enum.Enum):
    BUDGET_LINES = "budget-lines"
    OBJECTIVES = "objectives"
    TASKS = "tasks"
    MEETINGS = "meetings"
    CALENDAR_EVENTS = "calendar-events"
    ROLE_ASSIGNMENTS = "role-assignments"
    SUBMISSIONS = "submissions"
    INVITES = "invites"
    HR_RECORDS = "hr-records"
    TIME_ENTRIES = "time-entries"
    OBJECTS = "objects"
    DOCUMENTS = "documents"
    CHAT_MESSAGES = "chat-messages"


@dataclass(frozen=True)
class EntityConfig:
    model: type
    label: str
    prepare: Callable[..., dict]
    numeric_fields: tuple = ()
    snapshot_key: str = ""
    order_by: Callable[[], list] = lambda: []


# ── Field helpers ────────────────────────────────────────────────────────


def _wanted(data, key, is_update):
    """Required fields are validated on create, and on update when supplied."""
    return key in data or not is_update


def _strings(data, out, *keys):
    for key in keys:
        if key in data:
            out[key] = optional_string(data[key])


def _dates(data, out, *keys):
    for key in keys:
        if key in data:
            out[key] = parse_date_value(data[key], key)


def _lists(data, out, *keys):
    for key in keys:
        if key in data:
            out[key] = list_or_none(data[key])


def _metadata(data, out):
    if "metadata" in data:
        out["meta"] = data["metadata"]


def _enum(data, out, key, allowed):
    if key in data:
        out[key] = ensure_enum(data[key], allowed, key)


def _percent(data, out, key, allow_null=True):
    if key in data:
        out[key] = parse_number(data[key], key, allow_null=allow_null, min_value=0, max_value=100)


# ── Per-entity validators ────────────────────────────────────────────────


def prepare_budget_line(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    for key in ("category", "label"):
        if _wanted(data, key, is_update):
            out[key] = require_string(data.get(key), key)
    _strings(data, out, "description", "owner_name", "notes")
    if "planned_amount" in data:
        out["planned_amount"] = parse_number(
            data["planned_amount"], "planned_amount", allow_null=False, min_value=0
        )
    if "actual_amount" in data:
        out["actual_amount"] = parse_number(data["actual_amount"], "actual_amount", min_value=0)
    if "currency" in data:
        out["currency"] = (optional_string(data["currency"]) or "USD").upper()
    _enum(data, out, "status", WORKSPACE_BUDGET_STATUSES)
    _metadata(data, out)
    return out


def prepare_objective(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    if _wanted(data, "title", is_update):
        out["title"] = require_string(data.get("title"), "title")
    _strings(data, out, "description", "owner_name", "metric")
    for key in ("target_value", "current_value"):
        if key in data:
            out[key] = parse_number(data[key], key, min_value=0)
    if "weight" in data:
        out["weight"] = parse_number(data["weight"], "weight", min_value=0, integer=True)
    if "status" in data:
        out["status"] = require_string(data["status"], "status")
    _dates(data, out, "due_date")
    _metadata(data, out)
    return out


def prepare_task(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    if _wanted(data, "title", is_update):
        out["title"] = require_string(data.get("title"), "title")
    _strings(data, out, "description", "lane", "assignee_name", "assignee_email")
    _enum(data, out, "status", WORKSPACE_TASK_STATUSES)
    _enum(data, out, "priority", WORKSPACE_TASK_PRIORITIES)
    _dates(data, out, "start_date", "due_date")
    for key in ("estimated_hours", "logged_hours"):
        if key in data:
            out[key] = parse_number(data[key], key, min_value=0)
    _percent(data, out, "progress_percent", allow_null=False)
    _lists(data, out, "dependencies", "tags")
    _metadata(data, out)
    return out


def prepare_meeting(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    if _wanted(data, "title", is_update):
        out["title"] = require_string(data.get("title"), "title")
    if _wanted(data, "scheduled_at", is_update):
        out["scheduled_at"] = parse_date_value(data.get("scheduled_at"), "scheduled_at", allow_null=False)
    _strings(data, out, "agenda", "location", "meeting_link", "organizer_name", "notes", "recurrence_rule")
    _enum(data, out, "status", WORKSPACE_MEETING_STATUSES)
    if "duration_minutes" in data:
        out["duration_minutes"] = parse_number(
            data["duration_minutes"], "duration_minutes", allow_null=False, min_value=15, integer=True
        )
    _lists(data, out, "follow_up_items")
    _metadata(data, out)
    return out


def prepare_calendar_event(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    if _wanted(data, "title", is_update):
        out["title"] = require_string(data.get("title"), "title")
    if _wanted(data, "start_at", is_update):
        out["start_at"] = parse_date_value(data.get("start_at"), "start_at", allow_null=False)
    _dates(data, out, "end_at")
    for key in ("event_type", "visibility"):
        if key in data:
            out[key] = require_string(data[key], key)
    _strings(data, out, "location", "description")
    _lists(data, out, "attendees")
    if "reminder_minutes_before" in data:
        out["reminder_minutes_before"] = parse_number(
            data["reminder_minutes_before"], "reminder_minutes_before", min_value=0, integer=True
        )
    _metadata(data, out)
    return out


def prepare_role_assignment(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    if _wanted(data, "role_name", is_update):
        out["role_name"] = require_string(data.get("role_name"), "role_name")
    _strings(data, out, "description", "member_name", "member_email")
    _enum(data, out, "status", WORKSPACE_ROLE_STATUSES)
    _percent(data, out, "allocation_percent")
    _lists(data, out, "permissions")
    _metadata(data, out)
    return out


def prepare_submission(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    if _wanted(data, "title", is_update):
        out["title"] = require_string(data.get("title"), "title")
    if "submission_type" in data:
        out["submission_type"] = require_string(data["submission_type"], "submission_type")
    _enum(data, out, "status", WORKSPACE_SUBMISSION_STATUSES)
    _dates(data, out, "due_at", "submitted_at")
    _strings(data, out, "submitted_by_name", "submitted_by_email", "asset_url", "notes")
    _metadata(data, out)
    return out


def prepare_invite(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    if _wanted(data, "email", is_update):
        out["email"] = require_string(data.get("email"), "email").lower()
    if _wanted(data, "role", is_update):
        out["role"] = require_string(data.get("role"), "role")
    _enum(data, out, "status", WORKSPACE_INVITE_STATUSES)
    _strings(data, out, "invited_by_name", "invited_by_email", "message")
    if "invited_at" in data:
        out["invited_at"] = parse_date_value(data["invited_at"], "invited_at", allow_null=False)
    _dates(data, out, "responded_at")
    _metadata(data, out)
    return out


def prepare_hr_record(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    if _wanted(data, "member_name", is_update):
        out["member_name"] = require_string(data.get("member_name"), "member_name")
    _strings(data, out, "role_title", "notes")
    if "employment_type" in data:
        out["employment_type"] = require_string(data["employment_type"], "employment_type")
    _enum(data, out, "status", WORKSPACE_HR_STATUSES)
    _dates(data, out, "start_date", "end_date")
    for key in ("hourly_rate", "weekly_capacity_hours"):
        if key in data:
            out[key] = parse_number(data[key], key, min_value=0)
    _percent(data, out, "allocation_percent")
    _metadata(data, out)
    return out


def prepare_time_entry(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    if _wanted(data, "member_name", is_update):
        out["member_name"] = require_string(data.get("member_name"), "member_name")
    if _wanted(data, "entry_date", is_update):
        out["entry_date"] = parse_date_value(
            data.get("entry_date"), "entry_date", allow_null=False, date_only=True
        )
    if "hours" in data:
        out["hours"] = parse_number(data["hours"], "hours", allow_null=False, min_value=0)
    if "billable" in data:
        billable = parse_boolean(data["billable"], "billable")
        if billable is not None:
            out["billable"] = billable
    _enum(data, out, "status", WORKSPACE_TIME_ENTRY_STATUSES)
    _strings(data, out, "notes", "approved_by_name")
    _metadata(data, out)
    return out


def prepare_object(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    if _wanted(data, "object_type", is_update):
        out["object_type"] = ensure_enum(data.get("object_type"), WORKSPACE_OBJECT_TYPES, "object_type")
    if _wanted(data, "label", is_update):
        out["label"] = require_string(data.get("label"), "label")
    _strings(data, out, "description", "owner_name", "unit", "status")
    if "quantity" in data:
        out["quantity"] = parse_number(data["quantity"], "quantity", min_value=0, integer=True)
    _metadata(data, out)
    return out


def prepare_document(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    for key in ("name", "category", "storage_url"):
        if _wanted(data, key, is_update):
            out[key] = require_string(data.get(key), key)
    _strings(data, out, "thumbnail_url", "owner_name", "version", "notes")
    if "size_bytes" in data:
        out["size_bytes"] = parse_number(data["size_bytes"], "size_bytes", min_value=0, integer=True)
    if "visibility" in data:
        out["visibility"] = require_string(data["visibility"], "visibility")
    _metadata(data, out)
    return out


def prepare_chat_message(payload, is_update=False):
    data = normalize_keys(payload)
    out = {}
    if "channel" in data or not is_update:
        out["channel"] = optional_string(data.get("channel")) or "general"
    for key in ("author_name", "body"):
        if _wanted(data, key, is_update):
            out[key] = require_string(data.get(key), key)
    _strings(data, out, "author_role")
    if "pinned" in data:
        out["pinned"] = bool(parse_boolean(data["pinned"], "pinned"))
    if "posted_at" in data:
        out["posted_at"] = parse_date_value(data["posted_at"], "posted_at", allow_null=False)
    _metadata(data, out)
    return out


# ── Registry ─────────────────────────────────────────────────────────────


ENTITY_CONFIG: dict[WorkspaceEntity, EntityConfig] = {
    WorkspaceEntity.BUDGET_LINES: EntityConfig(
        model=ProjectWorkspaceBudgetLine,
        label="Budget line",
        prepare=prepare_budget_line,
        numeric_fields=("planned_amount", "actual_amount"),
        snapshot_key="budgets",
        order_by=lambda: [ProjectWorkspaceBudgetLine.category, ProjectWorkspaceBudgetLine.label],
    ),
    WorkspaceEntity.OBJECTIVES: EntityConfig(
        model=ProjectWorkspaceObjective,
        label="Objective",
        prepare=prepare_objective,
        numeric_fields=("target_value", "current_value", "weight"),
        snapshot_key="objectives",
        order_by=lambda: [ProjectWorkspaceObjective.due_date, ProjectWorkspaceObjective.title],
    ),
    WorkspaceEntity.TASKS: EntityConfig(
        model=ProjectWorkspaceTask,
        label="Task",
        prepare=prepare_task,
        numeric_fields=("estimated_hours", "logged_hours", "progress_percent"),
        snapshot_key="tasks",
        order_by=lambda: [
            ProjectWorkspaceTask.priority.desc(),
            ProjectWorkspaceTask.due_date,
            ProjectWorkspaceTask.title,
        ],
    ),
    WorkspaceEntity.MEETINGS: EntityConfig(
        model=ProjectWorkspaceMeeting,
        label="Meeting",
        prepare=prepare_meeting,
        snapshot_key="meetings",
        order_by=lambda: [ProjectWorkspaceMeeting.scheduled_at],
    ),
    WorkspaceEntity.CALENDAR_EVENTS: EntityConfig(
        model=ProjectWorkspaceCalendarEvent,
        label="Calendar event",
        prepare=prepare_calendar_event,
        snapshot_key="calendar_events",
        order_by=lambda: [ProjectWorkspaceCalendarEvent.start_at],
    ),
    WorkspaceEntity.ROLE_ASSIGNMENTS: EntityConfig(
        model=ProjectWorkspaceRoleAssignment,
        label="Role assignment",
        prepare=prepare_role_assignment,
        numeric_fields=("allocation_percent",),
        snapshot_key="role_assignments",
        order_by=lambda: [ProjectWorkspaceRoleAssignment.role_name],
    ),
    WorkspaceEntity.SUBMISSIONS: EntityConfig(
        model=ProjectWorkspaceSubmission,
        label="Submission",
        prepare=prepare_submission,
        snapshot_key="submissions",
        order_by=lambda: [ProjectWorkspaceSubmission.due_at, ProjectWorkspaceSubmission.title],
    ),
    WorkspaceEntity.INVITES: EntityConfig(
        model=ProjectWorkspaceInvite,
        label="Invite",
        prepare=prepare_invite,
        snapshot_key="invites",
        order_by=lambda: [ProjectWorkspaceInvite.invited_at.desc()],
    ),
    WorkspaceEntity.HR_RECORDS: EntityConfig(
        model=ProjectWorkspaceHrRecord,
        label="HR record",
        prepare=prepare_hr_record,
        numeric_fields=("hourly_rate", "weekly_capacity_hours", "allocation_percent"),
        snapshot_key="hr_records",
        order_by=lambda: [ProjectWorkspaceHrRecord.member_name],
    ),
    WorkspaceEntity.TIME_ENTRIES: EntityConfig(
        model=ProjectWorkspaceTimeEntry,
        label="Time entry",
        prepare=prepare_time_entry,
        numeric_fields=("hours",),
        snapshot_key="time_entries",
        order_by=lambda: [ProjectWorkspaceTimeEntry.entry_date.desc()],
    ),
    WorkspaceEntity.OBJECTS: EntityConfig(
        model=ProjectWorkspaceObject,
        label="Workspace object",
        prepare=prepare_object,
        numeric_fields=("quantity",),
        snapshot_key="workspace_objects",
        order_by=lambda: [ProjectWorkspaceObject.object_type, ProjectWorkspaceObject.label],
    ),
    WorkspaceEntity.DOCUMENTS: EntityConfig(
        model=ProjectWorkspaceDocument,
        label="Document",
        prepare=prepare_document,
        numeric_fields=("size_bytes",),
        snapshot_key="documents",
        order_by=lambda: [ProjectWorkspaceDocument.created_at.desc()],
    ),
    WorkspaceEntity.CHAT_MESSAGES: EntityConfig(
        model=ProjectWorkspaceChatMessage,
        label="Chat message",
        prepare=prepare_chat_message,
        snapshot_key="chat_messages",
        order_by=lambda: [ProjectWorkspaceChatMessage.posted_at.desc()],
    ),
}

ENTITY_ALIASES: dict[str, WorkspaceEntity] = {
    "budget": WorkspaceEntity.BUDGET_LINES,
    "budgets": WorkspaceEntity.BUDGET_LINES,
    "budget-line": WorkspaceEntity.BUDGET_LINES,
    "objective": WorkspaceEntity.OBJECTIVES,
    "task": WorkspaceEntity.TASKS,
    "meeting": WorkspaceEntity.MEETINGS,
    "calendar": WorkspaceEntity.CALENDAR_EVENTS,
    "calendar-event": WorkspaceEntity.CALENDAR_EVENTS,
    "event": WorkspaceEntity.CALENDAR_EVENTS,
    "events": WorkspaceEntity.CALENDAR_EVENTS,
    "role": WorkspaceEntity.ROLE_ASSIGNMENTS,
    "roles": WorkspaceEntity.ROLE_ASSIGNMENTS,
    "role-assignment": WorkspaceEntity.ROLE_ASSIGNMENTS,
    "submission": WorkspaceEntity.SUBMISSIONS,
    "invite": WorkspaceEntity.INVITES,
    "invitation": WorkspaceEntity.INVITES,
    "invitations": WorkspaceEntity.INVITES,
    "hr": WorkspaceEntity.HR_RECORDS,
    "hr-record": WorkspaceEntity.HR_RECORDS,
    "time": WorkspaceEntity.TIME_ENTRIES,
    "time-entry": WorkspaceEntity.TIME_ENTRIES,
    "timesheet": WorkspaceEntity.TIME_ENTRIES,
    "object": WorkspaceEntity.OBJECTS,
    "workspace-object": WorkspaceEntity.OBJECTS,
    "workspace-objects": WorkspaceEntity.OBJECTS,
    "document": WorkspaceEntity.DOCUMENTS,
    "file": WorkspaceEntity.DOCUMENTS,
    "files": WorkspaceEntity.DOCUMENTS,
    "chat": WorkspaceEntity.CHAT_MESSAGES,
    "chat-message": WorkspaceEntity.CHAT_MESSAGES,
    "message": WorkspaceEntity.CHAT_MESSAGES,
    "messages": WorkspaceEntity.CHAT_MESSAGES,
}


def normalize_entity_key(key) -> str:
    """``budgetLines`` / ``budget_lines`` / `` Budget-Lines `` → ``budget-lines``."""
    if key is None:
        return ""
    if isinstance(key, WorkspaceEntity):
        return key.value
    text = snake_case(str(key).strip()).replace("_", "-")
    return re.sub(r"-+", "-", text).strip("-")


def resolve_entity(key) -> WorkspaceEntity:
    """Map a URL segment to a WorkspaceEntity.

    Raises:
        ValidationError: Unknown or special (integrations/summary) key.
    """
    normalized = normalize_entity_key(key)
    try:
        return WorkspaceEntity(normalized)
    except ValueError:
        pass
    entity = ENTITY_ALIASES.get(normalized)
    if entity is None:
        raise ValidationError("Unsupported workspace entity.", details={"entity": str(key)})
    return entity