"""
Project workspace sub-entities.

Every table here is a flat record scoped by ``workspace_id`` and is
created/updated/deleted through the workspace entity registry
(``app.services.workspace_registry``).
"""

from sqlalchemy.orm import declared_attr

from app.models import db, utcnow
from app.models.base import SerializerMixin, TimestampMixin

WORKSPACE_BUDGET_STATUSES = ("planned", "approved", "in_progress", "completed", "overbudget")
WORKSPACE_TASK_STATUSES = ("planned", "in_progress", "blocked", "completed", "cancelled")
WORKSPACE_TASK_PRIORITIES = ("low", "medium", "high", "critical")
WORKSPACE_MEETING_STATUSES = ("scheduled", "completed", "cancelled")
WORKSPACE_INVITE_STATUSES = ("pending", "accepted", "declined", "expired")
WORKSPACE_ROLE_STATUSES = ("draft", "active", "backfill", "closed")
WORKSPACE_SUBMISSION_STATUSES = ("pending", "in_review", "approved", "changes_requested")
WORKSPACE_HR_STATUSES = ("planned", "active", "on_leave", "completed")
WORKSPACE_TIME_ENTRY_STATUSES = ("draft", "submitted", "approved", "rejected")
WORKSPACE_OBJECT_TYPES = ("asset", "deliverable", "dependency", "risk", "note")


class WorkspaceChildMixin(SerializerMixin, TimestampMixin):
    """Common columns for workspace-scoped rows."""

    id = db.Column(db.Integer, primary_key=True)

    @declared_attr
    def workspace_id(cls):
        return db.Column(
            db.Integer,
            db.ForeignKey("pgm_project_workspaces.id", ondelete="CASCADE"),
            nullable=False,
            index=True,
        )


class ProjectWorkspaceBudgetLine(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_budget_lines"

    category = db.Column(db.String(120), nullable=False)
    label = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text, nullable=True)
    planned_amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    actual_amount = db.Column(db.Numeric(12, 2), nullable=True, default=0)
    currency = db.Column(db.String(6), nullable=False, default="USD")
    status = db.Column(db.String(20), nullable=False, default="planned")
    owner_name = db.Column(db.String(120), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceObjective(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_objectives"

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner_name = db.Column(db.String(120), nullable=True)
    metric = db.Column(db.String(120), nullable=True)
    target_value = db.Column(db.Numeric(12, 2), nullable=True)
    current_value = db.Column(db.Numeric(12, 2), nullable=True)
    status = db.Column(db.String(60), nullable=False, default="on_track")
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    weight = db.Column(db.Integer, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceTask(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_tasks"

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="planned")
    priority = db.Column(db.String(20), nullable=False, default="medium")
    lane = db.Column(db.String(120), nullable=True)
    assignee_name = db.Column(db.String(120), nullable=True)
    assignee_email = db.Column(db.String(180), nullable=True)
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    estimated_hours = db.Column(db.Numeric(8, 2), nullable=True)
    logged_hours = db.Column(db.Numeric(8, 2), nullable=True)
    progress_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    dependencies = db.Column(db.JSON, nullable=True)
    tags = db.Column(db.JSON, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceMeeting(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_meetings"

    title = db.Column(db.String(200), nullable=False)
    agenda = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), nullable=False, default="scheduled")
    scheduled_at = db.Column(db.DateTime(timezone=True), nullable=False)
    duration_minutes = db.Column(db.Integer, nullable=False, default=60)
    location = db.Column(db.String(180), nullable=True)
    meeting_link = db.Column(db.String(255), nullable=True)
    organizer_name = db.Column(db.String(120), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    follow_up_items = db.Column(db.JSON, nullable=True)
    recurrence_rule = db.Column(db.String(180), nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceCalendarEvent(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_calendar_events"

    title = db.Column(db.String(200), nullable=False)
    event_type = db.Column(db.String(80), nullable=False, default="milestone")
    start_at = db.Column(db.DateTime(timezone=True), nullable=False)
    end_at = db.Column(db.DateTime(timezone=True), nullable=True)
    visibility = db.Column(db.String(40), nullable=False, default="team")
    location = db.Column(db.String(180), nullable=True)
    description = db.Column(db.Text, nullable=True)
    attendees = db.Column(db.JSON, nullable=True)
    reminder_minutes_before = db.Column(db.Integer, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceRoleAssignment(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_role_assignments"

    role_name = db.Column(db.String(140), nullable=False)
    description = db.Column(db.Text, nullable=True)
    member_name = db.Column(db.String(120), nullable=True)
    member_email = db.Column(db.String(180), nullable=True)
    status = db.Column(db.String(20), nullable=False, default="draft")
    allocation_percent = db.Column(db.Numeric(5, 2), nullable=True)
    permissions = db.Column(db.JSON, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceSubmission(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_submissions"

    title = db.Column(db.String(200), nullable=False)
    submission_type = db.Column(db.String(80), nullable=False, default="deliverable")
    status = db.Column(db.String(30), nullable=False, default="pending")
    due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_by_name = db.Column(db.String(120), nullable=True)
    submitted_by_email = db.Column(db.String(180), nullable=True)
    asset_url = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceInvite(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_invites"

    email = db.Column(db.String(180), nullable=False)
    role = db.Column(db.String(120), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")
    invited_by_name = db.Column(db.String(120), nullable=True)
    invited_by_email = db.Column(db.String(180), nullable=True)
    message = db.Column(db.Text, nullable=True)
    invited_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    responded_at = db.Column(db.DateTime(timezone=True), nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceHrRecord(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_hr_records"

    member_name = db.Column(db.String(120), nullable=False)
    role_title = db.Column(db.String(140), nullable=True)
    employment_type = db.Column(db.String(80), nullable=False, default="contract")
    status = db.Column(db.String(20), nullable=False, default="planned")
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    end_date = db.Column(db.DateTime(timezone=True), nullable=True)
    hourly_rate = db.Column(db.Numeric(10, 2), nullable=True)
    weekly_capacity_hours = db.Column(db.Numeric(6, 2), nullable=True)
    allocation_percent = db.Column(db.Numeric(5, 2), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceTimeEntry(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_time_entries"

    member_name = db.Column(db.String(120), nullable=False)
    entry_date = db.Column(db.Date, nullable=False)
    hours = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    billable = db.Column(db.Boolean, nullable=False, default=True)
    status = db.Column(db.String(20), nullable=False, default="submitted")
    notes = db.Column(db.Text, nullable=True)
    approved_by_name = db.Column(db.String(120), nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceObject(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_objects"

    object_type = db.Column(db.String(20), nullable=False, default="asset")
    label = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner_name = db.Column(db.String(120), nullable=True)
    quantity = db.Column(db.Integer, nullable=True)
    unit = db.Column(db.String(40), nullable=True)
    status = db.Column(db.String(60), nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceDocument(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_documents"

    name = db.Column(db.String(200), nullable=False)
    category = db.Column(db.String(120), nullable=False, default="general")
    storage_url = db.Column(db.String(255), nullable=False)
    thumbnail_url = db.Column(db.String(255), nullable=True)
    size_bytes = db.Column(db.Integer, nullable=True)
    visibility = db.Column(db.String(40), nullable=False, default="team")
    owner_name = db.Column(db.String(120), nullable=True)
    version = db.Column(db.String(40), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)


class ProjectWorkspaceChatMessage(WorkspaceChildMixin, db.Model):
    __tablename__ = "pgm_project_workspace_chat_messages"

    channel = db.Column(db.String(120), nullable=False, default="general")
    author_name = db.Column(db.String(120), nullable=False)
    author_role = db.Column(db.String(80), nullable=True)
    body = db.Column(db.Text, nullable=False)
    posted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    pinned = db.Column(db.Boolean, nullable=False, default=False)
    meta = db.Column("metadata", db.JSON, nullable=True)
