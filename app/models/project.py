"""Project domain models: Project, its one-to-one ProjectWorkspace and integrations."""

from app.models import db
from app.models.base import OwnedModel, SerializerMixin, TimestampMixin

PROJECT_STATUSES = ("planning", "in_progress", "at_risk", "completed", "on_hold")
PROJECT_RISK_LEVELS = ("low", "medium", "high")
PROJECT_INTEGRATION_STATUSES = ("connected", "disconnected", "error")

DEFAULT_INTEGRATIONS = (
    {"provider": "slack", "metadata": {"channel": "#project-room"}},
    {"provider": "github", "metadata": {"repository": "gigvora/example-project"}},
    {"provider": "google_drive", "metadata": {"folder": "Project workspace"}},
)


class Project(SerializerMixin, TimestampMixin, OwnedModel):
    """A client/agency project. Owns exactly one workspace once accessed."""

    __tablename__ = "pgm_projects"

    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text, nullable=False, default="")
    status = db.Column(db.String(30), nullable=False, default="planning",
                       comment="planning | in_progress | at_risk | completed | on_hold")
    start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    budget_currency = db.Column(db.String(6), nullable=False, default="USD")
    budget_allocated = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    budget_spent = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    archived_at = db.Column(db.DateTime(timezone=True), nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)

    workspace = db.relationship(
        "ProjectWorkspace", back_populates="project", uselist=False,
        cascade="all, delete-orphan",
    )
    integrations = db.relationship(
        "ProjectIntegration", back_populates="project", lazy="select",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Project {self.id}: {self.title}>"


class ProjectWorkspace(SerializerMixin, TimestampMixin, db.Model):
    """Per-project collaboration record; parent scope of all workspace sub-entities."""

    __tablename__ = "pgm_project_workspaces"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("pgm_projects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
        index=True,
    )
    status = db.Column(db.String(30), nullable=False, default="planning")
    progress_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    risk_level = db.Column(db.String(10), nullable=False, default="low",
                           comment="low | medium | high")
    next_milestone = db.Column(db.String(180), nullable=True)
    next_milestone_due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    metrics = db.Column(db.JSON, nullable=True)

    project = db.relationship("Project", back_populates="workspace")

    def __repr__(self):
        return f"<ProjectWorkspace {self.id} project={self.project_id}>"


class ProjectIntegration(SerializerMixin, TimestampMixin, db.Model):
    """External tool connected to a project (slack, github, google_drive, ...)."""

    __tablename__ = "pgm_project_integrations"
    __table_args__ = (
        db.UniqueConstraint("project_id", "provider", name="uq_pgm_integration_project_provider"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("pgm_projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    provider = db.Column(db.String(80), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="connected",
                       comment="connected | disconnected | error")
    connected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)

    project = db.relationship("Project", back_populates="integrations")
