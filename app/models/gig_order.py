"""
Company gig order models.

GigOrder is a purchased service engagement owned by one company account.
Children: requirements, revisions, vendor scorecard, escrow checkpoints,
timeline activities and messages. SLA escalations and audit entries
reference the order by id only and outlive it.

GigOrderEscalation invariant: at most one open row (resolved_at IS NULL)
per (owner_id, order_id), enforced by a partial unique index. The service
layer reuses the open row instead of inserting a duplicate.

GigOrder ids are never reused (AUTOINCREMENT on SQLite), so audit and
escalation rows of a deleted order cannot attach to a later one.
"""

from app.models import db, utcnow
from app.models.base import OwnedModel, SerializerMixin, TimestampMixin

GIG_ORDER_STATUSES = (
    "requirements", "in_delivery", "in_revision",
    "completed", "closed", "cancelled", "archived",
)
CLOSED_ORDER_STATUSES = frozenset({"completed", "closed", "cancelled", "archived"})

GIG_REQUIREMENT_STATUSES = ("pending", "received", "approved")
GIG_REVISION_STATUSES = ("requested", "in_progress", "submitted", "approved")
GIG_ESCROW_STATUSES = ("pending", "funded", "released", "refunded", "cancelled")
GIG_ACTIVITY_TYPES = ("system", "client", "vendor", "internal", "communication")
GIG_MESSAGE_VISIBILITIES = ("private", "shared")

# "notified" is reserved for an outbound notifier; detection writes "queued"
# and resolution writes "resolved".
ESCALATION_STATUSES = ("queued", "notified", "resolved")
ESCALATION_SEVERITIES = ("warning", "critical")


def _sql_in(values) -> str:
    return ", ".join(f"'{v}'" for v in values)


class GigOrder(SerializerMixin, TimestampMixin, OwnedModel):
    __tablename__ = "pgm_gig_orders"
    __table_args__ = (
        db.Index("ix_pgm_gig_orders_owner_status", "owner_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_number = db.Column(db.String(32), nullable=False, unique=True)
    vendor_name = db.Column(db.String(180), nullable=False)
    service_name = db.Column(db.String(180), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="requirements")
    progress_percent = db.Column(db.Numeric(5, 2), nullable=False, default=0)
    amount = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    currency = db.Column(db.String(6), nullable=False, default="USD")
    kickoff_at = db.Column(db.DateTime(timezone=True), nullable=True)
    due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)

    requirements = db.relationship(
        "GigOrderRequirement", back_populates="order",
        cascade="all, delete-orphan", order_by="GigOrderRequirement.id",
    )
    revisions = db.relationship(
        "GigOrderRevision", back_populates="order",
        cascade="all, delete-orphan", order_by="GigOrderRevision.round_number",
    )
    scorecard = db.relationship(
        "GigVendorScorecard", back_populates="order", uselist=False,
        cascade="all, delete-orphan",
    )
    escrow_checkpoints = db.relationship(
        "GigOrderEscrowCheckpoint", back_populates="order",
        cascade="all, delete-orphan", order_by="GigOrderEscrowCheckpoint.id",
    )
    activities = db.relationship(
        "GigOrderActivity", back_populates="order",
        cascade="all, delete-orphan", order_by="GigOrderActivity.occurred_at.desc()",
    )
    messages = db.relationship(
        "GigOrderMessage", back_populates="order",
        cascade="all, delete-orphan", order_by="GigOrderMessage.posted_at",
    )

    @property
    def is_closed(self) -> bool:
        return self.status in CLOSED_ORDER_STATUSES

    def __repr__(self):
        return f"<GigOrder {self.order_number} owner={self.owner_id} status={self.status}>"


class _OrderChild(SerializerMixin, TimestampMixin):
    id = db.Column(db.Integer, primary_key=True)


class GigOrderRequirement(_OrderChild, db.Model):
    __tablename__ = "pgm_gig_order_requirements"

    order_id = db.Column(db.Integer, db.ForeignKey("pgm_gig_orders.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    title = db.Column(db.String(180), nullable=False)
    status = db.Column(db.String(20), nullable=False, default="pending")
    due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    order = db.relationship("GigOrder", back_populates="requirements")


class GigOrderRevision(_OrderChild, db.Model):
    __tablename__ = "pgm_gig_order_revisions"

    order_id = db.Column(db.Integer, db.ForeignKey("pgm_gig_orders.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    round_number = db.Column(db.Integer, nullable=False, default=1)
    status = db.Column(db.String(20), nullable=False, default="requested")
    requested_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    due_at = db.Column(db.DateTime(timezone=True), nullable=True)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    summary = db.Column(db.Text, nullable=True)

    order = db.relationship("GigOrder", back_populates="revisions")


class GigVendorScorecard(_OrderChild, db.Model):
    __tablename__ = "pgm_vendor_scorecards"

    order_id = db.Column(db.Integer, db.ForeignKey("pgm_gig_orders.id", ondelete="CASCADE"),
                         nullable=False, unique=True)
    quality_score = db.Column(db.Numeric(3, 2), nullable=True)
    communication_score = db.Column(db.Numeric(3, 2), nullable=True)
    reliability_score = db.Column(db.Numeric(3, 2), nullable=True)
    overall_score = db.Column(db.Numeric(3, 2), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    order = db.relationship("GigOrder", back_populates="scorecard")


class GigOrderEscrowCheckpoint(_OrderChild, db.Model):
    __tablename__ = "pgm_gig_order_escrows"

    order_id = db.Column(db.Integer, db.ForeignKey("pgm_gig_orders.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    label = db.Column(db.String(120), nullable=False)
    amount = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(6), nullable=False, default="USD")
    status = db.Column(db.String(20), nullable=False, default="pending",
                       comment="pending | funded | released | refunded | cancelled")
    approval_requirement = db.Column(db.String(160), nullable=True)
    csat_threshold = db.Column(db.Numeric(3, 2), nullable=True)
    released_at = db.Column(db.DateTime(timezone=True), nullable=True)
    released_by_id = db.Column(db.Integer, nullable=True)
    payout_reference = db.Column(db.String(160), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)

    order = db.relationship("GigOrder", back_populates="escrow_checkpoints")


class GigOrderActivity(_OrderChild, db.Model):
    """Timeline entry on an order."""

    __tablename__ = "pgm_gig_order_activities"

    order_id = db.Column(db.Integer, db.ForeignKey("pgm_gig_orders.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    actor_id = db.Column(db.Integer, nullable=True)
    activity_type = db.Column(db.String(20), nullable=False, default="system")
    title = db.Column(db.String(180), nullable=False)
    description = db.Column(db.Text, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)
    meta = db.Column("metadata", db.JSON, nullable=True)

    order = db.relationship("GigOrder", back_populates="activities")


class GigOrderMessage(_OrderChild, db.Model):
    __tablename__ = "pgm_gig_order_messages"

    order_id = db.Column(db.Integer, db.ForeignKey("pgm_gig_orders.id", ondelete="CASCADE"),
                         nullable=False, index=True)
    author_id = db.Column(db.Integer, nullable=False)
    author_name = db.Column(db.String(180), nullable=False)
    role_label = db.Column(db.String(120), nullable=True)
    body = db.Column(db.Text, nullable=False)
    attachments = db.Column(db.JSON, nullable=True)
    visibility = db.Column(db.String(10), nullable=False, default="private")
    posted_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    order = db.relationship("GigOrder", back_populates="messages")


class GigOrderEscalation(SerializerMixin, TimestampMixin, OwnedModel):
    """Persisted SLA breach on a gig order; open until resolved_at is set."""

    __tablename__ = "pgm_gig_order_escalations"
    __table_args__ = (
        db.Index(
            "uq_pgm_escalations_owner_order_open", "owner_id", "order_id",
            unique=True,
            postgresql_where=db.text("resolved_at IS NULL"),
            sqlite_where=db.text("resolved_at IS NULL"),
        ),
        db.CheckConstraint(f"status IN ({_sql_in(ESCALATION_STATUSES)})", name="ck_pgm_escalations_status"),
        db.CheckConstraint(f"severity IN ({_sql_in(ESCALATION_SEVERITIES)})", name="ck_pgm_escalations_severity"),
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, nullable=False, index=True,
                         comment="Not a foreign key: escalation history outlives the order.")
    status = db.Column(db.String(20), nullable=False, default="queued",
                       comment="queued | notified | resolved")
    severity = db.Column(db.String(20), nullable=False, default="warning",
                         comment="warning | critical")
    message = db.Column(db.String(500), nullable=True)
    hours_overdue = db.Column(db.Integer, nullable=False, default=0)
    detected_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    escalated_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    support_case_id = db.Column(db.Integer, nullable=True)
    support_thread_id = db.Column(db.Integer, nullable=True)
    meta = db.Column("metadata", db.JSON, nullable=True)

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None
