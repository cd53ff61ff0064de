"""
Order audit domain model.

Models:
    - GigOrderAuditEntry: append-only audit trail for gig order mutations.

Entries carry the owner of the order so a log is always read inside the
owner scope. The log for one order is size-bounded: ``app.services.order_audit``
prunes the oldest rows so at most ``AUDIT_LOG_LIMIT`` (default 50)
entries survive per order.
"""

from app.models import db, utcnow

AUDIT_ACTIONS = {
    "order.create",
    "order.update",
    "order.status_change",
    "order.delete",
    "timeline.add",
    "escrow.create",
    "escrow.update",
    "escrow.release",
    "message.post",
    "review.upsert",
    "escalation.resolve",
}


class GigOrderAuditEntry(db.Model):
    """One row per audited action. Rows are never updated."""

    __tablename__ = "pgm_gig_order_audit_entries"
    __table_args__ = (
        db.Index("idx_order_audit_owner_order_ts", "owner_id", "order_id", "occurred_at"),
    )

    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, nullable=False)
    order_id = db.Column(db.Integer, nullable=False)
    action = db.Column(db.String(60), nullable=False)
    actor_id = db.Column(db.Integer, nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    details = db.Column("metadata", db.JSON, nullable=True)

    def to_dict(self):
        return {
            "id": self.id,
            "action": self.action,
            "actor_id": self.actor_id,
            "occurred_at": self.occurred_at.isoformat() if self.occurred_at else None,
            "metadata": self.details or {},
        }
