"""
Bounded, append-only audit log for gig orders.

``record_order_audit`` adds one row and prunes the oldest rows so at most
``AUDIT_LOG_LIMIT`` entries survive per (owner, order). It does not commit:
callers append inside the transaction of the mutation being audited.
Reads and pruning are always filtered by owner as well as order id.
"""

import logging

from flask import current_app
from sqlalchemy import delete, select

from app.core.exceptions import ValidationError
from app.models import db, utcnow
from app.models.audit import AUDIT_ACTIONS, GigOrderAuditEntry

logger = logging.getLogger(__name__)

DEFAULT_AUDIT_LOG_LIMIT = 50


def _limit() -> int:
    return int(current_app.config.get("AUDIT_LOG_LIMIT", DEFAULT_AUDIT_LOG_LIMIT))


def _order_scope(owner_id, order_id):
    return (GigOrderAuditEntry.owner_id == owner_id, GigOrderAuditEntry.order_id == order_id)


def record_order_audit(owner_id: int, order_id: int, action: str, actor_id=None, details: dict | None = None):
    """Append an audit entry for *order_id* and trim the log to the configured bound.

    Args:
        owner_id: Owner of the audited order.
        order_id: Audited order.
        action: One of AUDIT_ACTIONS.
        actor_id: Acting user, when known.
        details: Free-form context stored as the entry's metadata.

    Returns:
        The new GigOrderAuditEntry (flushed, not committed).
    """
    if action not in AUDIT_ACTIONS:
        raise ValidationError(f"Unknown audit action '{action}'.")

    entry = GigOrderAuditEntry(
        owner_id=owner_id,
        order_id=order_id,
        action=action,
        actor_id=actor_id,
        occurred_at=utcnow(),
        details=details or {},
    )
    db.session.add(entry)
    db.session.flush()

    keep_ids = select(GigOrderAuditEntry.id).where(
        *_order_scope(owner_id, order_id),
    ).order_by(
        GigOrderAuditEntry.occurred_at.desc(), GigOrderAuditEntry.id.desc(),
    ).limit(_limit())
    kept = set(db.session.execute(keep_ids).scalars().all())

    pruned = db.session.execute(
        delete(GigOrderAuditEntry)
        .where(*_order_scope(owner_id, order_id), GigOrderAuditEntry.id.not_in(kept))
        .execution_options(synchronize_session=False)
    ).rowcount
    if pruned:
        logger.debug("Pruned %d audit entries for order %s", pruned, order_id)
    return entry


def list_order_audit(owner_id: int, order_id: int) -> list[dict]:
    """Newest first."""
    stmt = (
        select(GigOrderAuditEntry)
        .where(*_order_scope(owner_id, order_id))
        .order_by(GigOrderAuditEntry.occurred_at.desc(), GigOrderAuditEntry.id.desc())
    )
    return [e.to_dict() for e in db.session.execute(stmt).scalars().all()]
