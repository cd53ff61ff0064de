"""
SLA escalation tracking for company gig orders.

Breach detection uses a *lazy per-call* pattern: there is no scheduler.
Every dashboard read calls ``detect_sla_breaches`` on the order list it is
about to return. Privileged callers (``escalate=True``) persist new or
changed breaches as GigOrderEscalation rows; everyone else gets the same
alerts with no writes.

Storage invariant: at most one open escalation (resolved_at IS NULL) per
(owner_id, order_id), enforced by a partial unique index on open rows.
``persist_escalation`` updates the open row when one exists instead of
inserting a second.

Each persisted breach is also written to a per-order cache key
``company:orders:escalation:{owner_id}:{order_id}``. Nothing reads that key
to make decisions; the database row is authoritative.
"""

from __future__ import annotations

import logging
from datetime import datetime

from flask import current_app
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from app.models import db, isoformat, utcnow
from app.models.gig_order import CLOSED_ORDER_STATUSES, GigOrderEscalation
from app.services.cache_service import get_cache
from app.services.helpers.normalizers import as_utc, coerce_datetime

logger = logging.getLogger(__name__)

ESCALATION_CACHE_PREFIX = "company:orders:escalation"
DEFAULT_CRITICAL_HOURS = 24
DEFAULT_ESCALATION_TTL = 3600

_SEVERITY_RANK = {"critical": 0, "warning": 1}


def escalation_cache_key(owner_id, order_id) -> str:
    return f"{ESCALATION_CACHE_PREFIX}:{owner_id}:{order_id}"


def _critical_hours() -> int:
    return int(current_app.config.get("SLA_CRITICAL_HOURS", DEFAULT_CRITICAL_HOURS))


def _escalation_ttl() -> int:
    return int(current_app.config.get("ESCALATION_CACHE_TTL", DEFAULT_ESCALATION_TTL))


def hours_overdue(due_at: datetime, now: datetime) -> int:
    """Whole hours past due, rounded to nearest, never below 1."""
    seconds = (now - as_utc(due_at)).total_seconds()
    return max(1, round(seconds / 3600))


def classify_severity(hours: int) -> str:
    return "critical" if hours >= _critical_hours() else "warning"


def is_order_breached(order: dict, now: datetime) -> bool:
    """Past a parseable due date and not closed by status or ``is_closed`` flag."""
    due_at = coerce_datetime(order.get("due_at"))
    if due_at is None or due_at >= now:
        return False
    status = str(order.get("status") or "").lower()
    if status in CLOSED_ORDER_STATUSES:
        return False
    return not order.get("is_closed")


def _breach_message(order: dict, hours: int) -> str:
    label = order.get("order_number") or f"#{order.get('id')}"
    vendor = order.get("vendor_name") or "vendor"
    return f"Order {label} with {vendor} is {hours}h past its due date."


# ═════════════════════════════════════════════════════════════════════════════
# Storage
# ═════════════════════════════════════════════════════════════════════════════


def _open_escalations_stmt(owner_id, order_ids=None):
    stmt = select(GigOrderEscalation).where(
        GigOrderEscalation.owner_id == owner_id,
        GigOrderEscalation.resolved_at.is_(None),
    )
    if order_ids is not None:
        stmt = stmt.where(GigOrderEscalation.order_id.in_(list(order_ids)))
    return stmt


def list_open_escalations(owner_id: int, order_ids=None) -> list[dict]:
    """Open escalations for *owner_id*, optionally restricted to *order_ids*."""
    if order_ids is not None and not list(order_ids):
        return []
    stmt = _open_escalations_stmt(owner_id, order_ids).order_by(
        GigOrderEscalation.detected_at.desc(), GigOrderEscalation.id.desc(),
    )
    return [e.to_dict() for e in db.session.execute(stmt).scalars().all()]


def _open_escalation_for(owner_id, order_id):
    return db.session.execute(
        _open_escalations_stmt(owner_id, [order_id]).with_for_update()
    ).scalars().first()


def persist_escalation(
    owner_id: int,
    order_id: int,
    severity: str,
    hours: int,
    message: str,
    due_at: datetime | None = None,
    now: datetime | None = None,
) -> GigOrderEscalation:
    """Upsert the open escalation for (owner_id, order_id). Flushes, does not commit.

    The partial unique index on open rows is the authoritative guard. An
    insert that loses a race against a concurrent one is rolled back to its
    savepoint and the winner's row is updated instead.
    """
    now = now or utcnow()
    audit = {"last_detected_at": now.isoformat(), "due_at": isoformat(due_at)}

    escalation = _open_escalation_for(owner_id, order_id)
    if escalation is None:
        candidate = GigOrderEscalation(
            owner_id=owner_id,
            order_id=order_id,
            status="queued",
            severity=severity,
            message=message,
            hours_overdue=hours,
            detected_at=now,
            escalated_at=now,
            meta=audit,
        )
        try:
            with db.session.begin_nested():
                db.session.add(candidate)
        except IntegrityError:
            escalation = _open_escalation_for(owner_id, order_id)
            if escalation is None:
                raise
            logger.info(
                "Open escalation inserted concurrently; updating it",
                extra={"owner_id": owner_id, "order_id": order_id},
            )
        else:
            logger.warning(
                "SLA escalation opened",
                extra={"owner_id": owner_id, "order_id": order_id, "severity": severity, "hours_overdue": hours},
            )
            return candidate

    if escalation.severity != severity:
        escalation.escalated_at = now
    escalation.severity = severity
    escalation.message = message
    escalation.hours_overdue = hours
    escalation.meta = {**(escalation.meta or {}), **audit}
    db.session.flush()
    return escalation


def resolve_order_escalations(
    owner_id: int,
    order_id: int,
    resolved_by_id=None,
    resolution: str | None = None,
    commit: bool = True,
) -> int:
    """Resolve every open escalation for one order.

    Args:
        owner_id, order_id: Scope.
        resolved_by_id: Actor closing the escalation, if known.
        resolution: Free-text note kept in metadata.resolution.
        commit: False when the caller owns the surrounding transaction.

    Returns:
        Number of escalations resolved.
    """
    now = utcnow()
    try:
        rows = db.session.execute(
            _open_escalations_stmt(owner_id, [order_id]).with_for_update()
        ).scalars().all()
        for row in rows:
            row.status = "resolved"
            row.resolved_at = now
            row.meta = {
                **(row.meta or {}),
                "resolution": {
                    "resolved_by_id": resolved_by_id,
                    "note": resolution,
                    "resolved_at": now.isoformat(),
                },
            }
        if commit:
            db.session.commit()
        else:
            db.session.flush()
    except Exception:
        if commit:
            db.session.rollback()
        raise

    get_cache().delete(escalation_cache_key(owner_id, order_id))
    if rows:
        logger.info(
            "SLA escalations resolved",
            extra={"owner_id": owner_id, "order_id": order_id, "count": len(rows)},
        )
    return len(rows)


# ═════════════════════════════════════════════════════════════════════════════
# Detection
# ═════════════════════════════════════════════════════════════════════════════


def _build_alert(order, severity, hours, due_at, message, escalation):
    return {
        "order_id": order.get("id"),
        "order_number": order.get("order_number"),
        "vendor_name": order.get("vendor_name"),
        "service_name": order.get("service_name"),
        "status": order.get("status"),
        "severity": severity,
        "hours_overdue": hours,
        "due_at": due_at.isoformat(),
        "message": message,
        "escalation_id": escalation.id if escalation is not None else None,
        "escalation_status": escalation.status if escalation is not None else None,
    }


def detect_sla_breaches(orders, owner_id: int, escalate: bool = False, now: datetime | None = None) -> dict:
    """Evaluate *orders* (serialised dicts) against their due dates.

    Args:
        orders: Order dicts with id, order_number, vendor_name, service_name,
                status, due_at and optionally is_closed.
        owner_id: Owner scope for stored escalations.
        escalate: Persist new/changed breaches. False never writes.
        now: Evaluation time (defaults to current UTC time).

    Returns:
        ``{"alerts": [...], "breach_count": int}``; alerts are ordered
        critical first, then by hours overdue descending.
    """
    now = as_utc(now) if now else utcnow()
    orders = list(orders or [])
    order_ids = [o["id"] for o in orders if o.get("id") is not None]

    known = {}
    if order_ids:
        for escalation in db.session.execute(_open_escalations_stmt(owner_id, order_ids)).scalars().all():
            known.setdefault(escalation.order_id, escalation)

    alerts = []
    cache_writes = []
    try:
        for order in orders:
            if not is_order_breached(order, now):
                continue
            due_at = coerce_datetime(order.get("due_at"))
            hours = hours_overdue(due_at, now)
            severity = classify_severity(hours)
            message = _breach_message(order, hours)
            escalation = known.get(order.get("id"))

            if escalate and order.get("id") is not None:
                unchanged = (
                    escalation is not None
                    and escalation.severity == severity
                    and escalation.hours_overdue == hours
                    and escalation.message == message
                )
                if not unchanged:
                    escalation = persist_escalation(
                        owner_id, order["id"], severity, hours, message, due_at=due_at, now=now,
                    )
                    known[order["id"]] = escalation
                    cache_writes.append(order["id"])

            alerts.append(_build_alert(order, severity, hours, due_at, message, escalation))

        if cache_writes:
            db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if cache_writes:
        cache = get_cache()
        ttl = _escalation_ttl()
        by_order = {a["order_id"]: a for a in alerts}
        for order_id in cache_writes:
            cache.set(escalation_cache_key(owner_id, order_id), by_order[order_id], ttl)

    alerts.sort(key=lambda a: (_SEVERITY_RANK.get(a["severity"], 9), -a["hours_overdue"]))
    return {"alerts": alerts, "breach_count": len(alerts)}
