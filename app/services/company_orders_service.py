"""
Company gig orders service.

Owner-scoped business logic behind ``/api/v1/company/orders``:
  - Cached dashboard (orders + metrics) with per-call SLA breach detection
  - Order CRUD with nested requirements and vendor scorecard
  - Timeline events, escrow checkpoints, messages, reviews
  - Escalation listing / manual resolution

Caching:
  The dashboard body is cached per (owner_id, status bucket) for
  DASHBOARD_CACHE_TTL seconds under ``company:orders:dashboard:{owner}:{status}``.
  SLA detection is never cached: it re-runs on a deep copy of the body on
  every call. Every mutation in this module flushes all dashboard buckets of
  the owner (prefix flush) after its commit.

Ownership:
  Every order lookup goes through ``ensure_order_ownership``; an order of a
  different owner is reported as not found.
"""

from __future__ import annotations

import copy
import logging

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.orm import selectinload

from app.core.exceptions import ConflictError, ValidationError
from app.models import db, utcnow
from app.models.gig_order import (
    CLOSED_ORDER_STATUSES,
    GIG_ACTIVITY_TYPES,
    GIG_ESCROW_STATUSES,
    GIG_MESSAGE_VISIBILITIES,
    GIG_ORDER_STATUSES,
    GIG_REQUIREMENT_STATUSES,
    GIG_REVISION_STATUSES,
    GigOrder,
    GigOrderActivity,
    GigOrderEscrowCheckpoint,
    GigOrderMessage,
    GigOrderRequirement,
    GigOrderRevision,
    GigVendorScorecard,
)
from app.services.cache_service import get_cache
from app.services.helpers.normalizers import (
    as_utc,
    ensure_enum,
    list_or_none,
    normalize_keys,
    optional_string,
    parse_date_value,
    parse_number,
    require_string,
)
from app.services.helpers.scoped_queries import get_scoped
from app.services.order_audit import list_order_audit, record_order_audit
from app.services.sla_escalation_service import (
    detect_sla_breaches,
    list_open_escalations,
    resolve_order_escalations,
)

logger = logging.getLogger(__name__)

DASHBOARD_CACHE_PREFIX = "company:orders:dashboard"
DEFAULT_DASHBOARD_TTL = 30

ESCROW_HELD_STATUSES = frozenset({"funded", "pending"})
SCORE_FIELDS = ("quality_score", "communication_score", "reliability_score")


# ═════════════════════════════════════════════════════════════════════════════
# Cache keys & invalidation
# ═════════════════════════════════════════════════════════════════════════════


def dashboard_cache_key(owner_id, status=None) -> str:
    return f"{DASHBOARD_CACHE_PREFIX}:{owner_id}:{status or 'all'}"


def invalidate_owner_dashboards(owner_id) -> int:
    """Drop every cached dashboard variant (all status buckets) for *owner_id*."""
    removed = get_cache().flush_prefix(f"{DASHBOARD_CACHE_PREFIX}:{owner_id}:")
    logger.debug("Dashboard cache flushed", extra={"owner_id": owner_id, "count": removed})
    return removed


# ═════════════════════════════════════════════════════════════════════════════
# Serialisation
# ═════════════════════════════════════════════════════════════════════════════


def _escrow_totals(order: GigOrder) -> dict:
    total = held = released = 0.0
    for checkpoint in order.escrow_checkpoints:
        amount = float(checkpoint.amount or 0)
        total += amount
        if checkpoint.status in ESCROW_HELD_STATUSES:
            held += amount
        elif checkpoint.status == "released":
            released += amount
    return {"total": round(total, 2), "held": round(held, 2), "released": round(released, 2)}


def serialize_order(order: GigOrder, detail: bool = False) -> dict:
    data = order.to_dict()
    data["is_closed"] = order.is_closed
    data["escrow"] = _escrow_totals(order)
    if detail:
        data["requirements"] = [r.to_dict() for r in order.requirements]
        data["revisions"] = [r.to_dict() for r in order.revisions]
        data["scorecard"] = order.scorecard.to_dict() if order.scorecard else None
        data["escrow_checkpoints"] = [c.to_dict() for c in order.escrow_checkpoints]
        data["timeline"] = [a.to_dict() for a in order.activities]
        data["messages"] = [m.to_dict() for m in order.messages]
        data["escalations"] = list_open_escalations(order.owner_id, [order.id])
        data["audit_log"] = list_order_audit(order.owner_id, order.id)
    return data


# ═════════════════════════════════════════════════════════════════════════════
# Dashboard
# ═════════════════════════════════════════════════════════════════════════════


def normalize_status_filter(status) -> str | None:
    """None/""/"all" → None; "open"/"closed" or an exact order status; else ValidationError."""
    if status is None:
        return None
    value = str(status).strip().lower()
    if value in ("", "all"):
        return None
    if value in ("open", "closed") or value in GIG_ORDER_STATUSES:
        return value
    allowed = ("open", "closed", *GIG_ORDER_STATUSES)
    raise ValidationError(f"status must be one of: {', '.join(allowed)}.", details={"status": list(allowed)})


def _matches_status(order: GigOrder, status_filter: str | None) -> bool:
    if status_filter is None:
        return True
    if status_filter == "open":
        return not order.is_closed
    if status_filter == "closed":
        return order.is_closed
    return order.status == status_filter


def _load_owner_orders(owner_id: int) -> list[GigOrder]:
    """Owner overview query: all orders with their escrow checkpoints."""
    stmt = (
        GigOrder.select_for_owner(owner_id)
        .options(selectinload(GigOrder.escrow_checkpoints))
        .order_by(GigOrder.created_at.desc(), GigOrder.id.desc())
    )
    return list(db.session.execute(stmt).scalars().all())


def compute_order_metrics(orders: list[GigOrder]) -> dict:
    open_orders = [o for o in orders if not o.is_closed]
    return {
        "total_orders": len(orders),
        "open_orders": len(open_orders),
        "closed_orders": len(orders) - len(open_orders),
        "value_in_flight": round(sum(float(o.amount or 0) for o in open_orders), 2),
        "escrow_held": round(sum(_escrow_totals(o)["held"] for o in open_orders), 2),
        "sla_breaches": 0,
    }


def _build_dashboard_body(owner_id: int, status_filter: str | None) -> dict:
    orders = [o for o in _load_owner_orders(owner_id) if _matches_status(o, status_filter)]
    return {
        "owner_id": owner_id,
        "status_filter": status_filter or "all",
        "orders": [serialize_order(o) for o in orders],
        "metrics": compute_order_metrics(orders),
        "alerts": [],
        "generated_at": utcnow().isoformat(),
    }


def _context_flag(context, name) -> bool:
    if context is None:
        return False
    if isinstance(context, dict):
        return bool(context.get(name))
    return bool(getattr(context, name, False))


def get_company_orders_dashboard(owner_id: int, status=None, context=None) -> dict:
    """Orders, metrics and SLA alerts for one owner.

    Args:
        owner_id: Owning company account.
        status: Optional filter: "open", "closed" or an exact order status.
        context: Mapping/object with ``can_manage_orders``; when truthy,
                 detected breaches are persisted as escalations.

    Returns:
        ``{owner_id, status_filter, orders, metrics, alerts, generated_at}``.
        ``metrics.sla_breaches`` and ``alerts`` reflect this call's detection.
    """
    status_filter = normalize_status_filter(status)
    cache = get_cache()
    key = dashboard_cache_key(owner_id, status_filter)

    body = cache.get(key)
    if body is None:
        logger.debug("Dashboard cache miss", extra={"owner_id": owner_id, "cache_key": key})
        body = _build_dashboard_body(owner_id, status_filter)
        cache.set(key, body, current_app.config.get("DASHBOARD_CACHE_TTL", DEFAULT_DASHBOARD_TTL))
    else:
        logger.debug("Dashboard cache hit", extra={"owner_id": owner_id, "cache_key": key})

    snapshot = copy.deepcopy(body)
    detection = detect_sla_breaches(
        snapshot["orders"], owner_id, escalate=_context_flag(context, "can_manage_orders"),
    )
    snapshot["metrics"]["sla_breaches"] = detection["breach_count"]
    snapshot["alerts"] = detection["alerts"]
    return snapshot


# ═════════════════════════════════════════════════════════════════════════════
# Order CRUD
# ═════════════════════════════════════════════════════════════════════════════


def ensure_order_ownership(owner_id: int, order_id: int, lock: bool = False) -> GigOrder:
    """Return the order if it belongs to *owner_id*; NotFoundError otherwise."""
    return get_scoped(GigOrder, order_id, owner_id=owner_id, lock=lock, label="Gig order")


def _next_order_number(owner_id: int) -> str:
    """ORD-{owner}-{seq:04d}; skips numbers already taken (e.g. after deletes)."""
    count = db.session.execute(
        select(func.count(GigOrder.id)).where(GigOrder.owner_id == owner_id)
    ).scalar() or 0
    seq = count + 1
    while True:
        candidate = f"ORD-{owner_id}-{seq:04d}"
        taken = db.session.execute(
            select(GigOrder.id).where(GigOrder.order_number == candidate)
        ).first()
        if taken is None:
            return candidate
        seq += 1


def _prepare_order(payload, is_update=False) -> dict:
    data = normalize_keys(payload)
    out = {}
    for key in ("vendor_name", "service_name"):
        if key in data or not is_update:
            out[key] = require_string(data.get(key), key)
    if "status" in data:
        out["status"] = ensure_enum(data["status"], GIG_ORDER_STATUSES, "status")
    if "progress_percent" in data:
        out["progress_percent"] = parse_number(
            data["progress_percent"], "progress_percent", allow_null=False, min_value=0, max_value=100,
        )
    if "amount" in data:
        out["amount"] = parse_number(data["amount"], "amount", allow_null=False, min_value=0)
    if "currency" in data:
        out["currency"] = (optional_string(data["currency"]) or "USD").upper()[:6]
    for key in ("kickoff_at", "due_at"):
        if key in data:
            out[key] = parse_date_value(data[key], key)
    if "metadata" in data:
        if data["metadata"] is not None and not isinstance(data["metadata"], dict):
            raise ValidationError("metadata must be an object.", details={"metadata": "not_object"})
        out["meta"] = data["metadata"]
    return out


def _check_schedule(kickoff_at, due_at):
    """Delivery may not be due before kickoff; skipped while either date is unknown."""
    if kickoff_at is None or due_at is None:
        return
    if as_utc(due_at) < as_utc(kickoff_at):
        raise ValidationError(
            "Delivery due date cannot be earlier than the kickoff date.",
            details={"due_at": "before_kickoff_at"},
        )


def _as_list(items, field) -> list:
    if items is None:
        return []
    if not isinstance(items, list):
        raise ValidationError(f"{field} must be a list.", details={field: "not_list"})
    return items


def _prepare_requirements(items) -> list[dict]:
    prepared = []
    for raw in _as_list(items, "requirements"):
        data = normalize_keys(raw)
        prepared.append({
            "title": require_string(data.get("title"), "requirements.title"),
            "status": ensure_enum(data.get("status"), GIG_REQUIREMENT_STATUSES,
                                  "requirements.status", default="pending"),
            "due_at": parse_date_value(data.get("due_at"), "requirements.due_at"),
            "notes": optional_string(data.get("notes")),
        })
    return prepared


def _prepare_requirement_changes(items) -> list[tuple[int | None, dict]]:
    """(requirement_id, fields) pairs for an update.

    Entries with an ``id`` patch only the fields they carry; entries without
    one are new requirements and need a title.
    """
    changes = []
    for raw in _as_list(items, "requirements"):
        data = normalize_keys(raw)
        requirement_id = parse_number(data.get("id"), "requirements.id", min_value=1, integer=True)
        if requirement_id is None:
            changes.append((None, _prepare_requirements([data])[0]))
            continue
        fields = {}
        if "title" in data:
            fields["title"] = require_string(data["title"], "requirements.title")
        if "status" in data:
            fields["status"] = ensure_enum(data["status"], GIG_REQUIREMENT_STATUSES, "requirements.status")
        if "due_at" in data:
            fields["due_at"] = parse_date_value(data["due_at"], "requirements.due_at")
        if "notes" in data:
            fields["notes"] = optional_string(data["notes"])
        changes.append((requirement_id, fields))
    return changes


def _prepare_removed_ids(items) -> list[int]:
    return [
        parse_number(value, "remove_requirement_ids", allow_null=False, min_value=1, integer=True)
        for value in _as_list(items, "remove_requirement_ids")
    ]


def _prepare_revisions(items) -> list[dict]:
    prepared = []
    for raw in _as_list(items, "new_revisions"):
        data = normalize_keys(raw)
        prepared.append({
            "round_number": parse_number(data.get("round_number"), "new_revisions.round_number",
                                         min_value=1, integer=True),
            "status": ensure_enum(data.get("status"), GIG_REVISION_STATUSES,
                                  "new_revisions.status", default="requested"),
            "requested_at": parse_date_value(data.get("requested_at"), "new_revisions.requested_at"),
            "due_at": parse_date_value(data.get("due_at"), "new_revisions.due_at"),
            "submitted_at": parse_date_value(data.get("submitted_at"), "new_revisions.submitted_at"),
            "approved_at": parse_date_value(data.get("approved_at"), "new_revisions.approved_at"),
            "summary": optional_string(data.get("summary")),
        })
    return prepared


def _prepare_scores(payload) -> dict:
    data = normalize_keys(payload)
    out = {}
    for key in (*SCORE_FIELDS, "overall_score"):
        if key in data:
            out[key] = parse_number(data[key], key, min_value=0, max_value=5)
    if "notes" in data:
        out["notes"] = optional_string(data["notes"])
    return out


def _overall_score(scores: dict):
    supplied = [float(v) for v in scores if v is not None]
    if not supplied:
        return None
    return round(sum(supplied) / len(supplied), 2)


def list_company_orders(owner_id: int, status=None) -> list[dict]:
    status_filter = normalize_status_filter(status)
    return [serialize_order(o) for o in _load_owner_orders(owner_id) if _matches_status(o, status_filter)]


def get_company_order(owner_id: int, order_id: int) -> dict:
    return serialize_order(ensure_order_ownership(owner_id, order_id), detail=True)


def create_company_order(owner_id: int, payload: dict, actor_id=None) -> dict:
    """Create an order plus nested requirements and scorecard in one transaction.

    Args:
        owner_id: Owning company account.
        payload: Order fields; optional ``requirements`` list and ``scorecard`` object.
        actor_id: Creating user (audit + timeline).

    Returns:
        Serialised order detail.
    """
    data = normalize_keys(payload)
    fields = _prepare_order(data)
    _check_schedule(fields.get("kickoff_at"), fields.get("due_at"))
    requirements = _prepare_requirements(data.get("requirements"))
    scorecard = _prepare_scores(data["scorecard"]) if data.get("scorecard") else None

    try:
        order = GigOrder(
            owner_id=owner_id,
            order_number=_next_order_number(owner_id),
            **fields,
        )
        db.session.add(order)
        db.session.flush()

        for item in requirements:
            db.session.add(GigOrderRequirement(order_id=order.id, **item))
        if scorecard is not None:
            if scorecard.get("overall_score") is None:
                scorecard["overall_score"] = _overall_score([scorecard.get(k) for k in SCORE_FIELDS])
            db.session.add(GigVendorScorecard(order_id=order.id, **scorecard))

        db.session.add(GigOrderActivity(
            order_id=order.id,
            actor_id=actor_id,
            activity_type="system",
            title="Order created",
            description=f"{order.service_name} with {order.vendor_name}",
        ))
        record_order_audit(owner_id, order.id, "order.create", actor_id, {"order_number": order.order_number})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_owner_dashboards(owner_id)
    logger.info(
        "Gig order created",
        extra={"owner_id": owner_id, "order_id": order.id, "actor_id": actor_id},
    )
    return serialize_order(order, detail=True)


def _apply_requirement_changes(order: GigOrder, changes, removed_ids) -> None:
    for requirement_id, fields in changes:
        if requirement_id is None:
            order.requirements.append(GigOrderRequirement(**fields))
            continue
        requirement = get_scoped(GigOrderRequirement, requirement_id, order_id=order.id, label="Requirement")
        for field, value in fields.items():
            setattr(requirement, field, value)
    if removed_ids:
        # Ids belonging to another order are ignored.
        wanted = set(removed_ids)
        for requirement in [r for r in order.requirements if r.id in wanted]:
            order.requirements.remove(requirement)


def _apply_revisions(order: GigOrder, revisions, actor_id) -> None:
    existing = len(order.revisions)
    for index, item in enumerate(revisions, start=1):
        if item["round_number"] is None:
            item["round_number"] = existing + index
        if item["requested_at"] is None:
            item["requested_at"] = utcnow()
        order.revisions.append(GigOrderRevision(**item))
        db.session.add(GigOrderActivity(
            order_id=order.id,
            actor_id=actor_id,
            activity_type="client",
            title=f"Revision round {item['round_number']} requested",
            description=item["summary"],
            meta={"round_number": item["round_number"], "status": item["status"]},
        ))


def _merge_scorecard(order: GigOrder, scores: dict) -> GigVendorScorecard:
    """Merge *scores* into the order's scorecard; overall defaults to the mean."""
    scorecard = order.scorecard
    if scorecard is None:
        scorecard = GigVendorScorecard(order_id=order.id)
        order.scorecard = scorecard
    for field, value in scores.items():
        setattr(scorecard, field, value)
    if scores.get("overall_score") is None:
        scorecard.overall_score = _overall_score([getattr(scorecard, k) for k in SCORE_FIELDS])
    return scorecard


def update_gig_order(owner_id: int, order_id: int, payload: dict, actor_id=None) -> dict:
    """Update an order and its nested collections in one transaction.

    Besides the order fields the payload may carry:
      - ``new_revisions``: revision rounds to append; ``round_number``
        defaults to the next round.
      - ``requirements``: entries with an ``id`` are patched, others created.
      - ``remove_requirement_ids``: requirements of this order to delete.
      - ``scorecard``: merged into the existing scorecard (created if missing).

    Moving into a closed status resolves open escalations.

    Raises:
        ValidationError: Bad field, or due_at earlier than kickoff_at.
        NotFoundError: Order (or a patched requirement) outside the scope.
    """
    data = normalize_keys(payload)
    updates = _prepare_order(data, is_update=True)
    revisions = _prepare_revisions(data.get("new_revisions"))
    requirement_changes = _prepare_requirement_changes(data.get("requirements"))
    removed_ids = _prepare_removed_ids(data.get("remove_requirement_ids"))
    scores = _prepare_scores(data["scorecard"]) if data.get("scorecard") else None

    try:
        order = ensure_order_ownership(owner_id, order_id, lock=True)
        _check_schedule(
            updates.get("kickoff_at", order.kickoff_at),
            updates.get("due_at", order.due_at),
        )
        was_closed = order.is_closed
        previous_status = order.status
        if isinstance(updates.get("meta"), dict) and isinstance(order.meta, dict):
            updates["meta"] = {**order.meta, **updates["meta"]}
        for field, value in updates.items():
            setattr(order, field, value)

        _apply_revisions(order, revisions, actor_id)
        _apply_requirement_changes(order, requirement_changes, removed_ids)
        if scores is not None:
            _merge_scorecard(order, scores)

        status_changed = "status" in updates and updates["status"] != previous_status
        if status_changed:
            db.session.add(GigOrderActivity(
                order_id=order.id,
                actor_id=actor_id,
                activity_type="system",
                title=f"Status changed to {order.status}",
                meta={"from": previous_status, "to": order.status},
            ))
        if not was_closed and order.status in CLOSED_ORDER_STATUSES:
            resolve_order_escalations(
                owner_id, order.id, resolved_by_id=actor_id,
                resolution=f"Order moved to {order.status}.", commit=False,
            )

        record_order_audit(
            owner_id,
            order.id,
            "order.status_change" if status_changed else "order.update",
            actor_id,
            {
                "fields": sorted(updates),
                "from": previous_status,
                "to": order.status,
                "revisions_added": len(revisions),
                "requirements_changed": len(requirement_changes),
                "requirements_removed": len(removed_ids),
                "scorecard": scores is not None,
            },
        )
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_owner_dashboards(owner_id)
    logger.info(
        "Gig order updated",
        extra={"owner_id": owner_id, "order_id": order_id, "revisions_added": len(revisions)},
    )
    return serialize_order(order, detail=True)


def delete_company_order(owner_id: int, order_id: int, actor_id=None) -> None:
    """Delete an order after resolving its open escalations. Audit rows are kept."""
    try:
        order = ensure_order_ownership(owner_id, order_id, lock=True)
        resolve_order_escalations(
            owner_id, order.id, resolved_by_id=actor_id, resolution="Order deleted.", commit=False,
        )
        record_order_audit(owner_id, order.id, "order.delete", actor_id, {"order_number": order.order_number})
        db.session.delete(order)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_owner_dashboards(owner_id)
    logger.info("Gig order deleted", extra={"owner_id": owner_id, "order_id": order_id})


# ═════════════════════════════════════════════════════════════════════════════
# Timeline, escrow, messages, reviews
# ═════════════════════════════════════════════════════════════════════════════


def add_order_timeline_event(owner_id: int, order_id: int, payload: dict, actor_id=None) -> dict:
    data = normalize_keys(payload)
    title = require_string(data.get("title"), "title")
    activity_type = ensure_enum(data.get("activity_type"), GIG_ACTIVITY_TYPES, "activity_type", default="client")
    occurred_at = parse_date_value(data.get("occurred_at"), "occurred_at") or utcnow()

    try:
        order = ensure_order_ownership(owner_id, order_id)
        activity = GigOrderActivity(
            order_id=order.id,
            actor_id=actor_id,
            activity_type=activity_type,
            title=title,
            description=optional_string(data.get("description")),
            occurred_at=occurred_at,
            meta=data.get("metadata"),
        )
        db.session.add(activity)
        db.session.flush()
        record_order_audit(owner_id, order.id, "timeline.add", actor_id, {"activity_id": activity.id})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_owner_dashboards(owner_id)
    return activity.to_dict()


def create_escrow_checkpoint(owner_id: int, order_id: int, payload: dict, actor_id=None) -> dict:
    data = normalize_keys(payload)
    label = require_string(data.get("label"), "label")
    amount = parse_number(data.get("amount"), "amount", allow_null=False, min_value=0)
    status = ensure_enum(data.get("status"), GIG_ESCROW_STATUSES, "status", default="pending")
    if status == "released":
        raise ValidationError("Use the release action to release a checkpoint.", details={"status": "released"})
    csat = parse_number(data.get("csat_threshold"), "csat_threshold", min_value=0, max_value=5)

    try:
        order = ensure_order_ownership(owner_id, order_id, lock=True)
        checkpoint = GigOrderEscrowCheckpoint(
            order_id=order.id,
            label=label,
            amount=amount,
            currency=(optional_string(data.get("currency")) or order.currency).upper()[:6],
            status=status,
            approval_requirement=optional_string(data.get("approval_requirement")),
            csat_threshold=csat,
            notes=optional_string(data.get("notes")),
            meta=data.get("metadata"),
        )
        db.session.add(checkpoint)
        db.session.flush()
        record_order_audit(owner_id, order.id, "escrow.create", actor_id, {"checkpoint_id": checkpoint.id, "amount": amount})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_owner_dashboards(owner_id)
    logger.info("Escrow checkpoint created", extra={"owner_id": owner_id, "order_id": order_id})
    return checkpoint.to_dict()


def update_escrow_checkpoint(owner_id: int, order_id: int, checkpoint_id: int, payload: dict, actor_id=None) -> dict:
    data = normalize_keys(payload)
    updates = {}
    if "label" in data:
        updates["label"] = require_string(data["label"], "label")
    if "amount" in data:
        updates["amount"] = parse_number(data["amount"], "amount", allow_null=False, min_value=0)
    if "status" in data:
        updates["status"] = ensure_enum(data["status"], GIG_ESCROW_STATUSES, "status")
        if updates["status"] == "released":
            raise ValidationError("Use the release action to release a checkpoint.", details={"status": "released"})
    if "csat_threshold" in data:
        updates["csat_threshold"] = parse_number(data["csat_threshold"], "csat_threshold", min_value=0, max_value=5)
    for key in ("approval_requirement", "notes", "payout_reference"):
        if key in data:
            updates[key] = optional_string(data[key])
    if "metadata" in data:
        updates["meta"] = data["metadata"]

    try:
        order = ensure_order_ownership(owner_id, order_id)
        checkpoint = get_scoped(
            GigOrderEscrowCheckpoint, checkpoint_id, order_id=order.id, lock=True, label="Escrow checkpoint",
        )
        if checkpoint.status == "released":
            raise ConflictError("Released escrow checkpoints cannot be modified.", resource="escrow")
        for field, value in updates.items():
            setattr(checkpoint, field, value)
        record_order_audit(owner_id, order.id, "escrow.update", actor_id,
                           {"checkpoint_id": checkpoint.id, "fields": sorted(updates)})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_owner_dashboards(owner_id)
    return checkpoint.to_dict()


def release_escrow_checkpoint(owner_id: int, order_id: int, checkpoint_id: int, actor_id=None, payload=None) -> dict:
    """Release funds held at a checkpoint.

    Raises:
        ConflictError: Already released, refunded/cancelled, or non-positive amount.
    """
    data = normalize_keys(payload)
    try:
        order = ensure_order_ownership(owner_id, order_id)
        checkpoint = get_scoped(
            GigOrderEscrowCheckpoint, checkpoint_id, order_id=order.id, lock=True, label="Escrow checkpoint",
        )
        if checkpoint.status == "released":
            raise ConflictError("Escrow checkpoint has already been released.", resource="escrow")
        if checkpoint.status in ("refunded", "cancelled"):
            raise ConflictError(f"Escrow checkpoint is {checkpoint.status} and cannot be released.", resource="escrow")
        if checkpoint.amount is None or float(checkpoint.amount) <= 0:
            raise ConflictError("Escrow release amount must be greater than zero.", resource="escrow")

        now = utcnow()
        checkpoint.status = "released"
        checkpoint.released_at = now
        checkpoint.released_by_id = actor_id
        if "payout_reference" in data:
            checkpoint.payout_reference = optional_string(data["payout_reference"])

        db.session.add(GigOrderActivity(
            order_id=order.id,
            actor_id=actor_id,
            activity_type="system",
            title=f"Escrow released: {checkpoint.label}",
            occurred_at=now,
            meta={"checkpoint_id": checkpoint.id, "amount": float(checkpoint.amount)},
        ))
        record_order_audit(owner_id, order.id, "escrow.release", actor_id,
                           {"checkpoint_id": checkpoint.id, "amount": float(checkpoint.amount)})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_owner_dashboards(owner_id)
    logger.info(
        "Escrow checkpoint released",
        extra={"owner_id": owner_id, "order_id": order_id, "record_id": checkpoint_id},
    )
    return checkpoint.to_dict()


def post_order_message(owner_id: int, order_id: int, payload: dict, actor=None) -> dict:
    actor = actor or {}
    if actor.get("id") is None:
        raise ValidationError("author is required.", details={"author_id": "required"})
    data = normalize_keys(payload)
    body = require_string(data.get("body"), "body")
    visibility = ensure_enum(data.get("visibility"), GIG_MESSAGE_VISIBILITIES, "visibility", default="private")

    try:
        order = ensure_order_ownership(owner_id, order_id)
        message = GigOrderMessage(
            order_id=order.id,
            author_id=actor["id"],
            author_name=optional_string(data.get("author_name")) or f"User {actor['id']}",
            role_label=optional_string(data.get("role_label")),
            body=body,
            attachments=list_or_none(data.get("attachments")),
            visibility=visibility,
        )
        db.session.add(message)
        db.session.flush()
        record_order_audit(owner_id, order.id, "message.post", actor["id"], {"message_id": message.id})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_owner_dashboards(owner_id)
    return message.to_dict()


def upsert_order_review(owner_id: int, order_id: int, payload: dict, actor_id=None) -> dict:
    """Create or update the vendor scorecard; overall defaults to the mean of the given scores."""
    scores = _prepare_scores(payload)
    if not scores:
        raise ValidationError("At least one score is required.", details={"scores": list(SCORE_FIELDS)})

    try:
        order = ensure_order_ownership(owner_id, order_id, lock=True)
        scorecard = _merge_scorecard(order, scores)
        db.session.flush()
        record_order_audit(owner_id, order.id, "review.upsert", actor_id, {"fields": sorted(scores)})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_owner_dashboards(owner_id)
    return scorecard.to_dict()


# ═════════════════════════════════════════════════════════════════════════════
# Escalations
# ═════════════════════════════════════════════════════════════════════════════


def list_order_escalations(owner_id: int, order_id: int) -> list[dict]:
    ensure_order_ownership(owner_id, order_id)
    return list_open_escalations(owner_id, [order_id])


def resolve_company_order_escalations(owner_id: int, order_id: int, actor_id=None, resolution=None) -> dict:
    """Manually resolve an order's open escalations. Returns ``{"resolved": n}``."""
    try:
        order = ensure_order_ownership(owner_id, order_id)
        resolved = resolve_order_escalations(
            owner_id, order.id, resolved_by_id=actor_id,
            resolution=optional_string(resolution), commit=False,
        )
        if resolved:
            record_order_audit(owner_id, order.id, "escalation.resolve", actor_id, {"resolved": resolved})
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    invalidate_owner_dashboards(owner_id)
    return {"resolved": resolved}
