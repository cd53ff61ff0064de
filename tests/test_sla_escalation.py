"""
SLA escalation tests.

Covers:
    - hours_overdue rounding / floor of 1 and severity thresholds
    - Breach detection with and without persistence (escalate flag)
    - At most one open escalation per order across repeated detection
    - The partial unique index rejects a second open row; persist recovers
      by updating the row that won the insert
    - Order ids are not reused, so a new order never inherits old escalations
    - Closing / deleting an order resolves its escalations
    - Per-order escalation cache entries are written and cleared
"""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

import app.services.company_orders_service as cos
import app.services.sla_escalation_service as svc
from app.models import db as _db
from app.models.gig_order import GigOrderEscalation
from app.services.cache_service import get_cache

OWNER = 1
NOW = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


def _order_dict(order_id=1, due_hours_ago=30, status="in_delivery", **extra):
    data = {
        "id": order_id,
        "order_number": f"ORD-1-{order_id:04d}",
        "vendor_name": "Acme Studio",
        "service_name": "Logo design",
        "status": status,
        "due_at": (NOW - timedelta(hours=due_hours_ago)).isoformat(),
    }
    data.update(extra)
    return data


def _escalation_count(open_only=False):
    stmt = select(func.count(GigOrderEscalation.id))
    if open_only:
        stmt = stmt.where(GigOrderEscalation.resolved_at.is_(None))
    return _db.session.execute(stmt).scalar()


# ═════════════════════════════════════════════════════════════════════════
# Pure helpers
# ═════════════════════════════════════════════════════════════════════════


class TestHelpers:
    def test_hours_overdue_rounds_and_floors_at_one(self):
        assert svc.hours_overdue(NOW - timedelta(minutes=5), NOW) == 1
        assert svc.hours_overdue(NOW - timedelta(hours=2, minutes=40), NOW) == 3
        assert svc.hours_overdue(NOW - timedelta(hours=30), NOW) == 30

    def test_hours_overdue_accepts_naive_datetimes(self):
        naive = (NOW - timedelta(hours=5)).replace(tzinfo=None)
        assert svc.hours_overdue(naive, NOW) == 5

    def test_classify_severity(self):
        assert svc.classify_severity(23) == "warning"
        assert svc.classify_severity(24) == "critical"

    def test_is_order_breached(self):
        assert svc.is_order_breached(_order_dict(), NOW)
        assert not svc.is_order_breached(_order_dict(due_hours_ago=-2), NOW)
        assert not svc.is_order_breached(_order_dict(status="completed"), NOW)
        assert not svc.is_order_breached(_order_dict(status="Archived"), NOW)
        assert not svc.is_order_breached(_order_dict(is_closed=True), NOW)
        assert not svc.is_order_breached(_order_dict(due_at=None), NOW)
        assert not svc.is_order_breached(_order_dict(due_at="not a date"), NOW)


# ═════════════════════════════════════════════════════════════════════════
# Detection
# ═════════════════════════════════════════════════════════════════════════


class TestDetection:
    def test_critical_breach_persisted(self):
        result = svc.detect_sla_breaches([_order_dict()], OWNER, escalate=True, now=NOW)

        assert result["breach_count"] == 1
        alert = result["alerts"][0]
        assert alert["severity"] == "critical"
        assert alert["hours_overdue"] == 30
        assert alert["escalation_status"] == "queued"
        assert alert["message"] == "Order ORD-1-0001 with Acme Studio is 30h past its due date."

        rows = svc.list_open_escalations(OWNER)
        assert len(rows) == 1
        assert rows[0]["status"] == "queued"
        assert rows[0]["severity"] == "critical"
        assert rows[0]["metadata"]["last_detected_at"] == NOW.isoformat()

    def test_detection_without_escalate_writes_nothing(self):
        result = svc.detect_sla_breaches([_order_dict()], OWNER, escalate=False, now=NOW)

        assert result["breach_count"] == 1
        assert result["alerts"][0]["escalation_id"] is None
        assert _escalation_count() == 0
        assert get_cache().get(svc.escalation_cache_key(OWNER, 1)) is None

    def test_repeated_detection_keeps_one_open_row(self):
        svc.detect_sla_breaches([_order_dict()], OWNER, escalate=True, now=NOW)
        svc.detect_sla_breaches([_order_dict()], OWNER, escalate=True, now=NOW)
        later = NOW + timedelta(hours=3)
        result = svc.detect_sla_breaches([_order_dict()], OWNER, escalate=True, now=later)

        assert _escalation_count() == 1
        assert result["alerts"][0]["hours_overdue"] == 33
        assert svc.list_open_escalations(OWNER)[0]["hours_overdue"] == 33

    def test_severity_upgrade_updates_existing_row(self):
        svc.detect_sla_breaches([_order_dict(due_hours_ago=5)], OWNER, escalate=True, now=NOW)
        first = svc.list_open_escalations(OWNER)[0]
        assert first["severity"] == "warning"

        svc.detect_sla_breaches([_order_dict(due_hours_ago=5)], OWNER, escalate=True, now=NOW + timedelta(hours=20))
        rows = svc.list_open_escalations(OWNER)
        assert len(rows) == 1
        assert rows[0]["id"] == first["id"]
        assert rows[0]["severity"] == "critical"

    def test_alert_ordering(self):
        orders = [
            _order_dict(order_id=1, due_hours_ago=3),
            _order_dict(order_id=2, due_hours_ago=26),
            _order_dict(order_id=3, due_hours_ago=48),
            _order_dict(order_id=4, due_hours_ago=10),
        ]
        alerts = svc.detect_sla_breaches(orders, OWNER, now=NOW)["alerts"]
        assert [a["order_id"] for a in alerts] == [3, 2, 4, 1]

    def test_persisted_breach_written_to_cache(self):
        svc.detect_sla_breaches([_order_dict(order_id=7)], OWNER, escalate=True, now=NOW)
        cached = get_cache().get(svc.escalation_cache_key(OWNER, 7))
        assert cached["order_id"] == 7
        assert cached["severity"] == "critical"

    def test_open_escalations_scoped_by_owner(self):
        svc.detect_sla_breaches([_order_dict()], OWNER, escalate=True, now=NOW)
        assert svc.list_open_escalations(2) == []
        assert svc.list_open_escalations(OWNER, order_ids=[]) == []


# ═════════════════════════════════════════════════════════════════════════
# Resolution
# ═════════════════════════════════════════════════════════════════════════


class TestResolution:
    def test_resolve_sets_status_and_clears_cache(self):
        svc.detect_sla_breaches([_order_dict(order_id=5)], OWNER, escalate=True, now=NOW)

        count = svc.resolve_order_escalations(OWNER, 5, resolved_by_id=9, resolution="Vendor delivered")

        assert count == 1
        assert svc.list_open_escalations(OWNER) == []
        row = _db.session.execute(select(GigOrderEscalation)).scalar_one()
        assert row.status == "resolved"
        assert row.resolved_at is not None
        assert row.meta["resolution"]["resolved_by_id"] == 9
        assert row.meta["resolution"]["note"] == "Vendor delivered"
        assert get_cache().get(svc.escalation_cache_key(OWNER, 5)) is None

    def test_new_breach_after_resolution_opens_new_row(self):
        svc.detect_sla_breaches([_order_dict()], OWNER, escalate=True, now=NOW)
        svc.resolve_order_escalations(OWNER, 1)
        svc.detect_sla_breaches([_order_dict()], OWNER, escalate=True, now=NOW)

        assert _escalation_count() == 2
        assert _escalation_count(open_only=True) == 1

    def test_closing_order_resolves_escalations(self, make_order):
        order = make_order(due_in_hours=-30)
        dashboard = cos.get_company_orders_dashboard(OWNER, context={"can_manage_orders": True})
        assert dashboard["metrics"]["sla_breaches"] == 1
        assert len(svc.list_open_escalations(OWNER, [order.id])) == 1

        cos.update_gig_order(OWNER, order.id, {"status": "completed"}, actor_id=1)

        assert svc.list_open_escalations(OWNER, [order.id]) == []
        dashboard = cos.get_company_orders_dashboard(OWNER, context={"can_manage_orders": True})
        assert dashboard["alerts"] == []
        assert _escalation_count(open_only=True) == 0

    def test_deleting_order_resolves_escalations(self, make_order):
        order = make_order(due_in_hours=-30)
        order_id = order.id
        cos.get_company_orders_dashboard(OWNER, context={"can_manage_orders": True})

        cos.delete_company_order(OWNER, order_id, actor_id=1)

        assert svc.list_open_escalations(OWNER, [order_id]) == []
        assert _escalation_count() == 1


# ═════════════════════════════════════════════════════════════════════════
# Storage constraints
# ═════════════════════════════════════════════════════════════════════════


def _escalation_row(order_id=1, resolved=False):
    return GigOrderEscalation(
        owner_id=OWNER,
        order_id=order_id,
        status="resolved" if resolved else "queued",
        severity="critical",
        hours_overdue=30,
        detected_at=NOW,
        resolved_at=NOW if resolved else None,
    )


class TestStorageConstraints:
    def test_second_open_row_rejected(self):
        _db.session.add(_escalation_row())
        _db.session.commit()

        _db.session.add(_escalation_row())
        with pytest.raises(IntegrityError):
            _db.session.flush()
        _db.session.rollback()
        assert _escalation_count(open_only=True) == 1

    def test_resolved_rows_do_not_conflict(self):
        _db.session.add_all([_escalation_row(resolved=True), _escalation_row(resolved=True), _escalation_row()])
        _db.session.commit()
        assert _escalation_count() == 3
        assert _escalation_count(open_only=True) == 1

    def test_persist_updates_row_inserted_concurrently(self, monkeypatch):
        _db.session.add(_escalation_row())
        _db.session.commit()

        real_lookup = svc._open_escalation_for
        calls = {"n": 0}

        def stale_first_lookup(owner_id, order_id):
            calls["n"] += 1
            if calls["n"] == 1:
                return None
            return real_lookup(owner_id, order_id)

        monkeypatch.setattr(svc, "_open_escalation_for", stale_first_lookup)
        escalation = svc.persist_escalation(OWNER, 1, "warning", 5, "Order is 5h past its due date.", now=NOW)
        _db.session.commit()

        assert calls["n"] == 2
        assert _escalation_count() == 1
        assert escalation.severity == "warning"
        assert escalation.hours_overdue == 5

    def test_new_order_does_not_inherit_deleted_orders_escalations(self, make_order):
        first = make_order(due_in_hours=-30)
        first_id = first.id
        cos.get_company_orders_dashboard(OWNER, context={"can_manage_orders": True})
        cos.delete_company_order(OWNER, first_id, actor_id=1)

        second = make_order(due_in_hours=48)

        assert second.id != first_id
        assert svc.list_open_escalations(OWNER, [second.id]) == []
        assert cos.get_company_order(OWNER, second.id)["escalations"] == []
