#!/usr/bin/env python3
"""
Gig & Workspace Operations Platform — Demo Seed.

Creates one company owner with:
  - a project whose workspace is populated through the entity registry
    (budget lines, tasks, meetings, invites, time entries ...)
  - three gig orders: one on track, one 30h overdue (critical SLA breach),
    one completed — plus escrow checkpoints and a vendor review

Usage:
    python scripts/seed_demo_data.py                 # seed owner 1
    python scripts/seed_demo_data.py --owner-id 7    # seed a different owner
    python scripts/seed_demo_data.py --reset         # drop + recreate tables first
"""

import argparse
import sys
from datetime import datetime, timedelta, timezone

sys.path.insert(0, ".")

from app import create_app
from app.models import db
from app.models.project import Project
from app.services import company_orders_service as orders
from app.services import workspace_management_service as workspace

_now = datetime.now(timezone.utc)


def _iso(delta_hours: float) -> str:
    return (_now + timedelta(hours=delta_hours)).isoformat()


# ═══════════════════════════════════════════════════════════════════════════
# 1. PROJECT WORKSPACE
# ═══════════════════════════════════════════════════════════════════════════

def seed_project(owner_id: int) -> int:
    project = Project(
        owner_id=owner_id,
        title="Brand refresh & marketing site",
        description="New visual identity, marketing site rebuild and launch campaign.",
        status="in_progress",
        budget_allocated=48000,
    )
    db.session.add(project)
    db.session.commit()

    pid = project.id
    entities = [
        ("budget-lines", {"category": "Design", "label": "Identity system", "plannedAmount": 12000, "actualAmount": 9500}),
        ("budget-lines", {"category": "Engineering", "label": "Site build", "plannedAmount": 24000, "actualAmount": 6000}),
        ("objectives", {"title": "Launch new site", "status": "on_track", "targetValue": 1, "dueDate": _iso(24 * 30)}),
        ("objectives", {"title": "Lift trial signups 20%", "status": "at_risk", "targetValue": 20, "currentValue": 6}),
        ("tasks", {"title": "Logo exploration", "status": "completed", "priority": "high",
                   "startDate": _iso(-24 * 14), "dueDate": _iso(-24 * 7), "progressPercent": 100}),
        ("tasks", {"title": "Homepage wireframes", "status": "in_progress", "priority": "critical",
                   "startDate": _iso(-24 * 3), "dueDate": _iso(24 * 4), "estimatedHours": 16}),
        ("meetings", {"title": "Weekly sync", "scheduledAt": _iso(26), "durationMinutes": 30,
                      "organizerName": "Dana Ortiz"}),
        ("calendar-events", {"title": "Launch day", "startAt": _iso(24 * 30), "eventType": "milestone"}),
        ("role-assignments", {"roleName": "Design lead", "memberName": "Sam Lee", "status": "active",
                              "allocationPercent": 60}),
        ("invites", {"email": "reviewer@example.com", "role": "Reviewer", "status": "accepted"}),
        ("hr-records", {"memberName": "Sam Lee", "employmentType": "contract", "status": "active",
                        "hourlyRate": 85, "weeklyCapacityHours": 30}),
        ("time-entries", {"memberName": "Sam Lee", "entryDate": _now.date().isoformat(), "hours": 6.5,
                          "billable": "yes", "status": "submitted"}),
        ("objects", {"objectType": "deliverable", "label": "Brand guidelines PDF", "quantity": 1}),
        ("documents", {"name": "Creative brief", "category": "brief",
                       "storageUrl": "https://files.example.com/brief.pdf", "sizeBytes": 182000}),
        ("chat-messages", {"authorName": "Dana Ortiz", "body": "Kickoff notes are in the brief.", "pinned": True}),
    ]
    for entity, payload in entities:
        workspace.create_workspace_entity(owner_id, pid, entity, payload)
    workspace.update_workspace_summary(owner_id, pid, {
        "status": "in_progress", "progressPercent": 35, "riskLevel": "medium",
        "nextMilestone": "Homepage sign-off", "nextMilestoneDueAt": _iso(24 * 4),
    })
    print(f"  ✓ Project {pid} with {len(entities)} workspace records")
    return pid


# ═══════════════════════════════════════════════════════════════════════════
# 2. GIG ORDERS
# ═══════════════════════════════════════════════════════════════════════════

def seed_orders(owner_id: int) -> list[int]:
    on_track = orders.create_company_order(owner_id, {
        "vendorName": "Pixel Forge", "serviceName": "Illustration pack",
        "status": "in_delivery", "amount": 1800, "dueAt": _iso(72),
        "requirements": [{"title": "Brand palette"}, {"title": "Reference moodboard", "status": "received"}],
    }, actor_id=owner_id)
    overdue = orders.create_company_order(owner_id, {
        "vendorName": "Copy Collective", "serviceName": "Landing page copy",
        "status": "in_delivery", "amount": 950, "dueAt": _iso(-30),
    }, actor_id=owner_id)
    done = orders.create_company_order(owner_id, {
        "vendorName": "Motion Lab", "serviceName": "Launch teaser video",
        "status": "completed", "amount": 3200, "dueAt": _iso(-24 * 5),
        "scorecard": {"qualityScore": 4.8, "communicationScore": 4.5, "reliabilityScore": 5},
    }, actor_id=owner_id)

    checkpoint = orders.create_escrow_checkpoint(owner_id, on_track["id"], {
        "label": "Milestone 1", "amount": 900, "status": "funded",
    }, actor_id=owner_id)
    orders.create_escrow_checkpoint(owner_id, overdue["id"], {
        "label": "Full payment", "amount": 950, "status": "funded",
    }, actor_id=owner_id)
    orders.release_escrow_checkpoint(owner_id, on_track["id"], checkpoint["id"], actor_id=owner_id)

    ids = [on_track["id"], overdue["id"], done["id"]]
    print(f"  ✓ {len(ids)} gig orders (1 overdue)")
    return ids


def main():
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--owner-id", type=int, default=1)
    parser.add_argument("--reset", action="store_true", help="Drop and recreate all tables first")
    args = parser.parse_args()

    app = create_app()
    with app.app_context():
        if args.reset:
            db.drop_all()
            db.create_all()
            print("  ✓ Tables recreated")

        print(f"Seeding demo data for owner {args.owner_id} ...")
        seed_project(args.owner_id)
        seed_orders(args.owner_id)

        dashboard = orders.get_company_orders_dashboard(
            args.owner_id, context={"can_manage_orders": True},
        )
        metrics = dashboard["metrics"]
        print(
            f"  ✓ Dashboard: {metrics['open_orders']} open, {metrics['sla_breaches']} SLA breach(es), "
            f"escrow held {metrics['escrow_held']:.2f}"
        )
    print("Done.")


if __name__ == "__main__":
    main()
