"""
Shared pytest fixtures for the Gig & Workspace Operations Platform test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate, cache flush (autouse)
    - client: Flask test client (function-scoped)
    - manager_headers / viewer_headers: gateway identity headers for owner 1
    - project: Pre-created Project owned by owner 1
    - make_order: factory for GigOrder rows
"""

from datetime import datetime, timedelta, timezone

import pytest

from app import create_app
from app.models import db as _db
from app.models.gig_order import GigOrder
from app.models.project import Project
from app.services.cache_service import get_cache

OWNER_ID = 1


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables.

    Ids are reused after the tables are recreated, so the cache is cleared
    on both sides of the test to avoid stale dashboards keyed by owner id.
    """
    with app.app_context():
        get_cache().clear()
        yield
        get_cache().clear()
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def manager_headers():
    return {"X-User-Id": str(OWNER_ID), "X-User-Roles": "company_admin"}


@pytest.fixture()
def viewer_headers():
    return {"X-User-Id": str(OWNER_ID)}


# ── Convenience fixtures ─────────────────────────────────────────────────


@pytest.fixture()
def project():
    """A project owned by OWNER_ID with no workspace yet."""
    p = Project(owner_id=OWNER_ID, title="Website relaunch", description="Marketing site rebuild")
    _db.session.add(p)
    _db.session.commit()
    return p


@pytest.fixture()
def make_order():
    """Factory: make_order(due_in_hours=..., status=..., owner_id=...) → GigOrder."""
    counter = {"n": 0}

    def _make(due_in_hours=None, status="in_delivery", owner_id=OWNER_ID, amount=500, **extra):
        counter["n"] += 1
        due_at = None
        if due_in_hours is not None:
            due_at = datetime.now(timezone.utc) + timedelta(hours=due_in_hours)
        order = GigOrder(
            owner_id=owner_id,
            order_number=f"T-{owner_id}-{counter['n']:04d}",
            vendor_name=extra.pop("vendor_name", "Acme Studio"),
            service_name=extra.pop("service_name", "Logo design"),
            status=status,
            amount=amount,
            due_at=due_at,
            **extra,
        )
        _db.session.add(order)
        _db.session.commit()
        return order

    return _make
