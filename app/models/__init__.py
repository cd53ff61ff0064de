"""
Gig & Workspace Operations Platform — ORM models.

A single ``db`` handle is shared by every model module; ``create_app``
binds it to the Flask app with ``db.init_app(app)``.
"""

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def isoformat(value):
    """Render a date/datetime column for JSON responses."""
    if value is None:
        return None
    return value.isoformat()
