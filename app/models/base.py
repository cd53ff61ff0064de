"""
Shared model mixins.

TimestampMixin   — created_at / updated_at columns
SerializerMixin  — column-driven to_dict() for JSON responses
OwnedModel       — abstract base for owner-scoped tables
"""

from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import inspect as sa_inspect

from app.models import db, utcnow


class TimestampMixin:
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)


class SerializerMixin:
    """Serialize every mapped column; dates become ISO strings, decimals floats."""

    def to_dict(self) -> dict:
        out = {}
        for attr in sa_inspect(self).mapper.column_attrs:
            value = getattr(self, attr.key)
            if isinstance(value, (datetime, date)):
                value = value.isoformat()
            elif isinstance(value, Decimal):
                value = float(value)
            out[attr.columns[0].name] = value
        return out


class OwnedModel(db.Model):
    """Abstract base for tables scoped by the owning company/agency account."""

    __abstract__ = True

    owner_id = db.Column(db.Integer, nullable=False, index=True)

    @classmethod
    def select_for_owner(cls, owner_id):
        """Return a select() filtered by owner_id."""
        return db.select(cls).where(cls.owner_id == owner_id)
