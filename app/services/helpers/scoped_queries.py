"""
Owner/workspace-scoped query helpers.

Every get-by-id on owner-scoped data MUST go through these helpers instead
of ``db.session.get(Model, pk)``. An unscoped lookup would let one owner
read or mutate another owner's order or workspace record.

Usage:
    order = get_scoped(GigOrder, order_id, owner_id=owner_id)
    task = get_scoped(ProjectWorkspaceTask, task_id, workspace_id=ws.id, lock=True)
    project = get_scoped(Project, project_id, owner_id=owner_id)

Cross-owner access is indistinguishable from a missing record: both raise
NotFoundError → HTTP 404.
"""

import logging

from sqlalchemy import select

from app.core.exceptions import NotFoundError
from app.models import db

logger = logging.getLogger(__name__)

_SCOPE_KWARGS = ("owner_id", "workspace_id", "order_id", "project_id")


def _scoped_select(model, pk, scopes: dict, lock: bool):
    provided = {k: v for k, v in scopes.items() if v is not None}
    if not provided:
        raise ValueError(
            f"{model.__name__} id={pk} requires at least one scope filter "
            f"({', '.join(_SCOPE_KWARGS)}). Unscoped lookups are forbidden."
        )

    missing = sorted(field for field in provided if not hasattr(model, field))
    if missing:
        raise ValueError(
            f"{model.__name__} id={pk}: scope field(s) {missing} are not columns on "
            f"{model.__name__}. Refusing to perform an unscoped lookup."
        )

    stmt = select(model).where(model.id == pk)
    for field, value in provided.items():
        stmt = stmt.where(getattr(model, field) == value)
    if lock:
        stmt = stmt.with_for_update()
    return stmt


def get_scoped(
    model,
    pk,
    *,
    owner_id: int | None = None,
    workspace_id: int | None = None,
    order_id: int | None = None,
    project_id: int | None = None,
    lock: bool = False,
    label: str | None = None,
):
    """Fetch one row by PK inside a mandatory scope.

    Args:
        model: SQLAlchemy model with an ``id`` PK and the scope column(s).
        pk: Primary key value.
        owner_id / workspace_id / order_id / project_id: scope filters.
        lock: Take a ``SELECT ... FOR UPDATE`` row lock (no-op on SQLite).
        label: Resource name used in the NotFoundError message.

    Raises:
        ValueError: No scope given, or a scope names a column the model lacks.
        NotFoundError: Row missing or outside the scope.
    """
    stmt = _scoped_select(
        model, pk,
        {"owner_id": owner_id, "workspace_id": workspace_id,
         "order_id": order_id, "project_id": project_id},
        lock,
    )
    entity = db.session.execute(stmt).scalar_one_or_none()
    if entity is None:
        raise NotFoundError(resource=label or model.__name__, resource_id=pk, owner_id=owner_id)
    return entity
