"""
Actor context middleware.

Identity is established by the upstream gateway, which forwards:

    X-User-Id     → integer user id (also the owner id of the user's own account)
    X-User-Roles  → comma-separated role names

This hook copies them into ``g.actor = {"id": int | None, "roles": [..]}``.
Blueprints then call ``resolve_owner_id`` and ``require_order_manager`` or
``require_workspace_manager`` to gate owner-scoped operations.
"""

import logging

from flask import current_app, g, request

from app.core.exceptions import AuthorizationError, ValidationError

logger = logging.getLogger(__name__)


def _parse_actor():
    raw_id = (request.headers.get("X-User-Id") or "").strip()
    actor_id = int(raw_id) if raw_id.isdigit() else None
    raw_roles = request.headers.get("X-User-Roles") or ""
    roles = sorted({r.strip().lower() for r in raw_roles.split(",") if r.strip()})
    return {"id": actor_id, "roles": roles}


def init_actor_context(app):
    """Register actor context middleware as a before_request hook."""

    @app.before_request
    def _actor_context():
        g.actor = _parse_actor()

    logger.info("Actor context middleware installed")


def current_actor() -> dict:
    return getattr(g, "actor", None) or {"id": None, "roles": []}


def _has_any_role(actor, config_key) -> bool:
    allowed = {r.lower() for r in current_app.config.get(config_key, ())}
    return bool(allowed.intersection(actor.get("roles") or ()))


def is_admin(actor=None) -> bool:
    return _has_any_role(actor or current_actor(), "ADMIN_ROLES")


def can_manage_orders(actor=None) -> bool:
    """True when the actor holds one of ORDER_MANAGER_ROLES."""
    return _has_any_role(actor or current_actor(), "ORDER_MANAGER_ROLES")


def resolve_owner_id(requested=None) -> int:
    """Return the owner the current request acts for.

    Without an explicit owner the actor's own id is used. Acting for a
    different owner requires an admin role.

    Raises:
        AuthorizationError: No actor, or actor may not act for *requested*.
        ValidationError: *requested* is not an integer.
    """
    actor = current_actor()
    if actor["id"] is None:
        raise AuthorizationError("Authentication required.")
    if requested in (None, ""):
        return actor["id"]
    try:
        owner_id = int(requested)
    except (TypeError, ValueError):
        raise ValidationError("owner_id must be an integer.", details={"owner_id": "not_integer"}) from None
    if owner_id != actor["id"] and not is_admin(actor):
        logger.warning(
            "Actor %s denied access to owner %s", actor["id"], owner_id,
            extra={"owner_id": owner_id, "actor_id": actor["id"]},
        )
        raise AuthorizationError()
    return owner_id


def can_manage_workspace(actor=None) -> bool:
    return _has_any_role(actor or current_actor(), "WORKSPACE_MANAGER_ROLES")


def require_order_manager():
    """Raise AuthorizationError unless the actor may mutate orders."""
    if not can_manage_orders():
        raise AuthorizationError("Order management permission required.")


def require_workspace_manager():
    """Raise AuthorizationError unless the actor may mutate project workspaces."""
    if not can_manage_workspace():
        raise AuthorizationError("Workspace management permission required.")
