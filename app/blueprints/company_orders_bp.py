"""Company gig orders blueprint.

REST API for the owner-scoped order dashboard and order operations.

Endpoint groups:
  Dashboard        GET    /api/v1/company/orders/dashboard
  Orders           GET/POST /api/v1/company/orders
                   GET/PUT/DELETE /api/v1/company/orders/<order_id>
  Timeline         POST   /api/v1/company/orders/<order_id>/timeline
  Escrow           POST   /api/v1/company/orders/<order_id>/escrow
                   PUT    /api/v1/company/orders/<order_id>/escrow/<checkpoint_id>
                   POST   /api/v1/company/orders/<order_id>/escrow/<checkpoint_id>/release
  Messages         POST   /api/v1/company/orders/<order_id>/messages
  Review           PUT    /api/v1/company/orders/<order_id>/review
  Escalations      GET    /api/v1/company/orders/<order_id>/escalations
                   POST   /api/v1/company/orders/<order_id>/escalations/resolve

owner_id comes from the query string (or JSON body) and defaults to the
acting user. Mutations require an ORDER_MANAGER_ROLES role. The service
layer owns all business logic and commits.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import app.services.company_orders_service as cos
from app.blueprints import paginate_items
from app.middleware.actor_context import (
    can_manage_orders,
    current_actor,
    require_order_manager,
    resolve_owner_id,
)
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

company_orders_bp = Blueprint("company_orders", __name__, url_prefix="/api/v1/company/orders")
register_error_handlers(company_orders_bp)


# ── Request helpers ───────────────────────────────────────────────────────────


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _owner_id() -> int:
    requested = request.args.get("owner_id")
    if requested in (None, ""):
        requested = _payload().get("owner_id") if request.is_json else None
    return resolve_owner_id(requested)


def _manager_owner() -> tuple[int, int | None]:
    """Owner scope + actor id for mutating endpoints."""
    owner_id = _owner_id()
    require_order_manager()
    return owner_id, current_actor()["id"]


# ═════════════════════════════════════════════════════════════════════════
# Dashboard & listing
# ═════════════════════════════════════════════════════════════════════════


@company_orders_bp.route("/dashboard", methods=["GET"])
def dashboard():
    owner_id = _owner_id()
    data = cos.get_company_orders_dashboard(
        owner_id,
        status=request.args.get("status"),
        context={"can_manage_orders": can_manage_orders()},
    )
    return jsonify(data), 200


@company_orders_bp.route("", methods=["GET"])
def list_orders():
    owner_id = _owner_id()
    orders = cos.list_company_orders(owner_id, status=request.args.get("status"))
    page, total = paginate_items(orders)
    return jsonify({"items": page, "total": total}), 200


@company_orders_bp.route("", methods=["POST"])
def create_order():
    owner_id, actor_id = _manager_owner()
    return jsonify(cos.create_company_order(owner_id, _payload(), actor_id)), 201


# ═════════════════════════════════════════════════════════════════════════
# Single order
# ═════════════════════════════════════════════════════════════════════════


@company_orders_bp.route("/<int:order_id>", methods=["GET"])
def get_order(order_id: int):
    return jsonify(cos.get_company_order(_owner_id(), order_id)), 200


@company_orders_bp.route("/<int:order_id>", methods=["PUT"])
def update_order(order_id: int):
    owner_id, actor_id = _manager_owner()
    return jsonify(cos.update_gig_order(owner_id, order_id, _payload(), actor_id)), 200


@company_orders_bp.route("/<int:order_id>", methods=["DELETE"])
def delete_order(order_id: int):
    owner_id, actor_id = _manager_owner()
    cos.delete_company_order(owner_id, order_id, actor_id)
    return "", 204


@company_orders_bp.route("/<int:order_id>/timeline", methods=["POST"])
def add_timeline_event(order_id: int):
    owner_id, actor_id = _manager_owner()
    return jsonify(cos.add_order_timeline_event(owner_id, order_id, _payload(), actor_id)), 201


# ── Escrow ────────────────────────────────────────────────────────────────────


@company_orders_bp.route("/<int:order_id>/escrow", methods=["POST"])
def create_escrow(order_id: int):
    owner_id, actor_id = _manager_owner()
    return jsonify(cos.create_escrow_checkpoint(owner_id, order_id, _payload(), actor_id)), 201


@company_orders_bp.route("/<int:order_id>/escrow/<int:checkpoint_id>", methods=["PUT"])
def update_escrow(order_id: int, checkpoint_id: int):
    owner_id, actor_id = _manager_owner()
    result = cos.update_escrow_checkpoint(owner_id, order_id, checkpoint_id, _payload(), actor_id)
    return jsonify(result), 200


@company_orders_bp.route("/<int:order_id>/escrow/<int:checkpoint_id>/release", methods=["POST"])
def release_escrow(order_id: int, checkpoint_id: int):
    owner_id, actor_id = _manager_owner()
    result = cos.release_escrow_checkpoint(owner_id, order_id, checkpoint_id, actor_id, _payload())
    return jsonify(result), 200


# ── Messages & review ─────────────────────────────────────────────────────────


@company_orders_bp.route("/<int:order_id>/messages", methods=["POST"])
def post_message(order_id: int):
    owner_id = _owner_id()
    return jsonify(cos.post_order_message(owner_id, order_id, _payload(), current_actor())), 201


@company_orders_bp.route("/<int:order_id>/review", methods=["PUT"])
def upsert_review(order_id: int):
    owner_id, actor_id = _manager_owner()
    return jsonify(cos.upsert_order_review(owner_id, order_id, _payload(), actor_id)), 200


# ── Escalations ───────────────────────────────────────────────────────────────


@company_orders_bp.route("/<int:order_id>/escalations", methods=["GET"])
def list_escalations(order_id: int):
    items = cos.list_order_escalations(_owner_id(), order_id)
    return jsonify({"items": items, "total": len(items)}), 200


@company_orders_bp.route("/<int:order_id>/escalations/resolve", methods=["POST"])
def resolve_escalations(order_id: int):
    owner_id, actor_id = _manager_owner()
    result = cos.resolve_company_order_escalations(
        owner_id, order_id, actor_id, resolution=_payload().get("resolution"),
    )
    return jsonify(result), 200
