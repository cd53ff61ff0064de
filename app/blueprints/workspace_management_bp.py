"""Project workspace management blueprint.

Endpoints:
  GET    /api/v1/projects/workspace/management                         — project list
  GET    /api/v1/projects/<pid>/workspace/management                   — snapshot
  PUT    /api/v1/projects/<pid>/workspace/management/summary           — summary update
  POST   /api/v1/projects/<pid>/workspace/management/<entity>          — create record
  PUT    /api/v1/projects/<pid>/workspace/management/<entity>/<rid>    — update record
  DELETE /api/v1/projects/<pid>/workspace/management/<entity>/<rid>    — delete record

``<entity>`` accepts the registry keys (``budget-lines``, ``tasks`` ...)
and their aliases (``budget_line``, ``task``, ``chat`` ...);
``integrations`` is accepted on PUT only.

owner_id comes from the query string (or JSON body) and defaults to the
acting user. Reads need an identity; mutations also require a
WORKSPACE_MANAGER_ROLES role. A project of another owner is a 404.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

import app.services.workspace_management_service as wms
from app.blueprints import paginate_items
from app.middleware.actor_context import require_workspace_manager, resolve_owner_id
from app.utils.errors import register_error_handlers

logger = logging.getLogger(__name__)

workspace_management_bp = Blueprint("workspace_management", __name__, url_prefix="/api/v1/projects")
register_error_handlers(workspace_management_bp)


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _owner_id() -> int:
    requested = request.args.get("owner_id")
    if requested in (None, ""):
        requested = _payload().get("owner_id") if request.is_json else None
    return resolve_owner_id(requested)


def _manager_owner_id() -> int:
    owner_id = _owner_id()
    require_workspace_manager()
    return owner_id


@workspace_management_bp.route("/workspace/management", methods=["GET"])
def list_projects():
    projects = wms.list_workspace_projects(_owner_id())
    page, total = paginate_items(projects)
    return jsonify({"items": page, "total": total}), 200


@workspace_management_bp.route("/<int:project_id>/workspace/management", methods=["GET"])
def get_snapshot(project_id: int):
    return jsonify(wms.get_project_workspace_management(_owner_id(), project_id)), 200


@workspace_management_bp.route("/<int:project_id>/workspace/management/summary", methods=["PUT"])
def update_summary(project_id: int):
    owner_id = _manager_owner_id()
    return jsonify(wms.update_workspace_summary(owner_id, project_id, _payload())), 200


@workspace_management_bp.route("/<int:project_id>/workspace/management/<entity>", methods=["POST"])
def create_entity(project_id: int, entity: str):
    owner_id = _manager_owner_id()
    record = wms.create_workspace_entity(owner_id, project_id, entity, _payload())
    return jsonify(record), 201


@workspace_management_bp.route("/<int:project_id>/workspace/management/<entity>/<int:record_id>", methods=["PUT"])
def update_entity(project_id: int, entity: str, record_id: int):
    owner_id = _manager_owner_id()
    record = wms.update_workspace_entity(owner_id, project_id, entity, record_id, _payload())
    return jsonify(record), 200


@workspace_management_bp.route("/<int:project_id>/workspace/management/<entity>/<int:record_id>", methods=["DELETE"])
def delete_entity(project_id: int, entity: str, record_id: int):
    owner_id = _manager_owner_id()
    wms.delete_workspace_entity(owner_id, project_id, entity, record_id)
    return "", 204
