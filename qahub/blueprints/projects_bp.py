"""
QA Hub
Project Blueprint — projects, members, DEV permissions and board columns.

Endpoints:
    Projects:
        GET    /api/v1/projects                              — Projects the actor belongs to
        POST   /api/v1/projects                              — Create (actor becomes QA member)
        GET    /api/v1/projects/<id>                         — Detail + actor capabilities
        PUT    /api/v1/projects/<id>                         — Update name / description
        DELETE /api/v1/projects/<id>                         — Delete (creator only)

    Members:
        POST   /api/v1/projects/<id>/members                 — Add member
        DELETE /api/v1/projects/<id>/members/<member_id>     — Remove member

    Settings:
        GET    /api/v1/projects/<id>/capabilities            — Actor capability set
        PUT    /api/v1/projects/<id>/permissions             — DEV permission overrides
        PUT    /api/v1/projects/<id>/board-columns           — Board column layout
"""

import logging

from flask import Blueprint, jsonify

from qahub.blueprints import json_body, register_error_handlers
from qahub.middleware.jwt_auth import current_actor, require_actor
from qahub.services import permission_service, project_service

logger = logging.getLogger(__name__)

projects_bp = Blueprint("projects", __name__, url_prefix="/api/v1")
projects_bp.before_request(require_actor)
register_error_handlers(projects_bp)


def _project_payload(project):
    d = project.to_dict()
    d["capabilities"] = permission_service.capabilities_for(current_actor(), project).to_dict()
    return d


# ═════════════════════════════════════════════════════════════════════════════
# PROJECTS
# ═════════════════════════════════════════════════════════════════════════════

@projects_bp.route("/projects", methods=["GET"])
def list_projects():
    projects = project_service.list_projects(current_actor())
    return jsonify([p.to_dict(include_members=False) for p in projects]), 200


@projects_bp.route("/projects", methods=["POST"])
def create_project():
    project = project_service.create_project(current_actor(), json_body())
    return jsonify(_project_payload(project)), 201


@projects_bp.route("/projects/<int:project_id>", methods=["GET"])
def get_project(project_id):
    project = project_service.get_project(current_actor(), project_id)
    return jsonify(_project_payload(project)), 200


@projects_bp.route("/projects/<int:project_id>", methods=["PUT", "PATCH"])
def update_project(project_id):
    project = project_service.update_project(current_actor(), project_id, json_body())
    return jsonify(_project_payload(project)), 200


@projects_bp.route("/projects/<int:project_id>", methods=["DELETE"])
def delete_project(project_id):
    project_service.delete_project(current_actor(), project_id)
    return jsonify({"message": "Project deleted"}), 200


# ═════════════════════════════════════════════════════════════════════════════
# MEMBERS
# ═════════════════════════════════════════════════════════════════════════════

@projects_bp.route("/projects/<int:project_id>/members", methods=["POST"])
def add_member(project_id):
    project = project_service.add_member(current_actor(), project_id, json_body())
    return jsonify([m.to_dict() for m in project.members]), 201


@projects_bp.route("/projects/<int:project_id>/members/<member_id>", methods=["DELETE"])
def remove_member(project_id, member_id):
    project = project_service.remove_member(current_actor(), project_id, member_id)
    return jsonify([m.to_dict() for m in project.members]), 200


# ═════════════════════════════════════════════════════════════════════════════
# SETTINGS
# ═════════════════════════════════════════════════════════════════════════════

@projects_bp.route("/projects/<int:project_id>/capabilities", methods=["GET"])
def get_capabilities(project_id):
    _project, caps = project_service.load_context(current_actor(), project_id)
    return jsonify(caps.to_dict()), 200


@projects_bp.route("/projects/<int:project_id>/permissions", methods=["PUT"])
def update_permissions(project_id):
    permissions = project_service.update_permissions(current_actor(), project_id, json_body())
    return jsonify(permissions.to_dict()), 200


@projects_bp.route("/projects/<int:project_id>/board-columns", methods=["PUT"])
def update_board_columns(project_id):
    data = json_body()
    columns = project_service.update_board_columns(
        current_actor(), project_id, data.get("board_columns"),
    )
    return jsonify([c.to_dict() for c in columns]), 200
