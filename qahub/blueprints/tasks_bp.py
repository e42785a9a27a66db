"""
QA Hub
Task Blueprint — tasks, task links, hierarchy and the board.

Endpoints:
    Tasks:
        GET    /api/v1/projects/<pid>/tasks                          — List (?status, parent_id, assigned_to)
        POST   /api/v1/projects/<pid>/tasks                          — Create
        GET    /api/v1/projects/<pid>/tasks/<id>                     — Detail
        PUT    /api/v1/projects/<pid>/tasks/<id>                     — Update
        DELETE /api/v1/projects/<pid>/tasks/<id>                     — Delete
        PUT    /api/v1/projects/<pid>/tasks/<id>/status              — Status change
        PUT    /api/v1/projects/<pid>/tasks/<id>/parent              — Set / clear parent
        GET    /api/v1/projects/<pid>/tasks/<id>/subtasks            — Direct subtasks

    Links:
        POST   /api/v1/projects/<pid>/tasks/<id>/links               — Link to Task/Bug/TestCase
        DELETE /api/v1/projects/<pid>/tasks/<id>/links/<index>       — Unlink by position
        DELETE /api/v1/projects/<pid>/tasks/<id>/links               — Unlink by ?target_type&target_id
        PUT    /api/v1/projects/<pid>/tasks/<id>/bugs/<bug_id>       — Link bug (symmetric)
        DELETE /api/v1/projects/<pid>/tasks/<id>/bugs/<bug_id>       — Unlink bug

    Board:
        GET    /api/v1/projects/<pid>/board                          — Columns + swimlanes
        POST   /api/v1/projects/<pid>/board/move                     — Drop card on "<scope>:<status>"
"""

import logging

from flask import Blueprint, jsonify, request

from qahub.blueprints import json_body, register_error_handlers
from qahub.core.exceptions import ValidationError
from qahub.middleware.jwt_auth import current_actor, require_actor
from qahub.services import link_service, task_service, workflow_service

logger = logging.getLogger(__name__)

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/v1")
tasks_bp.before_request(require_actor)
register_error_handlers(tasks_bp)


def _task_payload(task):
    d = task.to_dict()
    d["is_parent"] = task_service.is_parent(task)
    return d


# ═════════════════════════════════════════════════════════════════════════════
# TASKS
# ═════════════════════════════════════════════════════════════════════════════

@tasks_bp.route("/projects/<int:project_id>/tasks", methods=["GET"])
def list_tasks(project_id):
    tasks = task_service.list_tasks(
        current_actor(), project_id,
        status=request.args.get("status"),
        parent_id=request.args.get("parent_id"),
        assigned_to=request.args.get("assigned_to"),
    )
    return jsonify([t.to_dict() for t in tasks]), 200


@tasks_bp.route("/projects/<int:project_id>/tasks", methods=["POST"])
def create_task(project_id):
    task = task_service.create_task(current_actor(), project_id, json_body())
    return jsonify(_task_payload(task)), 201


@tasks_bp.route("/projects/<int:project_id>/tasks/<int:task_id>", methods=["GET"])
def get_task(project_id, task_id):
    task = task_service.get_task(current_actor(), project_id, task_id)
    return jsonify(_task_payload(task)), 200


@tasks_bp.route("/projects/<int:project_id>/tasks/<int:task_id>", methods=["PUT", "PATCH"])
def update_task(project_id, task_id):
    task = task_service.update_task(current_actor(), project_id, task_id, json_body())
    return jsonify(_task_payload(task)), 200


@tasks_bp.route("/projects/<int:project_id>/tasks/<int:task_id>", methods=["DELETE"])
def delete_task(project_id, task_id):
    task_service.delete_task(current_actor(), project_id, task_id)
    return jsonify({"message": "Task deleted"}), 200


@tasks_bp.route("/projects/<int:project_id>/tasks/<int:task_id>/status", methods=["PUT"])
def change_task_status(project_id, task_id):
    status = json_body().get("status")
    if not status:
        raise ValidationError("status is required", details={"status": "required"})
    task = workflow_service.change_task_status(current_actor(), project_id, task_id, status)
    return jsonify(_task_payload(task)), 200


@tasks_bp.route("/projects/<int:project_id>/tasks/<int:task_id>/parent", methods=["PUT"])
def set_parent(project_id, task_id):
    data = json_body()
    if "parent_id" not in data:
        raise ValidationError("parent_id is required (null clears it)",
                              details={"parent_id": "required"})
    task = link_service.set_parent(current_actor(), project_id, task_id, data["parent_id"])
    return jsonify(_task_payload(task)), 200


@tasks_bp.route("/projects/<int:project_id>/tasks/<int:task_id>/subtasks", methods=["GET"])
def list_subtasks(project_id, task_id):
    task = task_service.get_task(current_actor(), project_id, task_id)
    return jsonify([t.to_dict() for t in task_service.subtasks_of(task)]), 200


# ═════════════════════════════════════════════════════════════════════════════
# LINKS
# ═════════════════════════════════════════════════════════════════════════════

@tasks_bp.route("/projects/<int:project_id>/tasks/<int:task_id>/links", methods=["POST"])
def add_link(project_id, task_id):
    data = json_body()
    task = link_service.link_task_to(
        current_actor(), project_id, task_id, data.get("target_type"), data.get("target_id"),
    )
    return jsonify(_task_payload(task)), 201


@tasks_bp.route(
    "/projects/<int:project_id>/tasks/<int:task_id>/links/<int:index>", methods=["DELETE"],
)
def remove_link_at(project_id, task_id, index):
    task = link_service.unlink_task_from(current_actor(), project_id, task_id, index=index)
    return jsonify(_task_payload(task)), 200


@tasks_bp.route("/projects/<int:project_id>/tasks/<int:task_id>/links", methods=["DELETE"])
def remove_link(project_id, task_id):
    target_type = request.args.get("target_type")
    target_id = request.args.get("target_id")
    if not target_type or not target_id:
        raise ValidationError("target_type and target_id are required",
                              details={"target_type": "required", "target_id": "required"})
    task = link_service.unlink_task_from(
        current_actor(), project_id, task_id, target_type=target_type, target_id=target_id,
    )
    return jsonify(_task_payload(task)), 200


@tasks_bp.route(
    "/projects/<int:project_id>/tasks/<int:task_id>/bugs/<int:bug_id>", methods=["PUT"],
)
def link_bug(project_id, task_id, bug_id):
    _bug, task = link_service.link_bug_task(
        current_actor(), project_id, bug_id, task_id, surface="task",
    )
    return jsonify(_task_payload(task)), 200


@tasks_bp.route(
    "/projects/<int:project_id>/tasks/<int:task_id>/bugs/<int:bug_id>", methods=["DELETE"],
)
def unlink_bug(project_id, task_id, bug_id):
    _bug, task = link_service.unlink_bug_task(
        current_actor(), project_id, bug_id, task_id, surface="task",
    )
    return jsonify(_task_payload(task)), 200


# ═════════════════════════════════════════════════════════════════════════════
# BOARD
# ═════════════════════════════════════════════════════════════════════════════

@tasks_bp.route("/projects/<int:project_id>/board", methods=["GET"])
def get_board(project_id):
    columns, groups = task_service.board(current_actor(), project_id)
    return jsonify({
        "columns": [c.to_dict() for c in columns],
        "groups": [g.to_dict() for g in groups],
    }), 200


@tasks_bp.route("/projects/<int:project_id>/board/move", methods=["POST"])
def move_card(project_id):
    data = json_body()
    if data.get("task_id") is None:
        raise ValidationError("task_id is required", details={"task_id": "required"})
    task = task_service.move_card(
        current_actor(), project_id, data["task_id"], data.get("destination"),
    )
    return jsonify(_task_payload(task)), 200
