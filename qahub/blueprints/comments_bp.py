"""
QA Hub
Comment Blueprint — threaded comments on bugs and tasks.

Endpoints:
    GET    /api/v1/projects/<pid>/<bugs|tasks>/<id>/comments     — Thread (?include_resolved)
    POST   /api/v1/projects/<pid>/<bugs|tasks>/<id>/comments     — Comment or reply (parent_id)
    PUT    /api/v1/projects/<pid>/comments/<id>/resolve          — Resolve (author only)
"""

from flask import Blueprint, jsonify, request

from qahub.blueprints import json_body, register_error_handlers
from qahub.middleware.jwt_auth import current_actor, require_actor
from qahub.services import comment_service
from qahub.utils.helpers import parse_bool

comments_bp = Blueprint("comments", __name__, url_prefix="/api/v1")
comments_bp.before_request(require_actor)
register_error_handlers(comments_bp)

_SUBJECT_TYPES = {"bugs": "Bug", "tasks": "Task"}

_SUBJECT_ROUTE = "/projects/<int:project_id>/<any(bugs, tasks):subject>/<int:subject_id>/comments"


@comments_bp.route(_SUBJECT_ROUTE, methods=["GET"])
def list_comments(project_id, subject, subject_id):
    thread = comment_service.list_thread(
        current_actor(), project_id, _SUBJECT_TYPES[subject], subject_id,
        include_resolved=parse_bool(request.args.get("include_resolved")),
    )
    return jsonify([comment.to_dict(replies=replies) for comment, replies in thread]), 200


@comments_bp.route(_SUBJECT_ROUTE, methods=["POST"])
def post_comment(project_id, subject, subject_id):
    data = json_body()
    comment = comment_service.post(
        current_actor(), project_id, _SUBJECT_TYPES[subject], subject_id,
        data.get("content"), parent_id=data.get("parent_id"),
    )
    return jsonify(comment.to_dict()), 201


@comments_bp.route("/projects/<int:project_id>/comments/<int:comment_id>/resolve", methods=["PUT"])
def resolve_comment(project_id, comment_id):
    comment = comment_service.resolve(current_actor(), project_id, comment_id)
    return jsonify(comment.to_dict()), 200
