"""
QA Hub
Note Blueprint — project notes (simple text or key/value).

Endpoints:
    GET    /api/v1/projects/<pid>/notes            — List, pinned first
    POST   /api/v1/projects/<pid>/notes            — Create (QA)
    PUT    /api/v1/projects/<pid>/notes/<id>       — Update (QA)
    DELETE /api/v1/projects/<pid>/notes/<id>       — Delete (QA)
"""

from flask import Blueprint, jsonify

from qahub.blueprints import json_body, register_error_handlers
from qahub.middleware.jwt_auth import current_actor, require_actor
from qahub.services import note_service

notes_bp = Blueprint("notes", __name__, url_prefix="/api/v1")
notes_bp.before_request(require_actor)
register_error_handlers(notes_bp)


@notes_bp.route("/projects/<int:project_id>/notes", methods=["GET"])
def list_notes(project_id):
    notes = note_service.list_notes(current_actor(), project_id)
    return jsonify([n.to_dict() for n in notes]), 200


@notes_bp.route("/projects/<int:project_id>/notes", methods=["POST"])
def create_note(project_id):
    note = note_service.create_note(current_actor(), project_id, json_body())
    return jsonify(note.to_dict()), 201


@notes_bp.route("/projects/<int:project_id>/notes/<int:note_id>", methods=["PUT", "PATCH"])
def update_note(project_id, note_id):
    note = note_service.update_note(current_actor(), project_id, note_id, json_body())
    return jsonify(note.to_dict()), 200


@notes_bp.route("/projects/<int:project_id>/notes/<int:note_id>", methods=["DELETE"])
def delete_note(project_id, note_id):
    note_service.delete_note(current_actor(), project_id, note_id)
    return jsonify({"message": "Note deleted"}), 200
