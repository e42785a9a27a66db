"""
QA Hub
Testing Blueprint — test cases, test runs, bugs and the links between them.

Endpoints:
    Test Cases:
        GET    /api/v1/projects/<pid>/test-cases                     — List (?status, priority, tag)
        POST   /api/v1/projects/<pid>/test-cases                     — Create
        GET    /api/v1/projects/<pid>/test-cases/<id>                — Detail
        PUT    /api/v1/projects/<pid>/test-cases/<id>                — Update (+ follow_up)
        DELETE /api/v1/projects/<pid>/test-cases/<id>                — Delete
        PUT    /api/v1/projects/<pid>/test-cases/<id>/status         — Status change (+ follow_up)
        POST   /api/v1/projects/<pid>/test-cases/<id>/duplicate      — Copy as Draft
        POST   /api/v1/projects/<pid>/test-cases/<id>/move           — Move to another project
        GET    /api/v1/projects/<pid>/test-cases/<id>/bugs           — Linked bugs
        PUT    /api/v1/projects/<pid>/test-cases/<id>/bugs/<bug_id>  — Link bug
        DELETE /api/v1/projects/<pid>/test-cases/<id>/bugs/<bug_id>  — Unlink bug

    Test Runs:
        GET    /api/v1/projects/<pid>/test-cases/<id>/runs           — History, newest first
        POST   /api/v1/projects/<pid>/test-cases/<id>/runs           — Record Pass/Fail
        GET    /api/v1/projects/<pid>/test-cases/<id>/runs/latest    — Latest run

    Bugs:
        GET    /api/v1/projects/<pid>/bugs                           — List (?status, severity, created_by)
        POST   /api/v1/projects/<pid>/bugs                           — Create
        GET    /api/v1/projects/<pid>/bugs/<id>                      — Detail
        PUT    /api/v1/projects/<pid>/bugs/<id>                      — Update
        DELETE /api/v1/projects/<pid>/bugs/<id>                      — Delete (owner or QA)
        PUT    /api/v1/projects/<pid>/bugs/<id>/status               — Status change
        GET    /api/v1/projects/<pid>/bugs/<id>/linked               — Linked test cases + tasks
        PUT    /api/v1/projects/<pid>/bugs/<id>/test-cases/<tc_id>   — Link test case
        DELETE /api/v1/projects/<pid>/bugs/<id>/test-cases/<tc_id>   — Unlink test case
        PUT    /api/v1/projects/<pid>/bugs/<id>/tasks/<task_id>      — Link task
        DELETE /api/v1/projects/<pid>/bugs/<id>/tasks/<task_id>      — Unlink task
"""

import logging

from flask import Blueprint, jsonify, request

from qahub.blueprints import json_body, register_error_handlers
from qahub.core.exceptions import ValidationError
from qahub.middleware.jwt_auth import current_actor, require_actor
from qahub.models.task import Task
from qahub.models.testing import Bug, TestCase
from qahub.services import (
    link_service,
    permission_service,
    project_service,
    testing_service,
    workflow_service,
)

logger = logging.getLogger(__name__)

testing_bp = Blueprint("testing", __name__, url_prefix="/api/v1")
testing_bp.before_request(require_actor)
register_error_handlers(testing_bp)


def _with_follow_up(test_case, follow_up, run=None):
    d = test_case.to_dict()
    d["follow_up"] = follow_up
    if run is not None:
        d["run"] = run.to_dict()
    return d


def _status_from_body():
    status = json_body().get("status")
    if not status:
        raise ValidationError("status is required", details={"status": "required"})
    return status


def _visible(items, model, project_id):
    """Resolve linked ids to rows, in link order."""
    if not items:
        return []
    rows = {r.id: r for r in model.query.filter(
        model.id.in_(items), model.project_id == project_id,
    ).all()}
    return [rows[i].to_dict() for i in items if i in rows]


# ═════════════════════════════════════════════════════════════════════════════
# TEST CASES
# ═════════════════════════════════════════════════════════════════════════════

@testing_bp.route("/projects/<int:project_id>/test-cases", methods=["GET"])
def list_test_cases(project_id):
    items = testing_service.list_test_cases(
        current_actor(), project_id,
        status=request.args.get("status"),
        priority=request.args.get("priority"),
        tag=request.args.get("tag"),
    )
    return jsonify([tc.to_dict() for tc in items]), 200


@testing_bp.route("/projects/<int:project_id>/test-cases", methods=["POST"])
def create_test_case(project_id):
    test_case = testing_service.create_test_case(current_actor(), project_id, json_body())
    return jsonify(test_case.to_dict()), 201


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:tc_id>", methods=["GET"])
def get_test_case(project_id, tc_id):
    test_case = testing_service.get_test_case(current_actor(), project_id, tc_id)
    return jsonify(test_case.to_dict()), 200


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:tc_id>", methods=["PUT", "PATCH"])
def update_test_case(project_id, tc_id):
    test_case, follow_up = testing_service.update_test_case(
        current_actor(), project_id, tc_id, json_body(),
    )
    return jsonify(_with_follow_up(test_case, follow_up)), 200


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:tc_id>", methods=["DELETE"])
def delete_test_case(project_id, tc_id):
    testing_service.delete_test_case(current_actor(), project_id, tc_id)
    return jsonify({"message": "Test case deleted"}), 200


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:tc_id>/status", methods=["PUT"])
def change_test_case_status(project_id, tc_id):
    test_case, follow_up, run = workflow_service.change_test_case_status(
        current_actor(), project_id, tc_id, _status_from_body(),
    )
    return jsonify(_with_follow_up(test_case, follow_up, run)), 200


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:tc_id>/duplicate", methods=["POST"])
def duplicate_test_case(project_id, tc_id):
    data = json_body()
    copy = testing_service.duplicate_test_case(
        current_actor(), project_id, tc_id, data.get("target_project_id"),
    )
    return jsonify(copy.to_dict()), 201


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:tc_id>/move", methods=["POST"])
def move_test_case(project_id, tc_id):
    data = json_body()
    if data.get("target_project_id") is None:
        raise ValidationError("target_project_id is required",
                              details={"target_project_id": "required"})
    test_case = testing_service.move_test_case(
        current_actor(), project_id, tc_id, data["target_project_id"],
    )
    return jsonify(test_case.to_dict()), 200


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:tc_id>/bugs", methods=["GET"])
def list_test_case_bugs(project_id, tc_id):
    actor = current_actor()
    test_case = testing_service.get_test_case(actor, project_id, tc_id)
    _project, caps = project_service.load_context(actor, project_id)
    permission_service.require(caps, "can_view_bugs", "view linked bugs", actor)
    return jsonify(_visible(test_case.linked_bug_ids, Bug, test_case.project_id)), 200


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:tc_id>/bugs/<int:bug_id>", methods=["PUT"],
)
def link_bug_from_test_case(project_id, tc_id, bug_id):
    test_case, _bug = link_service.link_test_case_bug(
        current_actor(), project_id, tc_id, bug_id, surface="test_case",
    )
    return jsonify(test_case.to_dict()), 200


@testing_bp.route(
    "/projects/<int:project_id>/test-cases/<int:tc_id>/bugs/<int:bug_id>", methods=["DELETE"],
)
def unlink_bug_from_test_case(project_id, tc_id, bug_id):
    test_case, _bug = link_service.unlink_test_case_bug(
        current_actor(), project_id, tc_id, bug_id, surface="test_case",
    )
    return jsonify(test_case.to_dict()), 200


# ═════════════════════════════════════════════════════════════════════════════
# TEST RUNS
# ═════════════════════════════════════════════════════════════════════════════

@testing_bp.route("/projects/<int:project_id>/test-cases/<int:tc_id>/runs", methods=["GET"])
def list_runs(project_id, tc_id):
    runs = testing_service.list_runs(current_actor(), project_id, tc_id)
    return jsonify([r.to_dict() for r in runs]), 200


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:tc_id>/runs", methods=["POST"])
def record_run(project_id, tc_id):
    run = testing_service.record_run(current_actor(), project_id, tc_id, _status_from_body())
    return jsonify(run.to_dict()), 201


@testing_bp.route("/projects/<int:project_id>/test-cases/<int:tc_id>/runs/latest", methods=["GET"])
def latest_run(project_id, tc_id):
    run = testing_service.latest_run(current_actor(), project_id, tc_id)
    return jsonify(run.to_dict() if run else None), 200


# ═════════════════════════════════════════════════════════════════════════════
# BUGS
# ═════════════════════════════════════════════════════════════════════════════

@testing_bp.route("/projects/<int:project_id>/bugs", methods=["GET"])
def list_bugs(project_id):
    bugs = testing_service.list_bugs(
        current_actor(), project_id,
        status=request.args.get("status"),
        severity=request.args.get("severity"),
        created_by=request.args.get("created_by"),
    )
    return jsonify([b.to_dict() for b in bugs]), 200


@testing_bp.route("/projects/<int:project_id>/bugs", methods=["POST"])
def create_bug(project_id):
    bug = testing_service.create_bug(current_actor(), project_id, json_body())
    return jsonify(bug.to_dict()), 201


@testing_bp.route("/projects/<int:project_id>/bugs/<int:bug_id>", methods=["GET"])
def get_bug(project_id, bug_id):
    bug = testing_service.get_bug(current_actor(), project_id, bug_id)
    return jsonify(bug.to_dict()), 200


@testing_bp.route("/projects/<int:project_id>/bugs/<int:bug_id>", methods=["PUT", "PATCH"])
def update_bug(project_id, bug_id):
    bug = testing_service.update_bug(current_actor(), project_id, bug_id, json_body())
    return jsonify(bug.to_dict()), 200


@testing_bp.route("/projects/<int:project_id>/bugs/<int:bug_id>", methods=["DELETE"])
def delete_bug(project_id, bug_id):
    testing_service.delete_bug(current_actor(), project_id, bug_id)
    return jsonify({"message": "Bug deleted"}), 200


@testing_bp.route("/projects/<int:project_id>/bugs/<int:bug_id>/status", methods=["PUT"])
def change_bug_status(project_id, bug_id):
    bug = workflow_service.change_bug_status(
        current_actor(), project_id, bug_id, _status_from_body(),
    )
    return jsonify(bug.to_dict()), 200


@testing_bp.route("/projects/<int:project_id>/bugs/<int:bug_id>/linked", methods=["GET"])
def bug_linked_items(project_id, bug_id):
    actor = current_actor()
    bug = testing_service.get_bug(actor, project_id, bug_id)
    _project, caps = project_service.load_context(actor, project_id)
    # Sections the actor cannot view come back empty.
    return jsonify({
        "test_cases": (
            _visible(bug.linked_test_case_ids, TestCase, bug.project_id)
            if caps.allows("can_view_test_cases") else []
        ),
        "tasks": (
            _visible(bug.linked_task_ids, Task, bug.project_id)
            if caps.allows("can_view_tasks") else []
        ),
    }), 200


@testing_bp.route(
    "/projects/<int:project_id>/bugs/<int:bug_id>/test-cases/<int:tc_id>", methods=["PUT"],
)
def link_test_case_from_bug(project_id, bug_id, tc_id):
    _tc, bug = link_service.link_test_case_bug(
        current_actor(), project_id, tc_id, bug_id, surface="bug",
    )
    return jsonify(bug.to_dict()), 200


@testing_bp.route(
    "/projects/<int:project_id>/bugs/<int:bug_id>/test-cases/<int:tc_id>", methods=["DELETE"],
)
def unlink_test_case_from_bug(project_id, bug_id, tc_id):
    _tc, bug = link_service.unlink_test_case_bug(
        current_actor(), project_id, tc_id, bug_id, surface="bug",
    )
    return jsonify(bug.to_dict()), 200


@testing_bp.route(
    "/projects/<int:project_id>/bugs/<int:bug_id>/tasks/<int:task_id>", methods=["PUT"],
)
def link_task_from_bug(project_id, bug_id, task_id):
    bug, _task = link_service.link_bug_task(
        current_actor(), project_id, bug_id, task_id, surface="bug",
    )
    return jsonify(bug.to_dict()), 200


@testing_bp.route(
    "/projects/<int:project_id>/bugs/<int:bug_id>/tasks/<int:task_id>", methods=["DELETE"],
)
def unlink_task_from_bug(project_id, bug_id, task_id):
    bug, _task = link_service.unlink_bug_task(
        current_actor(), project_id, bug_id, task_id, surface="bug",
    )
    return jsonify(bug.to_dict()), 200
