"""
QA Hub
Notification Blueprint — the actor's own notification inbox.

Endpoints:
    GET    /api/v1/notifications                  — List (?unread_only, limit, offset)
    GET    /api/v1/notifications/unread-count     — Unread badge count
    PUT    /api/v1/notifications/<id>/read        — Mark one read
    PUT    /api/v1/notifications/read-all         — Mark all read
    DELETE /api/v1/notifications                  — Clear all
"""

from flask import Blueprint, jsonify, request

from qahub.blueprints import pagination_args, register_error_handlers
from qahub.middleware.jwt_auth import current_actor, require_actor
from qahub.services.notification_service import NotificationService
from qahub.utils.helpers import parse_bool

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")
notifications_bp.before_request(require_actor)
register_error_handlers(notifications_bp)


@notifications_bp.route("/notifications", methods=["GET"])
def list_notifications():
    actor = current_actor()
    limit, offset = pagination_args()
    items, total = NotificationService.list_for_recipient(
        actor.id,
        unread_only=parse_bool(request.args.get("unread_only")),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(actor.id),
    }), 200


@notifications_bp.route("/notifications/unread-count", methods=["GET"])
def unread_count():
    return jsonify({"unread_count": NotificationService.unread_count(current_actor().id)}), 200


@notifications_bp.route("/notifications/<int:notification_id>/read", methods=["PUT"])
def mark_read(notification_id):
    notif = NotificationService.mark_read(current_actor(), notification_id)
    return jsonify(notif.to_dict()), 200


@notifications_bp.route("/notifications/read-all", methods=["PUT"])
def mark_all_read():
    count = NotificationService.mark_all_read(current_actor())
    return jsonify({"marked_read": count}), 200


@notifications_bp.route("/notifications", methods=["DELETE"])
def clear_notifications():
    count = NotificationService.clear(current_actor())
    return jsonify({"deleted": count}), 200
