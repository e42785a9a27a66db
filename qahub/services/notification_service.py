"""
QA Hub
Notification Service.

Turns domain events into Notification rows and serves the per-user inbox.
Listeners run inside the publishing unit of work and only add rows; the
caller's commit persists them together with the change that caused them.

Recipient rules:
    bug_created         every DEV member of the project
    bug_status_changed  every member of the project
    comment_added       top-level comment on a bug: every member except the author
                        reply on a bug: the parent comment's author, unless self
"""

import logging

from qahub.core.exceptions import AuthorizationError
from qahub.models import db
from qahub.models.notification import Notification
from qahub.models.testing import Bug
from qahub.services.events import subscribe
from qahub.services.store import get_scoped, unit_of_work

logger = logging.getLogger(__name__)


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def broadcast(*, recipients, type, bug, message):
        """Add one notification per distinct recipient (flush-only)."""
        created = []
        seen = set()
        for recipient in recipients:
            recipient = str(recipient)
            if recipient in seen:
                continue
            seen.add(recipient)
            notif = Notification(
                recipient_user_id=recipient,
                type=type,
                subject_bug_id=bug.id,
                subject_title=bug.title,
                message=message,
            )
            db.session.add(notif)
            created.append(notif)
        logger.debug("Queued %d %s notification(s) for bug#%s", len(created), type, bug.id)
        return created

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def list_for_recipient(recipient_user_id, unread_only=False, limit=50, offset=0):
        """Retrieve notifications for a recipient, newest first."""
        q = Notification.query.filter_by(recipient_user_id=str(recipient_user_id))
        if unread_only:
            q = q.filter_by(read=False)
        total = q.count()
        items = (
            q.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(offset).limit(limit).all()
        )
        return items, total

    @staticmethod
    def unread_count(recipient_user_id):
        return Notification.query.filter_by(
            recipient_user_id=str(recipient_user_id), read=False,
        ).count()

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(actor, notification_id):
        """Mark one of the actor's own notifications as read."""
        with unit_of_work("mark notification read"):
            notif = get_scoped(Notification, notification_id)
            if notif.recipient_user_id != str(actor.id):
                raise AuthorizationError(
                    "mark another user's notification", actor_id=actor.id,
                )
            if not notif.read:
                notif.mark_read()
        return notif

    @staticmethod
    def mark_all_read(actor):
        with unit_of_work("mark all notifications read"):
            items = Notification.query.filter_by(
                recipient_user_id=str(actor.id), read=False,
            ).all()
            for notif in items:
                notif.mark_read()
        return len(items)

    @staticmethod
    def clear(actor):
        """Delete every notification of the actor; returns the count."""
        with unit_of_work("clear notifications"):
            count = Notification.query.filter_by(
                recipient_user_id=str(actor.id),
            ).delete(synchronize_session="fetch")
        logger.info("Cleared %d notification(s) for %s", count, actor.id)
        return count


# ═════════════════════════════════════════════════════════════════════════════
# EVENT LISTENERS
# ═════════════════════════════════════════════════════════════════════════════

@subscribe("bug_created")
def _on_bug_created(bug, project, actor):
    devs = [m.member_id for m in project.members if m.role == "DEV"]
    NotificationService.broadcast(
        recipients=devs, type="bug_created", bug=bug,
        message=f"New bug created: {bug.title}",
    )


@subscribe("bug_status_changed")
def _on_bug_status_changed(bug, project, actor, old_status):
    NotificationService.broadcast(
        recipients=[m.member_id for m in project.members],
        type="bug_status_changed", bug=bug,
        message=f'Bug "{bug.title}" status changed to {bug.status}',
    )


@subscribe("comment_added")
def _on_comment_added(comment, project, actor):
    if comment.subject_type != "Bug":
        return
    bug = db.session.get(Bug, comment.subject_id)
    if bug is None:
        return

    if comment.parent_id is not None:
        parent = comment.parent
        if parent is None or parent.user_id == str(actor.id):
            return
        NotificationService.broadcast(
            recipients=[parent.user_id], type="comment_added", bug=bug,
            message=f'{comment.user_name} replied to your comment on "{bug.title}"',
        )
        return

    NotificationService.broadcast(
        recipients=[m.member_id for m in project.members if m.member_id != str(actor.id)],
        type="comment_added", bug=bug,
        message=f'{comment.user_name} commented on "{bug.title}"',
    )
