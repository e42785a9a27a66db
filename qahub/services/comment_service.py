"""
QA Hub
Comment thread service — one level of replies on a Bug or Task.

Rules:
    - a reply's parent must be a top-level comment on the same subject
    - replying to a reply is a ConflictError; a missing or foreign parent
      is a ValidationError
    - only the author resolves a comment; there is no unresolve
    - listing hides resolved comments unless include_resolved is set
"""

import logging

from qahub.core.exceptions import AuthorizationError, ConflictError, ValidationError
from qahub.models import db
from qahub.models.collaboration import COMMENT_SUBJECT_TYPES, Comment
from qahub.models.task import Task
from qahub.models.testing import Bug
from qahub.services import permission_service
from qahub.services.events import publish
from qahub.services.project_service import load_context
from qahub.services.store import get_scoped, unit_of_work
from qahub.utils.helpers import parse_int

logger = logging.getLogger(__name__)

_SUBJECTS = {
    "Bug": (Bug, "can_view_bugs"),
    "Task": (Task, "can_view_tasks"),
}


def _subject(actor, project_id, subject_type, subject_id, action):
    if subject_type not in COMMENT_SUBJECT_TYPES:
        raise ValidationError(
            f"Invalid subject type: {subject_type}",
            details={"subject_type": f"one of {list(COMMENT_SUBJECT_TYPES)}"},
        )
    model, capability = _SUBJECTS[subject_type]
    project, caps = load_context(actor, project_id)
    permission_service.require(caps, capability, action, actor)
    subject = get_scoped(model, subject_id, project.id)
    return project, subject


def _author_name(actor, project):
    member = project.find_member(actor.id)
    if member is not None and member.display_name:
        return member.display_name
    return actor.name or str(actor.id)


def post(actor, project_id, subject_type, subject_id, content, parent_id=None):
    """Add a comment (or a reply) to a subject."""
    content = (content or "").strip()
    if not content:
        raise ValidationError("Comment content is required", details={"content": "required"})
    if parent_id is not None:
        parent_id = parse_int(parent_id, "parent_id")

    with unit_of_work("post comment"):
        project, subject = _subject(actor, project_id, subject_type, subject_id, "comment")

        if parent_id is not None:
            parent = db.session.get(Comment, parent_id)
            if (
                parent is None
                or parent.subject_type != subject_type
                or parent.subject_id != subject.id
            ):
                raise ValidationError(
                    "Parent comment not found on this subject",
                    details={"parent_id": "not found on subject"},
                )
            if parent.parent_id is not None:
                raise ConflictError("Comment", "parent_id", parent.id,
                                    message="Replies can only be posted to top-level comments")

        comment = Comment(
            project_id=project.id,
            subject_type=subject_type,
            subject_id=subject.id,
            user_id=str(actor.id),
            user_name=_author_name(actor, project),
            content=content,
            parent_id=parent_id,
            resolved=False,
        )
        db.session.add(comment)
        db.session.flush()
        publish("comment_added", comment=comment, project=project, actor=actor)

    logger.info("Comment %s posted on %s#%s by %s",
                comment.id, subject_type, subject.id, actor.id)
    return comment


def resolve(actor, project_id, comment_id):
    """Mark a comment resolved. Author only; resolving twice is a no-op."""
    with unit_of_work("resolve comment"):
        project, caps = load_context(actor, project_id)
        comment = get_scoped(Comment, comment_id, project.id)
        _model, capability = _SUBJECTS[comment.subject_type]
        permission_service.require(caps, capability, "resolve comment", actor)
        if comment.user_id != str(actor.id):
            raise AuthorizationError("resolve comment", capability="comment author",
                                     actor_id=actor.id)
        comment.resolved = True
    return comment


def list_thread(actor, project_id, subject_type, subject_id, include_resolved=False):
    """Top-level comments in arrival order, each paired with its replies.

    Returns a list of (comment, replies) tuples.
    """
    _project, subject = _subject(actor, project_id, subject_type, subject_id, "view comments")
    q = Comment.query.filter_by(subject_type=subject_type, subject_id=subject.id)
    if not include_resolved:
        q = q.filter_by(resolved=False)
    comments = q.order_by(Comment.id).all()

    top_level = [c for c in comments if c.parent_id is None]
    replies = {}
    for c in comments:
        if c.parent_id is not None:
            replies.setdefault(c.parent_id, []).append(c)
    return [(c, replies.get(c.id, [])) for c in top_level]


def delete_for_subject(subject_type, subject_id):
    """Flush-only removal of every comment on a subject."""
    comments = Comment.query.filter_by(subject_type=subject_type, subject_id=subject_id).all()
    for comment in comments:
        db.session.delete(comment)
    db.session.flush()
    return len(comments)
