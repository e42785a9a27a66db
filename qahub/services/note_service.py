"""
QA Hub
Project notes.

Reading needs can_view_notes; hidden notes are listed for QA members only.
Creating, editing and deleting notes is reserved to QA members.
"""

import logging

from qahub.core.actor import ROLE_QA
from qahub.core.exceptions import ValidationError
from qahub.models import db
from qahub.models.collaboration import NOTE_TYPES, Note
from qahub.services import permission_service
from qahub.services.project_service import load_context
from qahub.services.store import get_scoped, unit_of_work
from qahub.utils.helpers import parse_bool

logger = logging.getLogger(__name__)


def _clean(data, partial=False):
    values = {}
    if "type" in data or not partial:
        note_type = data.get("type") or "simple"
        if note_type not in NOTE_TYPES:
            raise ValidationError(f"Invalid note type: {note_type!r}",
                                  details={"type": f"one of {list(NOTE_TYPES)}"})
        values["type"] = note_type
    if "content" in data or not partial:
        content = (data.get("content") or "").strip()
        if not content:
            raise ValidationError("Note content is required", details={"content": "required"})
        values["content"] = content
    if "label" in data:
        values["label"] = (data.get("label") or "").strip() or None
    for flag in ("pinned", "hidden"):
        if flag in data:
            values[flag] = parse_bool(data.get(flag))
    if values.get("type") == "kv" and not (values.get("label") or data.get("label")):
        raise ValidationError("Key/value notes need a label", details={"label": "required"})
    return values


def list_notes(actor, project_id):
    """Pinned notes first, then newest first."""
    project, caps = load_context(actor, project_id)
    permission_service.require(caps, "can_view_notes", "view notes", actor)
    q = Note.query.filter_by(project_id=project.id)
    if permission_service.member_role(actor, project) != ROLE_QA:
        q = q.filter_by(hidden=False)
    return q.order_by(Note.pinned.desc(), Note.created_at.desc(), Note.id.desc()).all()


def create_note(actor, project_id, data):
    values = _clean(data)
    with unit_of_work("create note"):
        project, _caps = load_context(actor, project_id)
        permission_service.require_qa(actor, project, "create note")
        note = Note(project_id=project.id, **values)
        db.session.add(note)
    logger.info("Note %s created in project %s", note.id, project_id)
    return note


def update_note(actor, project_id, note_id, data):
    values = _clean(data, partial=True)
    with unit_of_work("update note"):
        project, _caps = load_context(actor, project_id)
        permission_service.require_qa(actor, project, "edit note")
        note = get_scoped(Note, note_id, project.id)
        for name, value in values.items():
            setattr(note, name, value)
        if note.type == "kv" and not note.label:
            raise ValidationError("Key/value notes need a label", details={"label": "required"})
    return note


def delete_note(actor, project_id, note_id):
    with unit_of_work("delete note"):
        project, _caps = load_context(actor, project_id)
        permission_service.require_qa(actor, project, "delete note")
        note = get_scoped(Note, note_id, project.id)
        db.session.delete(note)
