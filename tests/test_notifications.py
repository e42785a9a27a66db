"""Domain events and the notification records their listeners write."""

import pytest

from qahub.core.actor import ROLE_DEV, Actor
from qahub.core.exceptions import AuthorizationError
from qahub.services import (
    comment_service,
    events,
    project_service,
    testing_service,
    workflow_service,
)
from qahub.services.notification_service import NotificationService


def _inbox(actor):
    items, _total = NotificationService.list_for_recipient(actor.id)
    return items


def test_listeners_are_registered():
    for name in events.EVENT_NAMES:
        assert events.get_listeners(name), name


def test_unknown_event_is_rejected():
    with pytest.raises(ValueError):
        events.publish("bug_deleted")
    with pytest.raises(ValueError):
        events.subscribe("bug_deleted")


def test_bug_created_notifies_dev_members(project, qa, dev, ready_bug):
    bug = testing_service.create_bug(qa, project.id, ready_bug)
    items = _inbox(dev)
    assert [(n.type, n.subject_bug_id) for n in items] == [("bug_created", bug.id)]
    assert items[0].subject_title == ready_bug["title"]
    assert _inbox(qa) == []


def test_status_change_notifies_all_members(project, qa, dev, ready_bug):
    bug = testing_service.create_bug(qa, project.id, {**ready_bug, "status": "Opened"})
    workflow_service.change_bug_status(dev, project.id, bug.id, "Fixed")
    qa_types = [n.type for n in _inbox(qa)]
    dev_types = [n.type for n in _inbox(dev)]
    assert qa_types == ["bug_status_changed"]
    assert sorted(dev_types) == ["bug_created", "bug_status_changed"]


def test_comment_notifies_other_members(project, qa, dev, ready_bug):
    bug = testing_service.create_bug(qa, project.id, ready_bug)
    comment_service.post(qa, project.id, "Bug", bug.id, "Can you look?")
    assert [n.type for n in _inbox(qa)] == []
    assert "comment_added" in [n.type for n in _inbox(dev)]


def test_reply_notifies_parent_author_only(project, qa, dev, ready_bug):
    project_service.add_member(qa, project.id, {
        "member_id": "dev-2", "display_name": "Second Dev", "role": ROLE_DEV,
    })
    dev2 = Actor(id="dev-2", role=ROLE_DEV, name="Second Dev")
    bug = testing_service.create_bug(qa, project.id, ready_bug)
    top = comment_service.post(qa, project.id, "Bug", bug.id, "Top")
    before = len(_inbox(dev2))

    comment_service.post(dev, project.id, "Bug", bug.id, "Reply", parent_id=top.id)
    replies = [n for n in _inbox(qa) if n.type == "comment_added"]
    assert len(replies) == 1
    assert "replied" in replies[0].message
    assert len(_inbox(dev2)) == before


def test_task_comments_do_not_notify(project, qa, dev):
    from qahub.services import task_service

    task = task_service.create_task(qa, project.id, {"title": "Chore"})
    comment_service.post(qa, project.id, "Task", task.id, "FYI")
    assert _inbox(dev) == []


def test_read_tracking(project, qa, dev, ready_bug):
    testing_service.create_bug(qa, project.id, ready_bug)
    testing_service.create_bug(qa, project.id, ready_bug)
    assert NotificationService.unread_count(dev.id) == 2

    first = _inbox(dev)[0]
    NotificationService.mark_read(dev, first.id)
    assert NotificationService.unread_count(dev.id) == 1
    unread, total = NotificationService.list_for_recipient(dev.id, unread_only=True)
    assert total == 1 and unread[0].id != first.id

    assert NotificationService.mark_all_read(dev) == 1
    assert NotificationService.unread_count(dev.id) == 0


def test_cannot_touch_someone_elses_notification(project, qa, dev, ready_bug):
    testing_service.create_bug(qa, project.id, ready_bug)
    notif = _inbox(dev)[0]
    with pytest.raises(AuthorizationError):
        NotificationService.mark_read(qa, notif.id)


def test_clear(project, qa, dev, ready_bug):
    testing_service.create_bug(qa, project.id, ready_bug)
    assert NotificationService.clear(dev) == 1
    assert _inbox(dev) == []


def test_failed_operation_writes_no_notification(app, monkeypatch, project, qa, dev, ready_bug):
    from qahub.core.exceptions import PersistenceError

    monkeypatch.setitem(app.config, "MUTATION_TIMEOUT_SECONDS", -1)
    with pytest.raises(PersistenceError):
        testing_service.create_bug(qa, project.id, ready_bug)
    monkeypatch.setitem(app.config, "MUTATION_TIMEOUT_SECONDS", 10)
    assert _inbox(dev) == []
