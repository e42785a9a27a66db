import pytest

from qahub.core.actor import ROLE_DEV, ROLE_QA, Actor
from qahub.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from qahub.models import db as _db
from qahub.models.collaboration import Comment, Note
from qahub.models.project import Project
from qahub.models.task import BugTaskLink, Task, TaskLink
from qahub.models import testing as testing_models
from qahub.services import (
    comment_service,
    link_service,
    note_service,
    permission_service,
    project_service,
    task_service,
    testing_service,
)


def _member(member_id, role, name=None):
    return {"member_id": member_id, "display_name": name or member_id, "role": role}


def test_create_project_adds_creator_as_qa():
    creator = Actor(id="qa-7", role=ROLE_QA, name="Creator")
    project = project_service.create_project(creator, {"name": "  Billing  "})

    assert project.name == "Billing"
    assert project.creator_id == "qa-7"
    member = project.find_member("qa-7")
    assert member is not None
    assert member.role == ROLE_QA
    assert [c.column_key for c in project.board_columns] == ["todo", "doing", "done"]
    assert project.permissions.edit_bug_status_only is True
    assert project.permissions.edit_bugs is False


def test_create_project_requires_name(qa):
    with pytest.raises(ValidationError) as exc:
        project_service.create_project(qa, {"name": " "})
    assert exc.value.details == {"name": "required"}
    assert Project.query.count() == 0


def test_create_project_accepts_legacy_permission_keys(qa):
    project = project_service.create_project(qa, {
        "name": "Legacy",
        "permissions": {"devCanCreateBugs": True, "devCanEditBugStatusOnly": False},
    })
    assert project.permissions.create_bugs is True
    assert project.permissions.edit_bug_status_only is False


def test_create_project_rejects_unknown_permission(qa):
    with pytest.raises(ValidationError):
        project_service.create_project(qa, {"name": "X", "permissions": {"fly": True}})


def test_member_limits(qa):
    members = [_member(f"dev-{i}", ROLE_DEV) for i in range(6)]
    with pytest.raises(ValidationError) as exc:
        project_service.create_project(qa, {"name": "Crowded", "members": members})
    assert exc.value.details == {"role": "limit reached"}


def test_duplicate_member_rejected(qa):
    with pytest.raises(ValidationError):
        project_service.create_project(qa, {
            "name": "Dupes",
            "members": [_member("dev-1", ROLE_DEV), _member("dev-1", ROLE_DEV)],
        })


def test_invalid_board_columns_rejected(qa):
    with pytest.raises(ValidationError):
        project_service.create_project(qa, {"name": "Cols", "board_columns": []})


def test_list_projects_only_memberships(project, qa, dev, outsider):
    other = project_service.create_project(outsider, {"name": "Elsewhere"})
    assert [p.id for p in project_service.list_projects(dev)] == [project.id]
    assert {p.id for p in project_service.list_projects(outsider)} == {other.id}
    assert project_service.list_projects(Actor(id="nobody", role=ROLE_DEV)) == []


def test_get_project_non_member_forbidden(project, outsider):
    with pytest.raises(AuthorizationError):
        project_service.get_project(outsider, project.id)


def test_get_project_missing(qa):
    with pytest.raises(NotFoundError):
        project_service.get_project(qa, 9999)


def test_update_project_qa_only(project, qa, dev):
    with pytest.raises(AuthorizationError):
        project_service.update_project(dev, project.id, {"name": "Hijack"})
    updated = project_service.update_project(qa, project.id, {"description": "New scope"})
    assert updated.description == "New scope"
    assert updated.name == "Checkout revamp"


def test_delete_project_creator_only(project, qa, dev):
    with pytest.raises(AuthorizationError):
        project_service.delete_project(dev, project.id)
    project_service.delete_project(qa, project.id)
    assert _db.session.get(Project, project.id) is None


def test_delete_project_removes_everything_in_it(project, qa, ready_test_case, ready_bug):
    tc = testing_service.create_test_case(qa, project.id, {**ready_test_case, "status": "Todo"})
    testing_service.record_run(qa, project.id, tc.id, "Fail")
    bug = testing_service.create_bug(qa, project.id, ready_bug)
    link_service.link_test_case_bug(qa, project.id, tc.id, bug.id)

    parent = task_service.create_task(qa, project.id, {"title": "Parent"})
    task_service.create_task(qa, project.id, {"title": "Child", "parent_id": parent.id})
    link_service.link_bug_task(qa, project.id, bug.id, parent.id)
    link_service.link_task_to(qa, project.id, parent.id, "TestCase", tc.id)

    top = comment_service.post(qa, project.id, "Bug", bug.id, "Seen on staging")
    comment_service.post(qa, project.id, "Bug", bug.id, "Also prod", parent_id=top.id)
    note_service.create_note(qa, project.id, {"content": "Release checklist"})

    # Another project must survive untouched.
    survivor = project_service.create_project(qa, {"name": "Survivor"})
    testing_service.create_bug(qa, survivor.id, ready_bug)

    project_service.delete_project(qa, project.id)
    _db.session.expire_all()

    for model in (testing_models.TestCase, testing_models.TestRun,
                  testing_models.TestCaseBugLink, Task, TaskLink, BugTaskLink, Comment, Note):
        assert model.query.count() == 0, model.__name__
    assert testing_models.Bug.query.filter_by(project_id=project.id).count() == 0
    assert testing_models.Bug.query.filter_by(project_id=survivor.id).count() == 1
    assert _db.session.get(Project, survivor.id) is not None


class TestMembers:

    def test_add_member(self, project, qa):
        project_service.add_member(qa, project.id, _member("dev-2", ROLE_DEV, "Second Dev"))
        assert project.find_member("dev-2").display_name == "Second Dev"

    def test_add_member_requires_qa(self, project, dev):
        with pytest.raises(AuthorizationError):
            project_service.add_member(dev, project.id, _member("dev-2", ROLE_DEV))

    def test_remove_member(self, project, qa, dev):
        project_service.remove_member(qa, project.id, dev.id)
        assert project.find_member(dev.id) is None
        assert permission_service.capabilities_for(dev, project).can_view_bugs is False

    def test_creator_cannot_be_removed(self, project, qa):
        with pytest.raises(ValidationError):
            project_service.remove_member(qa, project.id, qa.id)

    def test_remove_unknown_member(self, project, qa):
        with pytest.raises(NotFoundError):
            project_service.remove_member(qa, project.id, "ghost")


class TestPermissions:

    def test_update_keeps_unspecified_flags(self, project, qa):
        perms = project_service.update_permissions(qa, project.id, {"edit_bugs": True})
        assert perms.edit_bugs is True
        assert perms.view_bugs is True
        assert perms.create_bugs is False

    def test_dev_cannot_manage_permissions(self, project, dev):
        with pytest.raises(AuthorizationError):
            project_service.update_permissions(dev, project.id, {"edit_bugs": True})

    def test_changes_apply_to_next_check(self, project, qa, dev):
        assert permission_service.capabilities_for(dev, project).can_edit_tasks is False
        project_service.update_permissions(qa, project.id, {"devCanEditTasks": True})
        assert permission_service.capabilities_for(dev, project).can_edit_tasks is True

    def test_non_boolean_rejected(self, project, qa):
        with pytest.raises(ValidationError):
            project_service.update_permissions(qa, project.id, {"edit_bugs": "yes"})


def test_update_board_columns_replaces_layout(project, qa):
    columns = project_service.update_board_columns(qa, project.id, [
        {"id": "done", "title": "Shipped", "status": "Done"},
        {"id": "todo", "title": "Queue", "status": "ToDo"},
    ])
    assert [(c.column_key, c.title, c.position) for c in columns] == [
        ("done", "Shipped", 0),
        ("todo", "Queue", 1),
    ]
