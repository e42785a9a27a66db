"""Unit of work, optimistic versioning and friendly id sequences."""

import pytest

from qahub.core.exceptions import ConflictError, NotFoundError, PersistenceError
from qahub.models import db
from qahub.models import testing as testing_models
from qahub.models.project import Project
from qahub.services import testing_service
from qahub.services.store import get_scoped, next_friendly_id, unit_of_work


def test_unit_of_work_commits(project):
    with unit_of_work("rename"):
        project.name = "Renamed"
    db.session.expire_all()
    assert db.session.get(Project, project.id).name == "Renamed"


def test_unit_of_work_rolls_back_on_error(project):
    with pytest.raises(RuntimeError):
        with unit_of_work("rename"):
            project.name = "Half done"
            raise RuntimeError("boom")
    db.session.expire_all()
    assert db.session.get(Project, project.id).name == "Checkout revamp"


def test_nested_unit_of_work_joins_outer(project):
    with pytest.raises(RuntimeError):
        with unit_of_work("outer"):
            with unit_of_work("inner"):
                project.name = "Inner change"
            raise RuntimeError("outer fails after inner finished")
    db.session.expire_all()
    assert db.session.get(Project, project.id).name == "Checkout revamp"


def test_deadline_rolls_back(app, monkeypatch, project, qa, ready_test_case):
    monkeypatch.setitem(app.config, "MUTATION_TIMEOUT_SECONDS", -1)
    with pytest.raises(PersistenceError):
        testing_service.create_test_case(qa, project.id, ready_test_case)
    monkeypatch.setitem(app.config, "MUTATION_TIMEOUT_SECONDS", 10)
    assert testing_service.list_test_cases(qa, project.id) == []


def test_stale_row_becomes_conflict(project, qa, ready_test_case):
    tc = testing_service.create_test_case(qa, project.id, ready_test_case)
    assert tc.version == 1

    with pytest.raises(ConflictError) as exc:
        with unit_of_work("edit test case"):
            # Another writer bumps the row behind this session's back.
            db.session.execute(
                db.text("UPDATE test_cases SET version = version + 1 WHERE id = :id"),
                {"id": tc.id},
            )
            tc.title = "Lost update"
    assert exc.value.field == "version"


def test_client_version_check(project, qa, ready_test_case):
    tc = testing_service.create_test_case(qa, project.id, ready_test_case)
    testing_service.update_test_case(qa, project.id, tc.id, {"title": "v2", "version": 1})
    assert tc.version == 2

    with pytest.raises(ConflictError):
        testing_service.update_test_case(qa, project.id, tc.id, {"title": "v3", "version": 1})
    db.session.expire_all()
    assert db.session.get(testing_models.TestCase, tc.id).title == "v2"


def test_friendly_ids_are_never_reused(project, qa, ready_test_case):
    first = testing_service.create_test_case(qa, project.id, ready_test_case)
    second = testing_service.create_test_case(qa, project.id, ready_test_case)
    testing_service.delete_test_case(qa, project.id, second.id)
    third = testing_service.create_test_case(qa, project.id, ready_test_case)
    assert [first.friendly_id, second.friendly_id, third.friendly_id] == ["TC-1", "TC-2", "TC-3"]


def test_friendly_ids_are_per_project_and_prefix(project):
    with unit_of_work("ids"):
        assert next_friendly_id(project.id, "BUG") == "BUG-1"
        assert next_friendly_id(project.id, "RUN", width=3) == "RUN-001"
        assert next_friendly_id(project.id, "BUG") == "BUG-2"


def test_get_scoped_hides_foreign_rows(project, qa, ready_test_case):
    from qahub.services import project_service

    other = project_service.create_project(qa, {"name": "Other"})
    tc = testing_service.create_test_case(qa, project.id, ready_test_case)
    assert get_scoped(testing_models.TestCase, tc.id, project.id) is tc
    with pytest.raises(NotFoundError):
        get_scoped(testing_models.TestCase, tc.id, other.id)
    with pytest.raises(NotFoundError):
        get_scoped(testing_models.TestCase, 9999)
