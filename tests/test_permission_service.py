"""Permission resolution: QA / DEV overrides / fail-closed."""

import pytest

from qahub.core.actor import ROLE_DEV, ROLE_QA, Actor
from qahub.core.exceptions import AuthorizationError, ValidationError
from qahub.models.project import DEFAULT_DEV_PERMISSIONS, PERMISSION_FLAGS
from qahub.services import permission_service
from qahub.services.permission_service import (
    ALL_CAPABILITIES,
    NO_CAPABILITIES,
    capabilities_for,
    normalize_overrides,
    resolve,
)


# ── resolve (pure) ───────────────────────────────────────────────────────


def test_qa_gets_every_capability():
    caps = resolve(ROLE_QA, None)
    assert caps == ALL_CAPABILITIES
    assert caps.can_manage_permissions is True


def test_dev_copies_overrides_field_for_field():
    overrides = {flag: False for flag in PERMISSION_FLAGS}
    overrides.update(view_bugs=True, create_tasks=True)
    caps = resolve(ROLE_DEV, overrides)
    assert caps.can_view_bugs is True
    assert caps.can_create_tasks is True
    assert caps.can_view_test_cases is False
    assert caps.can_edit_bug_status is False
    assert caps.can_manage_permissions is False


def test_status_only_flag_relaxes_bug_status():
    caps = resolve(ROLE_DEV, {"edit_bugs": False, "edit_bug_status_only": True})
    assert caps.can_edit_bug_status is True
    assert caps.can_edit_bugs is False


def test_edit_bugs_implies_bug_status():
    caps = resolve(ROLE_DEV, {"edit_bugs": True, "edit_bug_status_only": False})
    assert caps.can_edit_bug_status is True


@pytest.mark.parametrize("role,overrides", [
    (None, dict(DEFAULT_DEV_PERMISSIONS)),
    ("ADMIN", dict(DEFAULT_DEV_PERMISSIONS)),
    (ROLE_DEV, None),
])
def test_fail_closed(role, overrides):
    assert resolve(role, overrides) == NO_CAPABILITIES


def test_non_boolean_override_is_not_truthy():
    caps = resolve(ROLE_DEV, {"view_bugs": "yes"})
    assert caps.can_view_bugs is False


# ── capabilities_for (project membership) ────────────────────────────────


def test_dev_member_gets_project_defaults(project, dev):
    caps = capabilities_for(dev, project)
    assert caps.can_view_bugs is True
    assert caps.can_create_bugs is False
    assert caps.can_edit_bug_status is True
    assert caps.can_view_notes is False


def test_member_role_wins_over_token_role(project, dev):
    # Token claims QA, project lists the actor as DEV.
    spoofed = Actor(id=dev.id, role=ROLE_QA, name=dev.name)
    assert capabilities_for(spoofed, project).can_manage_permissions is False


def test_non_member_dev_gets_nothing(project, outsider):
    assert capabilities_for(outsider, project) == NO_CAPABILITIES


def test_require_raises_authorization_error(project, dev):
    caps = capabilities_for(dev, project)
    with pytest.raises(AuthorizationError) as exc:
        permission_service.require(caps, "can_edit_bugs", "edit bug", dev)
    assert exc.value.capability == "can_edit_bugs"


def test_owner_or_qa(project, qa, dev):
    permission_service.require_owner_or_qa(qa, project, "someone-else", "unlink")
    permission_service.require_owner_or_qa(dev, project, dev.id, "unlink")
    with pytest.raises(AuthorizationError):
        permission_service.require_owner_or_qa(dev, project, qa.id, "unlink")


# ── normalize_overrides ──────────────────────────────────────────────────


def test_normalize_accepts_legacy_keys():
    result = normalize_overrides({"devCanCreateBugs": True, "edit_bugs": False})
    assert result == {"create_bugs": True, "edit_bugs": False}


def test_normalize_rejects_unknown_and_non_bool():
    with pytest.raises(ValidationError) as exc:
        normalize_overrides({"devCanFly": True, "view_bugs": "true"})
    assert set(exc.value.details) == {"devCanFly", "view_bugs"}
