"""
Permission Service — role + per-project override resolution.

Resolution is deterministic and deny-by-default:
  - QA members get every capability, including managing permissions
  - DEV members get a field-for-field copy of the project overrides;
    edit_bug_status_only relaxes bug status changes when edit_bugs is off
  - anyone else (no role, unknown role, not a member, no overrides) gets
    nothing

``resolve`` is pure. ``capabilities_for`` reads the project's member list
and overrides but never writes.
"""

import logging
from collections.abc import Mapping
from dataclasses import asdict, dataclass, fields

from qahub.core.actor import ROLE_DEV, ROLE_QA
from qahub.core.exceptions import AuthorizationError, ValidationError
from qahub.models.project import LEGACY_PERMISSION_KEYS, PERMISSION_FLAGS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CapabilitySet:
    """What one actor may do inside one project."""

    can_view_test_cases: bool = False
    can_create_test_cases: bool = False
    can_edit_test_cases: bool = False
    can_view_bugs: bool = False
    can_create_bugs: bool = False
    can_edit_bugs: bool = False
    can_edit_bug_status: bool = False
    can_view_notes: bool = False
    can_view_tasks: bool = False
    can_create_tasks: bool = False
    can_edit_tasks: bool = False
    can_manage_permissions: bool = False

    def allows(self, capability: str) -> bool:
        return bool(getattr(self, capability, False))

    def to_dict(self) -> dict[str, bool]:
        return asdict(self)


NO_CAPABILITIES = CapabilitySet()
ALL_CAPABILITIES = CapabilitySet(**{f.name: True for f in fields(CapabilitySet)})


def resolve(role, overrides) -> CapabilitySet:
    """Map (role, project overrides) to a CapabilitySet. Never raises."""
    if role == ROLE_QA:
        return ALL_CAPABILITIES
    if role != ROLE_DEV or not isinstance(overrides, Mapping):
        return NO_CAPABILITIES

    def flag(name):
        return overrides.get(name) is True

    return CapabilitySet(
        can_view_test_cases=flag("view_test_cases"),
        can_create_test_cases=flag("create_test_cases"),
        can_edit_test_cases=flag("edit_test_cases"),
        can_view_bugs=flag("view_bugs"),
        can_create_bugs=flag("create_bugs"),
        can_edit_bugs=flag("edit_bugs"),
        can_edit_bug_status=flag("edit_bug_status_only") or flag("edit_bugs"),
        can_view_notes=flag("view_notes"),
        can_view_tasks=flag("view_tasks"),
        can_create_tasks=flag("create_tasks"),
        can_edit_tasks=flag("edit_tasks"),
        can_manage_permissions=False,
    )


def member_role(actor, project):
    """Role of the actor in this project's member list, or None."""
    if actor is None or project is None:
        return None
    member = project.find_member(actor.id)
    return member.role if member else None


def capabilities_for(actor, project) -> CapabilitySet:
    """Capabilities of an actor in a project; non-members get nothing."""
    role = member_role(actor, project)
    if role is None:
        return NO_CAPABILITIES
    overrides = project.permissions.as_flags() if project.permissions else None
    return resolve(role, overrides)


def require(caps: CapabilitySet, capability: str, action: str, actor=None) -> None:
    """Raise AuthorizationError unless ``caps`` grants ``capability``."""
    if caps.allows(capability):
        return
    actor_id = getattr(actor, "id", None)
    logger.info("Denied %s for actor=%s (missing %s)", action, actor_id, capability)
    raise AuthorizationError(action, capability=capability, actor_id=actor_id)


def require_qa(actor, project, action: str) -> None:
    if member_role(actor, project) != ROLE_QA:
        actor_id = getattr(actor, "id", None)
        logger.info("Denied %s for actor=%s (QA only)", action, actor_id)
        raise AuthorizationError(action, capability="QA role", actor_id=actor_id)


def require_owner_or_qa(actor, project, owner_id, action: str) -> None:
    """Allow QA members of the project and the entity's creator."""
    if member_role(actor, project) == ROLE_QA:
        return
    if actor is not None and owner_id is not None and str(owner_id) == str(actor.id):
        return
    actor_id = getattr(actor, "id", None)
    logger.info("Denied %s for actor=%s (owner or QA only)", action, actor_id)
    raise AuthorizationError(action, capability="owner or QA role", actor_id=actor_id)


def normalize_overrides(payload) -> dict[str, bool]:
    """Accept bare or legacy ``devCan...`` keys; return bare flag names.

    Raises:
        ValidationError: unknown key or non-boolean value.
    """
    if not isinstance(payload, Mapping):
        raise ValidationError("Permissions must be an object")
    result = {}
    errors = {}
    for key, value in payload.items():
        name = LEGACY_PERMISSION_KEYS.get(key, key)
        if name not in PERMISSION_FLAGS:
            errors[key] = "unknown permission"
            continue
        if not isinstance(value, bool):
            errors[key] = "must be true or false"
            continue
        result[name] = value
    if errors:
        raise ValidationError("Invalid permission overrides", details=errors)
    return result
