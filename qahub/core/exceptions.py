"""
Platform-wide exception hierarchy.

Every service raises one of these types; blueprints register handlers
against them once and get consistent HTTP status codes everywhere.

    AuthorizationError  → 403   capability missing / owner-or-QA rule failed
    ValidationError     → 422   business-rule violation (missing fields, bad target)
    ConflictError       → 409   duplicate link, cycle, nested reply, stale version
    NotFoundError       → 404   entity missing or outside the requested project
    PersistenceError    → 503   store failure or timeout; nothing was applied

Usage:
    from qahub.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Bug", resource_id=42)
    raise ValidationError("Missing required fields", details={"steps": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested entity does not exist within the given scope.

    Used for BOTH genuinely missing records AND lookups scoped to the wrong
    project, so a caller cannot probe for ids in projects it cannot see.

    Args:
        resource: Human-readable entity name (e.g. "TestCase", "Bug").
        resource_id: The PK that was looked up.
        project_id: Optional project scope that was enforced.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        project_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.project_id = project_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if project_id is not None:
            msg += f" (project={project_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when well-formed input violates a business rule.

    Examples: leaving Draft with required fields empty, linking to an entity
    in another project, exceeding the member limit of a project.

    Args:
        message: Human-readable explanation of what failed.
        details: Field-level breakdown; keys are field names.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation conflicts with existing state.

    Covers duplicate task links, cyclic parent assignments, replies to
    replies and optimistic-lock failures (another request changed the row).

    Args:
        resource: Entity name.
        field: The field or relation that conflicts.
        value: The conflicting value.
        message: Optional explicit message overriding the default one.
    """

    def __init__(
        self,
        resource: str,
        field: str,
        value: str | int | None = None,
        message: str | None = None,
    ) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        super().__init__(message or f"{resource} with {field}={value!r} already exists")


class AuthorizationError(Exception):
    """Raised when the actor's capability set does not allow the operation.

    Args:
        action: What the actor attempted (e.g. "edit bug").
        capability: The capability flag or rule that was missing.
        actor_id: Actor identifier, for logs.
    """

    def __init__(
        self,
        action: str,
        capability: str | None = None,
        actor_id: str | None = None,
    ) -> None:
        self.action = action
        self.capability = capability
        self.actor_id = actor_id
        msg = f"Not allowed to {action}"
        if capability:
            msg += f" (requires {capability})"
        super().__init__(msg)


class PersistenceError(Exception):
    """Raised when the store fails or an operation exceeds its time budget.

    The unit of work has always been rolled back when this is raised.

    Args:
        operation: Name of the operation that failed.
        reason: Short description of the underlying failure.
    """

    def __init__(self, operation: str, reason: str = "") -> None:
        self.operation = operation
        self.reason = reason
        msg = f"{operation} failed"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)
