"""
QA Hub
Blueprint helpers shared by every API module.

register_error_handlers:  maps the platform exceptions to JSON responses
json_body:                request body as a dict, 400 when malformed
pagination_args:          limit / offset query params
"""

import logging

from flask import request
from werkzeug.exceptions import BadRequest

from qahub.core.exceptions import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from qahub.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def register_error_handlers(bp):
    """Attach the platform exception → HTTP status mapping to a blueprint."""

    @bp.errorhandler(AuthorizationError)
    def _handle_forbidden(error: AuthorizationError):
        return api_error(E.FORBIDDEN, str(error))

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_INVALID, str(error), details=error.details)

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT, str(error), details={"field": error.field})

    @bp.errorhandler(PersistenceError)
    def _handle_persistence(error: PersistenceError):
        logger.error("Persistence failure in %s: %s", request.endpoint, error)
        return api_error(E.PERSISTENCE, "Storage unavailable, nothing was changed")

    return bp


def json_body():
    """Return the JSON object of the request (``{}`` when there is no body).

    Raises:
        BadRequest: body is not valid JSON or not a JSON object.
    """
    if not request.get_data(cache=True):
        return {}
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest("Request body must be a JSON object")
    return data


def pagination_args(default_limit=50, max_limit=200):
    """Read limit/offset query params.

    Returns:
        (limit, offset)
    """
    try:
        limit = min(int(request.args.get("limit", default_limit)), max_limit)
    except (ValueError, TypeError):
        limit = default_limit
    try:
        offset = max(int(request.args.get("offset", 0)), 0)
    except (ValueError, TypeError):
        offset = 0
    return limit, offset
