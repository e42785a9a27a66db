"""
Request timing middleware.

Every response carries:
    X-Request-ID            echoed from the client or generated
    X-Request-Duration-Ms   wall time spent in Flask

Mutations (POST / PUT / PATCH / DELETE) are logged at INFO with the actor
and project they touched; reads only at DEBUG. Anything slower than
SLOW_REQUEST_MS is a WARNING whatever the method.
"""

import logging
import time
import uuid

from flask import Flask, g, request

logger = logging.getLogger(__name__)

MUTATING_METHODS = frozenset({"POST", "PUT", "PATCH", "DELETE"})

# Probes are polled every few seconds
_QUIET_PREFIX = "/api/v1/health"

DEFAULT_SLOW_REQUEST_MS = 1000


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""
    slow_ms = float(app.config.get("SLOW_REQUEST_MS", DEFAULT_SLOW_REQUEST_MS))

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]

    @app.after_request
    def _stamp_response(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{duration_ms:.1f}"
        response.headers["X-Request-ID"] = g.request_id

        if not request.path.startswith(_QUIET_PREFIX):
            _log_outcome(response.status_code, duration_ms, slow_ms)
        return response


def _log_outcome(status, duration_ms, slow_ms):
    actor = getattr(g, "actor", None)
    extra = {
        "method": request.method,
        "path": request.path,
        "status": status,
        "duration_ms": duration_ms,
        "remote_addr": request.remote_addr,
        "request_id": g.request_id,
        "actor_id": actor.id if actor else None,
        "project_id": _project_id_from_route(),
    }
    summary = "%s %s %d (%.0fms)"
    args = (request.method, request.path, status, duration_ms)

    if duration_ms > slow_ms:
        logger.warning("Slow request: " + summary, *args, extra=extra)
    elif status >= 500:
        logger.error("Server error: " + summary, *args, extra=extra)
    elif request.method in MUTATING_METHODS:
        logger.info("Mutation: " + summary, *args, extra=extra)
    else:
        logger.debug("Request: " + summary, *args, extra=extra)


def _project_id_from_route() -> int | None:
    project_id = (request.view_args or {}).get("project_id")
    return project_id if isinstance(project_id, int) else None
