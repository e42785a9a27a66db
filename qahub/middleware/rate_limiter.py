"""
Rate limiting configuration.

Applies per-blueprint limits using Flask-Limiter. The Limiter instance is
created in qahub/__init__.py with no default limits; this module attaches
limits per route category, keyed by actor when a token is present.

Usage:
    from qahub.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)

# Blueprints whose routes mutate the store
WRITE_BLUEPRINTS = ("projects", "testing", "tasks", "comments", "notes", "notifications")

DEFAULT_WRITE_LIMIT = "120/minute"
WRITE_METHODS = ["POST", "PUT", "PATCH", "DELETE"]


def actor_rate_limit_key():
    """Rate limit key: actor id when authenticated, else remote IP."""
    actor = getattr(g, "actor", None)
    if actor is not None:
        return f"actor:{actor.id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Domain blueprints: WRITE_RATE_LIMIT on mutations (default 120/minute per actor)
        - Health check:      exempt

    Rate limiting is disabled when RATELIMIT_ENABLED is false (testing).
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    write_limit = app.config.get("WRITE_RATE_LIMIT", DEFAULT_WRITE_LIMIT)
    for bp_name in WRITE_BLUEPRINTS:
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit(
                write_limit, key_func=actor_rate_limit_key, methods=WRITE_METHODS,
            )(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    app.logger.info("Rate limiter configured — domain blueprints: %s", write_limit)
