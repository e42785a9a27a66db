"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.actor.

Every /api/v1 route except the skip list needs a valid bearer token:
  Authorization: Bearer <token>  →  g.actor = Actor(id, role, name)

Blueprints hook ``require_actor`` to turn a missing actor into 401.
Services never see credentials, only the Actor.
"""

import logging

import jwt as pyjwt
from flask import g, request

from qahub.services.jwt_service import actor_from_token
from qahub.utils.errors import E, api_error

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.actor = None
        g.auth_error = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            g.auth_error = "Missing bearer token"
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            g.actor = actor_from_token(token)
        except pyjwt.ExpiredSignatureError:
            g.auth_error = "Token expired"
        except pyjwt.InvalidTokenError as exc:
            g.auth_error = "Invalid token"
            logger.info("Rejected bearer token on %s: %s", path, exc)


def current_actor():
    return getattr(g, "actor", None)


def require_actor():
    """401 response when the request has no valid bearer token, else None.

    Blueprints register it as a before_request hook:
        bp.before_request(require_actor)
    """
    if current_actor() is None:
        message = getattr(g, "auth_error", None) or "Authentication required"
        return api_error(E.UNAUTHORIZED, message)
    return None
