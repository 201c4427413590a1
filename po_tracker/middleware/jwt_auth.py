"""
JWT Auth Middleware — resolves ``Authorization: Bearer <token>`` to a User.

Sets ``g.current_user`` (User or None) and ``g.access_token`` for every
``/api/v1/`` request.  It never rejects a request by itself: routes decide
through ``po_tracker.auth.require_auth`` / ``require_admin``.
"""

import logging

import jwt as pyjwt
from flask import g, request

from po_tracker.models import db
from po_tracker.models.auth import User
from po_tracker.services.jwt_service import decode_access_token, get_active_session

logger = logging.getLogger(__name__)

# Paths that skip JWT resolution entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/auth/login",
    "/api/v1/health",
    "/static/",
)


def _bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    return auth_header[7:].strip() or None


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        g.current_user = None
        g.access_token = None

        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        token = _bearer_token()
        if not token:
            return

        try:
            payload = decode_access_token(token)
        except pyjwt.ExpiredSignatureError:
            logger.debug("Expired access token on %s", path)
            return
        except pyjwt.InvalidTokenError:
            logger.debug("Invalid access token on %s", path)
            return

        if get_active_session(token) is None:
            # Logged out or expired server-side
            return

        try:
            user_id = int(payload.get("sub"))
        except (TypeError, ValueError):
            return
        user = db.session.get(User, user_id)
        if user is None:
            return

        g.current_user = user
        g.access_token = token
