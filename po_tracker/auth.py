"""
PO Tracker
Access control gate.

Two checks, applied as a chain:
    AUTHENTICATED — a caller identity (User) is attached to the request
    ADMIN         — that caller has ``is_admin`` set

The JWT middleware (``po_tracker.middleware.jwt_auth``) resolves the Bearer
token to a User and stores it on ``g.current_user``.  Blueprints guard routes
with ``@require_auth`` / ``@require_admin`` and pass ``current_actor()`` into
the service layer explicitly; services re-check with ``ensure_authenticated``
/ ``ensure_admin`` so they never depend on Flask request state.

Usage:
    @bp.route("/api/v1/admin/users", methods=["POST"])
    @require_admin
    def create_user():
        user = user_service.create_user(..., actor=current_actor())
"""

import functools
import logging

from flask import g, has_request_context, request

from po_tracker.core.exceptions import AuthenticationError, PermissionDeniedError

logger = logging.getLogger(__name__)


def current_actor():
    """Return the authenticated User for this request, or None."""
    if not has_request_context():
        return None
    return getattr(g, "current_user", None)


def actor_name(actor) -> str:
    """Identity string stored in ``*_by`` columns and audit rows."""
    return getattr(actor, "username", None) or "system"


def ensure_authenticated(actor):
    """Raise AuthenticationError unless *actor* is a known caller."""
    if actor is None or getattr(actor, "id", None) is None:
        raise AuthenticationError()
    return actor


def ensure_admin(actor):
    """Raise AuthenticationError / PermissionDeniedError unless *actor* is an admin."""
    ensure_authenticated(actor)
    if not getattr(actor, "is_admin", False):
        logger.warning(
            "Access denied: user '%s' tried admin-only operation",
            actor_name(actor),
            extra={"path": request.path if has_request_context() else None},
        )
        raise PermissionDeniedError()
    return actor


# ── Decorators ───────────────────────────────────────────────────────────────

def require_auth(f):
    """Decorator: reject the request with 401 unless a caller is attached."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        ensure_authenticated(current_actor())
        return f(*args, **kwargs)

    return decorated


def require_admin(f):
    """Decorator: AUTHENTICATED then ADMIN (401 before 403)."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        ensure_admin(current_actor())
        return f(*args, **kwargs)

    return decorated
