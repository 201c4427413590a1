"""
Auth Blueprint — login sessions.

Endpoints:
  POST /api/v1/auth/login    — username + password → Bearer access token
  POST /api/v1/auth/logout   — revoke the current token's session
  GET  /api/v1/auth/me       — current user, or ``{"user": null}``
"""

import logging

from flask import Blueprint, g, jsonify, request

from po_tracker.auth import current_actor
from po_tracker.blueprints import json_body
from po_tracker.services.jwt_service import issue_session_token, revoke_session_by_token
from po_tracker.services.user_service import authenticate
from po_tracker.utils.errors import E, api_error

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/login
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/login", methods=["POST"])
def login():
    """
    Body: { "username": "...", "password": "..." }
    """
    data = json_body()
    username = str(data.get("username") or "").strip()
    password = str(data.get("password") or "")

    if not username or not password:
        return api_error(E.VALIDATION_REQUIRED, "Username and password are required")

    user = authenticate(username, password)
    if user is None:
        return api_error(E.UNAUTHENTICATED, "Invalid username or password")

    tokens = issue_session_token(
        user,
        ip_address=request.remote_addr,
        user_agent=request.headers.get("User-Agent", ""),
    )
    logger.info("User logged in", extra={"user_id": user.id, "username": user.username})
    return jsonify({**tokens, "user": user.to_dict()}), 200


# ═══════════════════════════════════════════════════════════════
# POST /api/v1/auth/logout
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/logout", methods=["POST"])
def logout():
    """Revoke the session behind the presented token.  Always 200."""
    token = getattr(g, "access_token", None)
    if token:
        revoke_session_by_token(token)
    return jsonify({"ok": True}), 200


# ═══════════════════════════════════════════════════════════════
# GET /api/v1/auth/me
# ═══════════════════════════════════════════════════════════════
@auth_bp.route("/me", methods=["GET"])
def me():
    user = current_actor()
    return jsonify({"user": user.to_dict() if user else None}), 200
