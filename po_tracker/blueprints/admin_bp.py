"""
Admin Blueprint — user management (admin only).

Endpoints:
  GET   /api/v1/admin/users          — list accounts
  POST  /api/v1/admin/users          — create account
  PATCH /api/v1/admin/users/<id>     — rename / reset password / toggle admin
"""

from flask import Blueprint, jsonify

from po_tracker.auth import current_actor, require_admin
from po_tracker.blueprints import json_body
from po_tracker.services import user_service

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")


@admin_bp.route("/users", methods=["GET"])
@require_admin
def list_users():
    return jsonify({"users": user_service.list_users(current_actor())}), 200


@admin_bp.route("/users", methods=["POST"])
@require_admin
def create_user():
    """Body: { "username", "password", "is_admin"? }"""
    data = json_body()
    user = user_service.create_user(
        data.get("username"),
        data.get("password"),
        current_actor(),
        is_admin=bool(data.get("is_admin", False)),
    )
    return jsonify(user.to_dict()), 201


@admin_bp.route("/users/<int:user_id>", methods=["PATCH"])
@require_admin
def update_user(user_id):
    """Body: any of { "username", "password", "is_admin" }.  Blank password = unchanged."""
    data = json_body()
    user = user_service.update_user(
        user_id,
        current_actor(),
        username=data.get("username"),
        password=data.get("password"),
        is_admin=data.get("is_admin"),
    )
    return jsonify(user.to_dict()), 200
