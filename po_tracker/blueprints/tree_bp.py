"""
Tree Blueprint — months, PO folders and the month → folder tree.

Endpoints:
  GET    /api/v1/tree?q=            — months with folders and progress
  POST   /api/v1/months             — { label, month_key? }
  PATCH  /api/v1/months/<id>        — { label }
  DELETE /api/v1/months/<id>        — cascade folders / steps / files
  POST   /api/v1/po                 — { month_id, folder_name }
  GET    /api/v1/po/<id>            — folder + steps detail
  PATCH  /api/v1/po/<id>            — { folder_name } (re-parsed)
  DELETE /api/v1/po/<id>
"""

from flask import Blueprint, jsonify, request

from po_tracker.auth import current_actor, require_auth
from po_tracker.blueprints import json_body
from po_tracker.core.exceptions import ValidationError
from po_tracker.services import tree_service

tree_bp = Blueprint("tree", __name__, url_prefix="/api/v1")


# ── Tree ─────────────────────────────────────────────────────────────────

@tree_bp.route("/tree", methods=["GET"])
@require_auth
def get_tree():
    return jsonify(tree_service.build_tree(request.args.get("q"))), 200


# ── Months ───────────────────────────────────────────────────────────────

@tree_bp.route("/months", methods=["POST"])
@require_auth
def create_month():
    data = json_body()
    month = tree_service.create_month(
        data.get("label"), current_actor(), month_key=data.get("month_key"),
    )
    return jsonify(month.to_dict()), 201


@tree_bp.route("/months/<int:month_id>", methods=["PATCH"])
@require_auth
def rename_month(month_id):
    month = tree_service.rename_month(month_id, json_body().get("label"), current_actor())
    return jsonify(month.to_dict()), 200


@tree_bp.route("/months/<int:month_id>", methods=["DELETE"])
@require_auth
def delete_month(month_id):
    removed = tree_service.delete_month(month_id, current_actor())
    return jsonify({"ok": True, "folders_removed": removed}), 200


# ── PO folders ───────────────────────────────────────────────────────────

@tree_bp.route("/po", methods=["POST"])
@require_auth
def create_po():
    data = json_body()
    month_id = data.get("month_id")
    try:
        month_id = int(month_id)
    except (TypeError, ValueError) as exc:
        raise ValidationError("month_id is required", details={"month_id": "required"}) from exc
    folder = tree_service.create_folder(month_id, data.get("folder_name"), current_actor())
    return jsonify(tree_service.folder_summary(folder)), 201


@tree_bp.route("/po/<int:folder_id>", methods=["GET"])
@require_auth
def get_po(folder_id):
    return jsonify(tree_service.get_folder_detail(folder_id)), 200


@tree_bp.route("/po/<int:folder_id>", methods=["PATCH"])
@require_auth
def rename_po(folder_id):
    folder = tree_service.rename_folder(
        folder_id, json_body().get("folder_name"), current_actor(),
    )
    return jsonify(tree_service.folder_summary(folder)), 200


@tree_bp.route("/po/<int:folder_id>", methods=["DELETE"])
@require_auth
def delete_po(folder_id):
    tree_service.delete_folder(folder_id, current_actor())
    return jsonify({"ok": True}), 200
