"""
PO Request Blueprint — stage-tracked purchase requests.

Endpoints:
  GET   /api/v1/po-requests                    — search / filter / sort
  POST  /api/v1/po-requests                    — create (stage QUOTATION_COLLECTING)
  GET   /api/v1/po-requests/meta               — stages + distinct vendors
  GET   /api/v1/po-requests/<id>               — request + activity log
  PATCH /api/v1/po-requests/<id>               — whitelisted field update
  POST  /api/v1/po-requests/<id>/move-stage    — { to_stage, note? }
"""

from flask import Blueprint, jsonify, request

from po_tracker.auth import current_actor, require_auth
from po_tracker.blueprints import json_body
from po_tracker.services import po_request_service

po_request_bp = Blueprint("po_requests", __name__, url_prefix="/api/v1/po-requests")


@po_request_bp.route("", methods=["GET"])
@require_auth
def list_requests():
    args = request.args
    rows = po_request_service.list_po_requests(
        q=args.get("q"),
        stage=args.get("stage"),
        capex_opex=args.get("capex_opex"),
        vendor=args.get("vendor"),
        owner_role=args.get("owner_role"),
        priority=args.get("priority"),
        sort=args.get("sort", po_request_service.DEFAULT_SORT),
        direction=args.get("dir", "desc"),
        limit=args.get("limit", po_request_service.DEFAULT_LIMIT),
    )
    return jsonify([r.to_dict() for r in rows]), 200


@po_request_bp.route("", methods=["POST"])
@require_auth
def create_request():
    po = po_request_service.create_po_request(json_body(), current_actor())
    return jsonify({"id": po.id}), 201


@po_request_bp.route("/meta", methods=["GET"])
@require_auth
def meta():
    return jsonify(po_request_service.get_meta()), 200


@po_request_bp.route("/<int:po_id>", methods=["GET"])
@require_auth
def get_request(po_id):
    return jsonify(po_request_service.get_po_request(po_id)), 200


@po_request_bp.route("/<int:po_id>", methods=["PATCH"])
@require_auth
def update_request(po_id):
    po_request_service.update_po_request(po_id, json_body(), current_actor())
    return jsonify({"ok": True}), 200


@po_request_bp.route("/<int:po_id>/move-stage", methods=["POST"])
@require_auth
def move_stage(po_id):
    data = json_body()
    po_request_service.move_stage(
        po_id, data.get("to_stage"), current_actor(), note=data.get("note"),
    )
    return jsonify({"ok": True}), 200
