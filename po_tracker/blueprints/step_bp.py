"""
Step Blueprint — checkbox toggles and step attachments.

Endpoints:
  PATCH  /api/v1/steps/<id>          — merge flags, recompute done
  POST   /api/v1/steps/<id>/files    — multipart ``file`` upload
  GET    /api/v1/files/<id>          — download
  DELETE /api/v1/files/<id>          — detach, recompute done
"""

import os

from flask import Blueprint, jsonify, request, send_file

from po_tracker.auth import current_actor, require_auth
from po_tracker.blueprints import json_body
from po_tracker.core.exceptions import NotFoundError, ValidationError
from po_tracker.services import step_service

step_bp = Blueprint("steps", __name__, url_prefix="/api/v1")


@step_bp.route("/steps/<int:step_id>", methods=["PATCH"])
@require_auth
def update_step(step_id):
    step_service.update_step_flags(step_id, json_body(), current_actor())
    return jsonify({"ok": True}), 200


@step_bp.route("/steps/<int:step_id>/files", methods=["POST"])
@require_auth
def upload_file(step_id):
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise ValidationError("No file uploaded", details={"file": "required"})
    result = step_service.attach_file(
        step_id,
        upload.stream,
        upload.filename,
        current_actor(),
        content_type=upload.mimetype,
    )
    return jsonify(result), 201


@step_bp.route("/files/<int:file_id>", methods=["GET"])
@require_auth
def download_file(file_id):
    step_file, path = step_service.get_file(file_id, current_actor())
    if not os.path.isfile(path):
        raise NotFoundError(resource="Stored file", resource_id=file_id)
    return send_file(
        path,
        mimetype=step_file.content_type or None,
        as_attachment=True,
        download_name=step_file.file_name,
    )


@step_bp.route("/files/<int:file_id>", methods=["DELETE"])
@require_auth
def delete_file(file_id):
    step_service.detach_file(file_id, current_actor())
    return jsonify({"ok": True}), 200
