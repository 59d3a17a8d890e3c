"""Inspection blueprint: instance manager and lifecycle endpoints.

Endpoint groups:
  Instances        POST /api/v1/inspections
                   GET  /api/v1/inspections/<id>
                   GET  /api/v1/projects/<project_id>/inspections
  Review queue     GET  /api/v1/inspections/pending          ?project_id=
                   GET  /api/v1/critical-issues              ?project_id=
  Results          PUT  /api/v1/inspections/<id>/items/<item_id>
                   PUT  /api/v1/inspections/<id>/comments
                   POST /api/v1/inspections/<id>/calculate-score
  Attachments      POST   /api/v1/inspections/<id>/attachments          (multipart)
                   DELETE /api/v1/inspections/<id>/attachments/<att_id>
  Lifecycle        POST /api/v1/inspections/<id>/submit|sign|approve|reject

The acting user comes from X-User-Id / X-User-Name / X-User-Role headers
(or a ``principal`` object in the JSON body).  Optional ``expected_version``
in a body turns on the optimistic version check.
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from qc_platform.blueprints import current_principal, register_error_handlers, services
from qc_platform.services.inspection_lifecycle import allowed_actions
from qc_platform.utils.errors import E, api_error
from qc_platform.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

inspection_bp = Blueprint("inspection", __name__, url_prefix="/api/v1")
register_error_handlers(inspection_bp)


def _body() -> dict:
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _int_field(data: dict, name: str):
    """Optional integer body field -> (value | None, error_response | None)."""
    value = data.get(name)
    if value is None:
        return None, None
    if isinstance(value, bool):
        return None, api_error(E.VALIDATION_INVALID, f"{name} must be an integer")
    try:
        return int(value), None
    except (TypeError, ValueError):
        return None, api_error(E.VALIDATION_INVALID, f"{name} must be an integer")


def _expected_version(data: dict):
    return _int_field(data, "expected_version")


def _instance_payload(instance) -> dict:
    payload = instance.to_dict()
    payload["allowed_actions"] = allowed_actions(instance.status)
    return payload


# ═════════════════════════════════════════════════════════════════════════
# Instances
# ═════════════════════════════════════════════════════════════════════════


@inspection_bp.route("/inspections", methods=["POST"])
def create_inspection():
    """Instantiate a published template for a project phase.

    Body: { project_id, phase_id, template_id }
    Returns: the DRAFT instance with its PENDING items (201).
    """
    principal, err = current_principal()
    if err:
        return err
    data = _body()
    missing = [k for k in ("project_id", "phase_id", "template_id") if data.get(k) is None]
    if missing:
        return api_error(E.VALIDATION_REQUIRED, f"Missing fields: {', '.join(missing)}")
    ids = {}
    for key in ("project_id", "phase_id", "template_id"):
        ids[key], err = _int_field(data, key)
        if err:
            return err

    instance = services().inspections.instantiate(
        ids["project_id"], ids["phase_id"], ids["template_id"], principal,
    )
    return jsonify(_instance_payload(instance)), 201


@inspection_bp.route("/inspections/<int:instance_id>", methods=["GET"])
def get_inspection(instance_id: int):
    instance = services().inspections.get_instance(instance_id)
    return jsonify(_instance_payload(instance)), 200


@inspection_bp.route("/projects/<int:project_id>/inspections", methods=["GET"])
def list_project_inspections(project_id: int):
    include_items = parse_bool(request.args.get("include_items"), default=False)
    instances = services().inspections.list_project_instances(project_id)
    return jsonify({
        "items": [i.to_dict(include_items=include_items) for i in instances],
        "total": len(instances),
    }), 200


# ═════════════════════════════════════════════════════════════════════════
# Review queue
# ═════════════════════════════════════════════════════════════════════════


@inspection_bp.route("/inspections/pending", methods=["GET"])
def list_pending_inspections():
    """SUBMITTED inspections awaiting review, optionally for one project."""
    project_id = request.args.get("project_id", type=int)
    queue = services().inspections.list_pending_review(project_id)
    return jsonify({"items": queue, "total": len(queue)}), 200


@inspection_bp.route("/critical-issues", methods=["GET"])
def list_critical_issues():
    """Mandatory items marked NOT_OK, with phase and project context."""
    project_id = request.args.get("project_id", type=int)
    issues = services().inspections.list_critical_issues(project_id)
    return jsonify({"items": issues, "total": len(issues)}), 200


# ═════════════════════════════════════════════════════════════════════════
# Results
# ═════════════════════════════════════════════════════════════════════════


@inspection_bp.route("/inspections/<int:instance_id>/items/<int:item_id>", methods=["PUT"])
def set_item_result(instance_id: int, item_id: int):
    """Body: { status, measured_value?, notes?, expected_version? }"""
    principal, err = current_principal()
    if err:
        return err
    data = _body()
    if not data.get("status"):
        return api_error(E.VALIDATION_REQUIRED, "status is required")
    expected_version, err = _expected_version(data)
    if err:
        return err

    svc = services().inspections
    item = svc.set_item_result(
        instance_id, item_id, principal,
        status=data["status"],
        measured_value=data.get("measured_value"),
        notes=data.get("notes"),
        expected_version=expected_version,
    )
    instance = svc.get_instance(instance_id)
    return jsonify({"item": item.to_dict(), "score": instance.score, "version": instance.version}), 200


@inspection_bp.route("/inspections/<int:instance_id>/comments", methods=["PUT"])
def update_comments(instance_id: int):
    principal, err = current_principal()
    if err:
        return err
    data = _body()
    expected_version, err = _expected_version(data)
    if err:
        return err
    instance = services().inspections.update_comments(
        instance_id, principal, data.get("comments"), expected_version=expected_version,
    )
    return jsonify(_instance_payload(instance)), 200


@inspection_bp.route("/inspections/<int:instance_id>/calculate-score", methods=["POST"])
def calculate_score(instance_id: int):
    breakdown = services().inspections.recalculate_score(instance_id)
    return jsonify(breakdown), 200


# ═════════════════════════════════════════════════════════════════════════
# Attachments
# ═════════════════════════════════════════════════════════════════════════


@inspection_bp.route("/inspections/<int:instance_id>/attachments", methods=["POST"])
def upload_attachment(instance_id: int):
    """Multipart form: file, item_id?, media_kind? (PHOTO | VIDEO | DOCUMENT)."""
    principal, err = current_principal()
    if err:
        return err
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return api_error(E.VALIDATION_REQUIRED, "file is required")

    item_id = request.form.get("item_id", type=int)
    attachment = services().inspections.upload_and_attach(
        instance_id, item_id, principal,
        data=upload.read(),
        filename=upload.filename,
        media_kind=(request.form.get("media_kind") or "PHOTO").upper(),
        content_type=upload.mimetype,
    )
    return jsonify(attachment.to_dict()), 201


@inspection_bp.route("/inspections/<int:instance_id>/attachments/<int:attachment_id>",
                     methods=["DELETE"])
def delete_attachment(instance_id: int, attachment_id: int):
    principal, err = current_principal()
    if err:
        return err
    services().inspections.detach_file(instance_id, attachment_id, principal)
    return "", 204


# ═════════════════════════════════════════════════════════════════════════
# Lifecycle
# ═════════════════════════════════════════════════════════════════════════


@inspection_bp.route("/inspections/<int:instance_id>/submit", methods=["POST"])
def submit_inspection(instance_id: int):
    principal, err = current_principal()
    if err:
        return err
    expected_version, err = _expected_version(_body())
    if err:
        return err
    instance = services().inspections.submit(
        instance_id, principal, expected_version=expected_version,
    )
    return jsonify(_instance_payload(instance)), 200


@inspection_bp.route("/inspections/<int:instance_id>/sign", methods=["POST"])
def sign_inspection(instance_id: int):
    """Body: { signature_image, expected_version? }"""
    principal, err = current_principal()
    if err:
        return err
    data = _body()
    expected_version, err = _expected_version(data)
    if err:
        return err
    instance = services().lifecycle.sign(
        instance_id, principal, data.get("signature_image"),
        expected_version=expected_version,
    )
    return jsonify(_instance_payload(instance)), 200


@inspection_bp.route("/inspections/<int:instance_id>/approve", methods=["POST"])
def approve_inspection(instance_id: int):
    """Body: { comments?, signature_image?, expected_version? }"""
    principal, err = current_principal()
    if err:
        return err
    data = _body()
    expected_version, err = _expected_version(data)
    if err:
        return err
    instance = services().lifecycle.approve(
        instance_id, principal,
        comments=data.get("comments"),
        signature_image=data.get("signature_image"),
        expected_version=expected_version,
    )
    return jsonify(_instance_payload(instance)), 200


@inspection_bp.route("/inspections/<int:instance_id>/reject", methods=["POST"])
def reject_inspection(instance_id: int):
    """Body: { comments, rework?: bool, signature_image?, expected_version? }

    ``rework=true`` sends the inspection back to the inspector (NEEDS_REWORK);
    otherwise it is closed as REJECTED.
    """
    principal, err = current_principal()
    if err:
        return err
    data = _body()
    expected_version, err = _expected_version(data)
    if err:
        return err
    instance = services().lifecycle.reject(
        instance_id, principal,
        comments=data.get("comments"),
        rework=parse_bool(data.get("rework"), default=False),
        signature_image=data.get("signature_image"),
        expected_version=expected_version,
    )
    return jsonify(_instance_payload(instance)), 200
