"""Catalog blueprint: phases and checklist templates.

Endpoints:
  GET  /api/v1/phases
  POST /api/v1/phases                           { name, description? }
  GET  /api/v1/templates
  POST /api/v1/templates                        { name, project_type?, description?, items: [...] }
  GET  /api/v1/templates/<id>
  POST /api/v1/templates/<id>/publish
  PUT  /api/v1/templates/items/<definition_id>  (unpublished templates only)
"""

from __future__ import annotations

import logging

from flask import Blueprint, jsonify, request

from qc_platform.blueprints import register_error_handlers, services
from qc_platform.utils.errors import E, api_error

logger = logging.getLogger(__name__)

catalog_bp = Blueprint("catalog", __name__, url_prefix="/api/v1")
register_error_handlers(catalog_bp)


@catalog_bp.route("/phases", methods=["GET"])
def list_phases():
    phases = services().catalog.list_phases()
    return jsonify({"items": [p.to_dict() for p in phases], "total": len(phases)}), 200


@catalog_bp.route("/phases", methods=["POST"])
def create_phase():
    data = request.get_json(silent=True) or {}
    if not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    phase = services().catalog.create_phase(data["name"], data.get("description"))
    return jsonify(phase.to_dict()), 201


@catalog_bp.route("/templates", methods=["GET"])
def list_templates():
    templates = services().catalog.list_templates()
    return jsonify({"items": [t.to_dict() for t in templates], "total": len(templates)}), 200


@catalog_bp.route("/templates", methods=["POST"])
def create_template():
    data = request.get_json(silent=True) or {}
    if not (data.get("name") or "").strip():
        return api_error(E.VALIDATION_REQUIRED, "name is required")
    if not isinstance(data.get("items"), list):
        return api_error(E.VALIDATION_INVALID, "items must be a list")

    template = services().catalog.create_template(
        data["name"], data["items"],
        project_type=data.get("project_type"),
        description=data.get("description"),
    )
    return jsonify(template.to_dict(include_items=True)), 201


@catalog_bp.route("/templates/<int:template_id>", methods=["GET"])
def get_template(template_id: int):
    template = services().catalog.get_template(template_id)
    return jsonify(template.to_dict(include_items=True)), 200


@catalog_bp.route("/templates/<int:template_id>/publish", methods=["POST"])
def publish_template(template_id: int):
    template = services().catalog.publish_template(template_id)
    return jsonify(template.to_dict()), 200


@catalog_bp.route("/templates/items/<int:definition_id>", methods=["PUT"])
def update_item_definition(definition_id: int):
    data = request.get_json(silent=True) or {}
    definition = services().catalog.update_item_definition(definition_id, data)
    return jsonify(definition.to_dict()), 200
