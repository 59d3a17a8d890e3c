"""Report blueprint: layout plan, project metrics and stored AI analyses.

Endpoints:
  GET  /api/v1/projects/<project_id>/report/layout    ?include_analysis=true&analysis_id=<id>
  GET  /api/v1/projects/<project_id>/metrics
  POST /api/v1/projects/<project_id>/analysis         generate + store a new analysis
  GET  /api/v1/projects/<project_id>/analysis         stored analyses, newest first

The layout endpoint never fails because of the insight provider: when the
provider errors or times out the plan comes back without the executive
summary and ``metadata.analysis.error`` says why.
"""

from __future__ import annotations

import logging

from flask import Blueprint, current_app, jsonify, request

from qc_platform import limiter
from qc_platform.blueprints import current_principal, register_error_handlers, services
from qc_platform.services.project_metrics import compute_project_metrics
from qc_platform.utils.helpers import parse_bool

logger = logging.getLogger(__name__)

report_bp = Blueprint("report", __name__, url_prefix="/api/v1")
register_error_handlers(report_bp)

_analysis_limit = limiter.shared_limit(
    lambda: current_app.config.get("ANALYSIS_RATE_LIMIT", "10/minute"), scope="analysis_generate",
)


@report_bp.route("/projects/<int:project_id>/report/layout", methods=["GET"])
def report_layout(project_id: int):
    """Compile the project report into a renderer-agnostic layout plan.

    Query params:
        include_analysis  ask the insight provider for an executive summary
        analysis_id       reuse a stored analysis instead of calling the provider
        timeout           provider timeout in seconds
    """
    svc = services()
    analysis_text = None
    analysis_id = request.args.get("analysis_id", type=int)
    if analysis_id is not None:
        analysis_text = svc.analyses.get(project_id, analysis_id).content

    plan = svc.reports.compile_report(
        project_id,
        include_analysis=parse_bool(request.args.get("include_analysis"), default=False),
        analysis_text=analysis_text,
        timeout=request.args.get("timeout", type=float)
        or current_app.config.get("INSIGHT_TIMEOUT_SECONDS"),
    )
    return jsonify(plan.to_dict()), 200


@report_bp.route("/projects/<int:project_id>/metrics", methods=["GET"])
def project_metrics(project_id: int):
    instances = services().inspections.list_project_instances(project_id)
    return jsonify(compute_project_metrics(instances)), 200


@report_bp.route("/projects/<int:project_id>/analysis", methods=["POST"])
@_analysis_limit
def generate_analysis(project_id: int):
    principal, err = current_principal()
    if err:
        return err
    analysis = services().analyses.generate(
        project_id, principal,
        timeout=current_app.config.get("INSIGHT_TIMEOUT_SECONDS"),
    )
    return jsonify(analysis.to_dict()), 201


@report_bp.route("/projects/<int:project_id>/analysis", methods=["GET"])
def analysis_history(project_id: int):
    analyses = services().analyses.history(project_id)
    return jsonify({"items": [a.to_dict() for a in analyses], "total": len(analyses)}), 200
