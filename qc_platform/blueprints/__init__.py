"""
HTTP API blueprints (thin layer over the services).

Shared helpers:
    current_principal()        acting identity from X-User-* headers or the JSON body
    services()                 per-request service graph bound to ``db.session``
    register_error_handlers()  exception hierarchy → HTTP status mapping

Services own all business rules and commits; blueprints only parse input,
call one service method and serialise the result.
"""

from __future__ import annotations

import logging
from types import SimpleNamespace

from flask import current_app, request

from qc_platform.core.exceptions import (
    ConcurrencyConflict,
    ConflictError,
    ExternalServiceError,
    InstanceTerminal,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from qc_platform.core.principal import Principal
from qc_platform.models import db
from qc_platform.services.analysis_service import AnalysisService
from qc_platform.services.catalog_service import CatalogService
from qc_platform.services.inspection_lifecycle import LifecycleService
from qc_platform.services.inspection_service import InspectionService
from qc_platform.services.report_compiler import ReportCompiler
from qc_platform.services.report_layout import PageGeometry
from qc_platform.services.repositories import SqlRepositories
from qc_platform.utils.errors import E, api_error

logger = logging.getLogger(__name__)


# ── Principal ────────────────────────────────────────────────────────────────

def current_principal() -> tuple[Principal | None, tuple | None]:
    """Resolve the acting user; returns (principal, error_response)."""
    data = request.get_json(silent=True)
    data = data if isinstance(data, dict) else {}
    body = data.get("principal") if isinstance(data.get("principal"), dict) else {}

    user_id = request.headers.get("X-User-Id") or body.get("user_id")
    if not user_id:
        return None, api_error(E.VALIDATION_REQUIRED, "X-User-Id header (or principal.user_id) is required")
    name = request.headers.get("X-User-Name") or body.get("name") or user_id
    role = request.headers.get("X-User-Role") or body.get("role") or "inspector"
    return Principal(user_id=str(user_id), name=name, role=role), None


# ── Service graph ────────────────────────────────────────────────────────────

def services() -> SimpleNamespace:
    """Build the services for this request from the app's collaborators."""
    repos = SqlRepositories(db.session)
    store = current_app.extensions.get("qc_attachment_store")
    gateway = current_app.extensions.get("qc_insight_gateway")
    return SimpleNamespace(
        catalog=CatalogService(repos.templates),
        inspections=InspectionService(
            repos.templates, repos.instances, repos.attachments, repos.projects, store,
        ),
        lifecycle=LifecycleService(repos.instances),
        reports=ReportCompiler(
            repos.projects, repos.instances, gateway,
            geometry=PageGeometry.from_config(current_app.config),
        ),
        analyses=AnalysisService(repos.projects, repos.instances, gateway),
    )


# ── Error handlers ───────────────────────────────────────────────────────────

def register_error_handlers(bp) -> None:
    """Map the platform exception hierarchy to HTTP responses for ``bp``."""

    @bp.errorhandler(NotFoundError)
    def _handle_not_found(error: NotFoundError):
        return api_error(E.NOT_FOUND, str(error))

    @bp.errorhandler(ValidationError)
    def _handle_validation(error: ValidationError):
        return api_error(E.VALIDATION_RULE, str(error), details=error.details)

    @bp.errorhandler(InstanceTerminal)
    def _handle_terminal(error: InstanceTerminal):
        return api_error(E.CONFLICT_TERMINAL, str(error), details={"status": error.status})

    @bp.errorhandler(InvalidTransition)
    def _handle_transition(error: InvalidTransition):
        return api_error(
            E.CONFLICT_STATE, str(error),
            details={"action": error.action, "status": error.current_status},
        )

    @bp.errorhandler(ConflictError)
    def _handle_conflict(error: ConflictError):
        return api_error(E.CONFLICT_DUPLICATE, str(error), details={"field": error.field})

    @bp.errorhandler(ConcurrencyConflict)
    def _handle_concurrency(error: ConcurrencyConflict):
        details = {}
        if error.expected is not None:
            details = {"expected_version": error.expected, "actual_version": error.actual}
        return api_error(E.CONFLICT_CONCURRENT, str(error), details=details)

    @bp.errorhandler(ExternalServiceError)
    def _handle_external(error: ExternalServiceError):
        logger.warning("External service failure in %s: %s", request.endpoint, error)
        return api_error(E.EXTERNAL_SERVICE, str(error), details={"service": error.service})


