"""Stored project analyses.

``generate`` asks the Insight Gateway for a fresh analysis and keeps it as a
ProjectAnalysis row, so later reports can reuse it without another provider
call.  Unlike report compilation, an explicit generate request surfaces
provider failures as ExternalServiceError.
"""

import logging

from qc_platform.ai.insights import build_summary_payload
from qc_platform.core.exceptions import ExternalServiceError, NotFoundError
from qc_platform.models.project import ProjectAnalysis
from qc_platform.services.phase_aggregator import aggregate_project

logger = logging.getLogger(__name__)


class AnalysisService:
    def __init__(self, projects, instances, insight_gateway):
        self.projects = projects
        self.instances = instances
        self.insight_gateway = insight_gateway

    def _project(self, project_id):
        project = self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        return project

    def generate(self, project_id: int, principal=None, timeout: float | None = None) -> ProjectAnalysis:
        project = self._project(project_id)
        instances = self.instances.list_for_project(project_id)
        if not instances:
            raise NotFoundError("InspectionInstance", f"project={project_id}")

        payload = build_summary_payload(project, aggregate_project(instances))
        result = self.insight_gateway.analyze(payload, timeout=timeout)
        if not result.ok:
            raise ExternalServiceError(result.provider or "insight", result.error or "no analysis returned")

        analysis = ProjectAnalysis(
            project_id=project.id,
            content=result.text,
            provider=result.provider,
            model=result.model,
            created_by=principal.user_id if principal else None,
        )
        self.projects.add(analysis)
        self.projects.commit()
        logger.info("Analysis stored project=%s provider=%s id=%s", project_id, result.provider, analysis.id)
        return analysis

    def history(self, project_id: int) -> list[ProjectAnalysis]:
        self._project(project_id)
        return self.projects.list_analyses(project_id)

    def get(self, project_id: int, analysis_id: int) -> ProjectAnalysis:
        for analysis in self.history(project_id):
            if analysis.id == analysis_id:
                return analysis
        raise NotFoundError("ProjectAnalysis", analysis_id)
