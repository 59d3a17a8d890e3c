"""
Repository interfaces and their SQLAlchemy implementations.

Services never reach for ``db.session``; they receive repositories in their
constructor.  Four seams:

    TemplateRepository    phases + checklist templates (read-mostly master data)
    InstanceRepository    inspection instances, items, signatures
    AttachmentRepository  attachment link rows (bytes live in the Attachment Store)
    ProjectRepository     projects + stored AI analyses

The SQLAlchemy implementations share one session, which is the unit of
work: ``commit()`` on any of them commits everything staged so far.
A stale optimistic-lock version on flush is translated to
ConcurrencyConflict; the session is rolled back before raising.

Usage:
    repos = SqlRepositories(db.session)
    svc = InspectionService(repos.templates, repos.instances, repos.attachments,
                            attachment_store)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from sqlalchemy import func, select
from sqlalchemy.orm.exc import StaleDataError

from qc_platform.core.exceptions import ConcurrencyConflict
from qc_platform.models.catalog import ChecklistItemDefinition, ChecklistTemplate, Phase
from qc_platform.models.inspection import Attachment, InspectionInstance, InspectionItem
from qc_platform.models.project import Project, ProjectAnalysis

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# Interfaces
# ═════════════════════════════════════════════════════════════════════════════

class UnitOfWork(ABC):
    """Commit / rollback boundary shared by every repository."""

    @abstractmethod
    def add(self, obj) -> None:
        ...

    @abstractmethod
    def delete(self, obj) -> None:
        ...

    @abstractmethod
    def flush(self) -> None:
        ...

    @abstractmethod
    def commit(self) -> None:
        """Persist staged changes; raise ConcurrencyConflict on a stale write."""
        ...

    @abstractmethod
    def rollback(self) -> None:
        ...


class TemplateRepository(UnitOfWork):
    @abstractmethod
    def get_template(self, template_id: int) -> ChecklistTemplate | None:
        ...

    @abstractmethod
    def get_item_definition(self, definition_id: int) -> ChecklistItemDefinition | None:
        ...

    @abstractmethod
    def list_templates(self) -> list[ChecklistTemplate]:
        ...

    @abstractmethod
    def get_phase(self, phase_id: int) -> Phase | None:
        ...

    @abstractmethod
    def get_phase_by_name(self, name: str) -> Phase | None:
        ...

    @abstractmethod
    def list_phases(self) -> list[Phase]:
        ...

    @abstractmethod
    def max_phase_order(self) -> int:
        ...


class InstanceRepository(UnitOfWork):
    @abstractmethod
    def get(self, instance_id: int) -> InspectionInstance | None:
        ...

    @abstractmethod
    def get_item(self, instance_id: int, item_id: int) -> InspectionItem | None:
        ...

    @abstractmethod
    def list_for_project(self, project_id: int) -> list[InspectionInstance]:
        ...

    @abstractmethod
    def list_instances(self, status: str | None = None,
                       project_id: int | None = None) -> list[InspectionInstance]:
        """Instances across projects, latest submission first, drafts last."""


class AttachmentRepository(UnitOfWork):
    @abstractmethod
    def get(self, attachment_id: int) -> Attachment | None:
        ...


class ProjectRepository(UnitOfWork):
    @abstractmethod
    def get(self, project_id: int) -> Project | None:
        ...

    @abstractmethod
    def list_analyses(self, project_id: int) -> list[ProjectAnalysis]:
        ...


# ═════════════════════════════════════════════════════════════════════════════
# SQLAlchemy implementations
# ═════════════════════════════════════════════════════════════════════════════

class _SqlUnitOfWork(UnitOfWork):
    def __init__(self, session):
        self.session = session

    def add(self, obj) -> None:
        self.session.add(obj)

    def delete(self, obj) -> None:
        self.session.delete(obj)

    def flush(self) -> None:
        try:
            self.session.flush()
        except StaleDataError as exc:
            self.session.rollback()
            logger.warning("Stale write detected on flush: %s", exc)
            raise ConcurrencyConflict("InspectionInstance", None) from exc

    def commit(self) -> None:
        try:
            self.session.commit()
        except StaleDataError as exc:
            self.session.rollback()
            logger.warning("Stale write detected on commit: %s", exc)
            raise ConcurrencyConflict("InspectionInstance", None) from exc

    def rollback(self) -> None:
        self.session.rollback()


class SqlTemplateRepository(_SqlUnitOfWork, TemplateRepository):
    def get_template(self, template_id):
        return self.session.get(ChecklistTemplate, template_id)

    def get_item_definition(self, definition_id):
        return self.session.get(ChecklistItemDefinition, definition_id)

    def list_templates(self):
        return list(self.session.scalars(select(ChecklistTemplate).order_by(ChecklistTemplate.id)))

    def get_phase(self, phase_id):
        return self.session.get(Phase, phase_id)

    def get_phase_by_name(self, name):
        return self.session.scalars(select(Phase).where(Phase.name == name)).first()

    def list_phases(self):
        return list(self.session.scalars(select(Phase).order_by(Phase.order, Phase.id)))

    def max_phase_order(self):
        return self.session.scalar(select(func.max(Phase.order))) or 0


class SqlInstanceRepository(_SqlUnitOfWork, InstanceRepository):
    def get(self, instance_id):
        return self.session.get(InspectionInstance, instance_id)

    def get_item(self, instance_id, item_id):
        return self.session.scalars(
            select(InspectionItem).where(
                InspectionItem.id == item_id,
                InspectionItem.instance_id == instance_id,
            )
        ).first()

    def list_for_project(self, project_id):
        return list(self.session.scalars(
            select(InspectionInstance)
            .where(InspectionInstance.project_id == project_id)
            .order_by(InspectionInstance.id)
        ))

    def list_instances(self, status=None, project_id=None):
        stmt = select(InspectionInstance)
        if status is not None:
            stmt = stmt.where(InspectionInstance.status == status)
        if project_id is not None:
            stmt = stmt.where(InspectionInstance.project_id == project_id)
        stmt = stmt.order_by(
            InspectionInstance.submitted_at.is_(None),
            InspectionInstance.submitted_at.desc(),
            InspectionInstance.id.desc(),
        )
        return list(self.session.scalars(stmt))


class SqlAttachmentRepository(_SqlUnitOfWork, AttachmentRepository):
    def get(self, attachment_id):
        return self.session.get(Attachment, attachment_id)


class SqlProjectRepository(_SqlUnitOfWork, ProjectRepository):
    def get(self, project_id):
        return self.session.get(Project, project_id)

    def list_analyses(self, project_id):
        return list(self.session.scalars(
            select(ProjectAnalysis)
            .where(ProjectAnalysis.project_id == project_id)
            .order_by(ProjectAnalysis.created_at.desc(), ProjectAnalysis.id.desc())
        ))


class SqlRepositories:
    """All SQLAlchemy repositories bound to one session."""

    def __init__(self, session):
        self.templates = SqlTemplateRepository(session)
        self.instances = SqlInstanceRepository(session)
        self.attachments = SqlAttachmentRepository(session)
        self.projects = SqlProjectRepository(session)
