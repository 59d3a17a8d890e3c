"""
Inspection Instance Manager.

Instantiates, mutates and validates a single inspection run for one
(project, phase, template) triple.

Operations:
    instantiate          clone every item definition into a PENDING item (status DRAFT)
    set_item_result      overwrite one item's result, recompute the cached score
    update_comments      overwrite the inspector's comments
    attach_file          record an already-uploaded AttachmentRef on the instance / an item
    upload_and_attach    push bytes to the Attachment Store, then record the ref
    detach_file          forget an attachment, then ask the store to delete its bytes
    submit               mandatory-item gate, final score, → SUBMITTED
    recalculate_score    explicit, idempotent score refresh
    list_pending_review  SUBMITTED inspections waiting for a reviewer
    list_critical_issues mandatory items marked NOT_OK across inspections

Rules enforced here (never in blueprints):
    - APPROVED / REJECTED instances are immutable (InstanceTerminal).
    - SUBMITTED instances are under review; edits raise InvalidTransition.
    - Every call is all-or-nothing: validation happens before any mutation
      and a failed commit rolls the session back.
    - ``expected_version`` (optional) enables optimistic concurrency checks
      from API callers; the version column catches the remaining races.

Usage:
    svc = InspectionService(repos.templates, repos.instances, repos.attachments,
                            repos.projects, attachment_store)
    inst = svc.instantiate(project_id=1, phase_id=2, template_id=3, principal=p)
    svc.set_item_result(inst.id, inst.items[0].id, p, status="OK")
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from qc_platform.core.exceptions import (
    ConcurrencyConflict,
    InvalidStatus,
    NotFoundError,
    ValidationError,
)
from qc_platform.models.inspection import (
    ITEM_STATUSES,
    MEDIA_KINDS,
    Attachment,
    InspectionInstance,
    InspectionItem,
)
from qc_platform.services import inspection_lifecycle as lifecycle
from qc_platform.services.scoring import compute_score, score_breakdown
from qc_platform.utils.helpers import natural_code_key

logger = logging.getLogger(__name__)


DEFAULT_ISSUE_TEXT = "Mandatory item failed inspection"


def _utcnow():
    return datetime.now(timezone.utc)


def _item_statistics(items) -> dict:
    items = list(items)
    mandatory = [i for i in items if i.is_mandatory]
    return {
        "total_items": len(items),
        "ok_items": sum(1 for i in items if i.status == "OK"),
        "not_ok_items": sum(1 for i in items if i.status == "NOT_OK"),
        "na_items": sum(1 for i in items if i.status == "NA"),
        "pending_items": sum(1 for i in items if i.status == "PENDING"),
        "mandatory_items": len(mandatory),
        "mandatory_not_ok": sum(1 for i in mandatory if i.status == "NOT_OK"),
    }


class InspectionService:
    """Instance Manager; one instance per request / unit of work."""

    def __init__(self, templates, instances, attachments, projects,
                 attachment_store=None, clock=None):
        self.templates = templates
        self.instances = instances
        self.attachments = attachments
        self.projects = projects
        self.attachment_store = attachment_store
        self._now = clock or _utcnow

    # ── Loading / guards ──────────────────────────────────────────────────

    def get_instance(self, instance_id: int) -> InspectionInstance:
        instance = self.instances.get(instance_id)
        if instance is None:
            raise NotFoundError("InspectionInstance", instance_id)
        return instance

    def list_project_instances(self, project_id: int) -> list[InspectionInstance]:
        if self.projects.get(project_id) is None:
            raise NotFoundError("Project", project_id)
        return self.instances.list_for_project(project_id)

    # ── Review queue / critical issues ────────────────────────────────────

    def _check_project(self, project_id: int | None) -> None:
        if project_id is not None and self.projects.get(project_id) is None:
            raise NotFoundError("Project", project_id)

    def list_pending_review(self, project_id: int | None = None) -> list[dict]:
        """SUBMITTED inspections awaiting a reviewer, latest submission first.

        Each entry is the instance payload plus item statistics; the score is
        the cached weighted score, never a mandatory-only ratio.
        """
        self._check_project(project_id)
        queue = []
        for instance in self.instances.list_instances(status="SUBMITTED", project_id=project_id):
            entry = instance.to_dict()
            entry["project"] = {"id": instance.project.id, "code": instance.project.code,
                                "name": instance.project.name,
                                "client_name": instance.project.client_name}
            entry["statistics"] = _item_statistics(instance.items)
            queue.append(entry)
        return queue

    def list_critical_issues(self, project_id: int | None = None) -> list[dict]:
        """Mandatory items marked NOT_OK, with their phase and project context."""
        self._check_project(project_id)
        issues = []
        for instance in self.instances.list_instances(project_id=project_id):
            for item in sorted(instance.items, key=lambda i: natural_code_key(i.code)):
                if not (item.is_mandatory and item.status == "NOT_OK"):
                    continue
                issues.append({
                    "item_id": item.id,
                    "instance_id": instance.id,
                    "instance_status": instance.status,
                    "code": item.code,
                    "item": item.title,
                    "issue": item.notes or DEFAULT_ISSUE_TEXT,
                    "phase_id": instance.phase_id,
                    "phase": instance.phase.name if instance.phase else None,
                    "project_id": instance.project_id,
                    "project_code": instance.project.code if instance.project else None,
                    "project_name": instance.project.name if instance.project else None,
                })
        return issues

    def _get_item(self, instance: InspectionInstance, item_id: int) -> InspectionItem:
        item = self.instances.get_item(instance.id, item_id)
        if item is None:
            raise NotFoundError("InspectionItem", item_id)
        return item

    @staticmethod
    def _check_version(instance: InspectionInstance, expected_version: int | None) -> None:
        if expected_version is not None and expected_version != instance.version:
            raise ConcurrencyConflict(
                "InspectionInstance", instance.id,
                expected=expected_version, actual=instance.version,
            )

    def _commit(self, instance_id) -> None:
        try:
            self.instances.commit()
        except ConcurrencyConflict as exc:
            raise ConcurrencyConflict("InspectionInstance", instance_id) from exc
        except Exception:
            self.instances.rollback()
            raise

    def _touch(self, instance: InspectionInstance) -> None:
        """Recompute the cached score and bump updated_at (forces a version bump)."""
        instance.score = compute_score(instance.items)
        instance.updated_at = self._now()

    # ── Instantiation ─────────────────────────────────────────────────────

    def instantiate(self, project_id: int, phase_id: int, template_id: int,
                    principal) -> InspectionInstance:
        """Create a DRAFT instance with one PENDING item per template definition.

        Item fields are snapshotted from the definitions, so later template
        edits never reach this instance.
        """
        project = self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        phase = self.templates.get_phase(phase_id)
        if phase is None:
            raise NotFoundError("Phase", phase_id)
        template = self.templates.get_template(template_id)
        if template is None:
            raise NotFoundError("ChecklistTemplate", template_id)
        if not template.is_published:
            raise ValidationError(
                f"Template {template_id} is not published",
                details={"template_id": template_id},
            )

        now = self._now()
        instance = InspectionInstance(
            project_id=project.id,
            phase_id=phase.id,
            template_id=template.id,
            inspector_id=principal.user_id,
            inspector_name=principal.name,
            status="DRAFT",
            score=0.0,
            created_at=now,
            updated_at=now,
        )
        for definition in template.items:
            instance.items.append(InspectionItem(
                definition_id=definition.id,
                code=definition.code,
                title=definition.title,
                acceptance_criteria=definition.acceptance_criteria,
                check_method=definition.check_method,
                weight=definition.weight,
                is_mandatory=definition.is_mandatory,
                requires_photo=definition.requires_photo,
                requires_value=definition.requires_value,
                status="PENDING",
            ))

        self.instances.add(instance)
        self._commit(None)

        logger.info(
            "Inspection instantiated",
            extra={
                "instance_id": instance.id,
                "project_id": project_id,
                "phase_id": phase_id,
                "template_id": template_id,
                "item_count": len(instance.items),
            },
        )
        return instance

    # ── Item results ──────────────────────────────────────────────────────

    def set_item_result(self, instance_id: int, item_id: int, principal, status: str,
                        measured_value: str | None = None, notes: str | None = None,
                        expected_version: int | None = None) -> InspectionItem:
        """Overwrite an item's result in place (no history) and refresh the score."""
        instance = self.get_instance(instance_id)
        lifecycle.ensure_editable(instance, "set_item_result")
        self._check_version(instance, expected_version)
        if not isinstance(status, str) or status not in ITEM_STATUSES:
            raise InvalidStatus(status, ITEM_STATUSES)
        item = self._get_item(instance, item_id)

        item.status = status
        item.measured_value = measured_value
        item.notes = notes
        item.updated_at = self._now()
        self._touch(instance)
        self._commit(instance_id)

        logger.debug(
            "Item result set instance=%s item=%s code=%s status=%s by=%s score=%.1f",
            instance_id, item_id, item.code, status, principal.user_id, instance.score,
        )
        return item

    def update_comments(self, instance_id: int, principal, comments: str | None,
                        expected_version: int | None = None) -> InspectionInstance:
        instance = self.get_instance(instance_id)
        lifecycle.ensure_editable(instance, "update_comments")
        self._check_version(instance, expected_version)

        instance.comments = (comments or "").strip() or None
        self._touch(instance)
        self._commit(instance_id)
        logger.debug("Comments updated instance=%s by=%s", instance_id, principal.user_id)
        return instance

    def recalculate_score(self, instance_id: int) -> dict:
        """Recompute and return the score breakdown; terminal instances are read only."""
        instance = self.get_instance(instance_id)
        breakdown = score_breakdown(instance.items)
        if instance.is_terminal or instance.score == breakdown.score:
            return breakdown.to_dict()
        instance.score = breakdown.score
        instance.updated_at = self._now()
        self._commit(instance_id)
        return breakdown.to_dict()

    # ── Attachments ───────────────────────────────────────────────────────

    def attach_file(self, instance_id: int, item_id: int | None, principal, ref,
                    media_kind: str = "PHOTO") -> Attachment:
        """Record an attachment reference whose bytes are already stored."""
        instance = self.get_instance(instance_id)
        lifecycle.ensure_editable(instance, "attach_file")
        if media_kind not in MEDIA_KINDS:
            raise ValidationError(
                f"Invalid media kind {media_kind!r}",
                details={"media_kind": media_kind, "allowed": sorted(MEDIA_KINDS)},
            )
        item = self._get_item(instance, item_id) if item_id is not None else None

        attachment = Attachment(
            instance_id=instance.id,
            item_id=item.id if item else None,
            filename=ref.filename,
            storage_path=ref.storage_path,
            media_kind=media_kind,
            size_bytes=ref.size_bytes,
        )
        if item is not None:
            item.attachments.append(attachment)
        else:
            self.attachments.add(attachment)
        instance.updated_at = self._now()
        self._commit(instance_id)

        logger.info(
            "Attachment recorded",
            extra={"instance_id": instance_id, "item_id": item_id,
                   "media_kind": media_kind, "user_id": principal.user_id},
        )
        return attachment

    def upload_and_attach(self, instance_id: int, item_id: int | None, principal,
                          data: bytes, filename: str, media_kind: str = "PHOTO",
                          content_type: str | None = None) -> Attachment:
        """Upload bytes first; the link row is written only if the upload succeeded.

        Store failures propagate unchanged as ExternalServiceError.  If the
        link cannot be recorded afterwards, the uploaded bytes are removed.
        """
        instance = self.get_instance(instance_id)
        lifecycle.ensure_editable(instance, "attach_file")
        if media_kind not in MEDIA_KINDS:
            raise ValidationError(
                f"Invalid media kind {media_kind!r}",
                details={"media_kind": media_kind, "allowed": sorted(MEDIA_KINDS)},
            )
        if item_id is not None:
            self._get_item(instance, item_id)
        if self.attachment_store is None:
            raise ValidationError("No attachment store configured")

        ref = self.attachment_store.upload(data, {
            "filename": filename,
            "content_type": content_type,
            "instance_id": instance_id,
            "item_id": item_id,
        })
        try:
            return self.attach_file(instance_id, item_id, principal, ref, media_kind)
        except Exception:
            logger.warning("Recording attachment failed; removing uploaded bytes %s", ref.storage_path)
            try:
                self.attachment_store.delete(ref.storage_path)
            except Exception:
                logger.exception("Cleanup of orphaned upload %s failed", ref.storage_path)
            raise

    def detach_file(self, instance_id: int, attachment_id: int, principal) -> None:
        instance = self.get_instance(instance_id)
        lifecycle.ensure_editable(instance, "detach_file")
        attachment = self.attachments.get(attachment_id)
        if attachment is None or attachment.instance_id != instance.id:
            raise NotFoundError("Attachment", attachment_id)

        storage_path = attachment.storage_path
        if attachment.item is not None:
            attachment.item.attachments.remove(attachment)
        else:
            self.attachments.delete(attachment)
        instance.updated_at = self._now()
        self.instances.flush()

        if self.attachment_store is not None:
            try:
                self.attachment_store.delete(storage_path)
            except Exception:
                self.instances.rollback()
                raise
        self._commit(instance_id)
        logger.info(
            "Attachment removed",
            extra={"instance_id": instance_id, "attachment_id": attachment_id,
                   "user_id": principal.user_id},
        )

    # ── Submission ────────────────────────────────────────────────────────

    def submit(self, instance_id: int, principal,
               expected_version: int | None = None) -> InspectionInstance:
        """Gate on mandatory items, compute the final score, move to SUBMITTED.

        Raises MissingMandatoryItems (listing codes) without mutating anything
        when a mandatory item is still PENDING.
        """
        instance = self.get_instance(instance_id)
        previous = instance.status
        target = lifecycle.ensure_transition(instance, "submit")
        self._check_version(instance, expected_version)
        lifecycle.ensure_mandatory_resolved(instance)

        lifecycle.apply_submission(instance, self._now())
        instance.status = target
        self._commit(instance_id)

        logger.info(
            "Inspection submitted",
            extra={"instance_id": instance_id, "from_status": previous,
                   "to_status": target, "score": instance.score,
                   "user_id": principal.user_id},
        )
        return instance
