"""Template Catalog service: phases and checklist templates.

Holds the master data instances are cloned from:

1. **Phases**: shared, ordered list; a new phase is appended after the last
   one (order = max + 1). Names are unique.

2. **Templates**: an ordered list of item definitions with dotted numeric
   codes ("1.1", "1.10", "2.1"), unique within the template, and positive
   integer weights.

3. **Publishing**: a published template is frozen: its definitions can no
   longer be edited, and only published templates can be instantiated.
"""

import logging
import re
from datetime import datetime, timezone

from qc_platform.core.exceptions import ConflictError, NotFoundError, ValidationError
from qc_platform.models.catalog import ChecklistItemDefinition, ChecklistTemplate, Phase

logger = logging.getLogger(__name__)

_CODE_RE = re.compile(r"^\d+(\.\d+)*$")

_EDITABLE_FIELDS = (
    "title", "acceptance_criteria", "check_method", "weight",
    "is_mandatory", "requires_photo", "requires_value",
)


# ─── Internal helpers ──────────────────────────────────────────────────────────


def _validate_weight(weight, code):
    if isinstance(weight, bool) or not isinstance(weight, int) or weight < 1:
        raise ValidationError(
            f"Item {code}: weight must be a positive integer",
            details={"code": code, "weight": weight},
        )
    return weight


def _build_definition(position: int, data: dict) -> ChecklistItemDefinition:
    code = str(data.get("code") or "").strip()
    if not _CODE_RE.match(code):
        raise ValidationError(
            f"Invalid item code {code!r}; expected dotted numbers like '2.10'",
            details={"code": code},
        )
    title = (data.get("title") or "").strip()
    if not title:
        raise ValidationError(f"Item {code}: title is required", details={"code": code})

    return ChecklistItemDefinition(
        position=position,
        code=code,
        title=title,
        acceptance_criteria=data.get("acceptance_criteria"),
        check_method=data.get("check_method"),
        weight=_validate_weight(data.get("weight", 1), code),
        is_mandatory=bool(data.get("is_mandatory", False)),
        requires_photo=bool(data.get("requires_photo", False)),
        requires_value=bool(data.get("requires_value", False)),
    )


# ─── Service ───────────────────────────────────────────────────────────────────


class CatalogService:
    def __init__(self, templates):
        self.templates = templates

    # Phases

    def list_phases(self) -> list[Phase]:
        return self.templates.list_phases()

    def create_phase(self, name: str, description: str | None = None) -> Phase:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Phase name is required")
        if self.templates.get_phase_by_name(name) is not None:
            raise ConflictError("Phase", "name", name)

        phase = Phase(
            name=name,
            description=description,
            order=self.templates.max_phase_order() + 1,
        )
        self.templates.add(phase)
        self.templates.commit()
        logger.info("Phase created id=%s name=%r order=%s", phase.id, phase.name, phase.order)
        return phase

    # Templates

    def get_template(self, template_id: int) -> ChecklistTemplate:
        template = self.templates.get_template(template_id)
        if template is None:
            raise NotFoundError("ChecklistTemplate", template_id)
        return template

    def list_templates(self) -> list[ChecklistTemplate]:
        return self.templates.list_templates()

    def create_template(self, name: str, items: list[dict], project_type: str | None = None,
                        description: str | None = None) -> ChecklistTemplate:
        """Create an unpublished template; ``items`` keep their given order."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Template name is required")
        if not items:
            raise ValidationError("A template needs at least one item")

        template = ChecklistTemplate(
            name=name, description=description, project_type=project_type,
        )
        seen = set()
        for position, data in enumerate(items):
            definition = _build_definition(position, data)
            if definition.code in seen:
                raise ConflictError("ChecklistItemDefinition", "code", definition.code)
            seen.add(definition.code)
            template.items.append(definition)

        self.templates.add(template)
        self.templates.commit()
        logger.info("Template created id=%s name=%r items=%d", template.id, name, len(seen))
        return template

    def publish_template(self, template_id: int) -> ChecklistTemplate:
        template = self.get_template(template_id)
        if template.is_published:
            return template
        template.is_published = True
        template.published_at = datetime.now(timezone.utc)
        self.templates.commit()
        logger.info("Template published id=%s", template_id)
        return template

    def update_item_definition(self, definition_id: int, changes: dict) -> ChecklistItemDefinition:
        definition = self.templates.get_item_definition(definition_id)
        if definition is None:
            raise NotFoundError("ChecklistItemDefinition", definition_id)
        if definition.template.is_published:
            raise ValidationError(
                "Published templates are immutable",
                details={"template_id": definition.template_id},
            )

        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValidationError(
                f"Unknown item fields: {', '.join(sorted(unknown))}",
                details={"fields": sorted(unknown)},
            )
        if "weight" in changes:
            _validate_weight(changes["weight"], definition.code)
        if "title" in changes and not (changes["title"] or "").strip():
            raise ValidationError(f"Item {definition.code}: title is required")

        for field in _EDITABLE_FIELDS:
            if field in changes:
                setattr(definition, field, changes[field])
        self.templates.commit()
        return definition
