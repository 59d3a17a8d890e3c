"""
QC Inspection Platform
Template Catalog models.

Models:
    - Phase:                    shared master data, ``order`` drives report sequencing
    - ChecklistTemplate:        ordered catalog of item definitions for a project type
    - ChecklistItemDefinition:  one acceptance check inside a template

Architecture:
    ChecklistTemplate ──1:N──▶ ChecklistItemDefinition

Publishing freezes a template: its item definitions can no longer be edited,
and only published templates can be instantiated.
"""

from datetime import datetime, timezone

from qc_platform.models import db


__all__ = [
    "Phase",
    "ChecklistTemplate",
    "ChecklistItemDefinition",
]


def _utcnow():
    return datetime.now(timezone.utc)


class Phase(db.Model):
    """Construction / fabrication phase (e.g. "1. Fabrication", "2. Erection")."""

    __tablename__ = "phases"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    order = db.Column(db.Integer, nullable=False, default=0, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "order": self.order,
        }

    def __repr__(self) -> str:
        return f"<Phase #{self.id} {self.order}:{self.name}>"


class ChecklistTemplate(db.Model):
    """Checklist template; immutable once ``is_published`` is set."""

    __tablename__ = "checklist_templates"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text, nullable=True)
    project_type = db.Column(db.String(100), nullable=True)
    is_published = db.Column(db.Boolean, nullable=False, default=False)
    published_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    items = db.relationship(
        "ChecklistItemDefinition", backref="template", lazy="selectin",
        cascade="all, delete-orphan", order_by="ChecklistItemDefinition.position",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        result = {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "project_type": self.project_type,
            "is_published": self.is_published,
            "published_at": self.published_at.isoformat() if self.published_at else None,
            "item_count": len(self.items),
        }
        if include_items:
            result["items"] = [i.to_dict() for i in self.items]
        return result

    def __repr__(self) -> str:
        return f"<ChecklistTemplate #{self.id} {self.name}>"


class ChecklistItemDefinition(db.Model):
    """Acceptance check definition. ``code`` is a dotted numeric string like "2.10"."""

    __tablename__ = "checklist_item_definitions"
    __table_args__ = (
        db.UniqueConstraint("template_id", "code", name="uq_item_def_template_code"),
    )

    id = db.Column(db.Integer, primary_key=True)
    template_id = db.Column(
        db.Integer,
        db.ForeignKey("checklist_templates.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    position = db.Column(db.Integer, nullable=False, default=0)
    code = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(500), nullable=False)
    acceptance_criteria = db.Column(db.Text, nullable=True)
    check_method = db.Column(db.String(200), nullable=True)
    weight = db.Column(db.Integer, nullable=False, default=1)
    is_mandatory = db.Column(db.Boolean, nullable=False, default=False)
    requires_photo = db.Column(db.Boolean, nullable=False, default=False)
    requires_value = db.Column(db.Boolean, nullable=False, default=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "template_id": self.template_id,
            "code": self.code,
            "title": self.title,
            "acceptance_criteria": self.acceptance_criteria,
            "check_method": self.check_method,
            "weight": self.weight,
            "is_mandatory": self.is_mandatory,
            "requires_photo": self.requires_photo,
            "requires_value": self.requires_value,
        }

    def __repr__(self) -> str:
        return f"<ChecklistItemDefinition {self.code} w={self.weight}>"
