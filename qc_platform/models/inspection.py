"""
QC Inspection Platform
Inspection run models.

Models:
    - InspectionInstance:  one executed run of a template for a (project, phase) pair
    - InspectionItem:      per-definition result row, snapshotted at instantiation
    - Signature:           submitter / reviewer signature attached to an instance
    - Attachment:          stored file reference owned by an item or by the instance

Architecture:
    Project ──1:N──▶ InspectionInstance ──1:N──▶ InspectionItem ──1:N──▶ Attachment
    InspectionInstance ──1:N──▶ Signature
    InspectionInstance ──1:N──▶ Attachment (item_id IS NULL)

Lifecycle states:
    InspectionInstance:  DRAFT → SUBMITTED → APPROVED | REJECTED | NEEDS_REWORK
                         NEEDS_REWORK behaves as DRAFT (editable, re-submittable)
    InspectionItem:      PENDING | OK | NOT_OK | NA

InspectionInstance.version is the SQLAlchemy version counter: every UPDATE
is issued with ``WHERE version = <loaded>`` so a stale write fails with
StaleDataError instead of silently overwriting.
"""

from datetime import datetime, timezone

from qc_platform.models import db
from qc_platform.utils.helpers import natural_code_key


__all__ = [
    "ITEM_STATUSES",
    "INSPECTION_STATUSES",
    "TERMINAL_STATUSES",
    "EDITABLE_STATUSES",
    "MEDIA_KINDS",
    "SIGNATURE_STATUSES",
    "InspectionInstance",
    "InspectionItem",
    "Signature",
    "Attachment",
]


# ── Constants ────────────────────────────────────────────────────────────────

ITEM_STATUSES = frozenset({"PENDING", "OK", "NOT_OK", "NA"})

INSPECTION_STATUSES = frozenset({
    "DRAFT", "SUBMITTED", "APPROVED", "REJECTED", "NEEDS_REWORK",
})

TERMINAL_STATUSES = frozenset({"APPROVED", "REJECTED"})

EDITABLE_STATUSES = frozenset({"DRAFT", "NEEDS_REWORK"})

MEDIA_KINDS = frozenset({"PHOTO", "VIDEO", "DOCUMENT"})

SIGNATURE_STATUSES = frozenset({"APPROVED", "REJECTED"})


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


class InspectionInstance(db.Model):
    """Single inspection run. Never deleted implicitly; terminal states are immutable."""

    __tablename__ = "inspection_instances"
    __table_args__ = (
        db.Index("ix_inspection_project_phase", "project_id", "phase_id"),
    )

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    phase_id = db.Column(
        db.Integer,
        db.ForeignKey("phases.id", ondelete="RESTRICT"),
        nullable=False,
    )
    template_id = db.Column(
        db.Integer,
        db.ForeignKey("checklist_templates.id", ondelete="RESTRICT"),
        nullable=False,
    )

    inspector_id = db.Column(db.String(100), nullable=False)
    inspector_name = db.Column(db.String(255), nullable=True)

    status = db.Column(db.String(20), nullable=False, default="DRAFT")
    score = db.Column(db.Float, nullable=False, default=0.0)
    comments = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    version = db.Column(db.Integer, nullable=False)

    project = db.relationship("Project", lazy="joined")
    phase = db.relationship("Phase", lazy="joined")
    template = db.relationship("ChecklistTemplate", lazy="select")

    items = db.relationship(
        "InspectionItem", backref="instance", lazy="selectin",
        cascade="all, delete-orphan", order_by="InspectionItem.id",
    )
    signatures = db.relationship(
        "Signature", backref="instance", lazy="selectin",
        cascade="all, delete-orphan", order_by="Signature.signed_at",
    )
    attachments = db.relationship(
        "Attachment", lazy="selectin",
        primaryjoin="and_(InspectionInstance.id == Attachment.instance_id, "
                    "Attachment.item_id.is_(None))",
        viewonly=True,
    )

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_dict(self, include_items: bool = True) -> dict:
        result = {
            "id": self.id,
            "project_id": self.project_id,
            "phase_id": self.phase_id,
            "phase_name": self.phase.name if self.phase else None,
            "template_id": self.template_id,
            "inspector_id": self.inspector_id,
            "inspector_name": self.inspector_name,
            "status": self.status,
            "score": self.score,
            "comments": self.comments,
            "version": self.version,
            "created_at": _iso(self.created_at),
            "submitted_at": _iso(self.submitted_at),
            "signatures": [s.to_dict() for s in self.signatures],
            "attachments": [a.to_dict() for a in self.attachments],
        }
        if include_items:
            result["items"] = [
                i.to_dict() for i in sorted(self.items, key=lambda i: natural_code_key(i.code))
            ]
        return result

    def __repr__(self) -> str:
        return f"<InspectionInstance #{self.id} p={self.project_id} ph={self.phase_id} {self.status}>"


class InspectionItem(db.Model):
    """Result row for one item definition.

    Definition fields are copied at instantiation (snapshot semantics), so
    later template edits never change an existing instance.
    """

    __tablename__ = "inspection_items"
    __table_args__ = (
        db.UniqueConstraint("instance_id", "definition_id", name="uq_item_instance_definition"),
    )

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer,
        db.ForeignKey("inspection_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    definition_id = db.Column(
        db.Integer,
        db.ForeignKey("checklist_item_definitions.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Snapshot of the definition
    code = db.Column(db.String(30), nullable=False)
    title = db.Column(db.String(500), nullable=False)
    acceptance_criteria = db.Column(db.Text, nullable=True)
    check_method = db.Column(db.String(200), nullable=True)
    weight = db.Column(db.Integer, nullable=False, default=1)
    is_mandatory = db.Column(db.Boolean, nullable=False, default=False)
    requires_photo = db.Column(db.Boolean, nullable=False, default=False)
    requires_value = db.Column(db.Boolean, nullable=False, default=False)

    # Result
    status = db.Column(db.String(10), nullable=False, default="PENDING")
    measured_value = db.Column(db.String(255), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=True)

    attachments = db.relationship(
        "Attachment", backref="item", lazy="selectin",
        cascade="all, delete-orphan", order_by="Attachment.id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "definition_id": self.definition_id,
            "code": self.code,
            "title": self.title,
            "acceptance_criteria": self.acceptance_criteria,
            "check_method": self.check_method,
            "weight": self.weight,
            "is_mandatory": self.is_mandatory,
            "requires_photo": self.requires_photo,
            "requires_value": self.requires_value,
            "status": self.status,
            "measured_value": self.measured_value,
            "notes": self.notes,
            "attachments": [a.to_dict() for a in self.attachments],
        }

    def __repr__(self) -> str:
        return f"<InspectionItem {self.code} {self.status}>"


class Signature(db.Model):
    """Signature record. Created atomically with the status transition it records."""

    __tablename__ = "signatures"

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer,
        db.ForeignKey("inspection_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    signer_id = db.Column(db.String(100), nullable=False)
    signer_name = db.Column(db.String(255), nullable=True)
    signer_role = db.Column(db.String(100), nullable=False)
    status = db.Column(db.String(10), nullable=False, comment="APPROVED | REJECTED")
    signature_image = db.Column(db.Text, nullable=True, comment="data URL / base64 image")
    comments = db.Column(db.Text, nullable=True)
    signed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "signer_id": self.signer_id,
            "signer_name": self.signer_name,
            "signer_role": self.signer_role,
            "status": self.status,
            "has_image": bool(self.signature_image),
            "comments": self.comments,
            "signed_at": _iso(self.signed_at),
        }

    def __repr__(self) -> str:
        return f"<Signature {self.signer_id}/{self.signer_role} {self.status}>"


class Attachment(db.Model):
    """File reference. Bytes live in the Attachment Store, never in the database."""

    __tablename__ = "attachments"

    id = db.Column(db.Integer, primary_key=True)
    instance_id = db.Column(
        db.Integer,
        db.ForeignKey("inspection_instances.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    item_id = db.Column(
        db.Integer,
        db.ForeignKey("inspection_items.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    filename = db.Column(db.String(255), nullable=False)
    storage_path = db.Column(db.String(500), nullable=False)
    media_kind = db.Column(db.String(10), nullable=False, comment="PHOTO | VIDEO | DOCUMENT")
    size_bytes = db.Column(db.Integer, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "instance_id": self.instance_id,
            "item_id": self.item_id,
            "filename": self.filename,
            "storage_path": self.storage_path,
            "media_kind": self.media_kind,
            "size_bytes": self.size_bytes,
        }
