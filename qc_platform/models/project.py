"""
QC Inspection Platform
Project models.

Projects are synchronised from the CRM; the core only reads the fields
printed on the report. ProjectAnalysis keeps the history of generated
AI analysis texts so a report can reuse an earlier one.
"""

from datetime import datetime, timezone

from qc_platform.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class Project(db.Model):
    """Fabrication / construction project under QC."""

    __tablename__ = "projects"

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(50), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    client_name = db.Column(db.String(255), nullable=True)
    location = db.Column(db.String(255), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "client_name": self.client_name,
            "location": self.location,
        }

    def __repr__(self) -> str:
        return f"<Project #{self.id} {self.code}>"


class ProjectAnalysis(db.Model):
    """Stored AI analysis text for a project (append-only history)."""

    __tablename__ = "project_analyses"

    id = db.Column(db.Integer, primary_key=True)
    project_id = db.Column(
        db.Integer,
        db.ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    content = db.Column(db.Text, nullable=False)
    provider = db.Column(db.String(50), nullable=True)
    model = db.Column(db.String(100), nullable=True)
    created_by = db.Column(db.String(100), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "content": self.content,
            "provider": self.provider,
            "model": self.model,
            "created_by": self.created_by,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
