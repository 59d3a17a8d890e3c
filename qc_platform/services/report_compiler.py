"""
Report Compiler.

``ReportCompiler.compile_report(project_id)`` is the single entry point:

    1. load the project's instances            (InstanceRepository)
    2. aggregate them into PhaseViews          (phase_aggregator, Phase.order)
    3. resolve the optional analysis text      (supplied text, or InsightGateway)
    4. lay everything out                      (layout_report, pure)

Sections, in order:
    title block
    Project Information table
    Project Summary table (one row per phase)
    per phase: numbered heading, meta block, comments, QC assessment,
               checklist table, photo evidence
    Executive Summary + AI disclaimer        (only when analysis text exists)
    Digital Signatures (cards or a "none recorded" note)
    footer on every page

A failing or timed-out insight provider never fails the report: the
executive summary is left out and the reason is kept in the plan metadata.
``layout_report`` performs no I/O and returns the same plan for the same
input; the generation timestamp only appears in text content.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone

from qc_platform.ai.insights import build_summary_payload
from qc_platform.core.exceptions import NotFoundError
from qc_platform.services.phase_aggregator import aggregate_project, project_signatures
from qc_platform.services.qc_assessment import (
    build_qc_assessment,
    inspection_tone,
    item_tone,
    signature_tone,
    status_label,
)
from qc_platform.services.report_layout import (
    LayoutPlan,
    PageGeometry,
    PagePacker,
    TableColumn,
    TableRow,
)
from qc_platform.services.text_wrap import wrap_text

logger = logging.getLogger(__name__)

REPORT_TITLE = "COMPLETE PROJECT QC REPORTS"
NO_SIGNATURES_NOTE = "No digital signatures recorded for this project."
AI_DISCLAIMER = (
    "This summary was generated by an AI model from the inspection data in this report.",
    "Verify findings against the inspection records before acting on them.",
)

_NUMBERED_RE = re.compile(r"^\d+\.")


@dataclass(frozen=True)
class ReportInput:
    """Everything the layout needs; detached from the database."""

    project: dict
    phases: tuple = ()
    signatures: tuple = ()
    analysis_text: str | None = None
    generated_at: datetime | None = None
    metadata: dict = field(default_factory=dict)


# ── Formatting helpers ───────────────────────────────────────────────────────

def _date(value) -> str:
    return value.strftime("%Y-%m-%d") if value else "-"


def _score(value) -> str:
    return f"{value:.1f}" if value is not None else "N/A"


def phase_display_name(name: str, index: int) -> str:
    """Prefix "N. " unless the phase name is already numbered."""
    name = (name or "").strip()
    if _NUMBERED_RE.match(name):
        return name
    return f"{index}. {name}"


def _fill_columns(geometry: PageGeometry, columns) -> list[TableColumn]:
    """``columns`` is (key, label, width|None); the single None column takes the rest."""
    fixed = sum(width for _, _, width in columns if width is not None)
    auto = max(geometry.content_width - fixed, 10.0)
    return [TableColumn(key, label, width if width is not None else auto) for key, label, width in columns]


def _table_rows(geometry: PageGeometry, columns, records) -> list[TableRow]:
    """Wrap every cell to its column; row height follows the tallest cell."""
    g = geometry
    rows = []
    for cells, extra in records:
        wrapped = []
        for column, value in zip(columns, cells):
            inner = max(column.width - 2 * g.table_cell_padding, 1.0)
            lines = wrap_text(value, inner, g.font_name, g.table_font_size) or [""]
            wrapped.append(lines)
        tallest = max(len(lines) for lines in wrapped)
        height = tallest * g.table_line_height + 2 * g.table_cell_padding
        rows.append(TableRow(cells=wrapped, height=height, extra=extra))
    return rows


# ═════════════════════════════════════════════════════════════════════════════
# Pure layout
# ═════════════════════════════════════════════════════════════════════════════

def _section_heading(packer: PagePacker, text: str, keep_with: float) -> None:
    packer.place("heading", packer.geometry.section_heading_height,
                 {"text": text, "level": 1}, keep_with=keep_with)


def _layout_title(packer, report: ReportInput) -> None:
    g = packer.geometry
    project = report.project
    content = {
        "title": REPORT_TITLE,
        "project_name": project.get("name"),
        "client_name": project.get("client_name"),
        "subtitle": "Including AI Analysis & Insights" if report.analysis_text else None,
    }
    height = 28.0 + (g.meta_line_height if content["subtitle"] else 0.0)
    packer.place("title", height, content, gap=g.block_gap)


def _layout_project_info(packer, report: ReportInput) -> None:
    g = packer.geometry
    project = report.project
    columns = _fill_columns(g, [("field", "Field", 50.0), ("value", "Value", None)])
    records = [
        (["Project Code", project.get("code") or "-"], {}),
        (["Project Name", project.get("name") or "-"], {}),
        (["Client Name", project.get("client_name") or "-"], {}),
        (["Location", project.get("location") or "-"], {}),
        (["Total Phases", str(len(report.phases))], {}),
        (["Report Date", _date(report.generated_at)], {}),
    ]
    rows = _table_rows(g, columns, records)
    _section_heading(packer, "Project Information", keep_with=g.table_header_height + rows[0].height)
    packer.place_table("project_info", columns, rows, gap=g.block_gap * 2)


def _layout_summary(packer, report: ReportInput) -> None:
    g = packer.geometry
    columns = _fill_columns(g, [
        ("phase", "Phase", None),
        ("status", "Status", 30.0),
        ("score", "Score", 20.0),
        ("inspector", "Inspector", 40.0),
        ("date", "Date", 25.0),
    ])
    records = [
        (
            [view.phase_name, status_label(view.status), _score(view.score),
             view.inspector_name or "-", _date(view.submitted_at)],
            {"phase_id": view.phase_id, "status": view.status, "tone": inspection_tone(view.status)},
        )
        for view in report.phases
    ]
    rows = _table_rows(g, columns, records)
    first = rows[0].height if rows else 0.0
    _section_heading(packer, "Project Summary", keep_with=g.table_header_height + first)
    packer.place_table("project_summary", columns, rows, gap=g.block_gap * 2)


def _checklist_columns(geometry):
    return _fill_columns(geometry, [
        ("code", "Code", 20.0),
        ("item", "Item", None),
        ("status", "Status", 30.0),
        ("value", "Value", 30.0),
        ("mandatory", "Mandatory", 20.0),
        ("weight", "Weight", 15.0),
    ])


def _layout_phase(packer, view, index: int) -> None:
    g = packer.geometry

    meta_lines = [
        f"Inspector: {view.inspector_name or '-'} | Status: {status_label(view.status)} "
        f"| Score: {_score(view.score)}",
        f"Date: {_date(view.submitted_at)}",
    ]
    meta_height = len(meta_lines) * g.meta_line_height

    packer.place("phase_heading", g.phase_heading_height, {
        "text": phase_display_name(view.phase_name, index),
        "phase_id": view.phase_id,
        "phase_order": view.phase_order,
    }, keep_with=meta_height)
    packer.place("phase_meta", meta_height, {
        "lines": meta_lines,
        "status": view.status,
        "status_label": status_label(view.status),
        "tone": inspection_tone(view.status),
        "score": view.score,
        "instance_ids": list(view.instance_ids),
    }, gap=2.0)

    if view.comments:
        comment_lines = wrap_text(f"Comments: {view.comments}", g.text_width,
                                  g.font_name, g.body_font_size)
        packer.place_text("comments", comment_lines, {"phase_id": view.phase_id}, gap=2.0)

    assessment = build_qc_assessment(view.items, view.score)
    packer.place_text(
        "assessment",
        wrap_text(assessment.text, g.text_width, g.font_name, g.body_font_size),
        {"phase_id": view.phase_id, "title": "QC Assessment", "rating": assessment.rating,
         "completion_rate": assessment.completion_rate},
        gap=3.0,
    )

    columns = _checklist_columns(g)
    records = [
        (
            [item.code, item.title, status_label(item.status), item.measured_value or "-",
             "Yes" if item.is_mandatory else "No", str(item.weight)],
            {"code": item.code, "status": item.status, "tone": item_tone(item.status),
             "instance_id": item.instance_id},
        )
        for item in view.items
    ]
    packer.place_table("checklist", columns, _table_rows(g, columns, records),
                       header_extra={"phase_id": view.phase_id}, gap=g.block_gap)

    photos = view.photos
    if photos:
        row_height = g.meta_line_height + 1.0
        packer.place("subheading", g.phase_heading_height,
                     {"text": "Photo Evidence", "phase_id": view.phase_id}, keep_with=row_height)
        for photo in photos:
            packer.place("photo_row", row_height, {
                "item_code": photo.item_code,
                "filename": photo.filename,
                "storage_path": photo.storage_path,
            })
        packer.skip(g.block_gap)

    packer.skip(g.block_gap * 2)


def _layout_analysis(packer, text: str) -> None:
    g = packer.geometry
    lines = wrap_text(text, g.text_width, g.font_name, g.body_font_size)
    if not lines:
        return
    _section_heading(packer, "Executive Summary", keep_with=g.text_padding + g.line_height)
    packer.place_text("analysis", lines, {"tone": "info"}, gap=2.0)
    packer.place("note", len(AI_DISCLAIMER) * g.meta_line_height,
                 {"lines": list(AI_DISCLAIMER), "style": "italic"}, gap=g.block_gap)


def _layout_signatures(packer, signatures) -> None:
    g = packer.geometry
    note_height = g.meta_line_height + 3.0
    first = g.signature_card_height if signatures else note_height
    _section_heading(packer, "Digital Signatures", keep_with=first)

    if not signatures:
        packer.place("note", note_height, {"lines": [NO_SIGNATURES_NOTE], "style": "italic"})
        return

    for sig in signatures:
        packer.place("signature_card", g.signature_card_height, {
            "signer_id": sig.signer_id,
            "signer_name": sig.signer_name or sig.signer_id,
            "role": sig.role,
            "status": sig.status,
            "status_label": status_label(sig.status),
            "tone": signature_tone(sig.status),
            "signed_at": _date(sig.signed_at),
            "has_image": sig.has_image,
            "comments": sig.comments,
        }, gap=g.signature_gap)


def layout_report(report: ReportInput, geometry: PageGeometry | None = None) -> LayoutPlan:
    """Lay out a fully resolved report; no I/O."""
    packer = PagePacker(geometry or PageGeometry())

    _layout_title(packer, report)
    _layout_project_info(packer, report)
    _layout_summary(packer, report)
    for index, view in enumerate(report.phases, start=1):
        _layout_phase(packer, view, index)
    if report.analysis_text:
        _layout_analysis(packer, report.analysis_text)
    _layout_signatures(packer, report.signatures)

    stamp = report.generated_at.strftime("%Y-%m-%d %H:%M UTC") if report.generated_at else "-"
    note = f"Generated on {stamp} by QC System"
    if report.analysis_text:
        note += " with Comprehensive AI Analysis"

    metadata = dict(report.metadata)
    metadata.update({
        "project_code": report.project.get("code"),
        "phase_count": len(report.phases),
        "signature_count": len(report.signatures),
        "generated_at": report.generated_at.isoformat() if report.generated_at else None,
    })
    return packer.finish(footer_note=note, metadata=metadata)


# ═════════════════════════════════════════════════════════════════════════════
# Service
# ═════════════════════════════════════════════════════════════════════════════

def _utcnow():
    return datetime.now(timezone.utc)


class ReportCompiler:
    """Loads, aggregates and lays out a project report."""

    def __init__(self, projects, instances, insight_gateway=None,
                 geometry: PageGeometry | None = None, clock=None):
        self.projects = projects
        self.instances = instances
        self.insight_gateway = insight_gateway
        self.geometry = geometry or PageGeometry()
        self._now = clock or _utcnow

    def _resolve_analysis(self, project, views, include_analysis, analysis_text, timeout):
        """Return (text | None, metadata) without ever raising for provider failures."""
        if analysis_text is not None:
            text = analysis_text.strip() or None
            return text, {"source": "supplied", "included": text is not None}
        if not include_analysis:
            return None, {"source": None, "included": False}
        if self.insight_gateway is None:
            logger.warning("Analysis requested for project %s but no insight gateway configured", project.id)
            return None, {"source": "provider", "included": False, "error": "not configured"}

        result = self.insight_gateway.analyze(build_summary_payload(project, views), timeout=timeout)
        if not result.ok:
            logger.warning(
                "Report for project %s compiled without analysis: %s", project.id, result.error,
            )
            return None, {"source": "provider", "included": False,
                          "provider": result.provider, "error": result.error}
        return result.text, {"source": "provider", "included": True, "provider": result.provider}

    def build_input(self, project_id: int, include_analysis: bool = False,
                    analysis_text: str | None = None, timeout: float | None = None,
                    generated_at: datetime | None = None) -> ReportInput:
        project = self.projects.get(project_id)
        if project is None:
            raise NotFoundError("Project", project_id)
        instances = self.instances.list_for_project(project_id)
        if not instances:
            raise NotFoundError("InspectionInstance", f"project={project_id}")

        views = aggregate_project(instances)
        text, analysis_meta = self._resolve_analysis(
            project, views, include_analysis, analysis_text, timeout,
        )
        return ReportInput(
            project=project.to_dict(),
            phases=tuple(views),
            signatures=tuple(project_signatures(views)),
            analysis_text=text,
            generated_at=generated_at or self._now(),
            metadata={"project_id": project.id, "analysis": analysis_meta},
        )

    def compile_report(self, project_id: int, include_analysis: bool = False,
                       analysis_text: str | None = None, timeout: float | None = None,
                       generated_at: datetime | None = None) -> LayoutPlan:
        report = self.build_input(project_id, include_analysis, analysis_text, timeout, generated_at)
        plan = layout_report(report, self.geometry)
        logger.info(
            "Report compiled",
            extra={
                "project_id": project_id,
                "phase_count": len(report.phases),
                "page_count": plan.page_count,
                "analysis_included": report.analysis_text is not None,
            },
        )
        return plan
