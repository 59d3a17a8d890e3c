"""
Report compiler tests.

Pure layout over hand-built PhaseViews, plus end-to-end compilation from the
database with a mocked insight gateway (success, failure and timeout paths).
"""

from datetime import datetime, timezone
from unittest.mock import MagicMock

import pytest

from conftest import INSPECTOR, REVIEWER, item_by_code
from qc_platform.ai.gateway import AnalysisResult, InsightGateway
from qc_platform.core.exceptions import NotFoundError
from qc_platform.services.phase_aggregator import ItemView, PhaseView, SignatureView
from qc_platform.services.report_compiler import (
    AI_DISCLAIMER,
    NO_SIGNATURES_NOTE,
    REPORT_TITLE,
    ReportCompiler,
    ReportInput,
    layout_report,
    phase_display_name,
)
from qc_platform.services.report_layout import PageGeometry

GENERATED = datetime(2026, 3, 2, 10, 30, tzinfo=timezone.utc)
PROJECT = {"id": 1, "code": "PRJ-001", "name": "Steel Hall A", "client_name": "Acme", "location": "NL"}


def _view(phase_id, name, order, *, items=(), signatures=(), comments=None, status="SUBMITTED"):
    return PhaseView(
        phase_id=phase_id, phase_name=name, phase_order=order, status=status, score=75.0,
        comments=comments, inspector_name="Ivan", submitted_at=GENERATED,
        items=tuple(items), signatures=tuple(signatures),
    )


def _items(n):
    return [ItemView(code=f"1.{i}", title=f"Check {i}", status="OK") for i in range(1, n + 1)]


def _kinds(plan):
    return [block.kind for _, block in plan.blocks()]


# ═════════════════════════════════════════════════════════════════════════════
# Pure layout
# ═════════════════════════════════════════════════════════════════════════════


class TestLayout:
    def test_section_order(self):
        report = ReportInput(
            project=PROJECT,
            phases=(_view(1, "Fabrication", 1, items=_items(2)),),
            analysis_text="All good.",
            generated_at=GENERATED,
        )
        kinds = [k for k in _kinds(layout_report(report)) if k not in ("table_row", "footer")]
        assert kinds[0] == "title"
        assert kinds.index("phase_heading") < kinds.index("assessment") < kinds.index("analysis")
        assert kinds.index("analysis") < kinds.index("note")
        assert kinds[-1] == "note"  # no signatures note closes the report

    def test_title_and_footer_text(self):
        plan = layout_report(ReportInput(project=PROJECT, phases=(_view(1, "Fab", 1),),
                                         generated_at=GENERATED))
        (_, title), = plan.blocks("title")
        assert title.content["title"] == REPORT_TITLE
        assert title.content["subtitle"] is None
        _, footer = next(plan.blocks("footer"))
        assert footer.content["note"] == "Generated on 2026-03-02 10:30 UTC by QC System"

    def test_phase_names_numbered_once(self):
        assert phase_display_name("Fabrication", 1) == "1. Fabrication"
        assert phase_display_name("3. Painting", 2) == "3. Painting"

    def test_empty_analysis_omits_section(self):
        plan = layout_report(ReportInput(project=PROJECT, phases=(_view(1, "Fab", 1),),
                                         analysis_text=None, generated_at=GENERATED))
        assert list(plan.blocks("analysis")) == []
        headings = [b.content["text"] for _, b in plan.blocks("heading")]
        assert "Executive Summary" not in headings

    def test_no_signatures_note(self):
        plan = layout_report(ReportInput(project=PROJECT, phases=(_view(1, "Fab", 1),),
                                         generated_at=GENERATED))
        notes = [b.content["lines"] for _, b in plan.blocks("note")]
        assert [NO_SIGNATURES_NOTE] in notes
        assert list(plan.blocks("signature_card")) == []

    def test_signature_cards(self):
        sigs = (SignatureView("a", "Ana", "inspector", "APPROVED", GENERATED, True),
                SignatureView("b", "Bob", "qc_manager", "REJECTED", GENERATED, False, "redo"))
        plan = layout_report(ReportInput(project=PROJECT, phases=(_view(1, "Fab", 1),),
                                         signatures=sigs, generated_at=GENERATED))
        cards = [b.content for _, b in plan.blocks("signature_card")]
        assert [(c["signer_name"], c["tone"]) for c in cards] == [("Ana", "success"), ("Bob", "danger")]

    def test_long_analysis_spans_pages_without_loss(self):
        text = "\n".join(f"Finding {i}: bolt torque verified." for i in range(150))
        plan = layout_report(ReportInput(project=PROJECT, phases=(_view(1, "Fab", 1),),
                                         analysis_text=text, generated_at=GENERATED))
        boxes = [b for _, b in plan.blocks("analysis")]
        assert len(boxes) >= 3
        assert [line for b in boxes for line in b.content["lines"]] == text.split("\n")
        _, title = next(plan.blocks("title"))
        assert title.content["subtitle"] == "Including AI Analysis & Insights"
        notes = [b.content["lines"] for _, b in plan.blocks("note")]
        assert list(AI_DISCLAIMER) in notes

    def test_long_comments_continue_on_next_page(self):
        comments = " ".join(["Surface preparation grade Sa 2.5 confirmed."] * 400)
        plan = layout_report(ReportInput(project=PROJECT, phases=(_view(1, "Fab", 1, comments=comments),),
                                         generated_at=GENERATED))
        boxes = list(plan.blocks("comments"))
        assert len({page for page, _ in boxes}) == len(boxes) >= 2
        g = plan.geometry
        assert all(b.bottom <= g.content_bottom + 1e-6 for _, b in boxes)

    def test_checklist_rows_in_item_order_with_weight_column(self):
        items = [ItemView("1.1", "a", "OK", weight=2), ItemView("1.2", "b", "NOT_OK", weight=4,
                                                               is_mandatory=True, measured_value="3 mm")]
        plan = layout_report(ReportInput(project=PROJECT, phases=(_view(1, "Fab", 1, items=items),),
                                         generated_at=GENERATED))
        rows = [b.content for _, b in plan.blocks("table_row") if b.content["table"] == "checklist"]
        assert [r["code"] for r in rows] == ["1.1", "1.2"]
        assert rows[1]["cells"][2] == ["NOT OK"]
        assert rows[1]["cells"][3] == ["3 mm"]
        assert rows[1]["cells"][4] == ["Yes"]
        assert rows[1]["cells"][5] == ["4"]
        assert rows[1]["tone"] == "danger"

    def test_layout_is_deterministic(self):
        report = ReportInput(project=PROJECT, phases=(_view(1, "Fab", 1, items=_items(30)),),
                             analysis_text="x " * 500, generated_at=GENERATED)
        assert layout_report(report).to_dict() == layout_report(report).to_dict()

    def test_geometry_is_configurable(self):
        report = ReportInput(project=PROJECT, phases=(_view(1, "Fab", 1, items=_items(40)),),
                             generated_at=GENERATED)
        small = layout_report(report, PageGeometry(page_height=200.0))
        assert small.page_count > layout_report(report).page_count


# ═════════════════════════════════════════════════════════════════════════════
# Compilation from the database
# ═════════════════════════════════════════════════════════════════════════════


@pytest.fixture()
def populated(make_instance, inspections, lifecycle):
    """Fabrication: submitted + approved; Erection: one draft."""
    fab = make_instance(0)
    for item in list(fab.items):
        inspections.set_item_result(fab.id, item.id, INSPECTOR, status="OK")
    lifecycle.sign(fab.id, INSPECTOR, "data:image/png;base64,AAA")
    lifecycle.approve(fab.id, REVIEWER, comments="ok")

    ere = make_instance(1)
    inspections.set_item_result(ere.id, item_by_code(ere, "2.1").id, INSPECTOR, status="NOT_OK")
    return fab, ere


@pytest.fixture()
def compiler_factory(repos):
    def _make(gateway=None):
        return ReportCompiler(repos.projects, repos.instances, gateway)
    return _make


class TestCompile:
    def test_compiles_all_phases_in_order(self, populated, project, compiler_factory):
        plan = compiler_factory().compile_report(project.id, generated_at=GENERATED)
        headings = [b.content["text"] for _, b in plan.blocks("phase_heading")]
        assert headings == ["1. Fabrication", "2. Erection"]
        assert plan.metadata["phase_count"] == 2
        assert plan.metadata["analysis"]["included"] is False

        cards = [b.content for _, b in plan.blocks("signature_card")]
        assert {(c["signer_id"], c["role"]) for c in cards} == {
            ("u-insp", "inspector"), ("u-rev", "qc_manager"),
        }

    def test_provider_text_is_included(self, populated, project, compiler_factory):
        gateway = MagicMock()
        gateway.analyze.return_value = AnalysisResult(text="Solid work overall.", provider="local")

        plan = compiler_factory(gateway).compile_report(project.id, include_analysis=True, timeout=5)

        assert gateway.analyze.call_args.kwargs["timeout"] == 5
        payload = gateway.analyze.call_args.args[0]
        assert payload["project_name"] == "Steel Hall A"
        assert payload["critical_items"] == 1
        lines = [line for _, b in plan.blocks("analysis") for line in b.content["lines"]]
        assert lines == ["Solid work overall."]

    @pytest.mark.parametrize("error", ["anthropic: APITimeoutError: Request timed out.", "openai: 500"])
    def test_provider_failure_degrades(self, populated, project, compiler_factory, error):
        gateway = MagicMock()
        gateway.analyze.return_value = AnalysisResult(error=error, provider="anthropic")

        plan = compiler_factory(gateway).compile_report(project.id, include_analysis=True)

        assert list(plan.blocks("analysis")) == []
        assert plan.metadata["analysis"]["included"] is False
        assert plan.metadata["analysis"]["error"] == error
        assert plan.page_count >= 1

    @pytest.mark.parametrize("model", ["claude-3-5-haiku-20241022", "gpt-4o-mini", None])
    def test_unconfigured_provider_omits_analysis(self, populated, project, compiler_factory,
                                                  monkeypatch, model):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        monkeypatch.setattr(InsightGateway, "DEFAULT_MODEL", None)

        plan = compiler_factory(InsightGateway(model=model)).compile_report(
            project.id, include_analysis=True,
        )

        assert list(plan.blocks("analysis")) == []
        assert all(b.content.get("lines") != list(AI_DISCLAIMER) for _, b in plan.blocks("note"))
        assert plan.metadata["analysis"]["included"] is False
        assert plan.metadata["analysis"]["error"]
        headings = [b.content["text"] for _, b in plan.blocks("heading")]
        assert "Executive Summary" not in headings

    def test_supplied_text_skips_provider(self, populated, project, compiler_factory):
        gateway = MagicMock()
        plan = compiler_factory(gateway).compile_report(project.id, include_analysis=True,
                                                        analysis_text="Stored analysis")
        gateway.analyze.assert_not_called()
        assert plan.metadata["analysis"]["source"] == "supplied"

    def test_unknown_project(self, compiler_factory):
        with pytest.raises(NotFoundError):
            compiler_factory().compile_report(12345)

    def test_project_without_instances(self, project, compiler_factory):
        with pytest.raises(NotFoundError):
            compiler_factory().compile_report(project.id)
