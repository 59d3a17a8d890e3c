"""
Phase aggregation tests over plain fakes (no database).

Covers donor selection (latest submitted, else latest created), union of
items across re-inspections, natural code order and signature de-duplication.
"""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import pytest

from qc_platform.services.phase_aggregator import (
    aggregate_phase,
    aggregate_project,
    dedupe_signatures,
    project_signatures,
    sort_items,
)
from qc_platform.utils.helpers import natural_code_key

T0 = datetime(2026, 1, 1, 9, 0, tzinfo=timezone.utc)


def _at(minutes):
    return T0 + timedelta(minutes=minutes)


def _item(code, status="OK", attachments=()):
    return SimpleNamespace(code=code, title=f"Item {code}", status=status, weight=1,
                           is_mandatory=False, measured_value=None, notes=None,
                           attachments=list(attachments))


def _sig(signer, role, minutes, status="APPROVED"):
    return SimpleNamespace(signer_id=signer, signer_name=signer.title(), signer_role=role,
                           status=status, signed_at=_at(minutes), signature_image="img",
                           comments=None)


def _photo(name):
    return SimpleNamespace(filename=name, storage_path=f"p/{name}", media_kind="PHOTO")


def _instance(id, phase_id=1, *, created=0, submitted=None, status="DRAFT", score=0.0,
              items=(), signatures=(), attachments=(), phase_name="Fabrication", order=1):
    return SimpleNamespace(
        id=id, phase_id=phase_id, phase=SimpleNamespace(name=phase_name, order=order),
        status=status, score=score, comments=f"comments of {id}", inspector_name=f"insp {id}",
        created_at=_at(created), submitted_at=_at(submitted) if submitted is not None else None,
        items=list(items), signatures=list(signatures), attachments=list(attachments),
    )


class TestNaturalOrder:
    def test_numeric_segments(self):
        codes = ["2.1", "1.10", "1.9", "10.1", "1.2.1", "1.2"]
        assert sorted(codes, key=natural_code_key) == ["1.2", "1.2.1", "1.9", "1.10", "2.1", "10.1"]

    def test_sort_items_is_stable_for_equal_codes(self):
        a, b = _item("1.1", "OK"), _item("1.1", "NOT_OK")
        ordered = sort_items([a, _item("1.10"), b])
        assert [i.code for i in ordered] == ["1.1", "1.1", "1.10"]
        assert [i.status for i in ordered[:2]] == ["OK", "NOT_OK"]


class TestDonor:
    def test_latest_submitted_wins_over_later_draft(self):
        submitted = _instance(1, created=0, submitted=30, status="SUBMITTED", score=80.0)
        newer_draft = _instance(2, created=60, status="DRAFT", score=10.0)
        view = aggregate_phase([submitted, newer_draft])
        assert view.donor_instance_id == 1
        assert view.status == "SUBMITTED"
        assert view.score == 80.0
        assert view.comments == "comments of 1"

    def test_latest_submitted_among_several(self):
        early = _instance(1, created=0, submitted=10, status="APPROVED")
        late = _instance(2, created=5, submitted=50, status="REJECTED")
        assert aggregate_phase([late, early]).donor_instance_id == 2

    def test_latest_created_when_none_submitted(self):
        view = aggregate_phase([_instance(1, created=0), _instance(2, created=20)])
        assert view.donor_instance_id == 2
        assert view.instance_ids == (1, 2)

    def test_empty_and_mixed_phases_rejected(self):
        with pytest.raises(ValueError):
            aggregate_phase([])
        with pytest.raises(ValueError):
            aggregate_phase([_instance(1, phase_id=1), _instance(2, phase_id=2)])


class TestItemsUnion:
    def test_items_from_every_instance_in_code_order(self):
        first = _instance(1, created=0, items=[_item("1.10"), _item("2.1")])
        second = _instance(2, created=10, items=[_item("1.9", "NOT_OK"), _item("1.10", "NA")])
        view = aggregate_phase([first, second])
        assert [i.code for i in view.items] == ["1.9", "1.10", "1.10", "2.1"]
        assert [(i.code, i.instance_id) for i in view.items if i.code == "1.10"] == [("1.10", 1), ("1.10", 2)]

    def test_photos_item_first_then_instance(self):
        inst = _instance(1, items=[_item("1.1", attachments=[_photo("a.jpg")])],
                         attachments=[_photo("overview.jpg")])
        view = aggregate_phase([inst])
        assert [(p.filename, p.item_code) for p in view.photos] == [("a.jpg", "1.1"), ("overview.jpg", None)]


class TestSignatures:
    def test_most_recent_per_signer_and_role(self):
        view = aggregate_phase([
            _instance(1, created=0, signatures=[_sig("ana", "inspector", 10),
                                               _sig("bob", "qc_manager", 20, "REJECTED")]),
            _instance(2, created=30, signatures=[_sig("bob", "qc_manager", 40, "APPROVED")]),
        ])
        assert [(s.signer_id, s.status) for s in view.signatures] == [
            ("ana", "APPROVED"), ("bob", "APPROVED"),
        ]

    def test_same_signer_different_roles_kept(self):
        sigs = dedupe_signatures([
            SimpleNamespace(signer_id="ana", role="inspector", signed_at=_at(1)),
            SimpleNamespace(signer_id="ana", role="qc_manager", signed_at=_at(2)),
        ])
        assert len(sigs) == 2


class TestProject:
    def test_views_follow_phase_order(self):
        erection = _instance(1, phase_id=20, phase_name="Erection", order=2)
        fabrication = _instance(2, phase_id=10, phase_name="Fabrication", order=1)
        views = aggregate_project([erection, fabrication])
        assert [v.phase_name for v in views] == ["Fabrication", "Erection"]

    def test_project_signatures_dedupe_across_phases(self):
        views = aggregate_project([
            _instance(1, phase_id=1, order=1, signatures=[_sig("ana", "inspector", 5)]),
            _instance(2, phase_id=2, order=2, signatures=[_sig("ana", "inspector", 50)]),
        ])
        sigs = project_signatures(views)
        assert len(sigs) == 1
        assert sigs[0].signed_at == _at(50)
