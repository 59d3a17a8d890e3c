"""
Phase Aggregator.

Merges every inspection instance recorded against one (project, phase) pair
into a single report-ready PhaseView:

    1. metadata donor = instance with the latest submitted_at; when none is
       submitted, the one with the latest created_at.  Its status, score,
       comments, inspector and dates become the view's metadata.
    2. items = union of the items of every instance (re-inspection history is
       kept, each item carries its own instance's result).
    3. items sorted by natural code order ("1.9" < "1.10" < "2.1").
    4. signatures de-duplicated by (signer, role), most recent wins.

The views are plain frozen dataclasses detached from the ORM session, so the
layout engine downstream stays pure and can be fed hand-built views in tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from qc_platform.utils.helpers import as_utc, natural_code_key

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass(frozen=True)
class AttachmentView:
    filename: str
    storage_path: str
    media_kind: str
    item_code: str | None = None


@dataclass(frozen=True)
class ItemView:
    code: str
    title: str
    status: str
    weight: int = 1
    is_mandatory: bool = False
    measured_value: str | None = None
    notes: str | None = None
    instance_id: int | None = None
    attachments: tuple[AttachmentView, ...] = ()


@dataclass(frozen=True)
class SignatureView:
    signer_id: str
    signer_name: str | None
    role: str
    status: str
    signed_at: datetime | None = None
    has_image: bool = False
    comments: str | None = None


@dataclass(frozen=True)
class PhaseView:
    """Aggregated, report-ready representation of one phase."""

    phase_id: int | None
    phase_name: str
    phase_order: int
    status: str
    score: float
    comments: str | None = None
    inspector_name: str | None = None
    submitted_at: datetime | None = None
    created_at: datetime | None = None
    donor_instance_id: int | None = None
    instance_ids: tuple[int, ...] = ()
    items: tuple[ItemView, ...] = ()
    signatures: tuple[SignatureView, ...] = ()
    attachments: tuple[AttachmentView, ...] = field(default=())

    @property
    def photos(self) -> list[AttachmentView]:
        """PHOTO attachments of the phase: item photos first (in item order), then instance-level ones."""
        result = [a for item in self.items for a in item.attachments if a.media_kind == "PHOTO"]
        result.extend(a for a in self.attachments if a.media_kind == "PHOTO")
        return result


# ── Building blocks ──────────────────────────────────────────────────────────

def donor_sort_key(instance):
    """Max of this key is the metadata donor."""
    submitted = as_utc(instance.submitted_at)
    return (
        submitted is not None,
        submitted or _EPOCH,
        as_utc(instance.created_at) or _EPOCH,
        instance.id or 0,
    )


def select_donor(instances):
    return max(instances, key=donor_sort_key)


def sort_items(items):
    """Stable natural sort on ``code``; equal codes keep their incoming order."""
    return sorted(items, key=lambda i: natural_code_key(i.code))


def dedupe_signatures(signatures):
    """Keep the most recent signature per (signer_id, role); result ordered by signed_at."""
    latest = {}
    for position, sig in enumerate(signatures):
        key = (sig.signer_id, sig.role)
        rank = (as_utc(sig.signed_at) or _EPOCH, position)
        current = latest.get(key)
        if current is None or rank >= current[0]:
            latest[key] = (rank, sig)
    return [sig for _, sig in sorted(latest.values(), key=lambda pair: pair[0])]


def _attachment_view(attachment, item_code=None) -> AttachmentView:
    return AttachmentView(
        filename=attachment.filename,
        storage_path=attachment.storage_path,
        media_kind=attachment.media_kind,
        item_code=item_code,
    )


def _item_view(item, instance_id) -> ItemView:
    return ItemView(
        code=item.code,
        title=item.title,
        status=item.status,
        weight=item.weight,
        is_mandatory=bool(item.is_mandatory),
        measured_value=item.measured_value,
        notes=item.notes,
        instance_id=instance_id,
        attachments=tuple(_attachment_view(a, item.code) for a in item.attachments),
    )


def _signature_view(signature) -> SignatureView:
    return SignatureView(
        signer_id=signature.signer_id,
        signer_name=signature.signer_name,
        role=signature.signer_role,
        status=signature.status,
        signed_at=as_utc(signature.signed_at),
        has_image=bool(signature.signature_image),
        comments=signature.comments,
    )


# ── Aggregation ──────────────────────────────────────────────────────────────

def aggregate_phase(instances) -> PhaseView:
    """Merge instances that share one (project, phase) pair."""
    instances = list(instances)
    if not instances:
        raise ValueError("aggregate_phase needs at least one instance")
    phase_ids = {i.phase_id for i in instances}
    if len(phase_ids) > 1:
        raise ValueError(f"instances span several phases: {sorted(phase_ids)}")

    ordered = sorted(instances, key=lambda i: (as_utc(i.created_at) or _EPOCH, i.id or 0))
    donor = select_donor(ordered)
    phase = donor.phase

    items = []
    signatures = []
    attachments = []
    for instance in ordered:
        items.extend(_item_view(item, instance.id) for item in instance.items)
        signatures.extend(_signature_view(sig) for sig in instance.signatures)
        attachments.extend(_attachment_view(a) for a in instance.attachments)

    view = PhaseView(
        phase_id=donor.phase_id,
        phase_name=phase.name if phase else f"Phase {donor.phase_id}",
        phase_order=phase.order if phase else 0,
        status=donor.status,
        score=donor.score,
        comments=donor.comments,
        inspector_name=donor.inspector_name,
        submitted_at=as_utc(donor.submitted_at),
        created_at=as_utc(donor.created_at),
        donor_instance_id=donor.id,
        instance_ids=tuple(i.id for i in ordered),
        items=tuple(sort_items(items)),
        signatures=tuple(dedupe_signatures(signatures)),
        attachments=tuple(attachments),
    )
    logger.debug(
        "Phase %s aggregated: %d instance(s), donor=%s, %d item(s)",
        view.phase_name, len(ordered), donor.id, len(view.items),
    )
    return view


def aggregate_project(instances) -> list[PhaseView]:
    """Group a project's instances by phase and return views in Phase.order."""
    by_phase = {}
    for instance in instances:
        by_phase.setdefault(instance.phase_id, []).append(instance)
    views = [aggregate_phase(group) for group in by_phase.values()]
    return sorted(views, key=lambda v: (v.phase_order, v.phase_id or 0))


def project_signatures(views) -> list[SignatureView]:
    """Report-wide signer list: every phase's signatures, de-duplicated again."""
    return dedupe_signatures([sig for view in views for sig in view.signatures])
