"""
Rule-based QC assessment and status presentation helpers.

Produces the per-phase assessment paragraph printed above each checklist
table, plus the display labels and colour tones renderers use for item and
inspection statuses.  No AI involved; output depends only on the items and
the score.

Rating bands (on the cached weighted score):
    >= 90  EXCELLENT
    >= 70  GOOD
    >= 50  NEEDS IMPROVEMENT
    else   CRITICAL
"""

from __future__ import annotations

from dataclasses import dataclass

# ── Labels and tones ─────────────────────────────────────────────────────────

STATUS_LABELS = {
    "OK": "OK",
    "NOT_OK": "NOT OK",
    "NA": "N/A",
    "PENDING": "PENDING",
    "DRAFT": "DRAFT",
    "SUBMITTED": "SUBMITTED",
    "APPROVED": "APPROVED",
    "REJECTED": "REJECTED",
    "NEEDS_REWORK": "NEEDS REWORK",
}

# RGB triples; "neutral" is the fallback.
TONES = {
    "primary": (59, 130, 246),
    "success": (34, 197, 94),
    "warning": (249, 115, 22),
    "danger": (239, 68, 68),
    "neutral": (107, 114, 128),
}

_INSPECTION_TONES = {
    "APPROVED": "success",
    "SUBMITTED": "primary",
    "REJECTED": "danger",
    "NEEDS_REWORK": "warning",
}

_ITEM_TONES = {
    "OK": "success",
    "NOT_OK": "danger",
    "NA": "neutral",
    "PENDING": "warning",
}


def status_label(status: str | None) -> str:
    status = (status or "").upper()
    return STATUS_LABELS.get(status, status)


def inspection_tone(status: str | None) -> str:
    return _INSPECTION_TONES.get((status or "").upper(), "neutral")


def item_tone(status: str | None) -> str:
    return _ITEM_TONES.get((status or "").upper(), "neutral")


def signature_tone(status: str | None) -> str:
    status = (status or "").upper()
    if status == "APPROVED":
        return "success"
    if status == "REJECTED":
        return "danger"
    return "neutral"


# ── Assessment ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class QCAssessment:
    rating: str
    ok: int
    not_ok: int
    pending: int
    na: int
    total: int
    completion_rate: float
    text: str

    def to_dict(self) -> dict:
        return {
            "rating": self.rating,
            "ok": self.ok,
            "not_ok": self.not_ok,
            "pending": self.pending,
            "na": self.na,
            "total": self.total,
            "completion_rate": self.completion_rate,
            "text": self.text,
        }


def rating_for(score: float | None) -> str:
    score = score or 0.0
    if score >= 90:
        return "EXCELLENT"
    if score >= 70:
        return "GOOD"
    if score >= 50:
        return "NEEDS IMPROVEMENT"
    return "CRITICAL"


_RATING_TEXT = {
    "EXCELLENT": "Workmanship meets the highest quality standard.",
    "GOOD": "Workmanship is good, with a few areas that need attention.",
    "NEEDS IMPROVEMENT": "Workmanship requires significant improvement.",
    "CRITICAL": "Workmanship does not meet the standard and requires immediate action.",
}


def build_qc_assessment(items, score: float | None) -> QCAssessment:
    """Summarise item results into a short assessment paragraph.

    ``completion_rate`` counts OK and N/A items as done, so a phase with
    only exemptions and passes reads 100%.
    """
    items = list(items)
    counts = {"OK": 0, "NOT_OK": 0, "PENDING": 0, "NA": 0}
    for item in items:
        status = (item.status or "").upper()
        if status in counts:
            counts[status] += 1
    total = len(items)
    done = counts["OK"] + counts["NA"]
    completion = round(done / total * 100, 1) if total else 0.0
    critical = counts["NOT_OK"]
    pending = counts["PENDING"]
    rating = rating_for(score)

    sentences = [f"{rating}: {_RATING_TEXT[rating]}"]
    if critical:
        sentences.append(f"{critical} critical item(s) failed QC.")
    if pending:
        sentences.append(f"{pending} item(s) are still awaiting completion.")
    if total and done == total:
        sentences.append("All items have been inspected.")
    else:
        sentences.append(f"Completion: {completion:.1f}% ({done}/{total} items done).")
    if critical:
        sentences.append("RECOMMENDATION: Fix every critical item before moving on to the next phase.")
    if pending > critical:
        sentences.append("RECOMMENDATION: Prioritise the pending items to finish the inspection.")
    if total and not critical and not pending and done == total:
        sentences.append("QC COMPLETED: No critical issues, ready for approval.")

    return QCAssessment(
        rating=rating,
        ok=counts["OK"],
        not_ok=critical,
        pending=pending,
        na=counts["NA"],
        total=total,
        completion_rate=completion,
        text=" ".join(sentences),
    )
