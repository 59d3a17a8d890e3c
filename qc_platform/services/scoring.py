"""
Weighted Scorer.

Pure function over an item list; the Instance Manager calls it on every item
mutation and on submit, and caches the result on the instance.

    totalWeight = sum(weight) for status != NA
    passWeight  = sum(weight) for status == OK
    score       = round(passWeight / totalWeight * 100, 1)   (0.0 if totalWeight == 0)

N/A is an applicability exemption: excluded from numerator and denominator.
An all-N/A (or empty) item set scores 0.0, not 100.0; callers that need
"fully exempted means pass" must check ``ScoreBreakdown.fully_exempt``.

Averaging per-item 0/100 values (with N/A counted) is not used anywhere.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ScoreBreakdown:
    """Score plus the weights it was derived from."""

    score: float
    total_weight: int
    pass_weight: int
    item_count: int
    na_count: int

    @property
    def fully_exempt(self) -> bool:
        return self.item_count > 0 and self.na_count == self.item_count

    def to_dict(self) -> dict:
        return {
            "score": self.score,
            "total_weight": self.total_weight,
            "pass_weight": self.pass_weight,
            "item_count": self.item_count,
            "na_count": self.na_count,
            "fully_exempt": self.fully_exempt,
        }


def score_breakdown(items) -> ScoreBreakdown:
    """Compute the weighted score for objects exposing ``status`` and ``weight``."""
    total_weight = 0
    pass_weight = 0
    item_count = 0
    na_count = 0
    for item in items:
        item_count += 1
        if item.status == "NA":
            na_count += 1
            continue
        total_weight += item.weight
        if item.status == "OK":
            pass_weight += item.weight

    score = round(pass_weight / total_weight * 100, 1) if total_weight > 0 else 0.0
    return ScoreBreakdown(
        score=score,
        total_weight=total_weight,
        pass_weight=pass_weight,
        item_count=item_count,
        na_count=na_count,
    )


def compute_score(items) -> float:
    """Return the 0–100 completion score (one decimal place)."""
    return score_breakdown(items).score
