"""Project-level QC metrics for dashboards and the report header.

Counts run over the non-N/A items of every instance of the project:

    overall_progress = round(done / valid * 100)     done = OK + NOT_OK
    average_score    = round(ok / valid * 100)
    active_issues    = number of NOT_OK items

Percentages are whole numbers rounded half up; an empty project reports 0.
"""

from __future__ import annotations

import math

_COUNTED_STATUSES = frozenset({"DRAFT", "SUBMITTED", "APPROVED", "NEEDS_REWORK", "REJECTED"})


def _percent(part: int, whole: int) -> int:
    if whole <= 0:
        return 0
    return int(math.floor(part / whole * 100 + 0.5))


def compute_project_metrics(instances) -> dict:
    valid = ok = done = issues = 0
    inspected = 0
    for instance in instances:
        if instance.status not in _COUNTED_STATUSES:
            continue
        inspected += 1
        for item in instance.items:
            if item.status == "NA":
                continue
            valid += 1
            if item.status == "OK":
                ok += 1
                done += 1
            elif item.status == "NOT_OK":
                done += 1
                issues += 1

    return {
        "overall_progress": _percent(done, valid),
        "average_score": _percent(ok, valid),
        "active_issues": issues,
        "inspection_count": inspected,
        "valid_items": valid,
    }
