"""
Summary payload and prompt for the project-wide QC analysis.

The payload is a compact, JSON-serialisable digest of the aggregated phase
views; only the first ``MAX_PAYLOAD_ITEMS`` items are sent.
"""

from __future__ import annotations

import json

MAX_PAYLOAD_ITEMS = 20

SYSTEM_PROMPT = (
    "You are a QC inspection verifier. Give a concise conclusion on the "
    "inspectors' work for the whole project. When items failed, focus on the "
    "reasons and on concrete, decisive corrective actions. Plain text only."
)


def build_summary_payload(project, phase_views) -> dict:
    """Digest of a project's phase views for the insight provider."""
    items = [item for view in phase_views for item in view.items]
    scores = [view.score or 0.0 for view in phase_views]
    average = round(sum(scores) / len(scores), 1) if scores else 0.0

    return {
        "project_name": getattr(project, "name", None) or "Unknown Project",
        "scope": "Complete Project Summary",
        "score": average,
        "completed_items": sum(1 for i in items if i.status == "OK"),
        "total_items": len(items),
        "critical_items": sum(1 for i in items if i.status == "NOT_OK"),
        "items": [
            {
                "code": i.code,
                "name": i.title,
                "status": i.status,
                "notes": i.notes,
            }
            for i in items[:MAX_PAYLOAD_ITEMS]
        ],
        "inspector_notes": "; ".join(
            f"{view.phase_name}: {view.comments or 'No comments'}" for view in phase_views
        ),
    }


def build_messages(payload: dict) -> list[dict]:
    """Chat messages for providers that take a system + user turn."""
    body = json.dumps(payload, ensure_ascii=False, indent=2)
    user = (
        f"Project: {payload.get('project_name')}\n"
        f"Average score: {payload.get('score')}\n"
        f"Items OK: {payload.get('completed_items')} of {payload.get('total_items')}, "
        f"failed: {payload.get('critical_items')}\n\n"
        "Write an executive summary with: overall assessment, key findings, "
        "risks, and recommendations.\n\n"
        f"Inspection data:\n{body}"
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user},
    ]
