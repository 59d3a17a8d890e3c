"""Shared utility functions.

natural_code_key:  sort key for dotted numeric item codes ("1.9" < "1.10" < "2.1")
as_utc:            normalise naive datetimes read back from SQLite to UTC
parse_bool:        lenient truthy parsing for query-string flags
"""
import re
from datetime import datetime, timezone

_SEGMENT_RE = re.compile(r"(\d+)")


def natural_code_key(code):
    """Return a sort key that orders dotted codes by their numeric segments.

    "1.9" < "1.10" < "2.1". Segments that are not purely numeric fall back
    to text comparison after all numeric segments, so "A.1" or "1.2a" still
    sort deterministically instead of raising.

    Usage::

        sorted(items, key=lambda i: natural_code_key(i.code))
    """
    key = []
    for segment in str(code or "").strip().split("."):
        if segment.isdigit():
            key.append((0, int(segment), ""))
        else:
            parts = _SEGMENT_RE.split(segment)
            leading = int(parts[1]) if len(parts) > 1 and parts[0] == "" else -1
            key.append((1, leading, segment))
    return tuple(key)


def as_utc(value):
    """Attach UTC to naive datetimes (SQLite drops tzinfo on read).

    Returns None for None input.
    """
    if value is None:
        return None
    if isinstance(value, datetime) and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def parse_bool(value, default=False):
    """Parse "true"/"1"/"yes"/"on" (any case) as True, "false"/"0"/"no"/"off" as False."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in ("true", "1", "yes", "on"):
        return True
    if text in ("false", "0", "no", "off"):
        return False
    return default
