"""Word-wrap against real font metrics.

Widths are measured with reportlab's standard-font tables
(``pdfmetrics.stringWidth``), so the line breaks computed here match what a
PDF rasterizer using the same font will draw.  Geometry is in millimetres.

Usage:
    lines = wrap_text(analysis, max_width=164, font_size=8)
"""

from __future__ import annotations

from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth

DEFAULT_FONT = "Helvetica"


def text_width(text: str, font_name: str = DEFAULT_FONT, font_size: float = 8) -> float:
    """Rendered width of ``text`` in millimetres."""
    return stringWidth(text, font_name, font_size) / mm


def _break_word(word, limit, font_name, font_size):
    """Split a single over-long word into pieces that each fit ``limit`` points."""
    pieces = []
    current = ""
    for char in word:
        candidate = current + char
        if current and stringWidth(candidate, font_name, font_size) > limit:
            pieces.append(current)
            current = char
        else:
            current = candidate
    if current:
        pieces.append(current)
    return pieces


def _wrap_paragraph(paragraph, limit, font_name, font_size):
    words = paragraph.split()
    if not words:
        return [""]

    space = stringWidth(" ", font_name, font_size)
    lines = []
    current = ""
    current_width = 0.0
    for word in words:
        word_width = stringWidth(word, font_name, font_size)
        if word_width > limit:
            if current:
                lines.append(current)
            pieces = _break_word(word, limit, font_name, font_size)
            lines.extend(pieces[:-1])
            current = pieces[-1]
            current_width = stringWidth(current, font_name, font_size)
            continue
        if not current:
            current, current_width = word, word_width
        elif current_width + space + word_width <= limit:
            current += " " + word
            current_width += space + word_width
        else:
            lines.append(current)
            current, current_width = word, word_width
    lines.append(current)
    return lines


def wrap_text(text: str | None, max_width: float, font_name: str = DEFAULT_FONT,
              font_size: float = 8) -> list[str]:
    """Greedy wrap of ``text`` to ``max_width`` millimetres.

    Explicit newlines are hard breaks and blank lines are kept as empty
    strings.  Empty or whitespace-only text wraps to no lines at all.
    """
    if text is None or not str(text).strip():
        return []
    if max_width <= 0:
        raise ValueError(f"max_width must be positive, got {max_width}")

    limit = max_width * mm
    normalised = str(text).replace("\r\n", "\n").replace("\r", "\n").strip("\n")
    lines = []
    for paragraph in normalised.split("\n"):
        lines.extend(_wrap_paragraph(paragraph, limit, font_name, font_size))
    return lines
