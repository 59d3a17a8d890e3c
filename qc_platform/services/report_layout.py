"""
Report layout primitives and the greedy page packer.

Renderer-agnostic: nothing here draws.  The packer walks a vertical cursor
``y`` down fixed-height pages and emits positioned Blocks; a rasterizer
(PDF, HTML, ...) turns the resulting LayoutPlan into a document.

Placement rules:
    fixed blocks      never split; when ``y + height`` would pass the bottom
                      margin the packer starts a new page first
    headings          keep with the first following block (``keep_with``)
    continuable text  fills ``floor((page_height - y - margin_bottom - padding)
                      / line_height)`` lines per box, carries the rest to a
                      fresh page in a new box; every line lands exactly once
    tables            header row + rows; the header repeats (``continued``)
                      on every page the table spills onto
    footers           added to every page once the page count is known

All geometry is in millimetres, origin top-left.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

_EPSILON = 1e-9


# ═════════════════════════════════════════════════════════════════════════════
# Geometry and output types
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class PageGeometry:
    """Page size, margins and the vertical metrics of every block kind."""

    page_width: float = 210.0
    page_height: float = 297.0
    margin_top: float = 20.0
    margin_bottom: float = 20.0
    margin_left: float = 20.0
    margin_right: float = 20.0

    font_name: str = "Helvetica"
    body_font_size: float = 8.0
    line_height: float = 5.0
    text_padding: float = 10.0
    text_inset: float = 3.0

    table_font_size: float = 8.0
    table_line_height: float = 3.5
    table_cell_padding: float = 2.0
    table_header_height: float = 8.0

    section_heading_height: float = 12.0
    phase_heading_height: float = 8.0
    meta_line_height: float = 5.0
    block_gap: float = 5.0

    signature_card_height: float = 30.0
    signature_gap: float = 10.0
    footer_offset: float = 15.0

    def __post_init__(self):
        if self.page_height - self.margin_top - self.margin_bottom - self.text_padding < self.line_height:
            raise ValueError("page geometry leaves no room for a single text line")
        if self.content_width <= 2 * self.text_inset:
            raise ValueError("page geometry leaves no horizontal room for content")

    @property
    def content_width(self) -> float:
        return self.page_width - self.margin_left - self.margin_right

    @property
    def content_bottom(self) -> float:
        return self.page_height - self.margin_bottom

    @property
    def text_width(self) -> float:
        """Usable wrap width inside a text box."""
        return self.content_width - 2 * self.text_inset

    @property
    def lines_per_page(self) -> int:
        """Lines a text box holds when it starts at the top margin."""
        return lines_that_fit(self, self.margin_top)

    @classmethod
    def from_config(cls, config) -> "PageGeometry":
        """Build from Flask config keys ``REPORT_*``; unknown keys are ignored."""
        overrides = {}
        for name in cls.__dataclass_fields__:
            key = f"REPORT_{name.upper()}"
            if key in config and config[key] is not None:
                overrides[name] = config[key]
        return cls(**overrides)

    def to_dict(self) -> dict:
        return {
            "unit": "mm",
            "width": self.page_width,
            "height": self.page_height,
            "margins": {
                "top": self.margin_top,
                "bottom": self.margin_bottom,
                "left": self.margin_left,
                "right": self.margin_right,
            },
        }


@dataclass
class Block:
    kind: str
    x: float
    y: float
    width: float
    height: float
    content: dict = field(default_factory=dict)

    @property
    def bottom(self) -> float:
        return self.y + self.height

    def to_dict(self) -> dict:
        return {
            "kind": self.kind,
            "x": round(self.x, 3),
            "y": round(self.y, 3),
            "width": round(self.width, 3),
            "height": round(self.height, 3),
            "content": self.content,
        }


@dataclass
class Page:
    number: int
    blocks: list[Block] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"number": self.number, "blocks": [b.to_dict() for b in self.blocks]}


@dataclass
class LayoutPlan:
    geometry: PageGeometry
    pages: list[Page] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def blocks(self, kind: str | None = None):
        """Iterate ``(page_number, block)`` in reading order, optionally by kind."""
        for page in self.pages:
            for block in page.blocks:
                if kind is None or block.kind == kind:
                    yield page.number, block

    def to_dict(self) -> dict:
        return {
            "page_size": self.geometry.to_dict(),
            "page_count": self.page_count,
            "metadata": self.metadata,
            "pages": [p.to_dict() for p in self.pages],
        }


def lines_that_fit(geometry: PageGeometry, y: float) -> int:
    """Text lines a box starting at ``y`` can hold on the current page."""
    room = geometry.page_height - y - geometry.margin_bottom - geometry.text_padding
    return max(0, math.floor(room / geometry.line_height + _EPSILON))


@dataclass(frozen=True)
class TableColumn:
    key: str
    label: str
    width: float


@dataclass
class TableRow:
    cells: list[list[str]]
    height: float
    extra: dict = field(default_factory=dict)


# ═════════════════════════════════════════════════════════════════════════════
# Packer
# ═════════════════════════════════════════════════════════════════════════════

class PagePacker:
    """Greedy vertical packer; one instance per report."""

    def __init__(self, geometry: PageGeometry):
        self.geometry = geometry
        self.pages: list[Page] = []
        self.y = geometry.margin_top
        self.new_page()

    # ── Cursor ────────────────────────────────────────────────────────────

    @property
    def page(self) -> Page:
        return self.pages[-1]

    @property
    def at_page_top(self) -> bool:
        return not self.page.blocks

    def new_page(self) -> Page:
        page = Page(number=len(self.pages) + 1)
        self.pages.append(page)
        self.y = self.geometry.margin_top
        return page

    def fits(self, height: float) -> bool:
        return self.y + height <= self.geometry.content_bottom + _EPSILON

    def ensure_space(self, height: float) -> None:
        """Advance to a new page unless ``height`` fits below the cursor."""
        if not self.fits(height) and not self.at_page_top:
            self.new_page()

    def skip(self, height: float) -> None:
        """Vertical whitespace; never carried over to a fresh page."""
        if self.at_page_top:
            return
        self.y = min(self.y + height, self.geometry.content_bottom)

    def _emit(self, kind, height, content, x=None, width=None) -> Block:
        g = self.geometry
        block = Block(
            kind=kind,
            x=g.margin_left if x is None else x,
            y=self.y,
            width=g.content_width if width is None else width,
            height=height,
            content=content,
        )
        self.page.blocks.append(block)
        self.y += height
        return block

    # ── Placement ─────────────────────────────────────────────────────────

    def place(self, kind: str, height: float, content: dict, *, keep_with: float = 0.0,
              gap: float = 0.0, x: float | None = None, width: float | None = None) -> Block:
        """Place a fixed block; it moves to a new page whole when it does not fit.

        ``keep_with`` reserves room for the block that must follow on the
        same page (used for headings).
        """
        self.ensure_space(height + keep_with)
        if not self.fits(height):
            logger.warning(
                "Block %s (%.1fmm) is taller than the page body; placed overflowing on page %d",
                kind, height, self.page.number,
            )
        block = self._emit(kind, height, content, x=x, width=width)
        self.y += gap
        return block

    def place_text(self, kind: str, lines: list[str], content: dict,
                   gap: float = 0.0) -> list[Block]:
        """Place a continuable text block as one or more boxes.

        Each box holds as many lines as fit below the cursor; the remaining
        lines continue in a new box at the top of the next page.
        """
        g = self.geometry
        lines = list(lines)
        boxes = []
        index = 0
        while index < len(lines):
            capacity = lines_that_fit(g, self.y)
            if capacity <= 0:
                self.new_page()
                continue
            count = min(capacity, len(lines) - index)
            chunk = lines[index:index + count]
            box_content = dict(content)
            box_content.update({
                "lines": chunk,
                "first_line": index,
                "continued": index > 0,
                "line_height": g.line_height,
                "padding": g.text_padding,
            })
            boxes.append(self._emit(kind, count * g.line_height + g.text_padding, box_content))
            index += count
            if index < len(lines):
                self.new_page()
        if boxes:
            self.y += gap
        return boxes

    def place_table(self, name: str, columns: list[TableColumn], rows: list[TableRow],
                    header_extra: dict | None = None, gap: float = 0.0) -> list[Block]:
        """Header row plus one fixed block per row; the header repeats after a page break."""
        g = self.geometry
        header_content = {
            "table": name,
            "columns": [{"key": c.key, "label": c.label, "width": c.width} for c in columns],
        }
        if header_extra:
            header_content.update(header_extra)

        first_row = rows[0].height if rows else 0.0
        placed = [self.place("table_header", g.table_header_height,
                             dict(header_content, continued=False), keep_with=first_row)]
        for index, row in enumerate(rows):
            if not self.fits(row.height) and not self.at_page_top:
                self.new_page()
                placed.append(self._emit("table_header", g.table_header_height,
                                         dict(header_content, continued=True)))
            content = {"table": name, "row": index, "cells": row.cells}
            content.update(row.extra)
            placed.append(self._emit("table_row", row.height, content))
        self.y += gap
        return placed

    # ── Finish ────────────────────────────────────────────────────────────

    def finish(self, footer_note: str | None = None, metadata: dict | None = None) -> LayoutPlan:
        """Stamp "Page i of n" footers and return the plan."""
        g = self.geometry
        total = len(self.pages)
        footer_y = g.page_height - g.footer_offset
        for page in self.pages:
            page.blocks.append(Block(
                kind="footer",
                x=g.margin_left,
                y=footer_y,
                width=g.content_width,
                height=g.footer_offset - 5.0,
                content={
                    "text": f"Page {page.number} of {total}",
                    "page": page.number,
                    "page_count": total,
                    "note": footer_note,
                },
            ))
        return LayoutPlan(geometry=g, pages=self.pages, metadata=metadata or {})
