# pdf_layout.py
"""
Page model and flowing layout for the printable documents.

Composition writes drawing commands into an ordered list of pages; nothing
touches a PDF canvas until the document is complete. Coordinates are in mm,
measured from the top-left corner of the page.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional, Sequence

from reportlab.lib import colors
from reportlab.lib.pagesizes import LETTER
from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth

from image_loader import ImageLoadResult, RemoteImage

PAGE_W_MM = LETTER[0] / mm   # 215.9
PAGE_H_MM = LETTER[1] / mm   # 279.4
MARGIN_MM = 20.0

DASH = "—"

DARK = colors.HexColor("#111827")        # gray-900
LABEL_GRAY = colors.HexColor("#4b5563")  # gray-600
MED = colors.HexColor("#6b7280")         # gray-500
ZEBRA = colors.HexColor("#f8fafc")       # slate-50
DIVIDER = colors.HexColor("#e5e7eb")     # gray-200


class LayoutOverflowError(Exception):
    """An atomic unit is taller than an empty page can hold."""


# -----------------------------
# Styles
# -----------------------------
@dataclass(frozen=True)
class Theme:
    accent: colors.Color
    accent_dark: colors.Color
    accent_light: colors.Color


@dataclass(frozen=True)
class TextStyle:
    font: str
    size: float
    color: colors.Color
    align: str = "left"


@dataclass(frozen=True)
class LineStyle:
    color: colors.Color
    width: float


LABEL = TextStyle("Helvetica-Bold", 8, LABEL_GRAY)
VALUE = TextStyle("Helvetica", 9.5, DARK)
CELL = TextStyle("Helvetica", 9, DARK)
CELL_MUTED = TextStyle("Helvetica", 9, LABEL_GRAY)
CELL_BOLD = TextStyle("Helvetica-Bold", 9, DARK)
FOOTER = TextStyle("Helvetica-Oblique", 7, MED)
FOOTER_RIGHT = TextStyle("Helvetica-Oblique", 7, MED, align="right")


# -----------------------------
# Drawing commands
# -----------------------------
@dataclass(frozen=True)
class TextOp:
    x: float
    y: float
    text: str
    style: TextStyle


@dataclass(frozen=True)
class LineOp:
    x1: float
    y1: float
    x2: float
    y2: float
    style: LineStyle


@dataclass(frozen=True)
class RectOp:
    x: float
    y: float
    w: float
    h: float
    fill: colors.Color


@dataclass(frozen=True)
class ImageOp:
    image: RemoteImage
    x: float
    y: float
    w: float
    h: float


@dataclass
class Page:
    number: int
    ops: list = field(default_factory=list)

    def text(self, x, y, text, style: TextStyle):
        self.ops.append(TextOp(x, y, str(text), style))

    def line(self, x1, y1, x2, y2, style: LineStyle):
        self.ops.append(LineOp(x1, y1, x2, y2, style))

    def rect(self, x, y, w, h, fill):
        self.ops.append(RectOp(x, y, w, h, fill))

    def image(self, image: RemoteImage, x, y, w, h):
        self.ops.append(ImageOp(image, x, y, w, h))

    def texts(self) -> list[str]:
        return [op.text for op in self.ops if isinstance(op, TextOp)]


@dataclass
class Document:
    page_width: float = PAGE_W_MM
    page_height: float = PAGE_H_MM
    margin: float = MARGIN_MM
    pages: list[Page] = field(default_factory=list)
    image_results: dict[str, ImageLoadResult] = field(default_factory=dict)
    finalized: bool = False

    @property
    def content_width(self) -> float:
        return self.page_width - 2 * self.margin

    @property
    def bottom(self) -> float:
        return self.page_height - self.margin

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def add_page(self) -> Page:
        if self.finalized:
            raise RuntimeError("document is finalized; no more pages can be added")
        page = Page(number=len(self.pages) + 1)
        self.pages.append(page)
        return page

    def finalize(self):
        self.finalized = True

    def texts(self) -> list[str]:
        return [t for page in self.pages for t in page.texts()]


# -----------------------------
# Cursor
# -----------------------------
class LayoutCursor:
    """Vertical write position over a growing list of pages."""

    def __init__(self, document: Document):
        self.doc = document
        self.y = document.margin
        if not document.pages:
            document.add_page()

    @property
    def page(self) -> Page:
        return self.doc.pages[-1]

    def ensure_space(self, height: float = 20.0):
        usable = self.doc.page_height - 2 * self.doc.margin
        if height > usable:
            raise LayoutOverflowError(f"{height:.1f}mm block cannot fit in {usable:.1f}mm of page")
        if self.y + height > self.doc.bottom:
            self.doc.add_page()
            self.y = self.doc.margin

    def advance(self, height: float):
        self.y += height


# -----------------------------
# Text helpers
# -----------------------------
def long_date(d: date) -> str:
    return f"{d:%B} {d.day}, {d.year}"


def _split_long_token(token: str, style: TextStyle, max_pt: float) -> list[str]:
    """Break a single long token (like an email) into width-safe chunks."""
    if stringWidth(token, style.font, style.size) <= max_pt:
        return [token]
    chunks = []
    remaining = token
    while remaining:
        lo, hi = 1, len(remaining)
        fit = 1
        while lo <= hi:
            mid = (lo + hi) // 2
            if stringWidth(remaining[:mid], style.font, style.size) <= max_pt:
                fit = mid
                lo = mid + 1
            else:
                hi = mid - 1
        chunks.append(remaining[:fit])
        remaining = remaining[fit:]
    return chunks


def wrap_text(text, style: TextStyle, max_width: float) -> list[str]:
    """Word-wrap `text` to `max_width` mm; explicit newlines are kept."""
    max_pt = max_width * mm
    lines: list[str] = []
    for paragraph in re.split(r"\r?\n", str(text or "")):
        current = ""
        for word in paragraph.split():
            for w in _split_long_token(word, style, max_pt):
                test = current + (" " if current else "") + w
                if stringWidth(test, style.font, style.size) <= max_pt:
                    current = test
                else:
                    if current:
                        lines.append(current)
                    current = w
        lines.append(current)
    return lines or [""]


# -----------------------------
# Primitive renderers
# -----------------------------
FIELD_VALUE_X = 54.0
# table header row plus the first body row
TABLE_LEAD_MM = 14.0


def section_title(cursor: LayoutCursor, title: str, theme: Theme, keep_with: float = 0.0):
    """Accent title over a thin rule. `keep_with` reserves room for what must follow on the same page."""
    m, cw = cursor.doc.margin, cursor.doc.content_width
    cursor.ensure_space(max(14, 12.5 + keep_with))
    cursor.advance(5)
    cursor.page.text(m, cursor.y, title, TextStyle("Helvetica-Bold", 8, theme.accent))
    cursor.advance(2.5)
    cursor.page.line(m, cursor.y, m + cw, cursor.y, LineStyle(theme.accent_light, 0.4))
    cursor.advance(5)


def section_bar(cursor: LayoutCursor, title: str, theme: Theme):
    m, cw = cursor.doc.margin, cursor.doc.content_width
    cursor.ensure_space(14)
    cursor.page.rect(m, cursor.y, cw, 8, theme.accent_light)
    cursor.page.text(m + 3, cursor.y + 5.5, title, TextStyle("Helvetica-Bold", 8, theme.accent))
    cursor.advance(11)


def field_row(cursor: LayoutCursor, label: str, value: str):
    """Bold label on the left, wrapped value beside it. Blank values draw nothing."""
    if not (value or "").strip():
        return
    m, cw = cursor.doc.margin, cursor.doc.content_width
    cursor.ensure_space(10)
    cursor.page.text(m, cursor.y, label, LABEL)

    lines = wrap_text(value, VALUE, cw - FIELD_VALUE_X - 2)
    for i, line in enumerate(lines):
        if i > 0:
            cursor.advance(4.5)
            cursor.ensure_space(5)
        cursor.page.text(m + FIELD_VALUE_X, cursor.y, line, VALUE)
    cursor.advance(6)


def text_block(
    cursor: LayoutCursor,
    label: str,
    value: str,
    *,
    label_style: TextStyle,
    value_style: TextStyle = VALUE,
    width: Optional[float] = None,
    needed: float = 14.0,
    label_gap: float = 5.0,
    line_height: float = 4.5,
    after: float = 4.0,
):
    """Label on its own line with the wrapped value underneath."""
    if not (value or "").strip():
        return
    m = cursor.doc.margin
    width = cursor.doc.content_width if width is None else width
    cursor.ensure_space(needed)
    cursor.page.text(m, cursor.y, label, label_style)
    cursor.advance(label_gap)
    for line in wrap_text(value, value_style, width):
        cursor.ensure_space(line_height + 0.5)
        cursor.page.text(m, cursor.y, line, value_style)
        cursor.advance(line_height)
    cursor.advance(after)


@dataclass(frozen=True)
class Column:
    name: str
    x: float  # offset from the left margin
    width: float
    style: TextStyle = CELL


@dataclass
class Table:
    columns: Sequence[Column]
    rows: Iterable[Sequence[str]]
    summary: Optional[Sequence[str]] = None


def draw_table(cursor: LayoutCursor, table: Table, theme: Theme):
    """
    Header row, zebra-striped body rows, then an optional summary row.

    Rows are pulled from `table.rows` one at a time and each one gets its own
    page-break check, so a long table simply continues on the next page.
    """
    m, cw = cursor.doc.margin, cursor.doc.content_width

    head_style = TextStyle("Helvetica-Bold", 7, theme.accent_dark)
    cursor.ensure_space(8)
    cursor.page.rect(m, cursor.y - 3, cw, 7, theme.accent_light)
    for col in table.columns:
        cursor.page.text(m + col.x + 2, cursor.y, col.name, head_style)
    cursor.advance(6)

    # TODO: decide whether continuation pages should repeat the column header row.
    for i, row in enumerate(table.rows):
        cursor.ensure_space(8)
        if i % 2 == 0:
            cursor.page.rect(m, cursor.y - 3.5, cw, 6.5, ZEBRA)
        for col, cell in zip(table.columns, row):
            cursor.page.text(m + col.x + 2, cursor.y, cell, col.style)
        cursor.advance(6)

    if table.summary is None:
        return

    total_style = TextStyle("Helvetica-Bold", 10, theme.accent_dark)
    cursor.ensure_space(10)
    cursor.advance(1)
    cursor.page.line(m, cursor.y - 3, m + cw, cursor.y - 3, LineStyle(theme.accent, 0.4))
    cursor.page.rect(m, cursor.y - 2, cw, 8, theme.accent_light)
    for col, cell in zip(table.columns, table.summary):
        if cell:
            cursor.page.text(m + col.x + 2, cursor.y + 2.5, cell, total_style)
    cursor.advance(10)


def aspect_fit(width: float, height: float, max_w: float, max_h: float) -> tuple[float, float]:
    scale = min(max_w / width, max_h / height)
    return width * scale, height * scale


def image_block(cursor: LayoutCursor, image: RemoteImage, max_w: float, max_h: float, gap: float = 6.0):
    w, h = aspect_fit(image.width, image.height, max_w, max_h)
    cursor.ensure_space(h + gap)
    cursor.page.image(image, cursor.doc.margin, cursor.y, w, h)
    cursor.advance(h + gap)
    return w, h


# -----------------------------
# Finalizer
# -----------------------------
def stamp_footers(document: Document, theme: Theme, generated_on: date):
    """
    Second pass over the finished pages: rule, generation stamp and, for
    multi-page documents, "Page p of N". Closes the document for composition.
    """
    total = document.page_count
    m, pw = document.margin, document.page_width
    footer_y = document.page_height - 10
    stamp = f"Generated {long_date(generated_on)}"
    rule = LineStyle(theme.accent_light, 0.4)

    for page in document.pages:
        page.line(m, footer_y - 4, pw - m, footer_y - 4, rule)
        page.text(m, footer_y, stamp, FOOTER)
        if total > 1:
            page.text(pw - m, footer_y, f"Page {page.number} of {total}", FOOTER_RIGHT)

    document.finalize()
