"""
PDF rendering of processed document content with PyMuPDF.

Layout is a plain A4 flow: document title, numbered sections (장 / 조 / 항 /
호 headings by depth), an optional member table, and one page per appendix
entry. Rendering is a pure function of the processed content; previews add a
diagonal "PREVIEW" watermark to every page.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import fitz  # PyMuPDF

from fundhub.config import settings
from fundhub.errors import UnexpectedError

logger = logging.getLogger(__name__)

PAGE_WIDTH, PAGE_HEIGHT = fitz.paper_size("a4")
MARGIN = 56
LINE_SPACING = 1.6
FONT_NAME = "F0"

_SECTION_LABELS = ["장", "조", "항", "호", "목"]


def section_heading(section: Dict[str, Any], depth: int) -> str:
    """``제1장 총칙``, ``제4조(목적)``, ``1.`` ... depending on depth."""
    index = section.get("index")
    title = section.get("title") or ""
    if index is None or index < 0:
        return title
    if depth == 0:
        return f"제{index}장 {title}".strip()
    if depth == 1:
        return f"제{index}조({title})" if title else f"제{index}조"
    if depth == 2:
        return f"{index}." + (f" {title}" if title else "")
    return f"{index})" + (f" {title}" if title else "")


class _PageWriter:
    """Keeps the cursor and wraps text across pages."""

    def __init__(self, doc: fitz.Document, font: fitz.Font, font_size: float) -> None:
        self.doc = doc
        self.font = font
        self.font_size = font_size
        self.page: Optional[fitz.Page] = None
        self.y = 0.0
        self.new_page()

    def new_page(self) -> None:
        self.page = self.doc.new_page(width=PAGE_WIDTH, height=PAGE_HEIGHT)
        self.page.insert_font(fontname=FONT_NAME, fontbuffer=self.font.buffer)
        self.y = MARGIN

    def _ensure_room(self, height: float) -> None:
        if self.y + height > PAGE_HEIGHT - MARGIN:
            self.new_page()

    def wrap(self, text: str, size: float, width: float) -> List[str]:
        # Character-level wrapping; Hangul has no reliable word boundaries
        lines: List[str] = []
        advances: Dict[str, float] = {}
        for paragraph in text.split("\n"):
            current: List[str] = []
            current_width = 0.0
            for ch in paragraph:
                advance = advances.get(ch)
                if advance is None:
                    advance = advances[ch] = self.font.text_length(ch, fontsize=size)
                if current and current_width + advance > width:
                    lines.append("".join(current))
                    if ch == " ":
                        current, current_width = [], 0.0
                    else:
                        current, current_width = [ch], advance
                else:
                    current.append(ch)
                    current_width += advance
            lines.append("".join(current))
        return lines

    def text(self, text: str, size: Optional[float] = None, indent: float = 0.0, center: bool = False) -> None:
        size = size or self.font_size
        width = PAGE_WIDTH - 2 * MARGIN - indent
        line_height = size * LINE_SPACING
        for line in self.wrap(text, size, width):
            self._ensure_room(line_height)
            self.y += size
            x = MARGIN + indent
            if center:
                x = (PAGE_WIDTH - self.font.text_length(line, fontsize=size)) / 2
            self.page.insert_text((x, self.y), line, fontname=FONT_NAME, fontsize=size)
            self.y += line_height - size

    def gap(self, height: float) -> None:
        self.y += height

    def table(self, headers: List[Dict[str, Any]], rows: List[Dict[str, Any]]) -> None:
        if not headers:
            return
        size = self.font_size * 0.85
        row_height = size * 2.2
        col_width = (PAGE_WIDTH - 2 * MARGIN) / len(headers)

        def draw_row(values: List[str], shaded: bool) -> None:
            self._ensure_room(row_height)
            top = self.y
            for i, value in enumerate(values):
                rect = fitz.Rect(MARGIN + i * col_width, top, MARGIN + (i + 1) * col_width, top + row_height)
                self.page.draw_rect(rect, color=(0.8, 0.8, 0.8), fill=(0.94, 0.94, 0.94) if shaded else None, width=0.5)
                cell = value
                while cell and self.font.text_length(cell, fontsize=size) > col_width - 6:
                    cell = cell[:-1]
                self.page.insert_text(
                    (rect.x0 + 3, top + row_height / 2 + size / 3),
                    cell, fontname=FONT_NAME, fontsize=size,
                )
            self.y = top + row_height

        draw_row([h.get("label", "") for h in headers], shaded=True)
        for row in rows:
            draw_row([str(row.get(h.get("property"), "")) for h in headers], shaded=False)


def _render_sections(writer: _PageWriter, sections: List[Dict[str, Any]], depth: int = 0) -> None:
    for section in sections:
        heading = section_heading(section, depth)
        body = section.get("text") or ""
        indent = min(depth, 3) * 12.0
        if depth == 0 and heading:
            writer.gap(writer.font_size * 0.8)
            writer.text(heading, size=writer.font_size * 1.2, center=True)
            if body:
                writer.text(body, indent=indent)
        elif depth == 1:
            writer.gap(writer.font_size * 0.4)
            writer.text(heading, indent=indent)
            if body:
                writer.text(body, indent=indent)
        else:
            line = f"{heading} {body}".strip() if heading else body
            if line:
                writer.text(line, indent=indent)
        _render_sections(writer, section.get("sub") or [], depth + 1)


def _watermark(page: fitz.Page) -> None:
    size = 96
    label = "PREVIEW"
    width = fitz.get_text_length(label, fontname="helv", fontsize=size)
    center = fitz.Point(PAGE_WIDTH / 2, PAGE_HEIGHT / 2)
    page.insert_text(
        (center.x - width / 2, center.y + size / 3),
        label,
        fontname="helv",
        fontsize=size,
        color=(0.55, 0.7, 0.95),
        fill_opacity=0.35,
        morph=(center, fitz.Matrix(-45)),
        overlay=True,
    )


def render(processed_content: Dict[str, Any], is_preview: bool = False) -> bytes:
    """
    Render processed content to PDF bytes.

    Raises:
        UnexpectedError: the PDF engine failed.
    """
    try:
        font = fitz.Font(settings.PDF_FONT)
        doc = fitz.open()
        writer = _PageWriter(doc, font, settings.PDF_FONT_SIZE)

        title = processed_content.get("title")
        if title:
            writer.text(title, size=settings.PDF_FONT_SIZE * 1.7, center=True)
            writer.gap(settings.PDF_FONT_SIZE)

        _render_sections(writer, processed_content.get("sections") or [])

        if processed_content.get("rows") is not None:
            writer.gap(settings.PDF_FONT_SIZE)
            writer.table((processed_content.get("table") or {}).get("headers", []), processed_content["rows"])

        for appendix in processed_content.get("appendices") or []:
            writer.new_page()
            if title:
                writer.text(title, size=settings.PDF_FONT_SIZE * 1.4, center=True)
                writer.gap(settings.PDF_FONT_SIZE)
            _render_sections(writer, appendix.get("sections") or [])

        if is_preview:
            for page in doc:
                _watermark(page)

        doc.set_metadata({
            "title": title or "",
            "producer": "FundHub",
            "creationDate": "",
            "modDate": "",
        })
        data = doc.tobytes(garbage=3, deflate=True)
        doc.close()
    except (RuntimeError, ValueError) as exc:
        logger.error("PDF rendering failed: %s", exc, exc_info=True)
        raise UnexpectedError(f"PDF rendering failed: {exc}") from exc

    logger.debug("Rendered PDF (%d bytes, preview=%s)", len(data), is_preview)
    return data
