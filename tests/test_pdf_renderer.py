"""Tests for PDF rendering."""
import fitz  # PyMuPDF

from fundhub.config import settings
from fundhub.services.pdf_renderer import _PageWriter, render, section_heading


def test_section_headings_by_depth():
    assert section_heading({"index": 1, "title": "총칙"}, 0) == "제1장 총칙"
    assert section_heading({"index": 4, "title": "목적"}, 1) == "제4조(목적)"
    assert section_heading({"index": 2, "title": ""}, 2) == "2."
    assert section_heading({"index": -1, "title": "부칙"}, 0) == "부칙"


def _content():
    return {
        "title": "테스트 조합 규약",
        "sections": [
            {"index": 1, "title": "총칙", "text": "", "sub": [
                {"index": 1, "title": "명칭", "text": "본 조합은 테스트 조합이라 한다. " * 40, "sub": []},
            ]},
        ],
        "table": {"headers": [{"label": "이름", "property": "name"}, {"label": "좌수", "property": "units"}]},
        "rows": [{"name": "김철수", "units": 10}],
        "appendices": [{"member": "김철수", "sections": [{"index": -1, "title": "동의인", "text": "김철수", "sub": []}]}],
    }


def test_render_produces_a_pdf_with_the_text():
    data = render(_content())
    assert data.startswith(b"%PDF")

    doc = fitz.open(stream=data, filetype="pdf")
    text = "".join(page.get_text() for page in doc)
    assert doc.page_count >= 2  # appendix starts a new page
    assert "제1장 총칙" in text
    assert "김철수" in text


def test_preview_adds_watermark():
    doc = fitz.open(stream=render(_content(), is_preview=True), filetype="pdf")
    assert "PREVIEW" in doc[0].get_text()


def test_wrap_keeps_lines_within_width():
    font = fitz.Font(settings.PDF_FONT)
    writer = _PageWriter(fitz.open(), font, settings.PDF_FONT_SIZE)
    text = "조합원은 출자 의무를 이행하여야 한다. " * 30

    lines = writer.wrap(text, 10, 200)

    assert len(lines) > 1
    for line in lines:
        assert font.text_length(line, fontsize=10) <= 200 + 0.01
    # Only spaces at line breaks are dropped
    assert "".join(lines).replace(" ", "") == text.replace(" ", "")


def test_wrap_preserves_paragraph_breaks():
    writer = _PageWriter(fitz.open(), fitz.Font(settings.PDF_FONT), settings.PDF_FONT_SIZE)
    assert writer.wrap("첫째 줄\n\n셋째 줄", 10, 400) == ["첫째 줄", "", "셋째 줄"]


def test_long_document_with_many_appendices():
    content = _content()
    content["appendices"] = [
        {"member": f"조합원 {i}", "sections": [{"index": -1, "title": "동의 내용", "text": "가나다라마바사 " * 250, "sub": []}]}
        for i in range(20)
    ]

    doc = fitz.open(stream=render(content), filetype="pdf")

    assert doc.page_count >= 21
    assert "가나다라마바사" in doc[doc.page_count - 1].get_text()
