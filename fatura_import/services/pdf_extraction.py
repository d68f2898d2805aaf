from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any

import pdfplumber

from fatura_import.errors import ExtractionError


logger = logging.getLogger("fatura-import")

_CID_TOKEN_RE = re.compile(r"\(cid:\d+\)")
_LONG_ALPHA_RUN_RE = re.compile(r"[A-Za-zÀ-ÿ]{18,}")
_TWO_DATES_ONE_LINE_RE = re.compile(r"\b\d{2}/\d{2}\b.*\b\d{2}/\d{2}\b.*\d,\d{2}.*\d,\d{2}")


def looks_like_pdf(pdf_bytes: bytes) -> bool:
    if not pdf_bytes or not pdf_bytes.startswith(b"%PDF-"):
        return False
    # Some writers leave trailing whitespace after the EOF marker.
    return b"%%EOF" in pdf_bytes[-2048:]


def looks_encrypted(pdf_bytes: bytes) -> bool:
    return b"/Encrypt" in (pdf_bytes or b"")


def clean_page_text(text: str) -> str:
    """Per-page cleanup that keeps one output line per printed line."""
    if not text:
        return ""

    text = text.replace("\u00a0", " ").replace("\r\n", "\n").replace("\r", "\n")
    text = _CID_TOKEN_RE.sub("", text)
    return "\n".join(re.sub(r"[ \t]+", " ", line).strip() for line in text.split("\n"))


def join_pages(page_texts: list[str]) -> str:
    text = "\n\n".join(t for t in page_texts if t)
    text = re.sub(r"\n{3,}", "\n\n", text)
    return text.strip()


def text_debug_stats(text: str) -> tuple[int, float, list[str]]:
    lines = text.split("\n") if text else []
    non_empty = [ln for ln in lines if ln.strip()]
    avg = (sum(len(ln) for ln in non_empty) / len(non_empty)) if non_empty else 0.0
    return len(lines), float(avg), lines[:20]


def looks_glued(text: str) -> bool:
    """True when layout extraction likely merged words or statement rows."""
    if not text:
        return True

    letters = sum(1 for ch in text if ch.isalpha())
    if letters > 200 and text.count(" ") / max(1, len(text)) < 0.01:
        return True

    # e.g. "PAGAMENTODEFATURAPELOPICPAY"
    if _LONG_ALPHA_RUN_RE.search(text):
        return True

    return any(_TWO_DATES_ONE_LINE_RE.search(line) for line in text.split("\n"))


def _page_words(page: Any) -> list[dict[str, Any]]:
    try:
        return page.extract_words(keep_blank_chars=False, use_text_flow=True)
    except TypeError:
        return page.extract_words(keep_blank_chars=False)


def rebuild_lines_from_words(page: Any, y_tolerance: float = 3.0) -> str:
    """Group words into lines by their ``top`` coordinate, then sort by ``x0``."""
    words = sorted(_page_words(page), key=lambda w: (float(w.get("top", 0.0)), float(w.get("x0", 0.0))))
    if not words:
        return ""

    rows: list[list[dict[str, Any]]] = []
    row_top: float | None = None
    for word in words:
        top = float(word.get("top", 0.0))
        if row_top is not None and abs(top - row_top) <= y_tolerance:
            rows[-1].append(word)
            continue
        rows.append([word])
        row_top = top

    out: list[str] = []
    for row in rows:
        parts = [str(w.get("text", "")).strip() for w in sorted(row, key=lambda w: float(w.get("x0", 0.0)))]
        out.append(" ".join(p for p in parts if p))
    return "\n".join(out)


def extract_page_text(page: Any, y_tolerance: float = 3.0) -> tuple[str, str]:
    """Return (text, method) for one page: layout, then words, then plain."""
    try:
        layout_text = page.extract_text(layout=True, x_tolerance=2, y_tolerance=2)
    except TypeError:
        layout_text = None

    if layout_text:
        layout_text = clean_page_text(layout_text)
        if not looks_glued(layout_text):
            return layout_text, "layout"

    words_text = clean_page_text(rebuild_lines_from_words(page, y_tolerance))
    if words_text.strip():
        return words_text, "words"

    plain = clean_page_text(page.extract_text(x_tolerance=2, y_tolerance=2) or "")
    return plain, "plain"


@dataclass
class PdfText:
    text: str
    pages: int
    page_texts: list[str] = field(default_factory=list)
    methods: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        line_count, avg_len, sample = text_debug_stats(self.text)
        return {
            "pages": self.pages,
            "methods": list(self.methods),
            "text": self.text,
            "debug": {
                "lineCount": line_count,
                "avgLineLength": round(avg_len, 2),
                "sample": sample,
            },
        }


class PdfTextExtractor:
    """pdfplumber-backed document text extractor."""

    def __init__(self, y_tolerance: float = 3.0) -> None:
        self.y_tolerance = y_tolerance

    def read(self, pdf_bytes: bytes) -> PdfText:
        if not pdf_bytes:
            raise ExtractionError("Empty document", reason="EMPTY_DOCUMENT")

        page_texts: list[str] = []
        methods: list[str] = []
        try:
            with pdfplumber.open(BytesIO(pdf_bytes)) as pdf:
                pages = len(pdf.pages)
                for page in pdf.pages:
                    text, method = extract_page_text(page, self.y_tolerance)
                    page_texts.append(text)
                    methods.append(method)
        except Exception as exc:
            logger.warning("[extract] pdfplumber failed bytes=%d error=%r", len(pdf_bytes), exc)
            if looks_encrypted(pdf_bytes):
                raise ExtractionError("PDF is encrypted", reason="ENCRYPTED_PDF") from exc
            raise ExtractionError("Failed to read PDF", reason="UNREADABLE_PDF") from exc

        text = join_pages(page_texts)
        if not text:
            raise ExtractionError("PDF has no extractable text", reason="NO_TEXT")

        logger.info("[extract] pages=%d methods=%s chars=%d", pages, ",".join(methods), len(text))
        return PdfText(text=text, pages=pages, page_texts=page_texts, methods=methods)

    def extract_text(self, document: bytes) -> str:
        return self.read(document).text


default_extractor = PdfTextExtractor()


def extract_text(pdf_bytes: bytes) -> str:
    return default_extractor.extract_text(pdf_bytes)
