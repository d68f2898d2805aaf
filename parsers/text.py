from __future__ import annotations

import re
import unicodedata
from typing import Iterable


MONTHS_PT: dict[str, int] = {
    "jan": 1,
    "fev": 2,
    "mar": 3,
    "abr": 4,
    "mai": 5,
    "jun": 6,
    "jul": 7,
    "ago": 8,
    "set": 9,
    "out": 10,
    "nov": 11,
    "dez": 12,
}

MONTHS_PT_FULL: dict[str, int] = {
    "janeiro": 1,
    "fevereiro": 2,
    "marco": 3,
    "abril": 4,
    "maio": 5,
    "junho": 6,
    "julho": 7,
    "agosto": 8,
    "setembro": 9,
    "outubro": 10,
    "novembro": 11,
    "dezembro": 12,
}


_CID_PATTERN = re.compile(r"\(cid:\d+\)")


def normalize_text(text: str) -> str:
    """Normalize extracted statement text while keeping one line per row."""
    if not text:
        return ""

    text = text.replace("\u00a0", " ").replace("\xa0", " ")
    text = text.replace("\r\n", "\n").replace("\r", "\n")
    text = _CID_PATTERN.sub("", text)

    cleaned_lines: list[str] = []
    for line in text.split("\n"):
        line = re.sub(r"[ \t]+", " ", line).strip()
        cleaned_lines.append(line)

    # collapse excessive blank lines
    out: list[str] = []
    blank_run = 0
    for ln in cleaned_lines:
        if not ln:
            blank_run += 1
            if blank_run <= 1:
                out.append("")
            continue
        blank_run = 0
        out.append(ln)

    return "\n".join(out).strip()


def non_empty_lines(text: str) -> list[str]:
    return [ln for ln in normalize_text(text).split("\n") if ln]


def flatten_text(text: str) -> str:
    return re.sub(r"\s+", " ", normalize_text(text)).strip()


def strip_accents(text: str) -> str:
    if not text:
        return ""
    nfkd = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in nfkd if not unicodedata.combining(ch))


def fold(text: str) -> str:
    """Lower-case and accent-free form used by detection predicates and denylists."""
    return strip_accents(text or "").lower()


def has_any(folded_text: str, indicators: Iterable[str]) -> bool:
    return any(fold(ind) in folded_text for ind in indicators)


def collapse_spaces(text: str) -> str:
    return re.sub(r"\s+", " ", text or "").strip()


def month_from_name(name: str) -> int | None:
    key = fold(name).strip().rstrip(".")
    if key in MONTHS_PT_FULL:
        return MONTHS_PT_FULL[key]
    return MONTHS_PT.get(key[:3])
