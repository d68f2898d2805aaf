from __future__ import annotations

import logging
import re
from pathlib import Path

from fatura_import.config import Settings


logger = logging.getLogger("fatura-import")

_UNSAFE_CHARS_RE = re.compile(r"[^A-Za-z0-9._-]+")


def fixture_name(bank_id: str | None, filename: str | None = None) -> str:
    stem = Path(filename).stem if filename else "statement"
    stem = _UNSAFE_CHARS_RE.sub("_", stem).strip("_") or "statement"
    return f"{bank_id or 'unknown'}_{stem}.txt"


def write_text_fixture(*, filename: str, raw_text: str, fixtures_dir: Path) -> Path:
    """Write extracted text under the fixtures dir, overwriting any previous capture."""
    fixture_path = fixtures_dir / filename
    fixture_path.parent.mkdir(parents=True, exist_ok=True)
    fixture_path.write_text(raw_text, encoding="utf-8")
    return fixture_path


def maybe_save_fixture(settings: Settings, *, bank_id: str | None, filename: str | None, raw_text: str) -> Path | None:
    if not settings.save_text_fixtures:
        return None
    path = write_text_fixture(
        filename=fixture_name(bank_id, filename),
        raw_text=raw_text,
        fixtures_dir=settings.fixtures_dir,
    )
    logger.info("[fixtures] saved path=%s chars=%d", path, len(raw_text))
    return path
