from __future__ import annotations

from typing import Any


class FaturaImportError(Exception):
    """Base error; ``reason`` is the machine-readable code returned to API clients."""

    reason = "IMPORT_ERROR"
    status_code = 500

    def __init__(self, message: str, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if reason is not None:
            self.reason = reason

    def to_detail(self) -> dict[str, Any]:
        return {"reason": self.reason, "message": self.message}


class ExtractionError(FaturaImportError):
    """The document could not be turned into text (empty, encrypted, unreadable, image-only)."""

    reason = "UNREADABLE_PDF"
    status_code = 422


class UnsupportedFormatError(FaturaImportError):
    """No parser recognized the document and the generic extractor found nothing."""

    reason = "UNSUPPORTED_LAYOUT"
    status_code = 422

    def __init__(self, message: str = "document format not recognized", *, bank_id: str | None = None) -> None:
        super().__init__(message)
        self.bank_id = bank_id


class UnknownParserError(FaturaImportError):
    reason = "UNKNOWN_PARSER"
    status_code = 404

    def __init__(self, bank_id: str) -> None:
        super().__init__(f"no parser registered for bank={bank_id}")
        self.bank_id = bank_id
