from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, File, HTTPException, Query, Request, Response, UploadFile

from parsers.base import ParseResult
from parsers.registry import ParserRegistry

from fatura_import.errors import ExtractionError, UnknownParserError
from fatura_import.schemas import ParseTextRequest
from fatura_import.services.fixtures import maybe_save_fixture
from fatura_import.services.pdf_extraction import PdfText, PdfTextExtractor, looks_like_pdf


router = APIRouter()
logger = logging.getLogger("fatura-import")


async def read_pdf_upload(file: UploadFile) -> bytes:
    if file.content_type != "application/pdf":
        raise HTTPException(status_code=400, detail="Invalid content-type. Expected application/pdf")

    pdf_bytes = await file.read()
    logger.info(
        "[upload] filename=%s content_type=%s bytes=%d",
        file.filename,
        file.content_type,
        len(pdf_bytes) if pdf_bytes else 0,
    )
    if not pdf_bytes:
        raise HTTPException(status_code=400, detail="Empty file")
    return pdf_bytes


def extract_upload_text(request: Request, pdf_bytes: bytes) -> PdfText:
    extractor: PdfTextExtractor = request.app.state.extractor
    try:
        return extractor.read(pdf_bytes)
    except ExtractionError as exc:
        if exc.reason == "UNREADABLE_PDF" and not looks_like_pdf(pdf_bytes):
            raise HTTPException(status_code=400, detail="Failed to read PDF") from exc
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc


def run_parser(request: Request, text: str, bank: Optional[str]) -> ParseResult:
    registry: ParserRegistry = request.app.state.registry
    if not bank:
        return registry.parse(text)
    try:
        return registry.parse_with(bank, text)
    except KeyError:
        exc = UnknownParserError(bank)
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from None


def result_payload(result: ParseResult) -> dict[str, Any]:
    payload = result.to_dict()
    if not result.transactions:
        payload["reason"] = "UNSUPPORTED_LAYOUT"
    return payload


def _set_version_header(request: Request, response: Response) -> None:
    response.headers["X-Parser-Version"] = request.app.state.settings.version


@router.get("/parsers")
def list_parsers(request: Request) -> dict[str, Any]:
    registry: ParserRegistry = request.app.state.registry
    items = [{"bank": p.bank_id, "name": p.bank_name, "fallback": False} for p in registry.parsers]
    if registry.fallback is not None:
        items.append({"bank": registry.fallback.bank_id, "name": registry.fallback.bank_name, "fallback": True})
    return {"parsers": items}


@router.post("/extract")
async def extract_pdf_text(
    request: Request,
    response: Response,
    file: UploadFile = File(...),
) -> dict[str, Any]:
    """Devolve o texto extraído do PDF, sem interpretar a fatura."""
    _set_version_header(request, response)
    pdf_bytes = await read_pdf_upload(file)
    extracted = extract_upload_text(request, pdf_bytes)

    payload = extracted.to_dict()
    payload["filename"] = file.filename
    return payload


@router.post("/parse")
async def parse_pdf(
    request: Request,
    response: Response,
    file: UploadFile = File(...),
    bank: Optional[str] = Query(default=None),
) -> dict[str, Any]:
    """Recebe o PDF de uma fatura de cartão, extrai o texto e retorna as transações."""
    _set_version_header(request, response)
    pdf_bytes = await read_pdf_upload(file)
    extracted = extract_upload_text(request, pdf_bytes)

    result = run_parser(request, extracted.text, bank)
    maybe_save_fixture(request.app.state.settings, bank_id=result.bank_id, filename=file.filename, raw_text=extracted.text)

    logger.info(
        "[parse] filename=%s bank=%s transactions=%d",
        file.filename,
        result.bank_id,
        len(result.transactions),
    )
    payload = result_payload(result)
    payload["filename"] = file.filename
    return payload


@router.post("/parse/text")
def parse_text(request: Request, response: Response, body: ParseTextRequest) -> dict[str, Any]:
    _set_version_header(request, response)
    result = run_parser(request, body.text, body.bank)
    logger.info("[parse/text] chars=%d bank=%s transactions=%d", len(body.text), result.bank_id, len(result.transactions))
    return result_payload(result)
