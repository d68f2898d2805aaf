from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request, Response

from fatura_import.config import Settings
from fatura_import.deduplication import import_is_valid
from fatura_import.errors import FaturaImportError
from fatura_import.pipeline import preview_import
from fatura_import.schemas import ImportPreviewRequest


router = APIRouter()
logger = logging.getLogger("fatura-import")


@router.post("/import/preview")
def import_preview(request: Request, response: Response, body: ImportPreviewRequest) -> dict[str, Any]:
    """Dry run of an import: parse, suggest categories and flag duplicates."""
    settings: Settings = request.app.state.settings
    response.headers["X-Parser-Version"] = settings.version

    if body.policy is not None:
        policy = body.policy.to_domain()
    else:
        policy = settings.deduplication_policy()

    try:
        preview = preview_import(
            body.text,
            existing=[tx.to_domain() for tx in body.existing],
            categories=[c.to_domain() for c in body.categories],
            history=[h.to_domain() for h in body.history] or None,
            policy=policy,
            registry=request.app.state.registry,
        )
    except FaturaImportError as exc:
        logger.info("[import/preview] rejected reason=%s", exc.reason)
        raise HTTPException(status_code=exc.status_code, detail=exc.to_detail()) from exc

    dedup = preview.deduplication
    payload = preview.to_dict()
    payload["valid"] = import_is_valid(dedup, policy)
    logger.info(
        "[import/preview] bank=%s stats=%s",
        preview.parse.bank_id,
        dedup.stats(),
    )
    return payload
