from __future__ import annotations

import logging

from fastapi import FastAPI

from parsers.registry import ParserRegistry

from fatura_import.config import Settings, load_settings
from fatura_import.routers.imports import router as imports_router
from fatura_import.routers.statements import router as statements_router
from fatura_import.services.pdf_extraction import PdfTextExtractor


logger = logging.getLogger("fatura-import")


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or load_settings()
    logger.setLevel(settings.log_level)

    app = FastAPI(title="Fatura Import (credit card statement parser)")
    app.state.settings = settings
    app.state.registry = ParserRegistry(policy=settings.installment_policy)
    app.state.extractor = PdfTextExtractor()

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/version")
    def version() -> dict[str, str]:
        return {
            "name": "fatura-import",
            "version": settings.version,
            "gitSha": settings.git_sha,
            "buildTime": settings.build_time,
        }

    app.include_router(statements_router)
    app.include_router(imports_router)

    logger.info("[app] started version=%s parsers=%s", settings.version, ",".join(app.state.registry.bank_ids()))
    return app


app = create_app()
