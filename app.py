from __future__ import annotations

# Entry point kept at the repository root: `uvicorn app:app`.
from fatura_import.main import app, create_app

__all__ = ["app", "create_app"]
