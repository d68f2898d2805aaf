from __future__ import annotations

import gc
import threading
from datetime import date, timedelta
from decimal import Decimal

import pytest

from parsers.models import InstallmentMarker

from fatura_import.categories import Category
from fatura_import.config import load_settings
from fatura_import.deduplication import DeduplicationPolicy, PersistedTransaction
from fatura_import.errors import UnsupportedFormatError
from fatura_import.pipeline import ImportOrchestrator, parse_statement, preview_import


PICPAY_TEXT = """
PicPay Mastercard
Vencimento: 10/11/2025
Transações Nacionais
07/10 PAGAMENTO DE FATURA PELO PICPA -2.377,77
15/10 SHEIN PARC02/05 150,50
22/10 UBER *TRIP 23,90
""".strip()


class InMemoryStore:
    def __init__(self, categories: list[Category] | None = None) -> None:
        self.categories = list(categories or [])
        self.transactions: dict[str, list[PersistedTransaction]] = {}
        self.created: list[str] = []
        self.since: list[date] = []

    def list_existing_transactions(self, user_id: str, since: date) -> list[PersistedTransaction]:
        self.since.append(since)
        return [tx for tx in self.transactions.get(user_id, []) if tx.date >= since]

    def list_categories(self, user_id: str) -> list[Category]:
        return list(self.categories)

    def create_category(self, user_id: str, name: str) -> Category:
        category = Category(f"new-{len(self.created) + 1}", name)
        self.created.append(name)
        self.categories.append(category)
        return category

    def save_transactions(self, user_id, transactions) -> None:
        saved = self.transactions.setdefault(user_id, [])
        for item in transactions:
            saved.append(PersistedTransaction.from_extracted(item.transaction, category_id=item.category.category_id))


class StaticExtractor:
    def __init__(self, text: str) -> None:
        self.text = text

    def extract_text(self, document: bytes) -> str:
        return self.text


def _orchestrator(store: InMemoryStore, **env: str) -> ImportOrchestrator:
    return ImportOrchestrator(store, settings=load_settings(env), extractor=StaticExtractor(PICPAY_TEXT))


def test_parse_statement_rejects_unrecognized_text() -> None:
    with pytest.raises(UnsupportedFormatError) as exc_info:
        parse_statement("nada aqui para importar")
    assert exc_info.value.reason == "UNSUPPORTED_LAYOUT"


FIRST_SHEIN_PARCEL = PersistedTransaction(
    date(2025, 9, 15),
    "SHEIN",
    Decimal("150.50"),
    installment=InstallmentMarker(1, 5),
    original_description="SHEIN PARC01/05",
)


def test_preview_with_explicit_reference_month() -> None:
    policy = DeduplicationPolicy(reference_month=date(2025, 10, 1))
    preview = preview_import(
        PICPAY_TEXT,
        existing=[FIRST_SHEIN_PARCEL],
        categories=[Category("t", "Transporte")],
        policy=policy,
    )

    assert preview.parse.bank_id == "picpay"
    assert len(preview.deduplication.accepted) == 3
    assert [d.warning for d in preview.deduplication.warnings] == [
        "installment group already exists, importing parcel 2/5 only"
    ]
    assert preview.categories[2].category_id == "t"

    payload = preview.to_dict()
    assert payload["stats"] == {"totalAnalyzed": 3, "toImport": 3, "duplicates": 0, "warnings": 1}
    assert payload["saved"] == []


def test_preview_defaults_to_the_statement_month() -> None:
    # due date 10/11/2025, so the statement covers November
    preview = preview_import(PICPAY_TEXT, existing=[FIRST_SHEIN_PARCEL])

    reasons = [d.reason for d in preview.deduplication.duplicates]
    assert reasons == ["parcel 2/5 does not belong to the statement month (2025-11)"]


def test_import_persists_and_second_import_is_a_no_op() -> None:
    store = InMemoryStore([Category("t", "Transporte")])
    orchestrator = _orchestrator(store)

    first = orchestrator.import_statement("u1", PICPAY_TEXT)
    assert len(first.saved) == 3
    assert len(store.transactions["u1"]) == 3
    assert store.since[0] == date(2025, 10, 7) - timedelta(days=400)

    second = orchestrator.import_document("u1", b"%PDF-fake")
    assert second.saved == []
    assert second.deduplication.stats()["duplicates"] == 3


def test_default_category_resolution() -> None:
    store = InMemoryStore()
    result = _orchestrator(store, DEFAULT_CATEGORY_NAME="Geral").import_statement("u2", PICPAY_TEXT)

    by_description = {c.transaction.description: c.category for c in result.saved}
    # "UBER" hits the keyword taxonomy, which creates "Transporte" once.
    assert by_description["UBER *TRIP"].category_name == "Transporte"
    assert store.created.count("Transporte") == 1
    assert all(c.category_id is not None for c in by_description.values())


def test_default_category_created_when_user_has_none() -> None:
    text = "Extrato\n03/10/2025 XPTO QWERTY 25,00\n"
    store = InMemoryStore()
    orchestrator = ImportOrchestrator(store, settings=load_settings({"DEFAULT_CATEGORY_NAME": "Geral"}))

    result = orchestrator.import_statement("u3", text)

    assert store.created == ["Geral"]
    assert result.saved[0].category.category_name == "Geral"


def test_first_user_category_is_the_fallback() -> None:
    text = "Extrato\n03/10/2025 XPTO QWERTY 25,00\n"
    store = InMemoryStore([Category("z", "Zzzzzzzz")])

    result = ImportOrchestrator(store, settings=load_settings({})).import_statement("u4", text)

    assert result.saved[0].category.category_id == "z"
    assert store.created == []


def test_concurrent_imports_for_one_user_do_not_double_insert() -> None:
    store = InMemoryStore([Category("t", "Transporte")])
    orchestrator = _orchestrator(store)

    threads = [threading.Thread(target=orchestrator.import_statement, args=("u5", PICPAY_TEXT)) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(store.transactions["u5"]) == 3


def test_user_locks_are_released_after_import() -> None:
    store = InMemoryStore([Category("t", "Transporte")])
    orchestrator = _orchestrator(store)

    orchestrator.import_statement("u6", PICPAY_TEXT)
    gc.collect()

    assert "u6" not in orchestrator._locks
    held = orchestrator._lock_for("u6")
    assert orchestrator._lock_for("u6") is held
