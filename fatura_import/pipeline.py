from __future__ import annotations

import logging
import threading
import weakref
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Protocol, Sequence

from parsers.base import ParseResult
from parsers.models import ExtractedTransaction
from parsers.registry import ParserRegistry, default_registry

from fatura_import.categories import (
    Category,
    CategoryMatch,
    CategoryRecognizer,
    HistoryEntry,
    default_recognizer,
)
from fatura_import.config import Settings, load_settings
from fatura_import.deduplication import (
    DeduplicationPolicy,
    DeduplicationResult,
    PersistedTransaction,
    filter_duplicates,
    recommendations_for,
)
from fatura_import.errors import UnsupportedFormatError


logger = logging.getLogger("fatura-import")


class TextExtractor(Protocol):
    def extract_text(self, document: bytes) -> str: ...


class StatementStore(Protocol):
    def list_existing_transactions(self, user_id: str, since: date) -> Sequence[PersistedTransaction]: ...

    def list_categories(self, user_id: str) -> Sequence[Category]: ...

    def create_category(self, user_id: str, name: str) -> Category: ...

    def save_transactions(self, user_id: str, transactions: Sequence[CategorizedTransaction]) -> None: ...


@dataclass(frozen=True)
class CategorizedTransaction:
    transaction: ExtractedTransaction
    category: CategoryMatch

    def to_dict(self) -> dict[str, Any]:
        out = self.transaction.to_dict()
        out["category"] = self.category.to_dict()
        return out


@dataclass
class StatementImport:
    parse: ParseResult
    categories: list[CategoryMatch] = field(default_factory=list)
    deduplication: DeduplicationResult = field(default_factory=DeduplicationResult)
    saved: list[CategorizedTransaction] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        dedup = self.deduplication.to_dict()
        return {
            "parse": self.parse.to_dict(),
            "categories": [m.to_dict() for m in self.categories],
            "deduplication": dedup,
            "stats": dedup["stats"],
            "recommendations": [r.to_dict() for r in recommendations_for(self.deduplication)],
            "saved": [c.to_dict() for c in self.saved],
        }


def parse_statement(text: str, registry: ParserRegistry | None = None) -> ParseResult:
    """Detect the layout and extract transactions.

    Raises :class:`UnsupportedFormatError` when every strategy came back empty.
    """
    registry = registry or default_registry
    result = registry.parse(text)
    if not result.transactions:
        logger.info("[pipeline] no transactions bank=%s fallback=%s", result.bank_id, result.fallback)
        raise UnsupportedFormatError(bank_id=result.bank_id)
    return result


def _policy_for(result: ParseResult, policy: DeduplicationPolicy | None) -> DeduplicationPolicy:
    policy = policy or DeduplicationPolicy()
    if policy.reference_month is None and result.reference_month is not None:
        return DeduplicationPolicy(
            only_current_installment=policy.only_current_installment,
            allow_exact_duplicates=policy.allow_exact_duplicates,
            reference_month=result.reference_month,
        )
    return policy


def preview_import(
    text: str,
    existing: Sequence[PersistedTransaction] = (),
    categories: Sequence[Category] = (),
    history: Sequence[HistoryEntry] | None = None,
    policy: DeduplicationPolicy | None = None,
    *,
    registry: ParserRegistry | None = None,
    recognizer: CategoryRecognizer | None = None,
) -> StatementImport:
    """Parse, categorize and deduplicate without touching any store."""
    recognizer = recognizer or default_recognizer
    result = parse_statement(text, registry)
    matches = recognizer.recognize_many((tx.description for tx in result.transactions), categories, history)
    dedup = filter_duplicates(result.transactions, existing, _policy_for(result, policy))

    logger.info(
        "[pipeline] preview bank=%s transactions=%d to_import=%d duplicates=%d",
        result.bank_id,
        len(result.transactions),
        len(dedup.accepted),
        len(dedup.duplicates),
    )
    return StatementImport(parse=result, categories=matches, deduplication=dedup)


class ImportOrchestrator:
    """Runs one statement import for a user against a store.

    Imports for the same user are serialized so two concurrent runs cannot both
    create the default category or both accept the same parcel.
    """

    def __init__(
        self,
        store: StatementStore,
        *,
        extractor: TextExtractor | None = None,
        registry: ParserRegistry | None = None,
        recognizer: CategoryRecognizer | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.extractor = extractor
        self.settings = settings or load_settings()
        self.registry = registry or ParserRegistry(policy=self.settings.installment_policy)
        self.recognizer = recognizer or default_recognizer
        # entries disappear once no import for that user holds the lock
        self._locks: weakref.WeakValueDictionary[str, threading.Lock] = weakref.WeakValueDictionary()
        self._locks_guard = threading.Lock()

    def _lock_for(self, user_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._locks.setdefault(user_id, threading.Lock())

    def import_document(self, user_id: str, document: bytes, **kwargs: Any) -> StatementImport:
        if self.extractor is None:
            raise RuntimeError("no text extractor configured")
        return self.import_statement(user_id, self.extractor.extract_text(document), **kwargs)

    def import_statement(
        self,
        user_id: str,
        text: str,
        *,
        history: Sequence[HistoryEntry] | None = None,
        policy: DeduplicationPolicy | None = None,
    ) -> StatementImport:
        result = parse_statement(text, self.registry)
        policy = _policy_for(result, policy or self.settings.deduplication_policy())

        with self._lock_for(user_id):
            earliest = min(tx.date for tx in result.transactions)
            since = earliest - timedelta(days=self.settings.lookback_days)
            existing = list(self.store.list_existing_transactions(user_id, since))
            categories = list(self.store.list_categories(user_id))

            dedup = filter_duplicates(result.transactions, existing, policy)
            matches = self.recognizer.recognize_many(
                (tx.description for tx in result.transactions), categories, history
            )

            by_tx = {id(tx): m for tx, m in zip(result.transactions, matches)}
            to_save = [
                CategorizedTransaction(tx, self._resolve_category(user_id, by_tx[id(tx)], categories))
                for tx in dedup.accepted
            ]
            if to_save:
                self.store.save_transactions(user_id, to_save)

        logger.info(
            "[pipeline] import user=%s bank=%s saved=%d duplicates=%d warnings=%d",
            user_id,
            result.bank_id,
            len(to_save),
            len(dedup.duplicates),
            len(dedup.warnings),
        )
        return StatementImport(parse=result, categories=matches, deduplication=dedup, saved=to_save)

    def _resolve_category(self, user_id: str, match: CategoryMatch, categories: list[Category]) -> CategoryMatch:
        if match.category_id is not None:
            return match

        # Taxonomy hit without a user category: create it once.
        if match.category_name:
            return self._ensure_category(user_id, match.category_name, categories, match)

        if categories:
            first = categories[0]
            return CategoryMatch(first.id, first.name, 0.0, "default")

        return self._ensure_category(
            user_id, self.settings.default_category_name, categories, CategoryMatch(source="default")
        )

    def _ensure_category(
        self,
        user_id: str,
        name: str,
        categories: list[Category],
        match: CategoryMatch,
    ) -> CategoryMatch:
        for category in categories:
            if category.name.lower() == name.lower():
                return CategoryMatch(category.id, category.name, match.confidence, match.source)

        created = self.store.create_category(user_id, name)
        categories.append(created)
        logger.info("[pipeline] created category user=%s name=%s", user_id, created.name)
        return CategoryMatch(created.id, created.name, match.confidence, match.source)
