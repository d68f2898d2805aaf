from __future__ import annotations

import calendar
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Callable, Sequence

from parsers.installments import DEFAULT_INSTALLMENT_POLICY, InstallmentPolicy, resolve_installment
from parsers.models import ExtractedTransaction, ExtractionOutcome, RawTransaction, SkippedLine
from parsers.money import to_float
from parsers.normalizer import normalize_transactions
from parsers.text import MONTHS_PT, flatten_text


DetectFn = Callable[[str], bool]
ExtractFn = Callable[[str, InstallmentPolicy], ExtractionOutcome]


@dataclass(frozen=True)
class DetectionStep:
    bank_id: str
    matched: bool
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"bank": self.bank_id, "matched": self.matched}
        if self.error:
            out["error"] = self.error
        return out


@dataclass
class ParseResult:
    bank_id: str | None
    bank_name: str | None
    transactions: list[ExtractedTransaction] = field(default_factory=list)
    reference_month: date | None = None
    due_date: date | None = None
    total: Decimal | None = None
    warnings: list[str] = field(default_factory=list)
    skipped: list[SkippedLine] = field(default_factory=list)
    detection: list[DetectionStep] = field(default_factory=list)
    fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "bank": self.bank_id,
            "bankName": self.bank_name,
            "fallback": self.fallback,
            "referenceMonth": self.reference_month.strftime("%Y-%m") if self.reference_month else None,
            "dueDate": self.due_date.isoformat() if self.due_date else None,
            "total": to_float(self.total) if self.total is not None else None,
            "transactions": [tx.to_dict() for tx in self.transactions],
            "warnings": list(self.warnings),
            "skipped": [s.to_dict() for s in self.skipped],
            "detection": [step.to_dict() for step in self.detection],
            "debug": {
                "transactionsCount": len(self.transactions),
                "skippedCount": len(self.skipped),
            },
        }


@dataclass(frozen=True)
class FormatParser:
    """One statement layout: a pure detection predicate plus a line extractor."""

    bank_id: str
    bank_name: str
    detect: DetectFn
    extract: ExtractFn
    noise_patterns: tuple[re.Pattern[str], ...] = ()

    def can_parse(self, text: str) -> bool:
        if not text or not text.strip():
            return False
        return bool(self.detect(text))

    def parse(self, text: str, policy: InstallmentPolicy = DEFAULT_INSTALLMENT_POLICY) -> ParseResult:
        if not text or not text.strip():
            return ParseResult(self.bank_id, self.bank_name)

        outcome = self.extract(text, policy)
        txs, too_short = normalize_transactions(outcome.transactions, noise_patterns=self.noise_patterns)
        return ParseResult(
            bank_id=self.bank_id,
            bank_name=self.bank_name,
            transactions=txs,
            reference_month=outcome.reference_month,
            due_date=outcome.due_date,
            total=outcome.total,
            warnings=list(outcome.warnings),
            skipped=[*outcome.skipped, *too_short],
        )


def safe_date(year: int, month: int, day: int) -> date | None:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def month_start(d: date) -> date:
    return d.replace(day=1)


def clamp_to_month(year: int, month: int, day: int) -> date:
    last = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last))


def infer_date(day: int, month: int, reference: date | None, today: date | None = None) -> date | None:
    """Resolve a day/month pair printed without a year.

    With a reference (due) date, months after the reference month belong to the
    previous year. Without one, today's year is used and a date in the future
    is moved one year back.
    """
    if reference is not None:
        year = reference.year - (1 if month > reference.month else 0)
        return safe_date(year, month, day)

    today = today or date.today()
    d = safe_date(today.year, month, day)
    if d is not None and d > today:
        d = safe_date(today.year - 1, month, day)
    return d


def align_to_reference(tx_date: date, reference_month: date | None) -> date:
    if reference_month is None:
        return tx_date
    return clamp_to_month(reference_month.year, reference_month.month, tx_date.day)


_DUE_DATE_DDMMYYYY = re.compile(r"(?i)\bvencimento\b\s*(?:[:\-])?\s*(?:em\s+)?(\d{2})/(\d{2})/(\d{4})\b")
_DUE_DATE_DD_MON = re.compile(r"(?i)\bvencimento\b\s*(?:[:\-])?\s*(\d{2})\s*/\s*([a-z]{3})\b")
_ANY_FULL_DATE = re.compile(r"\b\d{2}/\d{2}/(\d{4})\b")
_ANY_YEAR = re.compile(r"\b(20\d{2})\b")


def extract_due_date(text: str) -> date | None:
    n = flatten_text(text)

    m = _DUE_DATE_DDMMYYYY.search(n)
    if m:
        return safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))

    m = _DUE_DATE_DD_MON.search(n)
    if m:
        mm = MONTHS_PT.get(m.group(2).lower())
        if not mm:
            return None
        # infer year from any explicit dd/MM/yyyy in the document, else fallback to current year
        any_year = _ANY_FULL_DATE.search(n)
        year = int(any_year.group(1)) if any_year else date.today().year
        return safe_date(year, mm, int(m.group(1)))

    return None


def first_year(text: str) -> int | None:
    m = _ANY_YEAR.search(text or "")
    return int(m.group(1)) if m else None


# "Total a pagar R$ ...", "Total: 1.234,56", "total da fatura"; not "Posto Total" or "Total Express"
_SUMMARY_TOTAL_RE = re.compile(
    r"^total\s*(?::|r\$|[\d-]|$)"
    r"|\btotal\s+(?:a pagar|da fatura|de compras|de lancamentos|dos lancamentos|geral|nacional|internacional)\b"
)


def is_summary_total(folded_line: str) -> bool:
    """True for invoice total/summary rows; expects text already passed through ``fold``."""
    return bool(_SUMMARY_TOTAL_RE.search(folded_line.strip()))


def build_candidate(
    *,
    tx_date: date,
    description: str,
    amount: Decimal,
    policy: InstallmentPolicy,
    following_lines: Sequence[str] = (),
    line_number: int | None = None,
    card_final: str | None = None,
) -> RawTransaction:
    """Run installment resolution for one line and keep the amount's sign."""
    resolution = resolve_installment(
        description,
        abs(amount),
        following_lines=following_lines,
        tx_date=tx_date,
        policy=policy,
    )
    value = resolution.amount if amount >= 0 else -resolution.amount
    return RawTransaction(
        date=tx_date,
        description=resolution.description,
        amount=value,
        installment=resolution.marker,
        line_number=line_number,
        card_final=card_final,
        notes=[resolution.note] if resolution.note else [],
    )


def find_section_start(
    lines: Sequence[str],
    is_header: Callable[[str], bool],
    is_first_row: Callable[[str], bool] | None = None,
) -> int:
    """Index of the first line after the section header.

    Falls back to the first line accepted by ``is_first_row`` and then to 0.
    """
    for i, line in enumerate(lines):
        if is_header(line):
            return i + 1
    if is_first_row is not None:
        for i, line in enumerate(lines):
            if is_first_row(line):
                return i
    return 0
