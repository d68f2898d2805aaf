from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any

from parsers.money import CENTS, to_float


KIND_DEBIT = "debit"
KIND_CREDIT = "credit"

MAX_INSTALLMENTS = 999


@dataclass(frozen=True)
class InstallmentMarker:
    """Position of one parcel inside a fixed-count series.

    ``total`` is ``None`` when the statement lost the total and it could not be
    recovered; such a marker is ambiguous and callers may treat it as a single
    purchase.
    """

    current: int
    total: int | None = None

    def __post_init__(self) -> None:
        if not 1 <= self.current <= MAX_INSTALLMENTS:
            raise ValueError(f"invalid installment current={self.current}")
        if self.total is not None and not self.current <= self.total <= MAX_INSTALLMENTS:
            raise ValueError(f"invalid installment {self.current}/{self.total}")

    @property
    def ambiguous(self) -> bool:
        return self.total is None

    def label(self) -> str:
        return f"{self.current}/{self.total if self.total is not None else '?'}"

    def to_dict(self) -> dict[str, Any]:
        return {"current": self.current, "total": self.total, "ambiguous": self.ambiguous}


@dataclass
class RawTransaction:
    """Candidate as read from one statement line, before normalization."""

    date: date
    description: str
    amount: Decimal
    installment: InstallmentMarker | None = None
    line_number: int | None = None
    card_final: str | None = None
    notes: list[str] = field(default_factory=list)


@dataclass
class ExtractedTransaction:
    date: date
    description: str
    amount: Decimal
    kind: str = KIND_DEBIT
    installment: InstallmentMarker | None = None
    original_description: str = ""
    card_final: str | None = None

    def __post_init__(self) -> None:
        if self.amount < 0:
            raise ValueError("amount must be the non-negative magnitude; use kind for the sign")
        self.amount = self.amount.quantize(CENTS)
        if not self.original_description:
            self.original_description = self.description

    @property
    def is_installment(self) -> bool:
        return self.installment is not None and not self.installment.ambiguous

    @property
    def signed_amount(self) -> Decimal:
        return -self.amount if self.kind == KIND_CREDIT else self.amount

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "date": self.date.isoformat(),
            "description": self.description,
            "originalDescription": self.original_description,
            "amount": to_float(self.amount),
            "kind": self.kind,
            "installment": self.installment.to_dict() if self.installment else None,
        }
        if self.card_final:
            out["cardFinal"] = self.card_final
        return out


@dataclass(frozen=True)
class SkippedLine:
    line_number: int | None
    line: str
    reason: str

    def to_dict(self) -> dict[str, Any]:
        return {"line": self.line_number, "text": self.line, "reason": self.reason}


@dataclass
class ExtractionOutcome:
    transactions: list[RawTransaction] = field(default_factory=list)
    skipped: list[SkippedLine] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    reference_month: date | None = None
    due_date: date | None = None
    total: Decimal | None = None

    def add(self, tx: RawTransaction) -> None:
        self.transactions.append(tx)
        for note in tx.notes:
            self.warnings.append(f"line {tx.line_number}: {note}" if tx.line_number is not None else note)

    def skip(self, line_number: int | None, line: str, reason: str) -> None:
        self.skipped.append(SkippedLine(line_number, line, reason))
