from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Iterable, Protocol, Sequence

from parsers.models import KIND_DEBIT, ExtractedTransaction, InstallmentMarker
from parsers.money import CENTS, to_float


ACTION_IMPORT = "import"
ACTION_DUPLICATE = "duplicate"

REASON_IDENTICAL = "identical transaction already exists"
REASON_DUPLICATE_ALLOWED = "duplicate allowed by policy"


class Fingerprintable(Protocol):
    date: date
    description: str
    amount: Decimal
    kind: str
    installment: InstallmentMarker | None
    original_description: str | None


@dataclass(frozen=True)
class PersistedTransaction:
    """A transaction the user already has, as read from the store."""

    date: date
    description: str
    amount: Decimal
    kind: str = KIND_DEBIT
    installment: InstallmentMarker | None = None
    original_description: str | None = None
    id: str | None = None
    category_id: str | None = None

    @classmethod
    def from_extracted(cls, tx: ExtractedTransaction, **extra: Any) -> PersistedTransaction:
        return cls(
            date=tx.date,
            description=tx.description,
            amount=tx.amount,
            kind=tx.kind,
            installment=tx.installment,
            original_description=tx.original_description,
            **extra,
        )


@dataclass(frozen=True)
class DeduplicationPolicy:
    only_current_installment: bool = True
    allow_exact_duplicates: bool = False
    # Defaults to the current month when not given.
    reference_month: date | None = None

    def statement_month(self) -> str:
        ref = self.reference_month or date.today()
        return f"{ref.year:04d}-{ref.month:02d}"


@dataclass(frozen=True)
class DeduplicationDecision:
    transaction: ExtractedTransaction
    action: str
    fingerprint: str
    group_id: str | None = None
    reason: str | None = None
    warning: str | None = None

    @property
    def accepted(self) -> bool:
        return self.action == ACTION_IMPORT

    def to_dict(self) -> dict[str, Any]:
        return {
            "action": self.action,
            "reason": self.reason,
            "warning": self.warning,
            "fingerprint": self.fingerprint,
            "groupId": self.group_id,
            "transaction": self.transaction.to_dict(),
        }


@dataclass
class DeduplicationResult:
    decisions: list[DeduplicationDecision] = field(default_factory=list)

    @property
    def accepted(self) -> list[ExtractedTransaction]:
        return [d.transaction for d in self.decisions if d.accepted]

    @property
    def duplicates(self) -> list[DeduplicationDecision]:
        return [d for d in self.decisions if d.action == ACTION_DUPLICATE]

    @property
    def warnings(self) -> list[DeduplicationDecision]:
        return [d for d in self.decisions if d.warning]

    def stats(self) -> dict[str, int]:
        return {
            "totalAnalyzed": len(self.decisions),
            "toImport": len(self.accepted),
            "duplicates": len(self.duplicates),
            "warnings": len(self.warnings),
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            "accepted": [tx.to_dict() for tx in self.accepted],
            "duplicates": [d.to_dict() for d in self.duplicates],
            "warnings": [d.to_dict() for d in self.warnings],
            "stats": self.stats(),
        }


_PARC_TOKEN_RE = re.compile(r"(?i)PARC\s*\d{1,2}\s*/\s*\d{0,2}")
_PARCELA_RE = re.compile(r"(?i)\bparcela\s*\d{1,3}\s*(?:/|\s+de\s+)\s*\d{1,3}")
_PAREN_FRACTION_RE = re.compile(r"\(\s*\d{1,3}\s*/\s*\d{1,3}\s*\)")
_TRAILING_FRACTION_RE = re.compile(r"\s\d{1,2}/\d{1,2}\s*$")
_SPACES_RE = re.compile(r"\s+")


def _md5(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def _amount_2dp(amount: Decimal) -> str:
    return str(abs(amount).quantize(CENTS))


def base_description(description: str) -> str:
    """Description with installment tokens removed, for grouping parcels."""
    s = _PARC_TOKEN_RE.sub(" ", description or "")
    s = _PARCELA_RE.sub(" ", s)
    s = _PAREN_FRACTION_RE.sub(" ", s)
    s = _TRAILING_FRACTION_RE.sub(" ", s)
    return _SPACES_RE.sub(" ", s).strip().lower()


def fingerprint(tx: Fingerprintable) -> str:
    original = tx.original_description or tx.description
    raw = "|".join([original, _amount_2dp(tx.amount), tx.date.isoformat(), tx.kind])
    return _md5(raw.lower())


def _has_group(tx: Fingerprintable) -> bool:
    return tx.installment is not None and tx.installment.total is not None


def group_id(tx: Fingerprintable) -> str | None:
    """Same id for every parcel of one purchase, whatever month it was billed in.

    Ambiguous markers (total lost) do not form a group.
    """
    if not _has_group(tx):
        return None
    raw = "|".join([base_description(tx.description), _amount_2dp(tx.amount), str(tx.installment.total)])
    return "parc_" + _md5(raw)[:12]


def _month_key(d: date) -> str:
    return f"{d.year:04d}-{d.month:02d}"


def filter_duplicates(
    candidates: Sequence[ExtractedTransaction],
    existing: Iterable[Fingerprintable],
    policy: DeduplicationPolicy | None = None,
) -> DeduplicationResult:
    """Classify each candidate as import, duplicate or import-with-warning.

    Pure and deterministic: decisions keep the candidates' order and depend only
    on the arguments.
    """
    policy = policy or DeduplicationPolicy()
    statement_month = policy.statement_month()

    existing_fingerprints: set[str] = set()
    existing_groups: dict[str, list[Fingerprintable]] = {}
    for tx in existing:
        existing_fingerprints.add(fingerprint(tx))
        gid = group_id(tx)
        if gid is not None:
            existing_groups.setdefault(gid, []).append(tx)

    result = DeduplicationResult()
    for tx in candidates:
        fp = fingerprint(tx)
        gid = group_id(tx)

        if fp in existing_fingerprints:
            if policy.allow_exact_duplicates:
                decision = DeduplicationDecision(tx, ACTION_IMPORT, fp, gid, warning=REASON_DUPLICATE_ALLOWED)
            else:
                decision = DeduplicationDecision(tx, ACTION_DUPLICATE, fp, gid, REASON_IDENTICAL)
        elif gid is not None and existing_groups.get(gid):
            decision = _decide_known_group(tx, fp, gid, existing_groups[gid], policy, statement_month)
        else:
            decision = DeduplicationDecision(tx, ACTION_IMPORT, fp, gid)

        result.decisions.append(decision)

    return result


def _decide_known_group(
    tx: ExtractedTransaction,
    fp: str,
    gid: str,
    group: list[Fingerprintable],
    policy: DeduplicationPolicy,
    statement_month: str,
) -> DeduplicationDecision:
    label = tx.installment.label()
    parcel_exists = any(member.installment.current == tx.installment.current for member in group)

    if not policy.only_current_installment:
        if parcel_exists:
            return DeduplicationDecision(tx, ACTION_DUPLICATE, fp, gid, f"parcel {label} was already imported")
        return DeduplicationDecision(tx, ACTION_IMPORT, fp, gid)

    if _month_key(tx.date) != statement_month:
        reason = f"parcel {label} does not belong to the statement month ({statement_month})"
        return DeduplicationDecision(tx, ACTION_DUPLICATE, fp, gid, reason)
    if parcel_exists:
        return DeduplicationDecision(tx, ACTION_DUPLICATE, fp, gid, f"parcel {label} already exists")

    warning = f"installment group already exists, importing parcel {label} only"
    return DeduplicationDecision(tx, ACTION_IMPORT, fp, gid, warning=warning)


@dataclass
class InstallmentGroup:
    id: str
    base_description: str
    total: int
    amount: Decimal
    parcels: list[ExtractedTransaction] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "baseDescription": self.base_description,
            "total": self.total,
            "amount": to_float(self.amount),
            "parcels": [tx.to_dict() for tx in self.parcels],
        }


def group_by_installment(
    transactions: Iterable[ExtractedTransaction],
) -> tuple[list[InstallmentGroup], list[ExtractedTransaction]]:
    """Split into installment groups (first-seen order) and single purchases."""
    groups: dict[str, InstallmentGroup] = {}
    singles: list[ExtractedTransaction] = []
    for tx in transactions:
        gid = group_id(tx)
        if gid is None:
            singles.append(tx)
            continue
        if gid not in groups:
            groups[gid] = InstallmentGroup(gid, tx.description, tx.installment.total, tx.amount)
        groups[gid].parcels.append(tx)
    return list(groups.values()), singles


@dataclass(frozen=True)
class Recommendation:
    level: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"level": self.level, "message": self.message}


@dataclass
class ImportValidation:
    result: DeduplicationResult
    valid: bool
    recommendations: list[Recommendation]

    def to_dict(self) -> dict[str, Any]:
        out = self.result.to_dict()
        out["valid"] = self.valid
        out["recommendations"] = [r.to_dict() for r in self.recommendations]
        return out


def recommendations_for(result: DeduplicationResult) -> list[Recommendation]:
    recs: list[Recommendation] = []

    if result.duplicates:
        recs.append(Recommendation("warning", f"{len(result.duplicates)} duplicate transaction(s) will be ignored"))

    known_groups = [d for d in result.warnings if d.warning != REASON_DUPLICATE_ALLOWED]
    if known_groups:
        recs.append(
            Recommendation(
                "info",
                f"{len(known_groups)} installment group(s) already exist; importing the statement month's parcel only",
            )
        )

    if not result.accepted:
        recs.append(Recommendation("error", "nothing new to import; every transaction already exists"))

    return recs


def import_is_valid(result: DeduplicationResult, policy: DeduplicationPolicy) -> bool:
    """Nothing flagged, or the policy explicitly accepts exact duplicates."""
    return not (result.duplicates or result.warnings) or policy.allow_exact_duplicates


def validate_import(
    candidates: Sequence[ExtractedTransaction],
    existing: Iterable[Fingerprintable],
    policy: DeduplicationPolicy | None = None,
) -> ImportValidation:
    """Dry run of :func:`filter_duplicates` for previews."""
    policy = policy or DeduplicationPolicy()
    result = filter_duplicates(candidates, existing, policy)
    return ImportValidation(
        result=result,
        valid=import_is_valid(result, policy),
        recommendations=recommendations_for(result),
    )
