from __future__ import annotations

import re
from typing import Iterable, Sequence

from parsers.installments import strip_installment_tokens
from parsers.models import KIND_CREDIT, KIND_DEBIT, ExtractedTransaction, RawTransaction, SkippedLine
from parsers.text import collapse_spaces


MIN_DESCRIPTION_LENGTH = 3

# Noise shared by every layout: currency symbols, stray separators, trailing "-".
_COMMON_NOISE: list[re.Pattern[str]] = [
    re.compile(r"(?i)R\$"),
    re.compile(r"^[\s\-–|*.]+"),
    re.compile(r"[\s\-–|]+$"),
]


def clean_description(
    description: str,
    *,
    noise_patterns: Sequence[re.Pattern[str]] = (),
    strip_bare_fraction: bool = False,
) -> str:
    text = strip_installment_tokens(description, bare_suffix=strip_bare_fraction)
    for pattern in noise_patterns:
        text = pattern.sub(" ", text)
    for pattern in _COMMON_NOISE:
        text = pattern.sub(" ", text)
    return collapse_spaces(text)


def normalize_transaction(
    raw: RawTransaction,
    *,
    noise_patterns: Sequence[re.Pattern[str]] = (),
    min_length: int = MIN_DESCRIPTION_LENGTH,
) -> ExtractedTransaction | SkippedLine:
    original = collapse_spaces(raw.description)
    cleaned = clean_description(
        original,
        noise_patterns=noise_patterns,
        strip_bare_fraction=raw.installment is not None,
    )
    if len(cleaned) < min_length:
        return SkippedLine(raw.line_number, original, "description_too_short")

    kind = KIND_CREDIT if raw.amount < 0 else KIND_DEBIT
    return ExtractedTransaction(
        date=raw.date,
        description=cleaned,
        amount=abs(raw.amount),
        kind=kind,
        installment=raw.installment,
        original_description=original,
        card_final=raw.card_final,
    )


def normalize_transactions(
    raw_transactions: Iterable[RawTransaction],
    *,
    noise_patterns: Sequence[re.Pattern[str]] = (),
    min_length: int = MIN_DESCRIPTION_LENGTH,
) -> tuple[list[ExtractedTransaction], list[SkippedLine]]:
    """Turn raw candidates into canonical transactions, in input order."""
    txs: list[ExtractedTransaction] = []
    skipped: list[SkippedLine] = []
    for raw in raw_transactions:
        result = normalize_transaction(raw, noise_patterns=noise_patterns, min_length=min_length)
        if isinstance(result, SkippedLine):
            skipped.append(result)
        else:
            txs.append(result)
    return txs, skipped
