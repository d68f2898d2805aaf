from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Sequence

from parsers.models import MAX_INSTALLMENTS, InstallmentMarker


SOURCE_NONE = "none"
SOURCE_EXPLICIT = "explicit"
SOURCE_ADJACENT_LINE = "adjacent_line"
SOURCE_AMOUNT_DIGITS = "amount_digits"
SOURCE_UNRESOLVED = "unresolved"


@dataclass(frozen=True)
class InstallmentPolicy:
    """Tuning knobs for the digit-loss recovery heuristic.

    The values approximate a known text-extraction defect (the last digit of
    the installment total glued to, or dropped before, the amount). They are
    empirical and meant to be overridden from configuration.
    """

    suspicious_amount: Decimal = Decimal("200")
    min_amount_digits: int = 3
    min_correction_delta: Decimal = Decimal("50")
    max_corrected_amount: Decimal = Decimal("500")
    max_recovered_total: int = 99
    lookahead_lines: int = 3


DEFAULT_INSTALLMENT_POLICY = InstallmentPolicy()


@dataclass(frozen=True)
class InstallmentToken:
    current: int
    total: int | None
    start: int
    end: int
    pattern: str

    @property
    def partial(self) -> bool:
        return self.total is None


@dataclass(frozen=True)
class InstallmentResolution:
    marker: InstallmentMarker | None
    amount: Decimal
    source: str
    description: str
    note: str | None = None

    @property
    def amount_corrected(self) -> bool:
        return self.source == SOURCE_AMOUNT_DIGITS

    @property
    def ambiguous(self) -> bool:
        return self.marker is not None and self.marker.ambiguous


# Most specific first.
_EXPLICIT_PATTERNS: list[tuple[str, re.Pattern[str]]] = [
    ("parc_fixed", re.compile(r"(?i)PARC\s*(\d{2})\s*/\s*(\d{2})(?!\d)")),
    ("parc", re.compile(r"(?i)PARC\s*(\d{1,2})\s*/\s*(\d{1,2})(?!\d)")),
    ("parcela_slash", re.compile(r"(?i)\bparcela\s*(\d{1,3})\s*/\s*(\d{1,3})(?!\d)")),
    ("parcela_de", re.compile(r"(?i)\bparcela\s+(\d{1,3})\s+de\s+(\d{1,3})(?!\d)")),
    ("parenthesized", re.compile(r"\(\s*(\d{1,3})\s*/\s*(\d{1,3})\s*\)")),
]

# "PARC01/" with nothing after the slash.
_OPEN_PARC_RE = re.compile(r"(?i)PARC\s*(\d{1,2})\s*/(?!\s*\d)")

# "LOJA X 03/10" at the very end of the description.
_BARE_SUFFIX_RE = re.compile(r"(?<![\d/])(\d{1,2})\s*/\s*(\d{1,2})\s*$")

_SAME_LINE_DIGIT_RE = re.compile(r"^\s*(\d{1,2})(?![\d,.])")
# the whole line must be the number; "15 OUT PADARIA 12,00" is a dated row
_NEXT_LINE_DIGIT_RE = re.compile(r"^(\d{1,2})$")

_STRIP_PATTERNS: list[re.Pattern[str]] = [
    re.compile(r"(?i)PARC\s*\d{1,2}\s*/\s*\d{0,2}(?!\d)"),
    re.compile(r"(?i)\bparcela\s*\d{1,3}\s*(?:/|de)\s*\d{1,3}(?!\d)"),
    re.compile(r"\(\s*\d{1,3}\s*/\s*\d{1,3}\s*\)"),
]


def _is_valid(current: int, total: int) -> bool:
    return 1 <= current <= total <= MAX_INSTALLMENTS


def find_installment_token(description: str, *, tx_date: date | None = None) -> InstallmentToken | None:
    """Locate the installment marker in a description, without any recovery."""
    text = description or ""

    for name, pattern in _EXPLICIT_PATTERNS:
        for m in pattern.finditer(text):
            current, total = int(m.group(1)), int(m.group(2))
            if total == 0 and name.startswith("parc") and current >= 1:
                return InstallmentToken(current, None, m.start(), m.end(), name)
            if _is_valid(current, total):
                return InstallmentToken(current, total, m.start(), m.end(), name)

    m = _OPEN_PARC_RE.search(text)
    if m and int(m.group(1)) >= 1:
        return InstallmentToken(int(m.group(1)), None, m.start(), m.end(), "parc_open")

    m = _BARE_SUFFIX_RE.search(text)
    if m:
        current, total = int(m.group(1)), int(m.group(2))
        looks_like_own_date = tx_date is not None and (current, total) == (tx_date.day, tx_date.month)
        if _is_valid(current, total) and total >= 2 and not looks_like_own_date:
            return InstallmentToken(current, total, m.start(), m.end(), "bare_suffix")

    return None


def extract_installment(description: str, *, tx_date: date | None = None) -> InstallmentMarker | None:
    token = find_installment_token(description, tx_date=tx_date)
    if token is None or token.partial:
        return None
    return InstallmentMarker(token.current, token.total)


def strip_installment_tokens(text: str, *, bare_suffix: bool = False) -> str:
    out = text or ""
    for pattern in _STRIP_PATTERNS:
        out = pattern.sub(" ", out)
    if bare_suffix:
        out = _BARE_SUFFIX_RE.sub(" ", out)
    return re.sub(r"\s+", " ", out).strip()


def _recover_from_adjacent(
    token: InstallmentToken,
    description: str,
    following_lines: Sequence[str],
    policy: InstallmentPolicy,
) -> tuple[int, str] | None:
    def plausible(n: int) -> bool:
        return token.current <= n <= policy.max_recovered_total

    tail = description[token.end :]
    m = _SAME_LINE_DIGIT_RE.match(tail)
    if m and plausible(int(m.group(1))):
        cleaned = (description[: token.end] + tail[m.end() :]).strip()
        return int(m.group(1)), cleaned

    for line in list(following_lines)[: policy.lookahead_lines]:
        m = _NEXT_LINE_DIGIT_RE.match((line or "").strip())
        if m and plausible(int(m.group(1))):
            return int(m.group(1)), description

    return None


def _recover_from_amount(
    token: InstallmentToken,
    amount: Decimal,
    policy: InstallmentPolicy,
) -> tuple[int, Decimal] | None:
    if amount <= policy.suspicious_amount:
        return None

    integer_digits = str(int(amount))
    if len(integer_digits) < policy.min_amount_digits:
        return None
    cents = f"{amount:.2f}".split(".")[1]

    for width in (1, 2):
        if len(integer_digits) <= width:
            break
        total = int(integer_digits[:width])
        if not max(token.current, 2) <= total <= policy.max_recovered_total:
            continue
        remainder = Decimal(f"{integer_digits[width:]}.{cents}")
        if remainder <= 0 or remainder >= amount:
            continue
        if amount - remainder <= policy.min_correction_delta:
            continue
        if remainder >= policy.max_corrected_amount:
            continue
        return total, remainder

    return None


def resolve_installment(
    description: str,
    amount: Decimal,
    *,
    following_lines: Sequence[str] = (),
    tx_date: date | None = None,
    policy: InstallmentPolicy = DEFAULT_INSTALLMENT_POLICY,
) -> InstallmentResolution:
    """Extract current/total from a description and repair a lost total digit.

    ``amount`` is the non-negative magnitude read from the same line. Recovery
    runs only when the total is zero or missing: first an isolated number on
    the same line or the next ``policy.lookahead_lines`` lines, then the
    leading digits of a suspicious amount. When neither yields a candidate
    that satisfies every bound the marker is returned with ``total=None``.
    """
    token = find_installment_token(description, tx_date=tx_date)
    if token is None:
        return InstallmentResolution(None, amount, SOURCE_NONE, description)

    if token.total is not None:
        return InstallmentResolution(
            InstallmentMarker(token.current, token.total), amount, SOURCE_EXPLICIT, description
        )

    adjacent = _recover_from_adjacent(token, description, following_lines, policy)
    if adjacent is not None:
        total, cleaned = adjacent
        return InstallmentResolution(
            InstallmentMarker(token.current, total),
            amount,
            SOURCE_ADJACENT_LINE,
            cleaned,
            note=f"installment total {total} recovered from adjacent text",
        )

    from_amount = _recover_from_amount(token, amount, policy)
    if from_amount is not None:
        total, corrected = from_amount
        return InstallmentResolution(
            InstallmentMarker(token.current, total),
            corrected,
            SOURCE_AMOUNT_DIGITS,
            description,
            note=f"installment total {total} recovered from amount; amount {amount} corrected to {corrected}",
        )

    return InstallmentResolution(
        InstallmentMarker(token.current, None),
        amount,
        SOURCE_UNRESOLVED,
        description,
        note=f"ambiguous installment {token.current}/?: total could not be recovered",
    )
