from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation


CENTS = Decimal("0.01")

# "1.234,56" or "1234,56"
AMOUNT_TOKEN = r"(?:\d{1,3}(?:\.\d{3})+|\d+),\d{2}"

# Optional sign (also the "- R$" / "-R$" forms) + optional currency symbol + amount.
SIGNED_AMOUNT = rf"[-−–+]?\s*(?:R\$\s*)?[-−–]?\s*{AMOUNT_TOKEN}"

AMOUNT_AT_END_RE = re.compile(rf"(?P<amount>{SIGNED_AMOUNT})\s*$", re.IGNORECASE)
AMOUNT_ONLY_RE = re.compile(rf"^\s*(?P<amount>{SIGNED_AMOUNT})\s*$", re.IGNORECASE)

# Installment fraction glued to the amount, e.g. "PARC01/0511,89" -> "PARC01/05 11,89".
# Two-digit fractions win over one-digit ones, so "1/511,89" becomes "1/5 11,89".
_GLUED_FRACTION_RE = re.compile(rf"(?<!\d)(\d{{2}}/\d{{2}}|\d/\d)(?=[-−–]?{AMOUNT_TOKEN}\s*$)")


def parse_brl_amount(value: str | None) -> Decimal | None:
    """Parse a Brazilian-notation amount ("-R$ 1.234,56") into a signed Decimal."""
    if value is None:
        return None
    s = value.strip()
    if not s:
        return None

    compact = s.replace(" ", "").replace("−", "-").replace("–", "-")
    first_digit = next((i for i, ch in enumerate(compact) if ch.isdigit()), len(compact))
    # "-1,00", "-R$ 1,00" and "R$ -1,00" are all negative
    sign = -1 if "-" in compact[:first_digit] else 1

    # Keep digits and separators
    s = re.sub(r"[^0-9,\.]", "", s)
    if not s or not any(ch.isdigit() for ch in s):
        return None
    if "," in s:
        s = s.replace(".", "").replace(",", ".")

    try:
        d = Decimal(s)
    except InvalidOperation:
        return None

    return (d * sign).quantize(CENTS)


def format_brl_amount(value: Decimal | float | int | str, *, symbol: bool = False) -> str:
    """Format a number in Brazilian notation: 1234.56 -> "1.234,56"."""
    d = Decimal(str(value)).quantize(CENTS)
    text = f"{abs(d):,.2f}".replace(",", "_").replace(".", ",").replace("_", ".")
    if symbol:
        text = f"R$ {text}"
    if d < 0:
        text = f"-{text}"
    return text


def to_float(value: Decimal) -> float:
    return float(value.quantize(CENTS))


def separate_glued_amount(line: str) -> str:
    if not line:
        return line
    return _GLUED_FRACTION_RE.sub(r"\1 ", line, count=1)


def split_amount_at_end(line: str) -> tuple[str, str] | None:
    """Return (text before the amount, amount token) when the line ends with an amount."""
    m = AMOUNT_AT_END_RE.search(line)
    if not m:
        return None
    return line[: m.start()].rstrip(), m.group("amount")
