from __future__ import annotations

import re
from datetime import date

from parsers.base import (
    FormatParser,
    build_candidate,
    extract_due_date,
    first_year,
    infer_date,
    month_start,
    safe_date,
)
from parsers.installments import InstallmentPolicy
from parsers.models import ExtractionOutcome
from parsers.money import parse_brl_amount, separate_glued_amount, split_amount_at_end
from parsers.text import non_empty_lines


BANK_ID = "generic"
BANK_NAME = "Generic statement"

_MIN_LINE_LENGTH = 10

_DATE_RE = re.compile(r"^(\d{1,2})/(\d{1,2})(?:/(\d{4}))?(?![\d/])")
_HEADER_PREFIX_RE = re.compile(r"(?i)^(fatura|resumo|cart[aã]o|vencimento|total|saldo)")
_OPERATION_PREFIX_RE = re.compile(r"(?i)^(compra|d[eé]bito|cr[eé]dito|transfer[eê]ncia|saque)\b\s*")


def always(text: str) -> bool:
    return True


def extract_generic(text: str, policy: InstallmentPolicy) -> ExtractionOutcome:
    """Best-effort extraction: a date, then a description, then a trailing amount."""
    lines = non_empty_lines(text)
    due = extract_due_date(text)
    outcome = ExtractionOutcome(due_date=due, reference_month=month_start(due) if due else None)

    anchor = due
    if anchor is None:
        year = first_year(text)
        anchor = date(year, 12, 31) if year else None

    for idx, line in enumerate(lines):
        line_no = idx + 1
        if len(line) < _MIN_LINE_LENGTH or _HEADER_PREFIX_RE.match(line):
            continue

        m = _DATE_RE.match(line)
        if not m:
            continue

        split = split_amount_at_end(separate_glued_amount(line[m.end() :]))
        if split is None:
            outcome.skip(line_no, line, "no_amount")
            continue
        description, amount_text = split

        amount = parse_brl_amount(amount_text)
        if amount is None or amount == 0:
            outcome.skip(line_no, line, "invalid_amount")
            continue

        day, month = int(m.group(1)), int(m.group(2))
        tx_date = safe_date(int(m.group(3)), month, day) if m.group(3) else infer_date(day, month, anchor)
        if tx_date is None:
            outcome.skip(line_no, line, "invalid_date")
            continue

        outcome.add(
            build_candidate(
                tx_date=tx_date,
                description=_OPERATION_PREFIX_RE.sub("", description.strip()),
                amount=amount,
                policy=policy,
                following_lines=lines[idx + 1 : idx + 1 + policy.lookahead_lines],
                line_number=line_no,
            )
        )

    return outcome


PARSER = FormatParser(
    bank_id=BANK_ID,
    bank_name=BANK_NAME,
    detect=always,
    extract=extract_generic,
)
