from __future__ import annotations

import re
from datetime import date

from parsers.base import (
    FormatParser,
    align_to_reference,
    build_candidate,
    extract_due_date,
    find_section_start,
    is_summary_total,
    month_start,
    safe_date,
)
from parsers.installments import InstallmentPolicy
from parsers.models import ExtractionOutcome
from parsers.money import parse_brl_amount, split_amount_at_end
from parsers.text import MONTHS_PT, flatten_text, fold, has_any, non_empty_lines


BANK_ID = "inter"
BANK_NAME = "Banco Inter"

_OTHER_BANKS = ("picpay", "nubank", "willbank", "sicredi")

_MONTH_ALT = "|".join(MONTHS_PT)

# "05 de out. 2025 AMAZON BR - R$ 120,00" / "12 de out. 2025 PAGAMENTO + R$ 1.000,00"
_INTER_LINE_RE = re.compile(
    rf"(?i)^(?P<day>\d{{1,2}})\s+de\s+(?P<mon>{_MONTH_ALT})\.?\s+(?P<year>\d{{4}})\s*(?P<rest>.+)$"
)
_NUMERIC_LINE_RE = re.compile(r"^(?P<day>\d{1,2})/(?P<month>\d{1,2})/(?P<year>\d{4})\s*(?P<rest>.+)$")
_DUE_RE = re.compile(r"(?i)data\s+de\s+vencimento\s*:?\s*(\d{2})/(\d{2})/(\d{4})")


def looks_like_inter(text: str) -> bool:
    t = fold(text)
    if has_any(t, _OTHER_BANKS):
        return False

    strong = (
        "cartao inter" in t
        or "banco inter" in t
        or ("resumo da fatura" in t and "ficha de compensacao" in t)
    )
    weak = "conta do inter" in t or ("resumo da fatura" in t and "autenticacao mecanica" in t)
    return strong or weak


def _is_section_header(line: str) -> bool:
    low = fold(line)
    if "despesas da fatura" in low:
        return True
    compact = low.replace(" ", "")
    return "datamovimentacao" in compact and "beneficiario" in compact


def _is_noise(line: str) -> bool:
    low = fold(line)
    if len(line) < 10:
        return True
    return (
        "beneficiario" in low
        or "resumo da fatura" in low
        or "ficha de compensacao" in low
        or "autenticacao mecanica" in low
        or is_summary_total(low)
    )


def extract_due(text: str) -> date | None:
    m = _DUE_RE.search(flatten_text(text))
    if m:
        return safe_date(int(m.group(3)), int(m.group(2)), int(m.group(1)))
    return extract_due_date(text)


def extract_inter(text: str, policy: InstallmentPolicy) -> ExtractionOutcome:
    lines = non_empty_lines(text)
    due = extract_due(text)
    reference_month = month_start(due) if due else None
    outcome = ExtractionOutcome(due_date=due, reference_month=reference_month)

    start = find_section_start(lines, _is_section_header, lambda ln: bool(_INTER_LINE_RE.match(ln)))

    for idx in range(start, len(lines)):
        line = lines[idx]
        line_no = idx + 1

        m = _INTER_LINE_RE.match(line)
        if m:
            tx_date = safe_date(int(m.group("year")), MONTHS_PT[m.group("mon").lower()], int(m.group("day")))
        else:
            m = _NUMERIC_LINE_RE.match(line)
            if not m:
                continue
            tx_date = safe_date(int(m.group("year")), int(m.group("month")), int(m.group("day")))

        if _is_noise(line):
            outcome.skip(line_no, line, "noise")
            continue
        if tx_date is None:
            outcome.skip(line_no, line, "invalid_date")
            continue

        split = split_amount_at_end(m.group("rest"))
        if split is None:
            outcome.skip(line_no, line, "no_amount")
            continue
        description, amount_text = split

        magnitude = parse_brl_amount(amount_text)
        if magnitude is None or magnitude == 0:
            outcome.skip(line_no, line, "invalid_amount")
            continue
        # "+ R$" is a payment or refund; "- R$" and unsigned values are expenses
        amount = -abs(magnitude) if "+" in amount_text else abs(magnitude)

        candidate = build_candidate(
            tx_date=tx_date,
            description=description,
            amount=amount,
            policy=policy,
            following_lines=lines[idx + 1 : idx + 1 + policy.lookahead_lines],
            line_number=line_no,
        )
        marker = candidate.installment
        if marker is not None and marker.total is not None and marker.total > 1:
            candidate.date = align_to_reference(candidate.date, reference_month)
        outcome.add(candidate)

    return outcome


PARSER = FormatParser(
    bank_id=BANK_ID,
    bank_name=BANK_NAME,
    detect=looks_like_inter,
    extract=extract_inter,
)
