from __future__ import annotations

import re
from datetime import date

from parsers.base import (
    FormatParser,
    align_to_reference,
    build_candidate,
    extract_due_date,
    find_section_start,
    first_year,
    infer_date,
    is_summary_total,
    month_start,
    safe_date,
)
from parsers.installments import InstallmentPolicy
from parsers.models import ExtractionOutcome, RawTransaction
from parsers.money import AMOUNT_ONLY_RE, parse_brl_amount, separate_glued_amount, split_amount_at_end
from parsers.text import MONTHS_PT_FULL, flatten_text, fold, has_any, non_empty_lines


BANK_ID = "willbank"
BANK_NAME = "WillBank"

_OTHER_BANKS = ("picpay", "nubank", "cartao inter", "banco inter", "sicredi")

_MONTH_FULL_ALT = "|".join(MONTHS_PT_FULL)

_LANCAMENTOS_RE = re.compile(rf"lancamentos\s+de\s+({_MONTH_FULL_ALT})")
_FECHAMENTO_RE = re.compile(r"fechamento\s+da\s+fatura\s*:?\s*(\d{2})/(\d{2})/(\d{4})")
_PARCELA_RE = re.compile(r"(?i)^parcela\s+\d+\s+de\s+\d+$")
_DATE_ONLY_RE = re.compile(r"^(\d{2})/(\d{2})/(\d{4})$")
_DATE_PREFIX_RE = re.compile(r"^(?P<day>\d{2})/(?P<month>\d{2})(?:/(?P<year>\d{4}))?\s+(?P<rest>.+)$")
_CARD_NUMBER_RE = re.compile(r"(?i)^cart[aã]o\s+\d+")

# description, optional "Parcela X de Y", date and value are searched this far below
_BLOCK_SPAN = 6


def looks_like_willbank(text: str) -> bool:
    t = fold(text)
    indicators = (
        "willbank" in t
        or "will financeira" in t
        or ("lancamentos de" in t and "gastos" in t)
    )
    return indicators and not has_any(t, _OTHER_BANKS)


def extract_reference_month(text: str) -> date | None:
    flat = fold(flatten_text(text))

    m = _LANCAMENTOS_RE.search(flat)
    if m:
        year = first_year(flat) or date.today().year
        return date(year, MONTHS_PT_FULL[m.group(1)], 1)

    m = _FECHAMENTO_RE.search(flat)
    if m:
        return safe_date(int(m.group(3)), int(m.group(2)), 1)

    due = extract_due_date(text)
    return month_start(due) if due else None


def _is_noise(line: str) -> bool:
    low = fold(line)
    if "lancamentos de" in low and "gastos" in low:
        return False
    if "lancamentos de" in low or "fechamento da fatura" in low:
        return True
    if "gastos" in low and len(low) < 10 and "parcelamentos" not in low:
        return True
    if "data" in low and "descricao" in low:
        return True
    if "valor" in low and len(low) < 20:
        return True
    if "previsao proximo fechamento" in low or "lancamentos em parcelas" in low:
        return True
    if is_summary_total(low) or _CARD_NUMBER_RE.match(line):
        return True
    return len(line) < 3


def _is_section_header(line: str) -> bool:
    low = fold(line)
    return "gastos" in low and len(low) < 40 and "parcelamentos" not in low


def _looks_like_description(line: str) -> bool:
    if not line[:1].isalpha() or not 3 < len(line) < 100:
        return False
    if _PARCELA_RE.match(line) or _CARD_NUMBER_RE.match(line):
        return False
    return AMOUNT_ONLY_RE.match(line) is None and not line.upper().startswith("R$")


def _read_block(lines: list[str], idx: int) -> tuple[str | None, date | None, str | None, int]:
    """Scan the lines below a description for its parcel, date and value."""
    parcel: str | None = None
    tx_date: date | None = None
    last = idx
    for j in range(idx + 1, min(idx + 1 + _BLOCK_SPAN, len(lines))):
        nxt = lines[j]
        if _is_noise(nxt):
            continue
        if _PARCELA_RE.match(nxt):
            parcel, last = nxt, j
            continue
        m_date = _DATE_ONLY_RE.match(nxt)
        if m_date and tx_date is None:
            tx_date = safe_date(int(m_date.group(3)), int(m_date.group(2)), int(m_date.group(1)))
            last = j
            continue
        m_amount = AMOUNT_ONLY_RE.match(nxt)
        if m_amount and tx_date is not None:
            return parcel, tx_date, m_amount.group("amount"), j
        if _looks_like_description(nxt):
            break
    return parcel, tx_date, None, last


def _align(candidate: RawTransaction, reference_month: date | None) -> RawTransaction:
    marker = candidate.installment
    if marker is not None and marker.total is not None and marker.total > 1:
        candidate.date = align_to_reference(candidate.date, reference_month)
    return candidate


def extract_willbank(text: str, policy: InstallmentPolicy) -> ExtractionOutcome:
    lines = non_empty_lines(text)
    reference_month = extract_reference_month(text)
    outcome = ExtractionOutcome(due_date=extract_due_date(text), reference_month=reference_month)

    start = find_section_start(lines, _is_section_header)

    idx = start
    while idx < len(lines):
        line = lines[idx]
        line_no = idx + 1

        if _is_noise(line):
            idx += 1
            continue

        if _looks_like_description(line):
            parcel, tx_date, amount_text, last = _read_block(lines, idx)
            amount = parse_brl_amount(amount_text) if amount_text else None
            if tx_date is not None and amount is not None and amount != 0:
                description = f"{line} {parcel}" if parcel else line
                candidate = build_candidate(
                    tx_date=tx_date,
                    description=description,
                    amount=amount,
                    policy=policy,
                    line_number=line_no,
                )
                outcome.add(_align(candidate, reference_month))
                idx = last + 1
                continue

        m = _DATE_PREFIX_RE.match(line)
        if m:
            day, month = int(m.group("day")), int(m.group("month"))
            if m.group("year"):
                tx_date = safe_date(int(m.group("year")), month, day)
            else:
                tx_date = infer_date(day, month, reference_month)
            split = split_amount_at_end(separate_glued_amount(m.group("rest")))
            amount = parse_brl_amount(split[1]) if split else None
            if tx_date is None or split is None or amount is None or amount == 0:
                outcome.skip(line_no, line, "unparseable_line")
            else:
                candidate = build_candidate(
                    tx_date=tx_date,
                    description=split[0],
                    amount=amount,
                    policy=policy,
                    following_lines=lines[idx + 1 : idx + 1 + policy.lookahead_lines],
                    line_number=line_no,
                )
                outcome.add(_align(candidate, reference_month))

        idx += 1

    return outcome


PARSER = FormatParser(
    bank_id=BANK_ID,
    bank_name=BANK_NAME,
    detect=looks_like_willbank,
    extract=extract_willbank,
)
