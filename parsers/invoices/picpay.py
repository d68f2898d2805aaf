from __future__ import annotations

import re
from datetime import date

from parsers.base import (
    FormatParser,
    build_candidate,
    extract_due_date,
    find_section_start,
    first_year,
    infer_date,
    month_start,
    safe_date,
)
from parsers.installments import InstallmentPolicy
from parsers.models import ExtractionOutcome
from parsers.money import parse_brl_amount, separate_glued_amount, split_amount_at_end
from parsers.text import fold, has_any, non_empty_lines


BANK_ID = "picpay"
BANK_NAME = "PicPay"

_OTHER_BANKS = ("nubank", "cartao inter", "banco inter", "willbank")
_STRONG_MARKERS = ("pagamento de fatura pelo picpa", "picpay mastercard")

# "07/10 DESCRICAO 12,90", "28/10SHEIN *SHU FEPARC01/0267,90", "07/10/2025 ..."
_TX_LINE_RE = re.compile(r"^(?P<day>\d{2})/(?P<month>\d{2})(?:/(?P<year>\d{4}))?\s*(?P<rest>\S.*)$")
_CARD_FINAL_RE = re.compile(r"(?i)\bfinal\s+(\d{4})\b")


def looks_like_picpay(text: str) -> bool:
    t = fold(text)
    if "picpay" in t and not has_any(t, _OTHER_BANKS):
        return True
    if has_any(t, _STRONG_MARKERS):
        return True
    return "mastercard" in t and "transacoes nacionais" in t


def _is_section_header(line: str) -> bool:
    low = fold(line)
    return (
        "transacoes nacionais" in low
        or "despesas do mes" in low
        or ("data" in low and "estabelecimento" in low)
    )


def _is_noise(line: str) -> bool:
    low = fold(line)
    return (
        ("data" in low and "estabelecimento" in low)
        or "resumo da fatura" in low
        or "total da fatura" in low
        or "vencimento" in low
        or "subtotal" in low
        or "pagamento minimo" in low
    )


def _year_anchor(text: str, due: date | None) -> date | None:
    if due is not None:
        return due
    year = first_year(text)
    # no due date: every dd/mm belongs to the first year printed in the document
    return date(year, 12, 31) if year else None


def extract_picpay(text: str, policy: InstallmentPolicy) -> ExtractionOutcome:
    lines = non_empty_lines(text)
    due = extract_due_date(text)
    outcome = ExtractionOutcome(
        due_date=due,
        reference_month=month_start(due) if due else None,
    )
    anchor = _year_anchor(text, due)

    start = find_section_start(
        lines,
        _is_section_header,
        lambda ln: bool(_TX_LINE_RE.match(ln)) and not _is_noise(ln),
    )

    card_final: str | None = None
    for idx in range(start, len(lines)):
        line = lines[idx]
        line_no = idx + 1
        m = _TX_LINE_RE.match(line)

        if not m:
            m_card = _CARD_FINAL_RE.search(line)
            if m_card:
                card_final = m_card.group(1)
            continue

        if _is_noise(line):
            outcome.skip(line_no, line, "noise")
            continue

        rest = separate_glued_amount(m.group("rest"))
        split = split_amount_at_end(rest)
        if split is None:
            outcome.skip(line_no, line, "no_amount")
            continue
        description, amount_text = split

        amount = parse_brl_amount(amount_text)
        if amount is None or amount == 0:
            outcome.skip(line_no, line, "invalid_amount")
            continue

        day, month = int(m.group("day")), int(m.group("month"))
        if m.group("year"):
            tx_date = safe_date(int(m.group("year")), month, day)
        else:
            tx_date = infer_date(day, month, anchor)
        if tx_date is None:
            outcome.skip(line_no, line, "invalid_date")
            continue

        outcome.add(
            build_candidate(
                tx_date=tx_date,
                description=description,
                amount=amount,
                policy=policy,
                following_lines=lines[idx + 1 : idx + 1 + policy.lookahead_lines],
                line_number=line_no,
                card_final=card_final,
            )
        )

    return outcome


PARSER = FormatParser(
    bank_id=BANK_ID,
    bank_name=BANK_NAME,
    detect=looks_like_picpay,
    extract=extract_picpay,
    noise_patterns=(_CARD_FINAL_RE,),
)
