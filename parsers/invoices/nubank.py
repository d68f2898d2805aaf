from __future__ import annotations

import re
from datetime import date

from parsers.base import (
    FormatParser,
    build_candidate,
    extract_due_date,
    first_year,
    infer_date,
    is_summary_total,
    month_start,
    safe_date,
)
from parsers.installments import InstallmentPolicy
from parsers.models import ExtractionOutcome
from parsers.money import parse_brl_amount, separate_glued_amount, split_amount_at_end
from parsers.text import MONTHS_PT, fold, has_any, non_empty_lines


BANK_ID = "nubank"
BANK_NAME = "Nubank"

_INDICATORS = ("nubank", "nupay", "aplicativo do nu")
_OTHER_BANKS = ("picpay", "cartao inter", "banco inter", "willbank")

_MONTH_ALT = "|".join(MONTHS_PT)

# "12 OUT Uber *Trip R$ 23,90"
_DAY_MONTH_RE = re.compile(rf"(?i)^(?P<day>\d{{1,2}})\s+(?P<mon>{_MONTH_ALT})\b\.?\s*(?P<rest>.*)$")
# "12/10/2025 Uber *Trip 23,90"
_FULL_DATE_RE = re.compile(r"^(?P<day>\d{1,2})/(?P<month>\d{1,2})/(?P<year>\d{4})\s+(?P<rest>.*)$")
# "FATURA 15 OUT 2025"
_STATEMENT_DATE_RE = re.compile(rf"(?i)\bfatura\s+(\d{{1,2}})\s+({_MONTH_ALT})\s+(\d{{4}})")


def looks_like_nubank(text: str) -> bool:
    t = fold(text)
    return has_any(t, _INDICATORS) and not has_any(t, _OTHER_BANKS)


def _is_noise(line: str) -> bool:
    low = fold(line)
    if "fatura" in low and "nubank" in low:
        return True
    if "resumo" in low and "fatura" in low:
        return True
    if "data" in low and "descricao" in low:
        return True
    if "vencimento" in low or "pagamento minimo" in low:
        return True
    return is_summary_total(low)


def _statement_date(text: str) -> date | None:
    m = _STATEMENT_DATE_RE.search(text)
    if not m:
        return None
    return safe_date(int(m.group(3)), MONTHS_PT[m.group(2).lower()], int(m.group(1)))


def extract_nubank(text: str, policy: InstallmentPolicy) -> ExtractionOutcome:
    lines = non_empty_lines(text)
    due = extract_due_date(text)
    statement_date = _statement_date(text)
    reference = due or statement_date
    anchor = reference
    if anchor is None:
        year = first_year(text)
        anchor = date(year, 12, 31) if year else None

    outcome = ExtractionOutcome(
        due_date=due,
        reference_month=month_start(reference) if reference else None,
    )

    idx = 0
    while idx < len(lines):
        line = lines[idx]
        line_no = idx + 1
        idx += 1

        m_short = _DAY_MONTH_RE.match(line)
        m_full = None if m_short else _FULL_DATE_RE.match(line)
        if not m_short and not m_full:
            continue
        if _is_noise(line):
            outcome.skip(line_no, line, "noise")
            continue

        if m_short:
            tx_date = infer_date(int(m_short.group("day")), MONTHS_PT[m_short.group("mon").lower()], anchor)
            rest = m_short.group("rest")
        else:
            tx_date = safe_date(int(m_full.group("year")), int(m_full.group("month")), int(m_full.group("day")))
            rest = m_full.group("rest")
        if tx_date is None:
            outcome.skip(line_no, line, "invalid_date")
            continue

        split = split_amount_at_end(separate_glued_amount(rest))
        if split is None and idx < len(lines):
            # date alone on its line, "DESCRIPTION VALUE" on the next one
            nxt = lines[idx]
            if not _DAY_MONTH_RE.match(nxt) and not _FULL_DATE_RE.match(nxt):
                split = split_amount_at_end(separate_glued_amount(f"{rest} {nxt}".strip()))
                if split is not None:
                    idx += 1
        if split is None:
            outcome.skip(line_no, line, "no_amount")
            continue

        description, amount_text = split
        if len(description.strip()) < 3 and idx < len(lines) and not _DAY_MONTH_RE.match(lines[idx]):
            # description pushed to the following line
            description = f"{description} {lines[idx]}".strip()
            idx += 1

        amount = parse_brl_amount(amount_text)
        if amount is None or amount == 0:
            outcome.skip(line_no, line, "invalid_amount")
            continue

        outcome.add(
            build_candidate(
                tx_date=tx_date,
                description=description,
                amount=amount,
                policy=policy,
                following_lines=lines[idx : idx + policy.lookahead_lines],
                line_number=line_no,
            )
        )

    return outcome


PARSER = FormatParser(
    bank_id=BANK_ID,
    bank_name=BANK_NAME,
    detect=looks_like_nubank,
    extract=extract_nubank,
)
