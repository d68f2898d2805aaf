from __future__ import annotations

import re
from datetime import date
from decimal import Decimal
from typing import Any

from parsers.base import FormatParser, build_candidate, extract_due_date, infer_date, month_start
from parsers.installments import InstallmentPolicy
from parsers.models import ExtractionOutcome, RawTransaction
from parsers.money import AMOUNT_ONLY_RE, CENTS, parse_brl_amount, split_amount_at_end, to_float
from parsers.text import MONTHS_PT, flatten_text, fold, has_any, non_empty_lines


BANK_ID = "sicredi"
BANK_NAME = "Sicredi"

_OTHER_BANKS = ("picpay", "nubank", "willbank", "cartao inter", "banco inter")


_TOTAL_PATTERNS: list[re.Pattern[str]] = [
    # "Total fatura de novembro R$ 12.068,55"
    re.compile(r"(?i)total\s+fatura\s+de\s+\w+\s*r\$\s*([0-9]{1,3}(?:\.[0-9]{3})*,[0-9]{2})"),
    # "Pagamento total (R$) R$ 12.068,55"
    re.compile(r"(?i)pagamento\s+total\s*\(r\$\)\s*r\$\s*([0-9]{1,3}(?:\.[0-9]{3})*,[0-9]{2})"),
    # "Total desta Fatura 12.068,55" / "Total desta Fatura (R$) 12.068,55"
    re.compile(r"(?i)total\s+desta\s+fatura\s*(?:\(r\$\)\s*)?(?:r\$\s*)?([0-9]{1,3}(?:\.[0-9]{3})*,[0-9]{2})"),
]

_CARD_FINAL_RE = re.compile(r"(?i)\bfinal\s+(\d{4})\b")
_CARD_FINAL_BARE_RE = re.compile(r"^\s*(\d{4})\b")

# Typical tx line starts with "11/nov 06:13 ..."
_TX_PREFIX_RE = re.compile(r"^\s*(\d{2})/([a-z]{3})\s+(\d{2}:\d{2})\b\s+(.*)$", re.IGNORECASE)

# "LOJA PARCELADA 01/10" anywhere in the establishment column
_INLINE_INSTALLMENT_RE = re.compile(r"\b(\d{2})/(\d{2})\b")
_PURCHASE_TYPE_RE = re.compile(r"\b(Online|Presencial)\b", re.IGNORECASE)
_SUMMARY_IOF_RE = re.compile(r"(?i)\biof\b\s*(?:\(r\$\))?\s*(?:r\$\s*)?([0-9]{1,3}(?:\.[0-9]{3})*,[0-9]{2})\b")


def looks_like_sicredi(text: str) -> bool:
    t = fold(text)
    if has_any(t, _OTHER_BANKS):
        return False
    return "sicredi" in t or ("data e hora" in t and "valor em reais" in t)


def extract_total(text: str) -> float | None:
    n = flatten_text(text)

    for pat in _TOTAL_PATTERNS:
        m = pat.search(n)
        if not m:
            continue
        d = parse_brl_amount(m.group(1))
        if d is None:
            continue
        return to_float(d.copy_abs())

    return None


def _extract_summary_iof(lines: list[str]) -> Decimal | None:
    """IOF amount shown in the invoice summary (not the per-transaction IOF lines)."""
    for line in lines:
        low = line.lower()
        if not low.startswith("iof"):
            continue
        # Avoid picking up the transaction line "Iof Compra Internacional"
        if "compra" in low:
            continue

        m = _SUMMARY_IOF_RE.search(line)
        if m:
            return parse_brl_amount(m.group(1))

    return None


def _is_invoice_payment(desc: str) -> bool:
    n = re.sub(r"\s+", " ", desc).strip().lower()

    # Payments of previous invoice show up as credits; exclude to avoid polluting spend.
    if n.startswith("pagamento"):
        if re.match(r"^pagamento\s+\d{6,}\b", n):
            return True
        if "fatura" in n:
            return True

    return False


def _establishment(rest: str) -> str:
    """Description column, with an inline "NN/NN" moved into an explicit "(NN/NN)" token."""
    desc = rest
    m_type = _PURCHASE_TYPE_RE.search(rest)
    if m_type:
        desc = rest[m_type.end() :].strip() or rest[: m_type.start()].strip()

    m_inst = _INLINE_INSTALLMENT_RE.search(desc)
    if m_inst:
        desc = f"{_INLINE_INSTALLMENT_RE.sub(' ', desc, count=1)} ({m_inst.group(1)}/{m_inst.group(2)})"

    return re.sub(r"\s+", " ", desc).strip()


def _is_context_description_line(line: str) -> bool:
    if not line or _TX_PREFIX_RE.match(line):
        return False

    low = line.strip().lower()
    if not low:
        return False

    # Avoid using headers/totals/pages as descriptions.
    if low.startswith(("total cartão", "total cartao", "cartão ", "cartao ", "vencimento")):
        return False
    if re.search(r"\bde \d$", low):
        return False

    return AMOUNT_ONLY_RE.fullmatch(low) is None


def extract_sicredi(text: str, policy: InstallmentPolicy) -> ExtractionOutcome:
    lines = non_empty_lines(text)
    due = extract_due_date(text)
    outcome = ExtractionOutcome(due_date=due, reference_month=month_start(due) if due else None)

    current_card_final: str | None = None
    in_transactions = False
    last_context_line: str | None = None
    pending: dict[str, Any] | None = None

    for idx, line in enumerate(lines):
        line_no = idx + 1

        m_final = _CARD_FINAL_RE.search(line)
        if m_final:
            current_card_final = m_final.group(1)

        low = fold(line)
        if ("data e hora" in low and "valor em reais" in low) or low.strip() == "transacoes":
            in_transactions = True
            continue

        is_tx = _TX_PREFIX_RE.match(line)

        if in_transactions and not is_tx and _is_context_description_line(line):
            last_context_line = line

        # Split transaction: amount on the continuation line
        if pending is not None and not is_tx:
            split = split_amount_at_end(line)
            amount = parse_brl_amount(split[1]) if split else None
            if amount is not None:
                m_bare = _CARD_FINAL_BARE_RE.match(line)
                outcome.add(
                    build_candidate(
                        tx_date=pending["date"],
                        description=pending["description"],
                        amount=amount,
                        policy=policy,
                        line_number=pending["line_number"],
                        card_final=m_bare.group(1) if m_bare else pending["card_final"],
                    )
                )
                pending = None
            continue

        if not is_tx:
            continue

        # A new tx line drops an unfinished split transaction.
        if pending is not None:
            outcome.skip(pending["line_number"], pending["description"], "no_amount")
            pending = None

        mm = MONTHS_PT.get(is_tx.group(2).lower())
        tx_date = infer_date(int(is_tx.group(1)), mm, due) if mm else None
        if tx_date is None:
            outcome.skip(line_no, line, "invalid_date")
            continue

        rest = is_tx.group(4).strip()
        m_card = _CARD_FINAL_RE.search(rest)
        card_final = m_card.group(1) if m_card else current_card_final

        split = split_amount_at_end(rest)
        if split is None:
            desc = _establishment(rest)
            if _is_invoice_payment(desc):
                outcome.skip(line_no, line, "invoice_payment")
                continue
            pending = {"date": tx_date, "description": desc, "card_final": card_final, "line_number": line_no}
            continue

        rest_wo_amount, amount_text = split
        amount = parse_brl_amount(amount_text)
        if amount is None:
            outcome.skip(line_no, line, "invalid_amount")
            continue

        # Some PDFs split: description is on the previous line, and the tx line only contains the amount.
        if not rest_wo_amount and last_context_line:
            rest_wo_amount = last_context_line
            last_context_line = None

        desc = _establishment(rest_wo_amount)
        if _is_invoice_payment(desc):
            outcome.skip(line_no, line, "invoice_payment")
            continue

        outcome.add(
            build_candidate(
                tx_date=tx_date,
                description=desc,
                amount=amount,
                policy=policy,
                line_number=line_no,
                card_final=card_final,
            )
        )

    if pending is not None:
        outcome.skip(pending["line_number"], pending["description"], "no_amount")

    total = extract_total(text)
    if total is not None:
        outcome.total = Decimal(str(total))
    _reconcile_summary_iof(outcome, lines, total, due)
    return outcome


def _reconcile_summary_iof(
    outcome: ExtractionOutcome, lines: list[str], total: float | None, due: date | None
) -> None:
    """Add the summary IOF when it is exactly what separates the lines from the invoice total."""
    if total is None or due is None:
        return

    signed_sum = sum((tx.amount for tx in outcome.transactions), Decimal("0"))
    diff = (Decimal(str(total)) - signed_sum).quantize(CENTS)
    if abs(diff) < CENTS:
        return

    iof = _extract_summary_iof(lines)
    if iof is not None and iof.copy_abs() == abs(diff):
        outcome.add(RawTransaction(date=due, description="IOF (fatura)", amount=iof.copy_abs()))


PARSER = FormatParser(
    bank_id=BANK_ID,
    bank_name=BANK_NAME,
    detect=looks_like_sicredi,
    extract=extract_sicredi,
    noise_patterns=(_CARD_FINAL_RE,),
)
