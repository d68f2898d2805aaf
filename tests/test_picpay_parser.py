from __future__ import annotations

from datetime import date
from decimal import Decimal

from parsers.invoices import picpay
from parsers.models import KIND_CREDIT, KIND_DEBIT


PICPAY_TEXT = """
PicPay Mastercard
Resumo da fatura
Vencimento: 10/11/2025
Total da fatura R$ 1.234,56
Transações Nacionais
Data Estabelecimento Valor (R$)
Cartão final 4321
07/10 PAGAMENTO DE FATURA PELO PICPA -2.377,77
15/10 SHEIN PARC01/05 150,50
28/10SHEIN *SHU FEPARC01/0267,90
20/10 LOJA XYZ PARC01/0 511,89
22/10 UBER *TRIP 23,90
Subtotal 1.000,00
""".strip()


def _parse():
    return picpay.PARSER.parse(PICPAY_TEXT)


def test_detects_picpay() -> None:
    assert picpay.looks_like_picpay(PICPAY_TEXT)
    assert not picpay.looks_like_picpay("Nubank\nFATURA 15 OUT 2025\nPicPay transfer")


def test_payment_line_is_a_credit() -> None:
    tx = _parse().transactions[0]

    assert tx.date == date(2025, 10, 7)
    assert tx.description == "PAGAMENTO DE FATURA PELO PICPA"
    assert tx.amount == Decimal("2377.77")
    assert tx.kind == KIND_CREDIT


def test_installment_line() -> None:
    tx = _parse().transactions[1]

    assert tx.description == "SHEIN"
    assert tx.amount == Decimal("150.50")
    assert tx.kind == KIND_DEBIT
    assert (tx.installment.current, tx.installment.total) == (1, 5)
    assert tx.card_final == "4321"


def test_glued_installment_and_amount() -> None:
    tx = _parse().transactions[2]

    assert tx.date == date(2025, 10, 28)
    assert tx.description == "SHEIN *SHU FE"
    assert tx.amount == Decimal("67.90")
    assert (tx.installment.current, tx.installment.total) == (1, 2)


def test_lost_installment_total_is_recovered_and_reported() -> None:
    result = _parse()
    tx = result.transactions[3]

    assert (tx.installment.current, tx.installment.total) == (1, 5)
    assert tx.amount == Decimal("11.89")
    assert any("recovered from amount" in w for w in result.warnings)


def test_header_and_subtotal_lines_are_not_transactions() -> None:
    result = _parse()

    assert len(result.transactions) == 5
    assert result.reference_month == date(2025, 11, 1)
    assert result.due_date == date(2025, 11, 10)
    assert all("subtotal" not in tx.description.lower() for tx in result.transactions)
