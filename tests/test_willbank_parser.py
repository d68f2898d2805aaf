from __future__ import annotations

from datetime import date
from decimal import Decimal

from parsers.invoices import willbank


WILLBANK_TEXT = """
willbank
Lançamentos de outubro 2025
Gastos
Mercado Bom Preço
15/10/2025
R$ 45,90
Loja Parcelada
Parcela 2 de 5
03/09/2025
R$ 100,00
""".strip()


def test_reference_month_from_lancamentos_header() -> None:
    assert willbank.extract_reference_month(WILLBANK_TEXT) == date(2025, 10, 1)


def test_reference_month_from_fechamento() -> None:
    assert willbank.extract_reference_month("Fechamento da fatura: 28/09/2025") == date(2025, 9, 1)


def test_multiline_blocks() -> None:
    result = willbank.PARSER.parse(WILLBANK_TEXT)
    txs = result.transactions

    assert [tx.description for tx in txs] == ["Mercado Bom Preço", "Loja Parcelada"]
    assert txs[0].date == date(2025, 10, 15)
    assert txs[0].amount == Decimal("45.90")
    assert txs[0].installment is None


def test_installment_block_is_aligned_to_reference_month() -> None:
    tx = willbank.PARSER.parse(WILLBANK_TEXT).transactions[1]

    assert (tx.installment.current, tx.installment.total) == (2, 5)
    assert tx.date == date(2025, 10, 3)
    assert tx.amount == Decimal("100.00")


def test_single_line_fallback() -> None:
    text = "willbank\nLançamentos de outubro 2025\nGastos\n12/10 POSTO SHELL 150,00\n"
    txs = willbank.PARSER.parse(text).transactions

    assert len(txs) == 1
    assert txs[0].description == "POSTO SHELL"
    assert txs[0].date == date(2025, 10, 12)
