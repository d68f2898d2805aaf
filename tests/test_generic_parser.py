from __future__ import annotations

from datetime import date
from decimal import Decimal

from parsers.invoices import generic


GENERIC_TEXT = """
Fatura do cartão Bandeira X
Vencimento 10/11/2025
03/10 COMPRA PADARIA CENTRAL 25,00
05/10/2025 Débito LOJA ABC 1.234,56
07/10 ESTORNO LOJA ABC -34,56
08/10 LINHA SEM VALOR
Total 1.225,00
""".strip()


def test_generic_always_accepts() -> None:
    assert generic.PARSER.can_parse("qualquer coisa")
    assert not generic.PARSER.can_parse("   ")


def test_date_description_amount_lines() -> None:
    result = generic.PARSER.parse(GENERIC_TEXT)
    txs = result.transactions

    assert [tx.description for tx in txs] == ["PADARIA CENTRAL", "LOJA ABC", "ESTORNO LOJA ABC"]
    assert txs[0].date == date(2025, 10, 3)
    assert txs[1].date == date(2025, 10, 5)
    assert txs[1].amount == Decimal("1234.56")
    assert txs[2].kind == "credit"


def test_lines_without_amount_are_reported() -> None:
    result = generic.PARSER.parse(GENERIC_TEXT)

    assert [(s.reason, s.line) for s in result.skipped] == [("no_amount", "08/10 LINHA SEM VALOR")]
