from __future__ import annotations

from datetime import date
from decimal import Decimal
from pathlib import Path

import pytest

from parsers.base import extract_due_date
from parsers.invoices.sicredi import PARSER, extract_total, looks_like_sicredi
from parsers.models import KIND_CREDIT


def test_extract_due_date_ddmmyyyy() -> None:
    text = "Resumo da fatura\nVencimento: 25/11/2025\n"
    d = extract_due_date(text)
    assert d is not None
    assert d.isoformat() == "2025-11-25"


def test_extract_due_date_dd_mon_infers_year_from_document() -> None:
    # When the due date is shown as dd/mon, infer the year from any dd/MM/yyyy present.
    text = "Vencimento 25/nov\nEmitido em 01/11/2025\n"
    d = extract_due_date(text)
    assert d is not None
    assert d.isoformat() == "2025-11-25"


def test_extract_total_parses_total_fatura_de_mes() -> None:
    text = "Total fatura de novembro R$ 12.068,55"
    assert extract_total(text) == 12068.55


def test_extract_total_parses_pagamento_total_rs() -> None:
    text = "Pagamento total (R$) R$ 1.234,56"
    assert extract_total(text) == 1234.56


def test_detects_layout_without_bank_name() -> None:
    assert looks_like_sicredi("Data e hora Estabelecimento Valor em reais")
    assert not looks_like_sicredi("Sicredi\nPicPay Mastercard")


def test_preserves_legitimate_identical_lines() -> None:
    # Two identical purchases must remain as two distinct transactions.
    text = """
    Resumo da fatura
    Vencimento: 25/11/2025
    Transações
    Data e hora Estabelecimento Valor em reais
    11/nov 10:10 UBER*TRIP R$ 10,00
    11/nov 10:10 UBER*TRIP R$ 10,00
    """.strip()

    txs = PARSER.parse(text).transactions
    assert len(txs) == 2
    assert txs[0].date == date(2025, 11, 11)
    assert txs[1].date == date(2025, 11, 11)
    assert txs[0].amount == Decimal("10.00")
    assert txs[1].amount == Decimal("10.00")


def test_sets_card_final_from_context_and_inline_override() -> None:
    text = """
    Vencimento: 25/11/2025
    Transações
    Data e hora Estabelecimento Valor em reais
    final 2127
    11/nov 06:13 MERCADO X R$ 4,90
    12/nov 07:00 PADARIA Y final 2911 R$ 7,00
    """.strip()

    txs = PARSER.parse(text).transactions
    assert len(txs) == 2

    assert txs[0].card_final == "2127"
    assert txs[1].card_final == "2911"
    assert txs[1].description == "PADARIA Y"


def test_inline_installment_token() -> None:
    text = """
    Vencimento: 25/11/2025
    Transações
    Data e hora Estabelecimento Valor em reais
    11/nov 06:13 Online LOJA PARCELADA 01/10 R$ 198,00
    """.strip()

    txs = PARSER.parse(text).transactions
    assert len(txs) == 1
    assert (txs[0].installment.current, txs[0].installment.total) == (1, 10)
    assert txs[0].description == "LOJA PARCELADA"
    assert txs[0].amount == Decimal("198.00")


def test_negative_amount_is_a_credit() -> None:
    text = """
    Vencimento: 25/11/2025
    Transações
    Data e hora Estabelecimento Valor em reais
    12/nov 08:00 ESTORNO XYZ -R$ 50,00
    """.strip()

    txs = PARSER.parse(text).transactions
    assert len(txs) == 1
    assert txs[0].kind == KIND_CREDIT
    assert txs[0].amount == Decimal("50.00")


def test_previous_invoice_payment_is_skipped() -> None:
    text = """
    Vencimento: 25/11/2025
    Transações
    Data e hora Estabelecimento Valor em reais
    05/nov 09:00 Pagamento fatura -R$ 800,00
    11/nov 06:13 MERCADO X R$ 4,90
    """.strip()

    result = PARSER.parse(text)
    assert [tx.description for tx in result.transactions] == ["MERCADO X"]
    assert [s.reason for s in result.skipped] == ["invoice_payment"]


def test_split_line_takes_amount_from_next_line() -> None:
    text = """
    Vencimento: 25/11/2025
    Transações
    Data e hora Estabelecimento Valor em reais
    11/nov 06:13 Presencial FARMACIA CENTRAL
    2911 R$ 32,50
    """.strip()

    txs = PARSER.parse(text).transactions
    assert len(txs) == 1
    assert txs[0].description == "FARMACIA CENTRAL"
    assert txs[0].amount == Decimal("32.50")
    assert txs[0].card_final == "2911"


def test_split_line_without_amount_at_end_is_reported() -> None:
    text = """
    Vencimento: 25/11/2025
    Transações
    Data e hora Estabelecimento Valor em reais
    10/nov 09:00 MERCADO X R$ 13,90
    11/nov 06:13 Presencial FARMACIA CENTRAL
    """.strip()

    result = PARSER.parse(text)
    assert [tx.description for tx in result.transactions] == ["MERCADO X"]
    assert [(s.line_number, s.line, s.reason) for s in result.skipped] == [(5, "FARMACIA CENTRAL", "no_amount")]


def test_summary_iof_reconciles_total() -> None:
    text = """
    Vencimento: 25/11/2025
    Total fatura de novembro R$ 15,00
    IOF R$ 1,10
    Transações
    Data e hora Estabelecimento Valor em reais
    11/nov 06:13 MERCADO X R$ 13,90
    """.strip()

    result = PARSER.parse(text)
    assert result.total == Decimal("15.00")
    assert [tx.description for tx in result.transactions] == ["MERCADO X", "IOF (fatura)"]
    assert result.transactions[1].amount == Decimal("1.10")
    assert result.transactions[1].date == date(2025, 11, 25)


def test_reference_invoice_sicredi() -> None:
    # Optional: capture a real statement with SAVE_TEXT_FIXTURES=1 to enable this check.
    fixture_path = Path(__file__).resolve().parent / "fixtures" / "sicredi_reference.txt"
    if not fixture_path.exists():
        pytest.skip(f"Missing fixture: {fixture_path}")

    text = fixture_path.read_text(encoding="utf-8", errors="replace")
    result = PARSER.parse(text)

    assert result.bank_id == "sicredi"
    assert result.due_date is not None
    assert result.transactions

    if result.total is not None:
        signed_sum = sum((tx.signed_amount for tx in result.transactions), Decimal("0"))
        assert signed_sum == result.total
