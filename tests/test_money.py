from __future__ import annotations

from decimal import Decimal

import pytest

from parsers.money import (
    format_brl_amount,
    parse_brl_amount,
    separate_glued_amount,
    split_amount_at_end,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1.234,56", Decimal("1234.56")),
        ("R$ 12.068,55", Decimal("12068.55")),
        ("-2.377,77", Decimal("-2377.77")),
        ("-R$ 50,00", Decimal("-50.00")),
        ("R$ -1,00", Decimal("-1.00")),
        ("0,99", Decimal("0.99")),
    ],
)
def test_parse_brl_amount(raw: str, expected: Decimal) -> None:
    assert parse_brl_amount(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "R$", "abc"])
def test_parse_brl_amount_rejects_non_amounts(raw: str | None) -> None:
    assert parse_brl_amount(raw) is None


def test_format_then_parse_round_trip() -> None:
    assert format_brl_amount(Decimal("1234.56")) == "1.234,56"
    assert parse_brl_amount(format_brl_amount(1234.56)) == Decimal("1234.56")
    assert format_brl_amount(Decimal("-50"), symbol=True) == "-R$ 50,00"


def test_split_amount_at_end_keeps_sign_in_token() -> None:
    before, token = split_amount_at_end("PAGAMENTO DE FATURA PELO PICPA -2.377,77")
    assert before == "PAGAMENTO DE FATURA PELO PICPA"
    assert parse_brl_amount(token) == Decimal("-2377.77")


def test_split_amount_at_end_without_amount() -> None:
    assert split_amount_at_end("SUBTOTAL DA FATURA") is None


def test_separate_glued_amount_splits_installment_fraction() -> None:
    assert separate_glued_amount("SHEIN *SHU FEPARC01/0267,90") == "SHEIN *SHU FEPARC01/02 67,90"
    assert separate_glued_amount("LOJA PARC01/0511,89") == "LOJA PARC01/05 11,89"


def test_separate_glued_amount_leaves_spaced_lines_alone() -> None:
    line = "SHEIN PARC01/05 150,50"
    assert separate_glued_amount(line) == line
