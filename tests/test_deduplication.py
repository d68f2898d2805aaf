from __future__ import annotations

import hashlib
from datetime import date
from decimal import Decimal

from parsers.models import KIND_CREDIT, ExtractedTransaction, InstallmentMarker

from fatura_import.deduplication import (
    ACTION_DUPLICATE,
    ACTION_IMPORT,
    DeduplicationPolicy,
    PersistedTransaction,
    base_description,
    filter_duplicates,
    fingerprint,
    group_by_installment,
    group_id,
    import_is_valid,
    validate_import,
)


OCTOBER = DeduplicationPolicy(reference_month=date(2025, 10, 1))


def _shein(current: int, when: date, total: int = 5) -> ExtractedTransaction:
    return ExtractedTransaction(
        date=when,
        description="SHEIN",
        amount=Decimal("150.50"),
        installment=InstallmentMarker(current, total),
        original_description=f"SHEIN PARC{current:02d}/{total:02d}",
    )


def _persisted(tx: ExtractedTransaction) -> PersistedTransaction:
    return PersistedTransaction.from_extracted(tx)


def test_group_id_is_reproducible_from_base_description_amount_and_total() -> None:
    expected = "parc_" + hashlib.md5("shein|150.50|5".encode("utf-8")).hexdigest()[:12]

    assert group_id(_shein(1, date(2025, 9, 15))) == expected
    assert group_id(_shein(4, date(2025, 12, 15))) == expected
    assert group_id(_shein(1, date(2025, 9, 15), total=6)) != expected


def test_base_description_strips_installment_tokens() -> None:
    assert base_description("SHEIN PARC01/05") == "shein"
    assert base_description("Loja  Tech (3/10)") == "loja tech"
    assert base_description("Mercado Livre Parcela 2 de 6") == "mercado livre"
    assert base_description("LOJA X 03/10") == "loja x"


def test_single_purchases_have_no_group() -> None:
    tx = ExtractedTransaction(date(2025, 10, 1), "UBER *TRIP", Decimal("23.90"))
    ambiguous = ExtractedTransaction(date(2025, 10, 1), "LOJA", Decimal("180"), installment=InstallmentMarker(1, None))

    assert group_id(tx) is None
    assert group_id(ambiguous) is None


def test_fingerprint_uses_original_description_and_kind() -> None:
    debit = ExtractedTransaction(date(2025, 10, 7), "PAGAMENTO", Decimal("10"), original_description="PAGAMENTO X")
    credit = ExtractedTransaction(
        date(2025, 10, 7), "PAGAMENTO", Decimal("10"), kind=KIND_CREDIT, original_description="PAGAMENTO X"
    )
    raw = "pagamento x|10.00|2025-10-07|debit"

    assert fingerprint(debit) == hashlib.md5(raw.encode("utf-8")).hexdigest()
    assert fingerprint(debit) != fingerprint(credit)


def test_next_parcel_of_known_group_is_imported() -> None:
    candidate = _shein(2, date(2025, 10, 15))
    existing = [_persisted(_shein(1, date(2025, 9, 15)))]

    result = filter_duplicates([candidate], existing, OCTOBER)

    decision = result.decisions[0]
    assert decision.action == ACTION_IMPORT
    assert decision.warning == "installment group already exists, importing parcel 2/5 only"
    assert result.accepted == [candidate]


def test_parcel_already_present_is_a_duplicate() -> None:
    candidate = _shein(2, date(2025, 10, 15))
    other_copy = ExtractedTransaction(
        date=date(2025, 10, 16),
        description="SHEIN",
        amount=Decimal("150.50"),
        installment=InstallmentMarker(2, 5),
        original_description="SHEIN*SHEIN PARC02/05",
    )
    existing = [_persisted(_shein(1, date(2025, 9, 15))), _persisted(other_copy)]

    result = filter_duplicates([candidate], existing, OCTOBER)

    assert result.decisions[0].action == ACTION_DUPLICATE
    assert result.decisions[0].reason == "parcel 2/5 already exists"


def test_parcel_outside_statement_month_is_blocked() -> None:
    candidate = _shein(3, date(2025, 11, 15))
    existing = [_persisted(_shein(1, date(2025, 9, 15)))]

    result = filter_duplicates([candidate], existing, OCTOBER)

    assert result.decisions[0].reason == "parcel 3/5 does not belong to the statement month (2025-10)"


def test_all_parcels_mode_only_checks_parcel_number() -> None:
    policy = DeduplicationPolicy(only_current_installment=False, reference_month=date(2025, 10, 1))
    existing = [_persisted(_shein(1, date(2025, 9, 15)))]
    candidates = [_shein(1, date(2025, 11, 15)), _shein(3, date(2025, 11, 15))]

    result = filter_duplicates(candidates, existing, policy)

    assert [d.action for d in result.decisions] == [ACTION_DUPLICATE, ACTION_IMPORT]
    assert result.decisions[0].reason == "parcel 1/5 was already imported"


def test_exact_duplicates() -> None:
    tx = ExtractedTransaction(date(2025, 10, 1), "UBER *TRIP", Decimal("23.90"))

    blocked = filter_duplicates([tx], [_persisted(tx)], OCTOBER)
    assert blocked.decisions[0].reason == "identical transaction already exists"
    assert blocked.stats() == {"totalAnalyzed": 1, "toImport": 0, "duplicates": 1, "warnings": 0}

    allowed = filter_duplicates(
        [tx], [_persisted(tx)], DeduplicationPolicy(allow_exact_duplicates=True, reference_month=date(2025, 10, 1))
    )
    assert allowed.decisions[0].action == ACTION_IMPORT
    assert allowed.decisions[0].warning == "duplicate allowed by policy"
    assert allowed.stats() == {"totalAnalyzed": 1, "toImport": 1, "duplicates": 0, "warnings": 1}


def test_second_run_imports_nothing() -> None:
    batch = [
        ExtractedTransaction(date(2025, 10, 1), "UBER *TRIP", Decimal("23.90")),
        _shein(2, date(2025, 10, 15)),
        ExtractedTransaction(date(2025, 10, 7), "PAGAMENTO", Decimal("500"), kind=KIND_CREDIT),
    ]
    existing = [_persisted(_shein(1, date(2025, 9, 15)))]

    first = filter_duplicates(batch, existing, OCTOBER)
    assert len(first.accepted) == 3

    updated = existing + [_persisted(tx) for tx in first.accepted]
    second = filter_duplicates(batch, updated, OCTOBER)
    assert second.accepted == []
    assert second.stats()["duplicates"] == 3


def test_decisions_are_deterministic_and_ordered() -> None:
    batch = [_shein(2, date(2025, 10, 15)), ExtractedTransaction(date(2025, 10, 1), "UBER", Decimal("9.90"))]
    existing = [_persisted(_shein(1, date(2025, 9, 15)))]

    a = filter_duplicates(batch, existing, OCTOBER)
    b = filter_duplicates(batch, existing, OCTOBER)

    assert a.decisions == b.decisions
    assert [d.transaction for d in a.decisions] == batch


def test_group_by_installment() -> None:
    single = ExtractedTransaction(date(2025, 10, 1), "UBER", Decimal("9.90"))
    groups, singles = group_by_installment([_shein(1, date(2025, 9, 15)), single, _shein(2, date(2025, 10, 15))])

    assert singles == [single]
    assert len(groups) == 1
    assert groups[0].total == 5
    assert [p.installment.current for p in groups[0].parcels] == [1, 2]


def test_validate_import_recommendations() -> None:
    tx = ExtractedTransaction(date(2025, 10, 1), "UBER *TRIP", Decimal("23.90"))
    validation = validate_import([tx], [_persisted(tx)], OCTOBER)

    assert not validation.valid
    assert [r.level for r in validation.recommendations] == ["warning", "error"]

    clean = validate_import([tx], [], OCTOBER)
    assert clean.valid
    assert clean.recommendations == []


def test_import_is_valid_matches_validate_import() -> None:
    tx = ExtractedTransaction(date(2025, 10, 1), "UBER *TRIP", Decimal("23.90"))
    allow = DeduplicationPolicy(allow_exact_duplicates=True, reference_month=date(2025, 10, 1))

    for policy in (OCTOBER, allow):
        validation = validate_import([tx], [_persisted(tx)], policy)
        assert import_is_valid(validation.result, policy) == validation.valid

    assert validate_import([tx], [_persisted(tx)], allow).valid
