"""Pydantic request models for the JSON endpoints."""

from __future__ import annotations

import datetime as dt
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from parsers.models import KIND_CREDIT, KIND_DEBIT, MAX_INSTALLMENTS, InstallmentMarker

from fatura_import.categories import Category, HistoryEntry
from fatura_import.deduplication import DeduplicationPolicy, PersistedTransaction


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class ParseTextRequest(BaseModel):
    text: str
    bank: Optional[str] = None


class InstallmentIn(BaseModel):
    current: int = Field(ge=1, le=MAX_INSTALLMENTS)
    total: Optional[int] = Field(default=None, ge=1, le=MAX_INSTALLMENTS)

    @model_validator(mode="after")
    def _total_not_below_current(self) -> InstallmentIn:
        if self.total is not None and self.total < self.current:
            raise ValueError("installment total must be >= current")
        return self


class ExistingTransactionIn(_CamelModel):
    """A transaction the user already has; enough fields to fingerprint it."""

    date: dt.date
    description: str
    amount: Decimal
    kind: str = Field(default=KIND_DEBIT, pattern=f"^({KIND_DEBIT}|{KIND_CREDIT})$")
    installment: Optional[InstallmentIn] = None
    original_description: Optional[str] = Field(default=None, alias="originalDescription")
    id: Optional[str] = None

    def to_domain(self) -> PersistedTransaction:
        marker = None
        if self.installment is not None:
            marker = InstallmentMarker(self.installment.current, self.installment.total)
        return PersistedTransaction(
            date=self.date,
            description=self.description,
            amount=abs(self.amount),
            kind=self.kind,
            installment=marker,
            original_description=self.original_description,
            id=self.id,
        )


class CategoryIn(BaseModel):
    id: str
    name: str

    def to_domain(self) -> Category:
        return Category(self.id, self.name)


class HistoryEntryIn(_CamelModel):
    description: str
    category_id: str = Field(alias="categoryId")
    category_name: Optional[str] = Field(default=None, alias="categoryName")

    def to_domain(self) -> HistoryEntry:
        return HistoryEntry(self.description, self.category_id, self.category_name)


class DeduplicationPolicyIn(_CamelModel):
    only_current_installment: bool = Field(default=True, alias="onlyCurrentInstallment")
    allow_exact_duplicates: bool = Field(default=False, alias="allowExactDuplicates")
    reference_month: Optional[dt.date] = Field(default=None, alias="referenceMonth")

    def to_domain(self) -> DeduplicationPolicy:
        return DeduplicationPolicy(
            only_current_installment=self.only_current_installment,
            allow_exact_duplicates=self.allow_exact_duplicates,
            reference_month=self.reference_month,
        )


class ImportPreviewRequest(BaseModel):
    text: str
    existing: list[ExistingTransactionIn] = Field(default_factory=list)
    categories: list[CategoryIn] = Field(default_factory=list)
    history: list[HistoryEntryIn] = Field(default_factory=list)
    policy: Optional[DeduplicationPolicyIn] = None
