from __future__ import annotations

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field


class ExpenseItemCreateIn(BaseModel):
    category: str
    expense_date: date
    amount_original_amount: Decimal = Field(gt=0)
    amount_original_currency: str
    description: str | None = None
    vendor: str | None = None
    receipt_url: str | None = None
    receipt_is_official: bool | None = None
    receipt_suggestion: str | None = None
    # Manual rate when the organization table has no pair.
    fx_rate: Decimal | None = Field(default=None, gt=0)


class ExpenseItemUpdateIn(BaseModel):
    category: str | None = None
    expense_date: date | None = None
    amount_original_amount: Decimal | None = Field(default=None, gt=0)
    amount_original_currency: str | None = None
    description: str | None = None
    vendor: str | None = None
    receipt_url: str | None = None
    receipt_is_official: bool | None = None
    receipt_suggestion: str | None = None
    fx_rate: Decimal | None = Field(default=None, gt=0)


class ExpenseItemOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    claim_id: uuid.UUID
    category: str
    description: str | None
    vendor: str | None
    expense_date: date
    amount_original_amount: Decimal
    amount_original_currency: str
    fx_rate_to_base: Decimal
    amount_base_amount: Decimal
    amount_base_currency: str
    amount_eligible_amount: Decimal
    was_capped: bool
    receipt_url: str | None
    receipt_is_official: bool | None
    receipt_suggestion: str | None
    created_at: datetime
    updated_at: datetime
