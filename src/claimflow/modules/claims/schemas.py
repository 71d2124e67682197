from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from claimflow.modules.claims.models import ClaimStatus


class ClaimCreate(BaseModel):
    title: str | None = None
    purpose: str | None = None


class ClaimUpdate(BaseModel):
    title: str | None = None
    purpose: str | None = None


class ClaimOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    org_id: uuid.UUID
    employee_id: uuid.UUID
    approval_rule_id: uuid.UUID | None
    title: str | None
    purpose: str | None
    base_currency: str
    total_base_amount: Decimal
    eligible_base_amount: Decimal
    original_totals: dict[str, Decimal]
    status: ClaimStatus
    rejection_reason: str | None
    submitted_at: datetime | None
    approved_at: datetime | None
    rejected_at: datetime | None
    paid_at: datetime | None
    created_at: datetime
    updated_at: datetime
