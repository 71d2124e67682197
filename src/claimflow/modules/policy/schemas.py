from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from claimflow.modules.policy.analyzer import RiskKind, RiskSeverity
from claimflow.modules.policy.models import LimitType


class PolicyRuleIn(BaseModel):
    name: str
    categories: list[str] | None = None
    limit_type: LimitType | None = None
    limit_amount: Decimal | None = Field(default=None, gt=0)
    limit_currency: str | None = None
    requires_receipt: bool = False
    requires_approval: bool = False
    message: str | None = None
    suggestion: str | None = None


class PolicyRuleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    position: int
    name: str
    categories: list[str] | None
    limit_type: LimitType | None
    limit_amount: Decimal | None
    limit_currency: str | None
    requires_receipt: bool
    requires_approval: bool
    message: str | None
    suggestion: str | None


class PolicyCreate(BaseModel):
    name: str
    description: str | None = None
    is_active: bool = True
    rules: list[PolicyRuleIn] = Field(default_factory=list)


class PolicyUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    is_active: bool | None = None


class PolicyOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None
    version: int
    is_active: bool
    rules: list[PolicyRuleOut]
    created_at: datetime
    updated_at: datetime


class RuleGapOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    rule_id: uuid.UUID
    rule_name: str
    missing: list[str]


class CompletenessOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    policy_id: uuid.UUID
    is_complete: bool
    rule_gaps: list[RuleGapOut]
    uncovered_categories: list[str]


class RiskAlertOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    key: str
    kind: RiskKind
    severity: RiskSeverity
    message: str
    item_id: uuid.UUID | None
    policy_id: uuid.UUID | None
    rule_id: uuid.UUID | None
    rule_name: str | None
    limit_type: LimitType | None
    grouping: str | None
    limit: Decimal | None
    actual: Decimal | None
    percentage: Decimal | None
    currency: str | None
    requires_approval: bool
    suggestion: str | None
    required_by: list[str]
