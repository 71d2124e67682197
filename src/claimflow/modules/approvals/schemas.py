from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field, field_validator, model_validator

from claimflow.modules.approvals.models import StepType
from claimflow.modules.expenses.models import ExpenseCategory
from claimflow.modules.identity.models import UserRole


class RuleConditions(BaseModel):
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    categories: list[str] | None = None
    departments: list[uuid.UUID] | None = None
    submitter_roles: list[UserRole] | None = None

    @field_validator("categories")
    @classmethod
    def _check_categories(cls, value: list[str] | None) -> list[str] | None:
        if value is None:
            return None
        known = {c.value for c in ExpenseCategory}
        unknown = sorted({c for c in value if c not in known})
        if unknown:
            raise ValueError(f"Unknown categories: {', '.join(unknown)}")
        return value

    @model_validator(mode="after")
    def _check_amount_range(self) -> RuleConditions:
        if (
            self.min_amount is not None
            and self.max_amount is not None
            and self.min_amount > self.max_amount
        ):
            raise ValueError("min_amount must not exceed max_amount")
        return self


class StepTemplate(BaseModel):
    type: StepType
    name: str | None = None
    user_id: uuid.UUID | None = None
    role: UserRole | None = None
    amount_threshold: Decimal | None = None

    @model_validator(mode="after")
    def _check_required_fields(self) -> StepTemplate:
        if self.type == StepType.SPECIFIC_USER and not self.user_id:
            raise ValueError("specific_user steps need a user_id")
        if self.type == StepType.ROLE and not self.role:
            raise ValueError("role steps need a role")
        if self.type == StepType.AMOUNT_THRESHOLD and self.amount_threshold is None:
            raise ValueError("amount_threshold steps need an amount_threshold")
        return self


def parse_conditions(raw: dict | None) -> RuleConditions:
    return RuleConditions.model_validate(raw or {})


def parse_step_templates(raw: list | None) -> list[StepTemplate]:
    return [StepTemplate.model_validate(s) for s in (raw or [])]


class ApprovalRuleCreate(BaseModel):
    name: str
    description: str | None = None
    priority: int = 0
    conditions: RuleConditions = Field(default_factory=RuleConditions)
    # An empty list means auto-approval.
    steps: list[StepTemplate]
    is_active: bool = True
    is_default: bool = False


class ApprovalRuleUpdate(BaseModel):
    name: str | None = None
    description: str | None = None
    priority: int | None = None
    conditions: RuleConditions | None = None
    steps: list[StepTemplate] | None = None
    is_active: bool | None = None
    is_default: bool | None = None


class ApprovalRuleOut(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    name: str
    description: str | None
    priority: int
    conditions: RuleConditions
    steps: list[StepTemplate]
    is_active: bool
    is_default: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_rule(cls, rule) -> ApprovalRuleOut:
        return cls(
            id=rule.id,
            org_id=rule.org_id,
            name=rule.name,
            description=rule.description,
            priority=rule.priority,
            conditions=parse_conditions(rule.conditions_json),
            steps=parse_step_templates(rule.steps_json),
            is_active=rule.is_active,
            is_default=rule.is_default,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
        )


class RulePreviewRequest(BaseModel):
    claim_id: uuid.UUID
