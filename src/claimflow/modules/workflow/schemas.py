from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict

from claimflow.modules.claims.models import ClaimStatus
from claimflow.modules.identity.models import UserRole
from claimflow.modules.workflow.models import ApproverKind, StepStatus


class StepOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    step_order: int
    step_type: str
    step_name: str
    approver_kind: ApproverKind
    approver_user_id: uuid.UUID | None
    approver_role: UserRole | None
    amount_threshold: Decimal | None
    status: StepStatus
    comment: str | None
    decided_by_user_id: uuid.UUID | None
    completed_at: datetime | None


class ChainOut(BaseModel):
    claim_id: uuid.UUID
    claim_status: ClaimStatus
    rule_id: uuid.UUID | None
    steps: list[StepOut]
    active_step_id: uuid.UUID | None
    complete: bool
    can_act: bool


class DecisionIn(BaseModel):
    comment: str | None = None


class RejectIn(BaseModel):
    reason: str
