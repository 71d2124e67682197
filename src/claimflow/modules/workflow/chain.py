"""Approval state machine over a claim's ordered step list.

The chain is the claim's steps sorted by ``step_order`` and addressed by
position. The active step is the first ``PENDING`` step whose predecessors are
all ``APPROVED`` or ``SKIPPED``; a ``REJECTED`` step ends the chain.

Functions here validate completely before mutating anything, so a raised
error leaves every step and the claim untouched.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from claimflow.core.models import utcnow
from claimflow.modules.claims.models import ClaimStatus
from claimflow.modules.workflow.errors import (
    AlreadyResolved,
    InvalidDecision,
    NotActionable,
    Unauthorized,
)
from claimflow.modules.workflow.models import ApprovalStep, ApproverKind, StepDecision, StepStatus

CLEARED = frozenset({StepStatus.APPROVED, StepStatus.SKIPPED})

# Claim states reached only through a fully cleared chain.
CHAIN_APPROVED_STATUSES = frozenset(
    {ClaimStatus.APPROVED, ClaimStatus.PROCESSING, ClaimStatus.PAID}
)

REJECTION_SKIP_COMMENT = "Skipped: chain rejected at an earlier step"


@dataclass(frozen=True)
class DecisionOutcome:
    step: ApprovalStep
    claim_status: ClaimStatus
    next_step: ApprovalStep | None

    @property
    def completed(self) -> bool:
        return self.claim_status != ClaimStatus.PENDING


def ordered(steps: Sequence[ApprovalStep]) -> list[ApprovalStep]:
    return sorted(steps, key=lambda s: s.step_order)


def active_index(steps: Sequence[ApprovalStep]) -> int | None:
    for index, step in enumerate(steps):
        if step.status in CLEARED:
            continue
        if step.status == StepStatus.PENDING:
            return index
        return None
    return None


def active_step(steps: Sequence[ApprovalStep]) -> ApprovalStep | None:
    index = active_index(steps)
    return steps[index] if index is not None else None


def is_complete(steps: Sequence[ApprovalStep]) -> bool:
    return all(s.status in CLEARED for s in steps)


def chain_approved(claim, steps: Sequence[ApprovalStep]) -> bool:
    """True once the claim went through its whole chain and was approved.

    A cancelled claim also has only cleared steps, since cancellation skips
    the open ones, so the claim status decides.
    """
    return claim.status in CHAIN_APPROVED_STATUSES and is_complete(steps)


def is_rejected(steps: Sequence[ApprovalStep]) -> bool:
    return any(s.status == StepStatus.REJECTED for s in steps)


def aggregate_status(steps: Sequence[ApprovalStep]) -> ClaimStatus:
    """Claim status implied by the chain alone."""
    if is_rejected(steps):
        return ClaimStatus.REJECTED
    if is_complete(steps):
        return ClaimStatus.APPROVED
    return ClaimStatus.PENDING


def approver_matches(step: ApprovalStep, actor) -> bool:
    if step.approver_kind == ApproverKind.SPECIFIC:
        return step.approver_user_id is not None and step.approver_user_id == actor.id
    return step.approver_role is not None and actor.role == step.approver_role


def _may_act(claim, step: ApprovalStep, actor) -> bool:
    if not getattr(actor, "is_active", True):
        return False
    if actor.id == claim.employee_id:
        return False
    return approver_matches(step, actor)


def can_act(claim, steps: Sequence[ApprovalStep], actor) -> bool:
    if claim.status != ClaimStatus.PENDING:
        return False
    step = active_step(steps)
    return step is not None and _may_act(claim, step, actor)


def _find(steps: Sequence[ApprovalStep], step_id: uuid.UUID) -> ApprovalStep:
    for step in steps:
        if step.id == step_id:
            return step
    raise NotActionable("Step does not belong to this claim's chain")


def _settle_claim(claim, steps: Sequence[ApprovalStep], now: datetime) -> ClaimStatus:
    status = aggregate_status(steps)
    if status == ClaimStatus.APPROVED and claim.status != ClaimStatus.APPROVED:
        claim.status = ClaimStatus.APPROVED
        claim.approved_at = now
    return claim.status


def apply_decision(
    claim,
    steps: Sequence[ApprovalStep],
    *,
    step_id: uuid.UUID,
    actor,
    decision: StepDecision,
    comment: str | None = None,
    now: datetime | None = None,
) -> DecisionOutcome:
    steps = ordered(steps)
    step = _find(steps, step_id)

    if decision == StepDecision.SKIP:
        raise InvalidDecision("Steps can only be skipped by rule logic")
    if step.status != StepStatus.PENDING:
        raise AlreadyResolved()
    if claim.status != ClaimStatus.PENDING:
        raise NotActionable("Claim is not awaiting approval")
    current = active_step(steps)
    if current is None or current.id != step.id:
        raise NotActionable()
    if not _may_act(claim, step, actor):
        raise Unauthorized()

    note = (comment or "").strip() or None
    if decision == StepDecision.REJECT and not note:
        raise InvalidDecision("A reason is required to reject")

    now = now or utcnow()
    step.comment = note
    step.decided_by_user_id = actor.id
    step.completed_at = now

    if decision == StepDecision.APPROVE:
        step.status = StepStatus.APPROVED
        status = _settle_claim(claim, steps, now)
        return DecisionOutcome(step=step, claim_status=status, next_step=active_step(steps))

    step.status = StepStatus.REJECTED
    for other in steps:
        if other.status == StepStatus.PENDING:
            other.status = StepStatus.SKIPPED
            other.comment = REJECTION_SKIP_COMMENT
            other.completed_at = now
    claim.status = ClaimStatus.REJECTED
    claim.rejected_at = now
    claim.rejection_reason = note
    return DecisionOutcome(step=step, claim_status=claim.status, next_step=None)


def skip_step(
    claim,
    steps: Sequence[ApprovalStep],
    *,
    step_id: uuid.UUID,
    reason: str,
    now: datetime | None = None,
) -> DecisionOutcome:
    """Mark a pending step as no longer applicable.

    Any pending step may be skipped, not only the active one; a skip counts
    as cleared for completion, so skipping the last open step approves the
    claim.
    """
    steps = ordered(steps)
    step = _find(steps, step_id)
    if step.status != StepStatus.PENDING:
        raise AlreadyResolved()
    if claim.status != ClaimStatus.PENDING:
        raise NotActionable("Claim is not awaiting approval")
    if not reason or not reason.strip():
        raise InvalidDecision("A reason is required to skip a step")

    now = now or utcnow()
    step.status = StepStatus.SKIPPED
    step.comment = reason.strip()
    step.completed_at = now
    status = _settle_claim(claim, steps, now)
    return DecisionOutcome(step=step, claim_status=status, next_step=active_step(steps))


def cancel_pending(steps: Sequence[ApprovalStep], *, reason: str, now: datetime) -> int:
    skipped = 0
    for step in steps:
        if step.status == StepStatus.PENDING:
            step.status = StepStatus.SKIPPED
            step.comment = reason
            step.completed_at = now
            skipped += 1
    return skipped


def finalize_new_chain(claim, steps: Sequence[ApprovalStep], *, now: datetime) -> ClaimStatus:
    """Move a freshly built chain's claim out of draft.

    An empty or fully skipped chain is complete on arrival and approves the
    claim immediately.
    """
    claim.submitted_at = now
    claim.rejection_reason = None
    claim.rejected_at = None
    if is_complete(steps):
        claim.status = ClaimStatus.APPROVED
        claim.approved_at = now
    else:
        claim.status = ClaimStatus.PENDING
        claim.approved_at = None
    return claim.status
