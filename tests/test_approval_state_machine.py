from __future__ import annotations

import uuid
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from claimflow.modules.claims.models import ClaimStatus
from claimflow.modules.identity.models import UserRole
from claimflow.modules.workflow.chain import (
    active_index,
    apply_decision,
    can_act,
    cancel_pending,
    chain_approved,
    is_complete,
    skip_step,
)
from claimflow.modules.workflow.errors import (
    AlreadyResolved,
    InvalidDecision,
    NotActionable,
    Unauthorized,
)
from claimflow.modules.workflow.models import ApprovalStep, ApproverKind, StepDecision, StepStatus


def _user(role=UserRole.EMPLOYEE, is_active=True):
    return SimpleNamespace(id=uuid.uuid4(), role=role, is_active=is_active)


def _role_step(order: int, role: UserRole) -> ApprovalStep:
    return ApprovalStep(
        id=uuid.uuid4(),
        step_order=order,
        step_type="role",
        step_name=f"{role.value} approval",
        approver_kind=ApproverKind.ROLE,
        approver_role=role,
        status=StepStatus.PENDING,
    )


def _user_step(order: int, user) -> ApprovalStep:
    return ApprovalStep(
        id=uuid.uuid4(),
        step_order=order,
        step_type="specific_user",
        step_name="Designated approver",
        approver_kind=ApproverKind.SPECIFIC,
        approver_user_id=user.id,
        status=StepStatus.PENDING,
    )


def _pending_claim(submitter):
    return SimpleNamespace(
        status=ClaimStatus.PENDING,
        employee_id=submitter.id,
        approved_at=None,
        rejected_at=None,
        rejection_reason=None,
    )


def test_approvals_walk_the_chain_in_order():
    submitter, finance, admin = _user(), _user(UserRole.FINANCE), _user(UserRole.ADMIN)
    claim = _pending_claim(submitter)
    steps = [_role_step(0, UserRole.FINANCE), _role_step(1, UserRole.ADMIN)]

    assert active_index(steps) == 0
    assert can_act(claim, steps, finance)
    assert not can_act(claim, steps, admin)

    outcome = apply_decision(
        claim, steps, step_id=steps[0].id, actor=finance, decision=StepDecision.APPROVE
    )
    assert outcome.step.status == StepStatus.APPROVED
    assert outcome.next_step is steps[1]
    assert claim.status == ClaimStatus.PENDING
    assert active_index(steps) == 1

    outcome = apply_decision(
        claim,
        steps,
        step_id=steps[1].id,
        actor=admin,
        decision=StepDecision.APPROVE,
        comment="ok",
    )
    assert outcome.completed
    assert claim.status == ClaimStatus.APPROVED
    assert claim.approved_at is not None
    assert steps[1].comment == "ok"
    assert steps[1].decided_by_user_id == admin.id
    assert is_complete(steps)
    assert active_index(steps) is None


def test_rejection_terminates_chain_and_skips_the_rest():
    submitter, finance = _user(), _user(UserRole.FINANCE)
    claim = _pending_claim(submitter)
    steps = [_role_step(0, UserRole.FINANCE), _role_step(1, UserRole.ADMIN)]

    apply_decision(
        claim,
        steps,
        step_id=steps[0].id,
        actor=finance,
        decision=StepDecision.REJECT,
        comment="missing invoice",
    )

    assert claim.status == ClaimStatus.REJECTED
    assert claim.rejection_reason == "missing invoice"
    assert steps[0].status == StepStatus.REJECTED
    assert steps[0].comment == "missing invoice"
    assert steps[1].status == StepStatus.SKIPPED
    assert not can_act(claim, steps, _user(UserRole.ADMIN))


def test_rejection_without_reason_changes_nothing():
    submitter, finance = _user(), _user(UserRole.FINANCE)
    claim = _pending_claim(submitter)
    steps = [_role_step(0, UserRole.FINANCE)]

    for comment in (None, "", "   "):
        with pytest.raises(InvalidDecision):
            apply_decision(
                claim,
                steps,
                step_id=steps[0].id,
                actor=finance,
                decision=StepDecision.REJECT,
                comment=comment,
            )
    assert steps[0].status == StepStatus.PENDING
    assert steps[0].decided_by_user_id is None
    assert claim.status == ClaimStatus.PENDING


def test_only_the_active_step_is_actionable():
    submitter, admin = _user(), _user(UserRole.ADMIN)
    claim = _pending_claim(submitter)
    steps = [_role_step(0, UserRole.FINANCE), _role_step(1, UserRole.ADMIN)]

    with pytest.raises(NotActionable) as excinfo:
        apply_decision(claim, steps, step_id=steps[1].id, actor=admin, decision=StepDecision.APPROVE)
    assert excinfo.value.status_code == 409
    assert steps[1].status == StepStatus.PENDING

    with pytest.raises(NotActionable):
        apply_decision(claim, steps, step_id=uuid.uuid4(), actor=admin, decision=StepDecision.APPROVE)


def test_actor_must_match_the_step_approver():
    submitter = _user()
    named = _user(UserRole.MANAGER)
    claim = _pending_claim(submitter)
    steps = [_user_step(0, named)]

    with pytest.raises(Unauthorized) as excinfo:
        apply_decision(
            claim, steps, step_id=steps[0].id, actor=_user(UserRole.ADMIN), decision=StepDecision.APPROVE
        )
    assert excinfo.value.status_code == 403

    inactive = SimpleNamespace(id=named.id, role=named.role, is_active=False)
    with pytest.raises(Unauthorized):
        apply_decision(claim, steps, step_id=steps[0].id, actor=inactive, decision=StepDecision.APPROVE)

    apply_decision(claim, steps, step_id=steps[0].id, actor=named, decision=StepDecision.APPROVE)
    assert claim.status == ClaimStatus.APPROVED


def test_submitter_cannot_act_even_with_matching_role():
    submitter = _user(UserRole.FINANCE)
    claim = _pending_claim(submitter)
    steps = [_role_step(0, UserRole.FINANCE)]

    assert not can_act(claim, steps, submitter)
    with pytest.raises(Unauthorized):
        apply_decision(
            claim, steps, step_id=steps[0].id, actor=submitter, decision=StepDecision.APPROVE
        )


def test_second_decision_on_a_step_is_already_resolved():
    submitter, finance = _user(), _user(UserRole.FINANCE)
    claim = _pending_claim(submitter)
    steps = [_role_step(0, UserRole.FINANCE), _role_step(1, UserRole.ADMIN)]

    apply_decision(claim, steps, step_id=steps[0].id, actor=finance, decision=StepDecision.APPROVE)
    for actor in (finance, _user(UserRole.FINANCE)):
        with pytest.raises(AlreadyResolved):
            apply_decision(
                claim, steps, step_id=steps[0].id, actor=actor, decision=StepDecision.APPROVE
            )


def test_approvers_cannot_skip():
    submitter, finance = _user(), _user(UserRole.FINANCE)
    claim = _pending_claim(submitter)
    steps = [_role_step(0, UserRole.FINANCE)]

    with pytest.raises(InvalidDecision):
        apply_decision(claim, steps, step_id=steps[0].id, actor=finance, decision=StepDecision.SKIP)
    assert steps[0].status == StepStatus.PENDING


def test_rule_skip_counts_as_resolved():
    submitter, finance = _user(), _user(UserRole.FINANCE)
    claim = _pending_claim(submitter)
    steps = [_role_step(0, UserRole.FINANCE), _role_step(1, UserRole.ADMIN)]

    apply_decision(claim, steps, step_id=steps[0].id, actor=finance, decision=StepDecision.APPROVE)
    outcome = skip_step(claim, steps, step_id=steps[1].id, reason="Threshold raised")

    assert outcome.step.status == StepStatus.SKIPPED
    assert outcome.step.comment == "Threshold raised"
    assert claim.status == ClaimStatus.APPROVED

    with pytest.raises(AlreadyResolved):
        skip_step(claim, steps, step_id=steps[1].id, reason="again")


def test_active_index_never_regresses():
    submitter = _user()
    claim = _pending_claim(submitter)
    approvers = [_user(UserRole.MANAGER) for _ in range(4)]
    steps = [_user_step(i, a) for i, a in enumerate(approvers)]
    steps[1].status = StepStatus.SKIPPED

    seen = [active_index(steps)]
    for step, approver in zip(steps, approvers):
        if step.status != StepStatus.PENDING:
            continue
        apply_decision(claim, steps, step_id=step.id, actor=approver, decision=StepDecision.APPROVE)
        seen.append(active_index(steps))

    indexes = [i for i in seen if i is not None]
    assert indexes == sorted(indexes)
    assert seen[-1] is None
    assert claim.status == ClaimStatus.APPROVED


def test_cancelled_chain_is_cleared_but_not_approved():
    submitter, finance = _user(), _user(UserRole.FINANCE)
    claim = _pending_claim(submitter)
    steps = [_role_step(0, UserRole.FINANCE), _role_step(1, UserRole.ADMIN)]
    apply_decision(
        claim, steps, step_id=steps[0].id, actor=finance, decision=StepDecision.APPROVE
    )

    now = datetime.now(timezone.utc)
    assert cancel_pending(steps, reason="Claim cancelled by submitter", now=now) == 1
    claim.status = ClaimStatus.CANCELLED
    assert is_complete(steps)
    assert not chain_approved(claim, steps)

    claim.status = ClaimStatus.PAID
    assert chain_approved(claim, steps)
