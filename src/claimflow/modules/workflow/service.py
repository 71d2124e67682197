from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload
from sqlalchemy.orm.exc import StaleDataError

from claimflow.core.logging import get_logger, log_event
from claimflow.core.models import utcnow
from claimflow.modules.approvals.service import resolve_rule_for_claim
from claimflow.modules.audit.service import record_event
from claimflow.modules.claims.models import Claim, ClaimStatus
from claimflow.modules.identity.models import User
from claimflow.modules.identity.service import OrgDirectory
from claimflow.modules.workflow import chain as sm
from claimflow.modules.workflow.builder import build_chain, skipped_count
from claimflow.modules.workflow.errors import AlreadyResolved, ApprovalError, NotActionable
from claimflow.modules.workflow.models import ApprovalStep, StepDecision

logger = get_logger(__name__)


def start_approval(session: Session, *, claim: Claim, submitter: User) -> Claim:
    """Select the rule, materialize the chain and leave draft in one commit.

    The claim row is re-read under a lock first, so a submit that lost a race
    sees the winner's status and fails with ``NotActionable`` instead of
    building a second chain. Raises ``NoApplicableRule`` before anything is
    staged when the organization has neither a matching nor a default rule.
    """
    claim_id = claim.id
    claim = _lock_claim(session, claim_id=claim_id, org_id=claim.org_id)
    if claim.status != ClaimStatus.DRAFT:
        session.rollback()
        log_event(
            logger,
            "approval.submit.conflict",
            claim_id=str(claim_id),
            reason="not_draft",
        )
        raise NotActionable("Claim has already been submitted")

    rule = resolve_rule_for_claim(session, claim=claim, submitter=submitter)
    now = utcnow()
    steps = build_chain(
        rule, claim, submitter, directory=OrgDirectory(session, org_id=claim.org_id), now=now
    )

    from_status = claim.status
    claim.approval_rule_id = rule.id
    claim.steps = steps
    new_status = sm.finalize_new_chain(claim, steps, now=now)
    record_event(
        session,
        claim=claim,
        event_type="claim.submitted",
        actor_id=submitter.id,
        from_status=from_status,
        to_status=new_status,
        rule_id=str(rule.id),
        steps=len(steps),
        skipped=skipped_count(steps),
    )
    session.add(claim)
    try:
        session.commit()
    except StaleDataError as e:
        session.rollback()
        log_event(
            logger,
            "approval.submit.conflict",
            claim_id=str(claim_id),
            reason="version_mismatch",
        )
        raise NotActionable("Claim was changed concurrently") from e
    session.refresh(claim)

    log_event(
        logger,
        "approval.chain.built",
        claim_id=str(claim.id),
        rule_id=str(rule.id),
        steps=len(steps),
        skipped=skipped_count(steps),
    )
    if new_status == ClaimStatus.APPROVED:
        log_event(logger, "approval.chain.auto_approved", claim_id=str(claim.id))
    return claim


def get_chain(session: Session, *, claim: Claim) -> list[ApprovalStep]:
    return list(
        session.scalars(
            select(ApprovalStep)
            .where(ApprovalStep.claim_id == claim.id)
            .order_by(ApprovalStep.step_order)
        )
    )


def can_user_act(session: Session, *, claim: Claim, user: User) -> bool:
    return sm.can_act(claim, get_chain(session, claim=claim), user)


def _lock_claim(session: Session, *, claim_id: uuid.UUID, org_id: uuid.UUID) -> Claim:
    claim = session.scalar(
        select(Claim)
        .where(Claim.id == claim_id, Claim.org_id == org_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    if not claim:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Claim not found")
    return claim


def _fresh_chain(session: Session, *, claim: Claim) -> list[ApprovalStep]:
    return list(
        session.scalars(
            select(ApprovalStep)
            .where(ApprovalStep.claim_id == claim.id)
            .order_by(ApprovalStep.step_order)
            .execution_options(populate_existing=True)
        )
    )


def _commit_transition(session: Session, *, claim: Claim, step_id: uuid.UUID) -> None:
    try:
        session.commit()
    except StaleDataError as e:
        session.rollback()
        log_event(
            logger,
            "approval.decision.conflict",
            claim_id=str(claim.id),
            step_id=str(step_id),
            reason="version_mismatch",
        )
        raise AlreadyResolved("Claim was changed by a concurrent decision") from e


def record_decision(
    session: Session,
    *,
    claim_id: uuid.UUID,
    step_id: uuid.UUID,
    actor: User,
    decision: StepDecision,
    comment: str | None = None,
) -> sm.DecisionOutcome:
    claim = _lock_claim(session, claim_id=claim_id, org_id=actor.org_id)
    steps = _fresh_chain(session, claim=claim)
    from_status = claim.status

    try:
        outcome = sm.apply_decision(
            claim, steps, step_id=step_id, actor=actor, decision=decision, comment=comment
        )
    except ApprovalError as e:
        session.rollback()
        if isinstance(e, (AlreadyResolved, NotActionable)):
            log_event(
                logger,
                "approval.decision.conflict",
                claim_id=str(claim_id),
                step_id=str(step_id),
                reason=e.code,
            )
        raise

    # Every decision bumps the claim row so concurrent writers hit the version check.
    claim.updated_at = utcnow()
    record_event(
        session,
        claim=claim,
        event_type=f"step.{outcome.step.status.value.lower()}",
        actor_id=actor.id,
        from_status=from_status,
        to_status=claim.status,
        step_id=outcome.step.id,
        step_order=outcome.step.step_order,
        comment=outcome.step.comment,
    )
    session.add(claim)
    _commit_transition(session, claim=claim, step_id=step_id)

    log_event(
        logger,
        "approval.decision.recorded",
        claim_id=str(claim.id),
        step_id=str(outcome.step.id),
        decision=decision.value,
        claim_status=claim.status.value,
    )
    return outcome


def skip_step_by_rule(
    session: Session,
    *,
    claim_id: uuid.UUID,
    org_id: uuid.UUID,
    step_id: uuid.UUID,
    reason: str,
    actor_id: uuid.UUID | None = None,
) -> sm.DecisionOutcome:
    claim = _lock_claim(session, claim_id=claim_id, org_id=org_id)
    steps = _fresh_chain(session, claim=claim)
    from_status = claim.status

    try:
        outcome = sm.skip_step(claim, steps, step_id=step_id, reason=reason)
    except ApprovalError:
        session.rollback()
        raise

    claim.updated_at = utcnow()
    record_event(
        session,
        claim=claim,
        event_type="step.skipped",
        actor_id=actor_id,
        from_status=from_status,
        to_status=claim.status,
        step_id=outcome.step.id,
        comment=outcome.step.comment,
    )
    session.add(claim)
    _commit_transition(session, claim=claim, step_id=step_id)

    log_event(
        logger,
        "approval.step.skipped",
        claim_id=str(claim.id),
        step_id=str(step_id),
        claim_status=claim.status.value,
    )
    return outcome


def list_inbox(session: Session, *, user: User) -> list[Claim]:
    claims = session.scalars(
        select(Claim)
        .where(
            Claim.org_id == user.org_id,
            Claim.status == ClaimStatus.PENDING,
            Claim.employee_id != user.id,
        )
        .options(selectinload(Claim.steps))
        .order_by(Claim.submitted_at, Claim.id)
    )
    return [c for c in claims if sm.can_act(c, sm.ordered(c.steps), user)]
