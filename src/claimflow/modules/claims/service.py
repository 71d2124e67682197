from __future__ import annotations

import uuid
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import delete, or_, select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from claimflow.core.logging import get_logger, log_event
from claimflow.core.models import utcnow
from claimflow.modules.audit.models import AuditEvent
from claimflow.modules.audit.service import record_event
from claimflow.modules.claims.models import Claim, ClaimStatus
from claimflow.modules.identity.models import User, UserRole
from claimflow.modules.identity.service import get_organization
from claimflow.modules.workflow.chain import cancel_pending
from claimflow.modules.workflow.models import ApprovalStep
from claimflow.modules.workflow.service import start_approval

logger = get_logger(__name__)

# Roles that see every claim in their organization.
ORG_WIDE_ROLES = frozenset({UserRole.FINANCE, UserRole.ADMIN})


def create_claim(
    session: Session, *, user: User, title: str | None = None, purpose: str | None = None
) -> Claim:
    org = get_organization(session, org_id=user.org_id)
    claim = Claim(
        org_id=user.org_id,
        employee_id=user.id,
        title=title.strip() if title and title.strip() else None,
        purpose=purpose.strip() if purpose and purpose.strip() else None,
        base_currency=org.base_currency,
        total_base_amount=Decimal("0"),
        eligible_base_amount=Decimal("0"),
        status=ClaimStatus.DRAFT,
    )
    session.add(claim)
    session.commit()
    session.refresh(claim)
    return claim


def list_claims_for_user(
    session: Session, *, user: User, status_filter: ClaimStatus | None = None
) -> list[Claim]:
    q = select(Claim).where(Claim.org_id == user.org_id)
    if user.role not in ORG_WIDE_ROLES:
        q = q.where(Claim.employee_id == user.id)
    if status_filter:
        q = q.where(Claim.status == status_filter)
    return list(session.scalars(q.order_by(Claim.created_at.desc())))


def _is_chain_approver(session: Session, *, claim: Claim, user: User) -> bool:
    step_id = session.scalar(
        select(ApprovalStep.id)
        .where(
            ApprovalStep.claim_id == claim.id,
            or_(ApprovalStep.approver_user_id == user.id, ApprovalStep.approver_role == user.role),
        )
        .limit(1)
    )
    return step_id is not None


def get_claim_for_user(session: Session, *, claim_id: uuid.UUID, user: User) -> Claim:
    claim = session.scalar(select(Claim).where(Claim.id == claim_id, Claim.org_id == user.org_id))
    if not claim:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Claim not found")

    if claim.employee_id == user.id or user.role in ORG_WIDE_ROLES:
        return claim
    if _is_chain_approver(session, claim=claim, user=user):
        return claim

    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")


def _assert_owner(*, claim: Claim, user: User) -> None:
    if claim.employee_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")


def _assert_status(claim: Claim, allowed: set[ClaimStatus], action: str) -> None:
    if claim.status not in allowed:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Cannot {action} a claim in status {claim.status.value}",
        )


def _commit(session: Session, *, claim: Claim) -> None:
    try:
        session.commit()
    except StaleDataError as e:
        session.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Claim was changed concurrently"
        ) from e
    session.refresh(claim)


def update_claim(session: Session, *, claim: Claim, user: User, changes: dict) -> Claim:
    _assert_owner(claim=claim, user=user)
    _assert_status(claim, {ClaimStatus.DRAFT}, "edit")

    for field in ("title", "purpose"):
        if field in changes:
            value = changes[field]
            setattr(claim, field, value.strip() if value and value.strip() else None)
    session.add(claim)
    _commit(session, claim=claim)
    return claim


def delete_claim(session: Session, *, claim: Claim, user: User) -> None:
    _assert_owner(claim=claim, user=user)
    _assert_status(claim, {ClaimStatus.DRAFT, ClaimStatus.REJECTED}, "delete")

    session.execute(delete(AuditEvent).where(AuditEvent.claim_id == claim.id))
    session.delete(claim)
    session.commit()


def submit_claim(session: Session, *, claim: Claim, user: User) -> Claim:
    _assert_owner(claim=claim, user=user)
    _assert_status(claim, {ClaimStatus.DRAFT}, "submit")
    if not claim.items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Claim has no expense items"
        )

    claim = start_approval(session, claim=claim, submitter=user)
    log_event(
        logger,
        "claim.submitted",
        claim_id=str(claim.id),
        status=claim.status.value,
        total_base_amount=str(claim.total_base_amount),
    )
    return claim


def reopen_claim(session: Session, *, claim: Claim, user: User) -> Claim:
    """Send a rejected claim back to draft without a chain."""
    _assert_owner(claim=claim, user=user)
    _assert_status(claim, {ClaimStatus.REJECTED}, "reopen")

    claim.steps = []
    claim.approval_rule_id = None
    claim.status = ClaimStatus.DRAFT
    claim.submitted_at = None
    claim.rejected_at = None
    claim.rejection_reason = None
    record_event(
        session,
        claim=claim,
        event_type="claim.reopened",
        actor_id=user.id,
        from_status=ClaimStatus.REJECTED,
        to_status=ClaimStatus.DRAFT,
    )
    session.add(claim)
    _commit(session, claim=claim)
    log_event(logger, "claim.reopened", claim_id=str(claim.id))
    return claim


def cancel_claim(session: Session, *, claim: Claim, user: User) -> Claim:
    _assert_owner(claim=claim, user=user)
    _assert_status(claim, {ClaimStatus.DRAFT, ClaimStatus.PENDING}, "cancel")

    now = utcnow()
    from_status = claim.status
    skipped = cancel_pending(claim.steps, reason="Claim cancelled by submitter", now=now)
    claim.status = ClaimStatus.CANCELLED
    record_event(
        session,
        claim=claim,
        event_type="claim.cancelled",
        actor_id=user.id,
        from_status=from_status,
        to_status=ClaimStatus.CANCELLED,
        skipped_steps=skipped,
    )
    session.add(claim)
    _commit(session, claim=claim)
    log_event(logger, "claim.cancelled", claim_id=str(claim.id), skipped_steps=skipped)
    return claim


def _payout_transition(
    session: Session, *, claim: Claim, user: User, source: ClaimStatus, target: ClaimStatus
) -> Claim:
    if user.role not in ORG_WIDE_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    _assert_status(claim, {source}, f"move to {target.value.lower()}")

    claim.status = target
    if target == ClaimStatus.PAID:
        claim.paid_at = utcnow()
    record_event(
        session,
        claim=claim,
        event_type="claim.payout_status",
        actor_id=user.id,
        from_status=source,
        to_status=target,
    )
    session.add(claim)
    _commit(session, claim=claim)
    log_event(
        logger,
        "claim.payout_status",
        claim_id=str(claim.id),
        status=target.value,
        total_base_amount=str(claim.total_base_amount),
        eligible_base_amount=str(claim.eligible_base_amount),
    )
    return claim


def mark_processing(session: Session, *, claim: Claim, user: User) -> Claim:
    return _payout_transition(
        session, claim=claim, user=user, source=ClaimStatus.APPROVED, target=ClaimStatus.PROCESSING
    )


def mark_paid(session: Session, *, claim: Claim, user: User) -> Claim:
    return _payout_transition(
        session, claim=claim, user=user, source=ClaimStatus.PROCESSING, target=ClaimStatus.PAID
    )
