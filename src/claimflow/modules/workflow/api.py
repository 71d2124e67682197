from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user
from claimflow.core.db import db_session
from claimflow.modules.claims.models import Claim, ClaimStatus
from claimflow.modules.claims.schemas import ClaimOut
from claimflow.modules.claims.service import get_claim_for_user
from claimflow.modules.identity.models import User
from claimflow.modules.workflow import chain as sm
from claimflow.modules.workflow.models import StepDecision
from claimflow.modules.workflow.schemas import ChainOut, DecisionIn, RejectIn, StepOut
from claimflow.modules.workflow.service import get_chain, list_inbox, record_decision

router = APIRouter(tags=["workflow"])


def _chain_out(session: Session, *, claim: Claim, user: User) -> ChainOut:
    steps = get_chain(session, claim=claim)
    active = sm.active_step(steps) if claim.status == ClaimStatus.PENDING else None
    return ChainOut(
        claim_id=claim.id,
        claim_status=claim.status,
        rule_id=claim.approval_rule_id,
        steps=[StepOut.model_validate(s) for s in steps],
        active_step_id=active.id if active else None,
        complete=sm.chain_approved(claim, steps),
        can_act=sm.can_act(claim, steps, user),
    )


@router.get("/claims/{claim_id}/chain", response_model=ChainOut)
def get_chain_endpoint(
    claim_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ChainOut:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return _chain_out(session, claim=claim, user=user)


@router.post("/claims/{claim_id}/steps/{step_id}/approve", response_model=ChainOut)
def approve_step_endpoint(
    claim_id: uuid.UUID,
    step_id: uuid.UUID,
    payload: DecisionIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ChainOut:
    get_claim_for_user(session, claim_id=claim_id, user=user)
    record_decision(
        session,
        claim_id=claim_id,
        step_id=step_id,
        actor=user,
        decision=StepDecision.APPROVE,
        comment=payload.comment,
    )
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return _chain_out(session, claim=claim, user=user)


@router.post("/claims/{claim_id}/steps/{step_id}/reject", response_model=ChainOut)
def reject_step_endpoint(
    claim_id: uuid.UUID,
    step_id: uuid.UUID,
    payload: RejectIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ChainOut:
    get_claim_for_user(session, claim_id=claim_id, user=user)
    record_decision(
        session,
        claim_id=claim_id,
        step_id=step_id,
        actor=user,
        decision=StepDecision.REJECT,
        comment=payload.reason,
    )
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return _chain_out(session, claim=claim, user=user)


@router.get("/approvals/inbox", response_model=list[ClaimOut])
def approver_inbox(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ClaimOut]:
    return [ClaimOut.model_validate(c) for c in list_inbox(session, user=user)]
