from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user, require_role
from claimflow.core.db import db_session
from claimflow.modules.claims.models import ClaimStatus
from claimflow.modules.claims.schemas import ClaimCreate, ClaimOut, ClaimUpdate
from claimflow.modules.claims.service import (
    cancel_claim,
    create_claim,
    delete_claim,
    get_claim_for_user,
    list_claims_for_user,
    mark_paid,
    mark_processing,
    reopen_claim,
    submit_claim,
    update_claim,
)
from claimflow.modules.identity.models import User, UserRole

router = APIRouter(tags=["claims"])


@router.post("/claims", response_model=ClaimOut)
def create_claim_endpoint(
    payload: ClaimCreate,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ClaimOut:
    claim = create_claim(session, user=user, title=payload.title, purpose=payload.purpose)
    return ClaimOut.model_validate(claim)


@router.get("/claims", response_model=list[ClaimOut])
def list_claims_endpoint(
    status: ClaimStatus | None = None,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ClaimOut]:
    claims = list_claims_for_user(session, user=user, status_filter=status)
    return [ClaimOut.model_validate(c) for c in claims]


@router.get("/claims/{claim_id}", response_model=ClaimOut)
def get_claim_endpoint(
    claim_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ClaimOut:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return ClaimOut.model_validate(claim)


@router.patch("/claims/{claim_id}", response_model=ClaimOut)
def update_claim_endpoint(
    claim_id: uuid.UUID,
    payload: ClaimUpdate,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ClaimOut:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    updated = update_claim(
        session, claim=claim, user=user, changes=payload.model_dump(exclude_unset=True)
    )
    return ClaimOut.model_validate(updated)


@router.delete("/claims/{claim_id}")
def delete_claim_endpoint(
    claim_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    delete_claim(session, claim=claim, user=user)
    return Response(status_code=204)


@router.post("/claims/{claim_id}/submit", response_model=ClaimOut)
def submit_claim_endpoint(
    claim_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ClaimOut:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return ClaimOut.model_validate(submit_claim(session, claim=claim, user=user))


@router.post("/claims/{claim_id}/reopen", response_model=ClaimOut)
def reopen_claim_endpoint(
    claim_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ClaimOut:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return ClaimOut.model_validate(reopen_claim(session, claim=claim, user=user))


@router.post("/claims/{claim_id}/cancel", response_model=ClaimOut)
def cancel_claim_endpoint(
    claim_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ClaimOut:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return ClaimOut.model_validate(cancel_claim(session, claim=claim, user=user))


@router.post("/claims/{claim_id}/processing", response_model=ClaimOut)
def mark_processing_endpoint(
    claim_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(require_role(UserRole.FINANCE, UserRole.ADMIN)),
) -> ClaimOut:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return ClaimOut.model_validate(mark_processing(session, claim=claim, user=user))


@router.post("/claims/{claim_id}/paid", response_model=ClaimOut)
def mark_paid_endpoint(
    claim_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(require_role(UserRole.FINANCE, UserRole.ADMIN)),
) -> ClaimOut:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return ClaimOut.model_validate(mark_paid(session, claim=claim, user=user))
