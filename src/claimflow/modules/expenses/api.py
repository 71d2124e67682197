from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user
from claimflow.core.db import db_session
from claimflow.modules.claims.service import get_claim_for_user
from claimflow.modules.expenses.schemas import (
    ExpenseItemCreateIn,
    ExpenseItemOut,
    ExpenseItemUpdateIn,
)
from claimflow.modules.expenses.service import create_item, delete_item, list_items, update_item
from claimflow.modules.identity.models import User

router = APIRouter(tags=["expenses"])


@router.post("/claims/{claim_id}/items", response_model=ExpenseItemOut)
def create_item_endpoint(
    claim_id: uuid.UUID,
    payload: ExpenseItemCreateIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseItemOut:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    item = create_item(session, claim=claim, user=user, **payload.model_dump())
    return ExpenseItemOut.model_validate(item)


@router.patch("/claims/{claim_id}/items/{item_id}", response_model=ExpenseItemOut)
def update_item_endpoint(
    claim_id: uuid.UUID,
    item_id: uuid.UUID,
    payload: ExpenseItemUpdateIn,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ExpenseItemOut:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    item = update_item(
        session,
        claim=claim,
        user=user,
        item_id=item_id,
        changes=payload.model_dump(exclude_unset=True),
    )
    return ExpenseItemOut.model_validate(item)


@router.delete("/claims/{claim_id}/items/{item_id}")
def delete_item_endpoint(
    claim_id: uuid.UUID,
    item_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> Response:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    delete_item(session, claim=claim, user=user, item_id=item_id)
    return Response(status_code=204)


@router.get("/claims/{claim_id}/items", response_model=list[ExpenseItemOut])
def list_items_endpoint(
    claim_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ExpenseItemOut]:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return [ExpenseItemOut.model_validate(i) for i in list_items(session, claim_id=claim.id)]
