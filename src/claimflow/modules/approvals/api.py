from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user, require_role
from claimflow.core.db import db_session
from claimflow.modules.approvals.schemas import (
    ApprovalRuleCreate,
    ApprovalRuleOut,
    ApprovalRuleUpdate,
    RulePreviewRequest,
)
from claimflow.modules.approvals.service import (
    create_rule,
    delete_rule,
    get_rule,
    list_rules,
    resolve_rule_for_claim,
    update_rule,
)
from claimflow.modules.claims.service import get_claim_for_user
from claimflow.modules.identity.models import User, UserRole

router = APIRouter(tags=["approval-rules"])


@router.get("/approval-rules", response_model=list[ApprovalRuleOut])
def list_rules_endpoint(
    active_only: bool = True,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[ApprovalRuleOut]:
    rules = list_rules(session, org_id=user.org_id, active_only=active_only)
    return [ApprovalRuleOut.from_rule(r) for r in rules]


@router.post("/approval-rules", response_model=ApprovalRuleOut)
def create_rule_endpoint(
    payload: ApprovalRuleCreate,
    session: Session = Depends(db_session),
    admin: User = Depends(require_role(UserRole.ADMIN)),
) -> ApprovalRuleOut:
    rule = create_rule(session, org_id=admin.org_id, **dict(payload))
    return ApprovalRuleOut.from_rule(rule)


@router.post("/approval-rules/preview", response_model=ApprovalRuleOut)
def preview_rule_endpoint(
    payload: RulePreviewRequest,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ApprovalRuleOut:
    claim = get_claim_for_user(session, claim_id=payload.claim_id, user=user)
    rule = resolve_rule_for_claim(session, claim=claim, submitter=claim.employee)
    return ApprovalRuleOut.from_rule(rule)


@router.get("/approval-rules/{rule_id}", response_model=ApprovalRuleOut)
def get_rule_endpoint(
    rule_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> ApprovalRuleOut:
    return ApprovalRuleOut.from_rule(get_rule(session, org_id=user.org_id, rule_id=rule_id))


@router.patch("/approval-rules/{rule_id}", response_model=ApprovalRuleOut)
def update_rule_endpoint(
    rule_id: uuid.UUID,
    payload: ApprovalRuleUpdate,
    session: Session = Depends(db_session),
    admin: User = Depends(require_role(UserRole.ADMIN)),
) -> ApprovalRuleOut:
    rule = get_rule(session, org_id=admin.org_id, rule_id=rule_id)
    changes = {key: getattr(payload, key) for key in payload.model_fields_set}
    rule = update_rule(session, rule=rule, changes=changes)
    return ApprovalRuleOut.from_rule(rule)


@router.delete("/approval-rules/{rule_id}")
def delete_rule_endpoint(
    rule_id: uuid.UUID,
    session: Session = Depends(db_session),
    admin: User = Depends(require_role(UserRole.ADMIN)),
) -> Response:
    rule = get_rule(session, org_id=admin.org_id, rule_id=rule_id)
    delete_rule(session, rule=rule)
    return Response(status_code=204)
