from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, Response
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user, require_role
from claimflow.core.db import db_session
from claimflow.modules.claims.service import get_claim_for_user
from claimflow.modules.identity.models import User, UserRole
from claimflow.modules.policy.schemas import (
    CompletenessOut,
    PolicyCreate,
    PolicyOut,
    PolicyRuleIn,
    PolicyRuleOut,
    PolicyUpdate,
    RiskAlertOut,
)
from claimflow.modules.policy.service import (
    add_rule,
    analyze_claim,
    check_policy_completeness,
    create_policy,
    delete_policy,
    get_policy,
    list_policies,
    remove_rule,
    update_policy,
)

router = APIRouter(tags=["policy"])


@router.get("/policies", response_model=list[PolicyOut])
def list_policies_endpoint(
    active_only: bool = False,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[PolicyOut]:
    policies = list_policies(session, org_id=user.org_id, active_only=active_only)
    return [PolicyOut.model_validate(p) for p in policies]


@router.post("/policies", response_model=PolicyOut)
def create_policy_endpoint(
    payload: PolicyCreate,
    session: Session = Depends(db_session),
    admin: User = Depends(require_role(UserRole.ADMIN)),
) -> PolicyOut:
    policy = create_policy(
        session,
        org_id=admin.org_id,
        name=payload.name,
        description=payload.description,
        is_active=payload.is_active,
        rules=[r.model_dump() for r in payload.rules],
    )
    return PolicyOut.model_validate(policy)


@router.get("/policies/{policy_id}", response_model=PolicyOut)
def get_policy_endpoint(
    policy_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> PolicyOut:
    return PolicyOut.model_validate(get_policy(session, org_id=user.org_id, policy_id=policy_id))


@router.patch("/policies/{policy_id}", response_model=PolicyOut)
def update_policy_endpoint(
    policy_id: uuid.UUID,
    payload: PolicyUpdate,
    session: Session = Depends(db_session),
    admin: User = Depends(require_role(UserRole.ADMIN)),
) -> PolicyOut:
    policy = get_policy(session, org_id=admin.org_id, policy_id=policy_id)
    policy = update_policy(session, policy=policy, changes=payload.model_dump(exclude_unset=True))
    return PolicyOut.model_validate(policy)


@router.delete("/policies/{policy_id}")
def delete_policy_endpoint(
    policy_id: uuid.UUID,
    session: Session = Depends(db_session),
    admin: User = Depends(require_role(UserRole.ADMIN)),
) -> Response:
    delete_policy(session, policy=get_policy(session, org_id=admin.org_id, policy_id=policy_id))
    return Response(status_code=204)


@router.post("/policies/{policy_id}/rules", response_model=PolicyRuleOut)
def add_rule_endpoint(
    policy_id: uuid.UUID,
    payload: PolicyRuleIn,
    session: Session = Depends(db_session),
    admin: User = Depends(require_role(UserRole.ADMIN)),
) -> PolicyRuleOut:
    policy = get_policy(session, org_id=admin.org_id, policy_id=policy_id)
    rule = add_rule(session, policy=policy, data=payload.model_dump())
    return PolicyRuleOut.model_validate(rule)


@router.delete("/policies/{policy_id}/rules/{rule_id}")
def remove_rule_endpoint(
    policy_id: uuid.UUID,
    rule_id: uuid.UUID,
    session: Session = Depends(db_session),
    admin: User = Depends(require_role(UserRole.ADMIN)),
) -> Response:
    policy = get_policy(session, org_id=admin.org_id, policy_id=policy_id)
    remove_rule(session, policy=policy, rule_id=rule_id)
    return Response(status_code=204)


@router.get("/policies/{policy_id}/completeness", response_model=CompletenessOut)
def completeness_endpoint(
    policy_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> CompletenessOut:
    policy = get_policy(session, org_id=user.org_id, policy_id=policy_id)
    return CompletenessOut.model_validate(check_policy_completeness(policy))


@router.get("/claims/{claim_id}/risk-alerts", response_model=list[RiskAlertOut])
def risk_alerts_endpoint(
    claim_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[RiskAlertOut]:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return [RiskAlertOut.model_validate(a) for a in analyze_claim(session, claim=claim)]
