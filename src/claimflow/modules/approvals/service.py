from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select, update
from sqlalchemy.orm import Session

from claimflow.core.logging import get_logger, log_event
from claimflow.modules.approvals.matcher import ClaimAttributes, select_rule
from claimflow.modules.approvals.models import ApprovalRule
from claimflow.modules.approvals.schemas import RuleConditions, StepTemplate
from claimflow.modules.claims.models import Claim
from claimflow.modules.identity.models import User
from claimflow.modules.workflow.errors import NoApplicableRule

logger = get_logger(__name__)


def _dump_conditions(conditions: RuleConditions) -> dict:
    return conditions.model_dump(mode="json", exclude_none=True)


def _dump_steps(steps: list[StepTemplate]) -> list[dict]:
    return [s.model_dump(mode="json", exclude_none=True) for s in steps]


def _clear_other_defaults(session: Session, *, org_id: uuid.UUID, keep_id: uuid.UUID) -> None:
    session.execute(
        update(ApprovalRule)
        .where(
            ApprovalRule.org_id == org_id,
            ApprovalRule.is_default.is_(True),
            ApprovalRule.id != keep_id,
        )
        .values(is_default=False)
    )


def list_rules(
    session: Session, *, org_id: uuid.UUID, active_only: bool = False
) -> list[ApprovalRule]:
    q = select(ApprovalRule).where(ApprovalRule.org_id == org_id)
    if active_only:
        q = q.where(ApprovalRule.is_active.is_(True))
    return list(session.scalars(q.order_by(ApprovalRule.priority, ApprovalRule.name)))


def get_rule(session: Session, *, org_id: uuid.UUID, rule_id: uuid.UUID) -> ApprovalRule:
    rule = session.scalar(
        select(ApprovalRule).where(ApprovalRule.id == rule_id, ApprovalRule.org_id == org_id)
    )
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Approval rule not found")
    return rule


def create_rule(
    session: Session,
    *,
    org_id: uuid.UUID,
    name: str,
    steps: list[StepTemplate],
    description: str | None = None,
    priority: int = 0,
    conditions: RuleConditions | None = None,
    is_active: bool = True,
    is_default: bool = False,
) -> ApprovalRule:
    name = name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Rule name is required")

    rule = ApprovalRule(
        id=uuid.uuid4(),
        org_id=org_id,
        name=name,
        description=description.strip() if description else None,
        priority=priority,
        conditions_json=_dump_conditions(conditions or RuleConditions()),
        steps_json=_dump_steps(steps),
        is_active=is_active,
        is_default=is_default,
    )
    if is_default:
        _clear_other_defaults(session, org_id=org_id, keep_id=rule.id)
    session.add(rule)
    session.commit()
    session.refresh(rule)
    log_event(
        logger,
        "approval.rule.created",
        rule_id=str(rule.id),
        org_id=str(org_id),
        is_default=rule.is_default,
        steps_count=len(steps),
    )
    return rule


def update_rule(session: Session, *, rule: ApprovalRule, changes: dict) -> ApprovalRule:
    if "name" in changes and changes["name"] is not None:
        name = str(changes["name"]).strip()
        if not name:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="Rule name is required"
            )
        rule.name = name
    if "description" in changes:
        description = changes["description"]
        rule.description = description.strip() if description else None
    if changes.get("priority") is not None:
        rule.priority = changes["priority"]
    if changes.get("conditions") is not None:
        rule.conditions_json = _dump_conditions(changes["conditions"])
    if changes.get("steps") is not None:
        rule.steps_json = _dump_steps(changes["steps"])
    if changes.get("is_active") is not None:
        rule.is_active = changes["is_active"]
    if changes.get("is_default") is not None:
        rule.is_default = changes["is_default"]
        if rule.is_default:
            _clear_other_defaults(session, org_id=rule.org_id, keep_id=rule.id)

    session.add(rule)
    session.commit()
    session.refresh(rule)
    return rule


def delete_rule(session: Session, *, rule: ApprovalRule) -> None:
    # Materialized chains keep their steps; only the back-reference goes.
    session.execute(
        update(Claim)
        .where(Claim.approval_rule_id == rule.id)
        .values(approval_rule_id=None)
        .execution_options(synchronize_session=False)
    )
    session.delete(rule)
    session.commit()


def resolve_rule_for_claim(session: Session, *, claim: Claim, submitter: User) -> ApprovalRule:
    rules = list_rules(session, org_id=claim.org_id, active_only=True)
    attrs = ClaimAttributes.from_claim(claim, submitter)
    try:
        rule = select_rule(attrs, rules)
    except NoApplicableRule:
        log_event(
            logger,
            "approval.rule.not_found",
            claim_id=str(claim.id),
            org_id=str(claim.org_id),
            total_amount=str(attrs.total_amount),
            active_rules=len(rules),
        )
        raise
    log_event(
        logger,
        "approval.rule.selected",
        claim_id=str(claim.id),
        rule_id=str(rule.id),
        rule_name=rule.name,
        is_default=rule.is_default,
    )
    return rule
