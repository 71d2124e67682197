from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from claimflow.core.config import settings
from claimflow.core.currencies import normalize_currency
from claimflow.core.logging import get_logger, log_event, log_exception
from claimflow.modules.claims.models import Claim, ClaimStatus
from claimflow.modules.expenses.models import ExpenseCategory, ExpenseItem
from claimflow.modules.fx.service import lookup_rate
from claimflow.modules.policy.analyzer import RiskAlert, analyze, eligible_amount
from claimflow.modules.policy.defaults import (
    DEFAULT_POLICY_DESCRIPTION,
    DEFAULT_POLICY_NAME,
    DEFAULT_TRAVEL_RULES,
)
from claimflow.modules.policy.models import Policy, PolicyRule

logger = get_logger(__name__)

# Claims whose spend counts towards annual limits.
BOOKED_STATUSES = (ClaimStatus.APPROVED, ClaimStatus.PROCESSING, ClaimStatus.PAID)


def list_policies(
    session: Session, *, org_id: uuid.UUID, active_only: bool = False
) -> list[Policy]:
    q = (
        select(Policy)
        .where(Policy.org_id == org_id)
        .options(selectinload(Policy.rules))
        .order_by(Policy.created_at, Policy.id)
    )
    if active_only:
        q = q.where(Policy.is_active.is_(True))
    return list(session.scalars(q))


def get_policy(session: Session, *, org_id: uuid.UUID, policy_id: uuid.UUID) -> Policy:
    policy = session.scalar(
        select(Policy).where(Policy.id == policy_id, Policy.org_id == org_id)
    )
    if not policy:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Policy not found")
    return policy


def _build_rule(*, position: int, data: dict) -> PolicyRule:
    name = str(data.get("name") or "").strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Rule name is required")

    categories = data.get("categories") or None
    if categories:
        known = {c.value for c in ExpenseCategory}
        unknown = sorted(set(categories) - known)
        if unknown:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"Unknown categories: {', '.join(unknown)}",
            )
        categories = sorted(set(categories))

    limit_type = data.get("limit_type")
    limit_amount = data.get("limit_amount")
    if (limit_type is None) != (limit_amount is None):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="limit_type and limit_amount must be set together",
        )
    if limit_amount is not None and limit_amount <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="limit_amount must be positive"
        )

    limit_currency = data.get("limit_currency")
    if limit_currency:
        limit_currency = normalize_currency(limit_currency)
        if not limit_currency:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="limit_currency must be a valid ISO-4217 code",
            )

    return PolicyRule(
        position=position,
        name=name,
        categories=categories,
        limit_type=limit_type,
        limit_amount=limit_amount,
        limit_currency=limit_currency or None,
        requires_receipt=bool(data.get("requires_receipt")),
        requires_approval=bool(data.get("requires_approval")),
        message=data.get("message"),
        suggestion=data.get("suggestion"),
    )


def create_policy(
    session: Session,
    *,
    org_id: uuid.UUID,
    name: str,
    description: str | None = None,
    is_active: bool = True,
    rules: list[dict] | None = None,
) -> Policy:
    name = name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")

    policy = Policy(
        org_id=org_id,
        name=name,
        description=description,
        version=1,
        is_active=is_active,
    )
    policy.rules = [_build_rule(position=i, data=r) for i, r in enumerate(rules or [])]
    session.add(policy)
    session.commit()
    session.refresh(policy)
    log_event(
        logger, "policy.created", policy_id=str(policy.id), rules_count=len(policy.rules)
    )
    return policy


def update_policy(session: Session, *, policy: Policy, changes: dict) -> Policy:
    if changes.get("name") is not None:
        name = changes["name"].strip()
        if not name:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
        policy.name = name
    if "description" in changes:
        policy.description = changes["description"]
    if changes.get("is_active") is not None:
        policy.is_active = changes["is_active"]
    policy.version += 1
    session.add(policy)
    session.commit()
    session.refresh(policy)
    return policy


def delete_policy(session: Session, *, policy: Policy) -> None:
    session.delete(policy)
    session.commit()


def add_rule(session: Session, *, policy: Policy, data: dict) -> PolicyRule:
    position = max((r.position for r in policy.rules), default=-1) + 1
    rule = _build_rule(position=position, data=data)
    policy.rules.append(rule)
    policy.version += 1
    session.add(policy)
    session.commit()
    session.refresh(rule)
    return rule


def remove_rule(session: Session, *, policy: Policy, rule_id: uuid.UUID) -> None:
    rule = next((r for r in policy.rules if r.id == rule_id), None)
    if not rule:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Policy rule not found")
    policy.rules.remove(rule)
    policy.version += 1
    session.add(policy)
    session.commit()


@dataclass
class RuleGap:
    rule_id: uuid.UUID
    rule_name: str
    missing: list[str]


@dataclass
class CompletenessReport:
    policy_id: uuid.UUID
    rule_gaps: list[RuleGap] = field(default_factory=list)
    uncovered_categories: list[str] = field(default_factory=list)

    @property
    def is_complete(self) -> bool:
        return not self.rule_gaps


def check_policy_completeness(policy: Policy) -> CompletenessReport:
    """List rules that are missing parts and categories no rule covers."""
    report = CompletenessReport(policy_id=policy.id)
    covered: set[str] = set()
    covers_all = False

    for rule in policy.rules:
        missing: list[str] = []
        if not (rule.name or "").strip():
            missing.append("name")
        if not rule.categories:
            missing.append("categories")
        if not rule.has_limit:
            missing.append("limit")
        if not (rule.message or "").strip():
            missing.append("message")
        if missing:
            report.rule_gaps.append(
                RuleGap(rule_id=rule.id, rule_name=rule.name, missing=missing)
            )
        if rule.categories:
            covered.update(rule.categories)
        else:
            covers_all = True

    if not covers_all:
        report.uncovered_categories = [
            c.value for c in ExpenseCategory if c.value not in covered
        ]
    return report


def seed_default_policy(session: Session, *, org_id: uuid.UUID) -> Policy | None:
    existing = session.scalar(
        select(Policy.id).where(Policy.org_id == org_id, Policy.name == DEFAULT_POLICY_NAME)
    )
    if existing:
        return None
    return create_policy(
        session,
        org_id=org_id,
        name=DEFAULT_POLICY_NAME,
        description=DEFAULT_POLICY_DESCRIPTION,
        rules=[dict(r) for r in DEFAULT_TRAVEL_RULES],
    )


class ApprovedSpendTotals:
    """Annual spend a submitter already has on booked claims."""

    def __init__(
        self,
        session: Session,
        *,
        org_id: uuid.UUID,
        employee_id: uuid.UUID,
        exclude_claim_id: uuid.UUID | None = None,
    ) -> None:
        self._session = session
        self._org_id = org_id
        self._employee_id = employee_id
        self._exclude_claim_id = exclude_claim_id

    def year_total(self, *, year: int, categories: frozenset[str] | None) -> Decimal:
        q = (
            select(func.coalesce(func.sum(ExpenseItem.amount_base_amount), 0))
            .join(Claim, Claim.id == ExpenseItem.claim_id)
            .where(
                Claim.org_id == self._org_id,
                Claim.employee_id == self._employee_id,
                Claim.status.in_(BOOKED_STATUSES),
                ExpenseItem.expense_date >= date(year, 1, 1),
                ExpenseItem.expense_date <= date(year, 12, 31),
            )
        )
        if self._exclude_claim_id:
            q = q.where(Claim.id != self._exclude_claim_id)
        if categories:
            q = q.where(ExpenseItem.category.in_(sorted(categories)))
        return Decimal(str(self._session.scalar(q) or 0))


def _limit_rates(
    session: Session, *, org_id: uuid.UUID, base_currency: str, policies: list[Policy]
) -> dict[str, Decimal]:
    rates: dict[str, Decimal] = {}
    for policy in policies:
        for rule in policy.rules:
            currency = (rule.limit_currency or base_currency).upper()
            if currency == base_currency.upper() or currency in rates:
                continue
            rate = lookup_rate(
                session, org_id=org_id, from_currency=currency, to_currency=base_currency
            )
            if rate is not None:
                rates[currency] = rate
    return rates


def item_eligible_amount(
    session: Session, *, claim: Claim, category: str, amount: Decimal
) -> Decimal:
    """Reimbursable part of a line item under the organization's active policies."""
    policies = list_policies(session, org_id=claim.org_id, active_only=True)
    limit_rates = _limit_rates(
        session, org_id=claim.org_id, base_currency=claim.base_currency, policies=policies
    )
    eligible = eligible_amount(
        amount, category, policies, base_currency=claim.base_currency, limit_rates=limit_rates
    )
    if eligible < amount:
        log_event(
            logger,
            "policy.item.capped",
            claim_id=str(claim.id),
            category=category,
            amount=str(amount),
            eligible_amount=str(eligible),
        )
    return eligible


def analyze_claim(session: Session, *, claim: Claim) -> list[RiskAlert]:
    """Best-effort compliance advisories for a claim.

    Database failures while loading policy data are logged and produce an
    empty list; callers never see them.
    """
    try:
        policies = list_policies(session, org_id=claim.org_id, active_only=True)
        limit_rates = _limit_rates(
            session, org_id=claim.org_id, base_currency=claim.base_currency, policies=policies
        )
        alerts = analyze(
            claim.items,
            policies,
            base_currency=claim.base_currency,
            materiality_threshold=settings.materiality_threshold,
            limit_rates=limit_rates,
            period_totals=ApprovedSpendTotals(
                session,
                org_id=claim.org_id,
                employee_id=claim.employee_id,
                exclude_claim_id=claim.id,
            ),
        )
    except SQLAlchemyError:
        session.rollback()
        log_exception(logger, "policy.analyze.unavailable", claim_id=str(claim.id))
        return []

    log_event(
        logger,
        "policy.analyze.done",
        claim_id=str(claim.id),
        policies_count=len(policies),
        alerts_count=len(alerts),
        high_count=sum(1 for a in alerts if a.severity.value == "high"),
    )
    return alerts
