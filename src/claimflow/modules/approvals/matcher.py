"""Selection of the approval rule that governs a claim.

Pure functions over already-loaded rules; nothing here touches the session.
Non-default rules are tried in a deterministic total order (priority, then
creation time, then id) and the first whose conditions all hold wins. The
organization's default rule is only a fallback and its conditions are ignored.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal

from claimflow.modules.approvals.models import ApprovalRule
from claimflow.modules.approvals.schemas import RuleConditions, parse_conditions
from claimflow.modules.identity.models import UserRole
from claimflow.modules.workflow.errors import NoApplicableRule

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class ClaimAttributes:
    total_amount: Decimal
    categories: frozenset[str]
    department_id: uuid.UUID | None = None
    submitter_role: UserRole | None = None

    @classmethod
    def from_claim(cls, claim, submitter) -> ClaimAttributes:
        return cls(
            total_amount=claim.total_base_amount or Decimal("0"),
            categories=claim.categories,
            department_id=submitter.department_id,
            submitter_role=submitter.role,
        )


def conditions_match(conditions: RuleConditions, attrs: ClaimAttributes) -> bool:
    if conditions.min_amount is not None and attrs.total_amount < conditions.min_amount:
        return False
    if conditions.max_amount is not None and attrs.total_amount > conditions.max_amount:
        return False
    if conditions.categories and not attrs.categories.intersection(conditions.categories):
        return False
    if conditions.departments and attrs.department_id not in conditions.departments:
        return False
    if conditions.submitter_roles and attrs.submitter_role not in conditions.submitter_roles:
        return False
    return True


def rule_order_key(rule: ApprovalRule) -> tuple[int, datetime, str]:
    created = rule.created_at or _EPOCH
    if created.tzinfo is None:
        created = created.replace(tzinfo=UTC)
    return (rule.priority or 0, created, str(rule.id))


def select_rule(attrs: ClaimAttributes, rules: Iterable[ApprovalRule]) -> ApprovalRule:
    active = sorted((r for r in rules if r.is_active), key=rule_order_key)

    for rule in active:
        if rule.is_default:
            continue
        if conditions_match(parse_conditions(rule.conditions_json), attrs):
            return rule

    for rule in active:
        if rule.is_default:
            return rule

    raise NoApplicableRule()
