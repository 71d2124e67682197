"""Compliance analysis of a claim's line items against spending policies.

``analyze`` is pure: it reads already-loaded items and policies and returns
derived, unpersisted ``RiskAlert`` values. Limits are inclusive; only a total
strictly above the limit raises an over-budget alert.

Aggregation per limit type:

* ``per_item``  - each matching item on its own
* ``per_day``   - matching items grouped by expense date
* ``per_month`` - all matching items in the claim
* ``per_trip``  - all matching items in the claim
* ``per_year``  - matching items grouped by calendar year, added to the
  submitter's prior approved spend from a ``PeriodTotals`` provider; skipped
  when no provider is given

Alerts come back ordered by severity (high, medium, low) and then by the
order they were detected in.

``eligible_amount`` is the one place a limit is enforced rather than advised on:
an item's reimbursable amount never exceeds the tightest ``per_item`` limit
covering its category.
"""

from __future__ import annotations

import enum
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Protocol

from claimflow.core.logging import get_logger, log_event
from claimflow.modules.policy.models import LimitType

logger = get_logger(__name__)

HUNDRED = Decimal("100")
CENT = Decimal("0.01")
HIGH_OVERAGE_RATIO = Decimal("0.5")


class RiskKind(str, enum.Enum):
    OVER_BUDGET = "over_budget"
    MISSING_ATTACHMENT = "missing_attachment"
    NON_COMPLIANT_RECEIPT = "non_compliant_receipt"


class RiskSeverity(str, enum.Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


_SEVERITY_RANK = {RiskSeverity.HIGH: 0, RiskSeverity.MEDIUM: 1, RiskSeverity.LOW: 2}


@dataclass(frozen=True)
class RiskAlert:
    key: str
    kind: RiskKind
    severity: RiskSeverity
    message: str
    item_id: uuid.UUID | None = None
    policy_id: uuid.UUID | None = None
    rule_id: uuid.UUID | None = None
    rule_name: str | None = None
    limit_type: LimitType | None = None
    grouping: str | None = None
    limit: Decimal | None = None
    actual: Decimal | None = None
    percentage: Decimal | None = None
    currency: str | None = None
    requires_approval: bool = False
    suggestion: str | None = None
    required_by: tuple[str, ...] = field(default_factory=tuple)


class PeriodTotals(Protocol):
    """Spend already booked outside the claim being analyzed."""

    def year_total(self, *, year: int, categories: frozenset[str] | None) -> Decimal: ...


def overage_percentage(actual: Decimal, limit: Decimal) -> Decimal | None:
    if limit <= 0:
        return None
    return ((actual - limit) / limit * HUNDRED).quantize(CENT, rounding=ROUND_HALF_UP)


def _overage_severity(limit_type: LimitType, actual: Decimal, limit: Decimal) -> RiskSeverity:
    if limit_type in (LimitType.PER_MONTH, LimitType.PER_TRIP, LimitType.PER_YEAR):
        return RiskSeverity.HIGH
    if actual - limit > limit * HIGH_OVERAGE_RATIO:
        return RiskSeverity.HIGH
    return RiskSeverity.MEDIUM


def _limit_in_base(
    rule, *, base_currency: str, limit_rates: Mapping[str, Decimal]
) -> Decimal | None:
    currency = (rule.limit_currency or base_currency).upper()
    if currency == base_currency.upper():
        return Decimal(rule.limit_amount)
    rate = limit_rates.get(currency)
    if rate is None:
        log_event(
            logger,
            "policy.analyze.limit_skipped",
            rule_id=str(rule.id),
            limit_currency=currency,
            base_currency=base_currency,
        )
        return None
    return (Decimal(rule.limit_amount) * rate).quantize(CENT)


def _groups(limit_type: LimitType, items: list) -> list[tuple[str, list]]:
    if limit_type == LimitType.PER_ITEM:
        return [(str(i.id), [i]) for i in items]
    if limit_type == LimitType.PER_DAY:
        by_day: dict[str, list] = {}
        for item in items:
            by_day.setdefault(item.expense_date.isoformat(), []).append(item)
        return sorted(by_day.items())
    if limit_type == LimitType.PER_YEAR:
        by_year: dict[str, list] = {}
        for item in items:
            by_year.setdefault(str(item.expense_date.year), []).append(item)
        return sorted(by_year.items())
    return [("claim", items)] if items else []


def _limit_alerts(
    policy,
    rule,
    items: list,
    *,
    base_currency: str,
    limit_rates: Mapping[str, Decimal],
    period_totals: PeriodTotals | None,
) -> list[RiskAlert]:
    if rule.limit_type == LimitType.PER_YEAR and period_totals is None:
        return []
    matching = [i for i in items if rule.applies_to(i.category)]
    if not matching:
        return []
    limit = _limit_in_base(rule, base_currency=base_currency, limit_rates=limit_rates)
    if limit is None:
        return []

    alerts: list[RiskAlert] = []
    for grouping, group in _groups(rule.limit_type, matching):
        actual = sum((Decimal(i.amount_base_amount) for i in group), Decimal("0"))
        if rule.limit_type == LimitType.PER_YEAR:
            scope = frozenset(rule.categories) if rule.categories else None
            actual += period_totals.year_total(year=int(grouping), categories=scope)
        if actual <= limit:
            continue

        percentage = overage_percentage(actual, limit)
        alerts.append(
            RiskAlert(
                key=f"rule:{rule.id}:{grouping}",
                kind=RiskKind.OVER_BUDGET,
                severity=_overage_severity(rule.limit_type, actual, limit),
                message=rule.message
                or f"{rule.name}: {actual} {base_currency} exceeds limit of {limit}",
                item_id=group[0].id if rule.limit_type == LimitType.PER_ITEM else None,
                policy_id=policy.id,
                rule_id=rule.id,
                rule_name=rule.name,
                limit_type=rule.limit_type,
                grouping=grouping,
                limit=limit,
                actual=actual,
                percentage=percentage,
                currency=base_currency,
                requires_approval=bool(rule.requires_approval),
                suggestion=rule.suggestion,
            )
        )
    return alerts


def _receipt_alerts(
    items: list, rules: list, *, base_currency: str, materiality_threshold: Decimal
) -> list[RiskAlert]:
    alerts: list[RiskAlert] = []
    for item in items:
        amount = Decimal(item.amount_base_amount)
        if not item.receipt_url:
            if amount > materiality_threshold:
                required_by = tuple(
                    r.name for r in rules if r.requires_receipt and r.applies_to(item.category)
                )
                alerts.append(
                    RiskAlert(
                        key=f"item:{item.id}:missing_attachment",
                        kind=RiskKind.MISSING_ATTACHMENT,
                        severity=RiskSeverity.LOW,
                        message=(
                            f"{amount} {base_currency} {item.category} expense has no receipt "
                            f"(required above {materiality_threshold})"
                        ),
                        item_id=item.id,
                        actual=amount,
                        limit=materiality_threshold,
                        currency=base_currency,
                        required_by=required_by,
                    )
                )
        elif item.receipt_is_official is False:
            alerts.append(
                RiskAlert(
                    key=f"item:{item.id}:non_compliant_receipt",
                    kind=RiskKind.NON_COMPLIANT_RECEIPT,
                    severity=RiskSeverity.MEDIUM,
                    message="Receipt is not an official invoice",
                    item_id=item.id,
                    suggestion=item.receipt_suggestion,
                )
            )
    return alerts


def analyze(
    items: Iterable,
    policies: Iterable,
    *,
    base_currency: str,
    materiality_threshold: Decimal,
    limit_rates: Mapping[str, Decimal] | None = None,
    period_totals: PeriodTotals | None = None,
) -> list[RiskAlert]:
    items = list(items)
    active = [p for p in policies if p.is_active]
    limit_rates = limit_rates or {}

    detected: list[RiskAlert] = []
    active_rules: list = []
    for policy in active:
        for rule in sorted(policy.rules, key=lambda r: r.position):
            active_rules.append(rule)
            if not rule.has_limit:
                continue
            detected.extend(
                _limit_alerts(
                    policy,
                    rule,
                    items,
                    base_currency=base_currency,
                    limit_rates=limit_rates,
                    period_totals=period_totals,
                )
            )

    detected.extend(
        _receipt_alerts(
            items,
            active_rules,
            base_currency=base_currency,
            materiality_threshold=materiality_threshold,
        )
    )
    # sorted() is stable, so detection order survives within a severity.
    return sorted(detected, key=lambda a: _SEVERITY_RANK[a.severity])


def eligible_amount(
    amount: Decimal,
    category: str | None,
    policies: Iterable,
    *,
    base_currency: str,
    limit_rates: Mapping[str, Decimal] | None = None,
) -> Decimal:
    """Cap one item's base amount at the lowest applicable per-item limit.

    Limits whose currency has no known rate are ignored.
    """
    limit_rates = limit_rates or {}
    caps: list[Decimal] = []
    for policy in policies:
        if not policy.is_active:
            continue
        for rule in policy.rules:
            if rule.limit_type != LimitType.PER_ITEM or not rule.has_limit:
                continue
            if not rule.applies_to(category):
                continue
            cap = _limit_in_base(rule, base_currency=base_currency, limit_rates=limit_rates)
            if cap is not None:
                caps.append(cap)
    if not caps:
        return amount
    return min(amount, min(caps))
