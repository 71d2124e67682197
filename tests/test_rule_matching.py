from __future__ import annotations

import uuid
import warnings
from datetime import UTC, datetime
from decimal import Decimal

import pytest
from pydantic import ValidationError

from claimflow.modules.approvals.matcher import ClaimAttributes, select_rule
from claimflow.modules.approvals.models import ApprovalRule, StepType
from claimflow.modules.approvals.schemas import RuleConditions, StepTemplate
from claimflow.modules.identity.models import UserRole
from claimflow.modules.workflow.errors import NoApplicableRule


def _rule(
    name: str,
    *,
    priority: int = 0,
    conditions: dict | None = None,
    is_default: bool = False,
    is_active: bool = True,
    created_at: datetime | None = None,
    rule_id: uuid.UUID | None = None,
) -> ApprovalRule:
    return ApprovalRule(
        id=rule_id or uuid.uuid4(),
        org_id=uuid.uuid4(),
        name=name,
        priority=priority,
        conditions_json=conditions or {},
        steps_json=[],
        is_active=is_active,
        is_default=is_default,
        created_at=created_at or datetime(2026, 1, 1, tzinfo=UTC),
    )


def _attrs(total: str = "50", categories=("flight",), **kwargs) -> ClaimAttributes:
    return ClaimAttributes(total_amount=Decimal(total), categories=frozenset(categories), **kwargs)


def test_category_rule_wins_over_default():
    hotel_rule = _rule("Hotel", priority=1, conditions={"categories": ["hotel"]})
    default = _rule("Default", priority=0, is_default=True)
    rules = [default, hotel_rule]

    assert select_rule(_attrs(categories=["flight"]), rules) is default
    assert select_rule(_attrs(categories=["hotel", "meal"]), rules) is hotel_rule


def test_default_rule_conditions_are_ignored():
    default = _rule("Default", is_default=True, conditions={"min_amount": "1000000"})
    assert select_rule(_attrs(total="10"), [default]) is default


def test_lower_priority_number_is_tried_first():
    broad = _rule("Broad", priority=5)
    narrow = _rule("Narrow", priority=1, conditions={"min_amount": "100"})

    assert select_rule(_attrs(total="150"), [broad, narrow]) is narrow
    assert select_rule(_attrs(total="99.99"), [broad, narrow]) is broad


def test_equal_priority_breaks_ties_by_creation_time_then_id():
    early = _rule("Early", priority=1, created_at=datetime(2026, 1, 1, tzinfo=UTC))
    late = _rule("Late", priority=1, created_at=datetime(2026, 2, 1, tzinfo=UTC))
    assert select_rule(_attrs(), [late, early]) is early

    same_time = datetime(2026, 3, 1, tzinfo=UTC)
    low_id = _rule("A", priority=1, created_at=same_time, rule_id=uuid.UUID(int=1))
    high_id = _rule("B", priority=1, created_at=same_time, rule_id=uuid.UUID(int=2))
    for ordering in ([low_id, high_id], [high_id, low_id]):
        assert select_rule(_attrs(), ordering) is low_id


def test_amount_bounds_are_inclusive():
    rule = _rule("Band", conditions={"min_amount": "100", "max_amount": "500"})
    default = _rule("Default", is_default=True)

    assert select_rule(_attrs(total="100"), [rule, default]) is rule
    assert select_rule(_attrs(total="500"), [rule, default]) is rule
    assert select_rule(_attrs(total="500.01"), [rule, default]) is default


def test_department_and_role_conditions():
    sales = uuid.uuid4()
    rule = _rule(
        "Sales managers",
        conditions={"departments": [str(sales)], "submitter_roles": ["MANAGER"]},
    )
    default = _rule("Default", is_default=True)

    hit = _attrs(department_id=sales, submitter_role=UserRole.MANAGER)
    wrong_role = _attrs(department_id=sales, submitter_role=UserRole.EMPLOYEE)
    wrong_dept = _attrs(department_id=uuid.uuid4(), submitter_role=UserRole.MANAGER)

    assert select_rule(hit, [rule, default]) is rule
    assert select_rule(wrong_role, [rule, default]) is default
    assert select_rule(wrong_dept, [rule, default]) is default


def test_inactive_rules_are_skipped():
    inactive = _rule("Inactive", priority=0, is_active=False)
    default = _rule("Default", is_default=True)
    assert select_rule(_attrs(), [inactive, default]) is default


def test_no_match_and_no_default_raises():
    only = _rule("Hotel only", conditions={"categories": ["hotel"]})
    with pytest.raises(NoApplicableRule) as excinfo:
        select_rule(_attrs(categories=["taxi"]), [only])
    assert excinfo.value.status_code == 422
    assert excinfo.value.detail["code"] == "no_applicable_rule"

    with pytest.raises(NoApplicableRule):
        select_rule(_attrs(), [_rule("Default", is_default=True, is_active=False)])


def test_step_template_validation():
    with pytest.raises(ValueError):
        StepTemplate(type=StepType.ROLE)
    with pytest.raises(ValueError):
        StepTemplate(type=StepType.SPECIFIC_USER)
    with pytest.raises(ValueError):
        StepTemplate(type=StepType.AMOUNT_THRESHOLD, role=UserRole.ADMIN)
    assert StepTemplate(type=StepType.MANAGER).user_id is None


def test_rule_conditions_reject_unknown_categories():
    with pytest.raises(ValidationError) as exc:
        RuleConditions(categories=["hotel", "Hotel", "spa"])
    assert "Unknown categories: Hotel, spa" in str(exc.value)

    assert RuleConditions(categories=["hotel", "car_rental"]).categories == ["hotel", "car_rental"]
    assert RuleConditions().categories is None


def test_no_applicable_rule_status_raises_no_deprecation_warning():
    with warnings.catch_warnings():
        warnings.simplefilter("error", DeprecationWarning)
        err = NoApplicableRule()
        assert err.status_code == NoApplicableRule.http_status == 422
    assert err.detail == {
        "code": "no_applicable_rule",
        "message": "No active approval rule applies to this claim",
    }
