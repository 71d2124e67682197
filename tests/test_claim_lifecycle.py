from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest
from fastapi import HTTPException

from claimflow.core.db import SessionLocal
from claimflow.modules.approvals.models import StepType
from claimflow.modules.approvals.schemas import StepTemplate
from claimflow.modules.approvals.service import create_rule
from claimflow.modules.audit.service import list_events
from claimflow.modules.claims.models import Claim, ClaimStatus
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
from claimflow.modules.expenses.service import create_item, delete_item, update_item
from claimflow.modules.fx.service import upsert_fx_rate
from claimflow.modules.identity.models import UserRole
from claimflow.modules.identity.service import create_organization, create_user
from claimflow.modules.policy.service import seed_default_policy
from claimflow.modules.workflow.models import StepDecision, StepStatus
from claimflow.modules.workflow.service import get_chain, record_decision


def _people(session):
    org = create_organization(session, name="Acme", base_currency="USD")
    employee = create_user(
        session, org_id=org.id, email="employee@acme.com", password="pw", role=UserRole.EMPLOYEE
    )
    finance = create_user(
        session, org_id=org.id, email="finance@acme.com", password="pw", role=UserRole.FINANCE
    )
    return org, employee, finance


def _add(session, claim, user, amount="40", currency="USD", **kw):
    return create_item(
        session,
        claim=claim,
        user=user,
        category=kw.pop("category", "taxi"),
        expense_date=kw.pop("expense_date", date(2026, 3, 2)),
        amount_original_amount=Decimal(amount),
        amount_original_currency=currency,
        **kw,
    )


def test_items_capture_rates_and_keep_the_total_current():
    with SessionLocal() as session:
        org, employee, _ = _people(session)
        upsert_fx_rate(
            session, org_id=org.id, from_currency="EUR", to_currency="USD", rate=Decimal("1.10")
        )
        claim = create_claim(session, user=employee, title="  Lisbon  ")
        assert claim.title == "Lisbon"
        assert claim.base_currency == "USD"

        usd = _add(session, claim, employee, "40")
        eur = _add(session, claim, employee, "100", "eur", category="hotel")
        assert usd.fx_rate_to_base == Decimal("1")
        assert eur.fx_rate_to_base == Decimal("1.10")
        assert eur.amount_base_amount == Decimal("110.00")
        assert claim.total_base_amount == Decimal("150.00")
        assert claim.original_totals == {"USD": Decimal("40"), "EUR": Decimal("100")}

        # Explicit rates win over the table.
        update_item(
            session,
            claim=claim,
            user=employee,
            item_id=eur.id,
            changes={"fx_rate": Decimal("1.20")},
        )
        assert claim.total_base_amount == Decimal("160.00")

        delete_item(session, claim=claim, user=employee, item_id=usd.id)
        assert claim.total_base_amount == Decimal("120.00")


def test_item_without_a_known_rate_is_refused():
    with SessionLocal() as session:
        _, employee, _ = _people(session)
        claim = create_claim(session, user=employee)

        with pytest.raises(HTTPException) as exc:
            _add(session, claim, employee, "10", "JPY")
        assert exc.value.status_code == 400

        with pytest.raises(HTTPException) as exc:
            _add(session, claim, employee, "10", category="yachts")
        assert exc.value.status_code == 400

        with pytest.raises(HTTPException) as exc:
            _add(session, claim, employee, "0")
        assert exc.value.status_code == 400


def test_submit_needs_items_and_locks_the_claim():
    with SessionLocal() as session:
        org, employee, _ = _people(session)
        create_rule(
            session,
            org_id=org.id,
            name="Finance",
            steps=[StepTemplate(type=StepType.ROLE, role=UserRole.FINANCE)],
            is_default=True,
        )
        claim = create_claim(session, user=employee)

        with pytest.raises(HTTPException) as exc:
            submit_claim(session, claim=claim, user=employee)
        assert exc.value.status_code == 400

        _add(session, claim, employee)
        claim = submit_claim(session, claim=claim, user=employee)
        assert claim.status == ClaimStatus.PENDING

        for attempt in (
            lambda: update_claim(session, claim=claim, user=employee, changes={"title": "x"}),
            lambda: _add(session, claim, employee),
            lambda: submit_claim(session, claim=claim, user=employee),
            lambda: delete_claim(session, claim=claim, user=employee),
        ):
            with pytest.raises(HTTPException) as exc:
                attempt()
            assert exc.value.status_code == 409


def test_rejected_claim_can_be_reopened_and_resubmitted():
    with SessionLocal() as session:
        org, employee, finance = _people(session)
        create_rule(
            session,
            org_id=org.id,
            name="Finance",
            steps=[StepTemplate(type=StepType.ROLE, role=UserRole.FINANCE)],
            is_default=True,
        )
        claim = create_claim(session, user=employee)
        _add(session, claim, employee)
        claim = submit_claim(session, claim=claim, user=employee)
        step = get_chain(session, claim=claim)[0]
        record_decision(
            session,
            claim_id=claim.id,
            step_id=step.id,
            actor=finance,
            decision=StepDecision.REJECT,
            comment="missing invoice",
        )

        claim = reopen_claim(session, claim=session.get(Claim, claim.id), user=employee)
        assert claim.status == ClaimStatus.DRAFT
        assert claim.rejection_reason is None
        assert get_chain(session, claim=claim) == []

        claim = update_claim(session, claim=claim, user=employee, changes={"purpose": "Client visit"})
        claim = submit_claim(session, claim=claim, user=employee)
        assert claim.status == ClaimStatus.PENDING
        assert [s.status for s in get_chain(session, claim=claim)] == [StepStatus.PENDING]

        assert [e.event_type for e in list_events(session, claim_id=claim.id)] == [
            "claim.submitted",
            "step.rejected",
            "claim.reopened",
            "claim.submitted",
        ]


def test_cancel_skips_open_steps():
    with SessionLocal() as session:
        org, employee, _ = _people(session)
        create_rule(
            session,
            org_id=org.id,
            name="Finance",
            steps=[StepTemplate(type=StepType.ROLE, role=UserRole.FINANCE)],
            is_default=True,
        )
        draft = create_claim(session, user=employee)
        assert cancel_claim(session, claim=draft, user=employee).status == ClaimStatus.CANCELLED

        claim = create_claim(session, user=employee)
        _add(session, claim, employee)
        claim = submit_claim(session, claim=claim, user=employee)
        claim = cancel_claim(session, claim=claim, user=employee)

        assert claim.status == ClaimStatus.CANCELLED
        step = get_chain(session, claim=claim)[0]
        assert step.status == StepStatus.SKIPPED
        assert step.comment == "Claim cancelled by submitter"


def test_payout_runs_through_processing_to_paid():
    with SessionLocal() as session:
        org, employee, finance = _people(session)
        create_rule(session, org_id=org.id, name="Auto", steps=[], is_default=True)
        claim = create_claim(session, user=employee)
        _add(session, claim, employee)
        claim = submit_claim(session, claim=claim, user=employee)
        assert claim.status == ClaimStatus.APPROVED

        with pytest.raises(HTTPException) as exc:
            mark_processing(session, claim=claim, user=employee)
        assert exc.value.status_code == 403
        with pytest.raises(HTTPException) as exc:
            mark_paid(session, claim=claim, user=finance)
        assert exc.value.status_code == 409

        claim = mark_processing(session, claim=claim, user=finance)
        claim = mark_paid(session, claim=claim, user=finance)
        assert claim.status == ClaimStatus.PAID
        assert claim.paid_at is not None


def test_claim_visibility():
    with SessionLocal() as session:
        org, employee, finance = _people(session)
        colleague = create_user(
            session, org_id=org.id, email="colleague@acme.com", password="pw", role=UserRole.EMPLOYEE
        )
        other_org = create_organization(session, name="Globex")
        outsider = create_user(
            session, org_id=other_org.id, email="outsider@globex.com", password="pw", role=UserRole.ADMIN
        )
        claim = create_claim(session, user=employee)

        assert get_claim_for_user(session, claim_id=claim.id, user=finance).id == claim.id
        with pytest.raises(HTTPException) as exc:
            get_claim_for_user(session, claim_id=claim.id, user=colleague)
        assert exc.value.status_code == 403
        with pytest.raises(HTTPException) as exc:
            get_claim_for_user(session, claim_id=claim.id, user=outsider)
        assert exc.value.status_code == 404

        assert [c.id for c in list_claims_for_user(session, user=finance)] == [claim.id]
        assert list_claims_for_user(session, user=colleague) == []
        assert list_claims_for_user(
            session, user=employee, status_filter=ClaimStatus.PENDING
        ) == []


def test_draft_claim_can_be_deleted():
    with SessionLocal() as session:
        _, employee, _ = _people(session)
        claim = create_claim(session, user=employee)
        _add(session, claim, employee)
        claim_id = claim.id

        delete_claim(session, claim=claim, user=employee)
        assert session.get(Claim, claim_id) is None


def test_items_are_capped_at_the_per_item_policy_limit():
    with SessionLocal() as session:
        org, employee, finance = _people(session)
        seed_default_policy(session, org_id=org.id)
        create_rule(session, org_id=org.id, name="Auto", steps=[], is_default=True)
        claim = create_claim(session, user=employee)

        taxi = _add(session, claim, employee, "25", category="taxi")
        hotel = _add(session, claim, employee, "200", category="hotel")
        assert taxi.amount_base_amount == Decimal("25.00")
        assert taxi.amount_eligible_amount == Decimal("15.00")
        assert taxi.was_capped
        # Per-day limits stay advisory.
        assert hotel.amount_eligible_amount == Decimal("200.00")
        assert not hotel.was_capped
        assert claim.total_base_amount == Decimal("225.00")
        assert claim.eligible_base_amount == Decimal("215.00")

        update_item(
            session, claim=claim, user=employee, item_id=taxi.id, changes={"category": "parking"}
        )
        assert taxi.amount_eligible_amount == Decimal("25.00")
        assert claim.eligible_base_amount == Decimal("225.00")

        update_item(
            session,
            claim=claim,
            user=employee,
            item_id=taxi.id,
            changes={"category": "taxi", "amount_original_amount": Decimal("14")},
        )
        assert not taxi.was_capped
        assert claim.eligible_base_amount == Decimal("214.00")

        update_item(
            session,
            claim=claim,
            user=employee,
            item_id=taxi.id,
            changes={"amount_original_amount": Decimal("40")},
        )
        assert taxi.amount_eligible_amount == Decimal("15.00")
        assert claim.total_base_amount == Decimal("240.00")
        assert claim.eligible_base_amount == Decimal("215.00")

        claim = submit_claim(session, claim=claim, user=employee)
        claim = mark_processing(session, claim=claim, user=finance)
        assert claim.eligible_base_amount == Decimal("215.00")
