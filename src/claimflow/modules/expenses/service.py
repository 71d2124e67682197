from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from claimflow.core.currencies import normalize_currency
from claimflow.modules.claims.models import Claim, ClaimStatus
from claimflow.modules.expenses.models import ExpenseCategory, ExpenseItem
from claimflow.modules.fx.service import convert, lookup_rate
from claimflow.modules.identity.models import User
from claimflow.modules.policy.service import item_eligible_amount


def list_items(session: Session, *, claim_id: uuid.UUID) -> list[ExpenseItem]:
    return list(
        session.scalars(
            select(ExpenseItem)
            .where(ExpenseItem.claim_id == claim_id)
            .order_by(ExpenseItem.expense_date, ExpenseItem.created_at)
        )
    )


def _assert_claim_editable(*, claim: Claim, user: User) -> None:
    if claim.employee_id != user.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Not allowed")
    if claim.status != ClaimStatus.DRAFT:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Claim not editable in this status"
        )


def _clean_category(category: str | None) -> str:
    value = (category or "").strip().lower()
    try:
        return ExpenseCategory(value).value
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown category: {category!r}"
        ) from e


def _clean_currency(currency: str | None) -> str:
    norm = normalize_currency(currency)
    if not norm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Currency must be a valid ISO-4217 code",
        )
    return norm


def _check_amount(amount: Decimal | None) -> Decimal:
    if amount is None or amount <= 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Amount must be positive"
        )
    return amount


def _capture_rate(
    session: Session, *, claim: Claim, currency: str, override: Decimal | None
) -> Decimal:
    if override is not None:
        if override <= 0:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST, detail="fx_rate must be positive"
            )
        return override
    rate = lookup_rate(
        session, org_id=claim.org_id, from_currency=currency, to_currency=claim.base_currency
    )
    if rate is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"No exchange rate from {currency} to {claim.base_currency}",
        )
    return rate


def _apply_rate(item: ExpenseItem, *, claim: Claim, rate: Decimal) -> None:
    item.fx_rate_to_base = rate
    item.amount_base_amount = convert(item.amount_original_amount, rate)
    item.amount_base_currency = claim.base_currency


def _apply_cap(session: Session, item: ExpenseItem, *, claim: Claim) -> None:
    item.amount_eligible_amount = item_eligible_amount(
        session, claim=claim, category=item.category, amount=item.amount_base_amount
    )


def _recompute_total(claim: Claim) -> None:
    claim.total_base_amount = sum(
        (i.amount_base_amount for i in claim.items), Decimal("0")
    )
    claim.eligible_base_amount = sum(
        (i.amount_eligible_amount for i in claim.items), Decimal("0")
    )


def _get_item(session: Session, *, claim: Claim, item_id: uuid.UUID) -> ExpenseItem:
    item = session.scalar(
        select(ExpenseItem).where(ExpenseItem.id == item_id, ExpenseItem.claim_id == claim.id)
    )
    if not item:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Expense item not found")
    return item


def create_item(
    session: Session,
    *,
    claim: Claim,
    user: User,
    category: str,
    expense_date: date,
    amount_original_amount: Decimal,
    amount_original_currency: str,
    description: str | None = None,
    vendor: str | None = None,
    receipt_url: str | None = None,
    receipt_is_official: bool | None = None,
    receipt_suggestion: str | None = None,
    fx_rate: Decimal | None = None,
) -> ExpenseItem:
    _assert_claim_editable(claim=claim, user=user)

    currency = _clean_currency(amount_original_currency)
    item = ExpenseItem(
        claim_id=claim.id,
        category=_clean_category(category),
        description=description.strip() if description and description.strip() else None,
        vendor=vendor.strip() if vendor and vendor.strip() else None,
        expense_date=expense_date,
        amount_original_amount=_check_amount(amount_original_amount),
        amount_original_currency=currency,
        receipt_url=receipt_url or None,
        receipt_is_official=receipt_is_official,
        receipt_suggestion=receipt_suggestion,
    )
    _apply_rate(
        item, claim=claim, rate=_capture_rate(session, claim=claim, currency=currency, override=fx_rate)
    )
    # Before the append, so autoflush never sees the item without its cap.
    _apply_cap(session, item, claim=claim)
    claim.items.append(item)
    _recompute_total(claim)
    session.add(claim)
    session.commit()
    session.refresh(item)
    return item


def update_item(
    session: Session,
    *,
    claim: Claim,
    user: User,
    item_id: uuid.UUID,
    changes: dict,
) -> ExpenseItem:
    """Edit a draft line item.

    Changing the amount or currency captures a fresh rate; other edits leave
    the stored rate alone.
    """
    _assert_claim_editable(claim=claim, user=user)
    item = _get_item(session, claim=claim, item_id=item_id)

    if "category" in changes:
        item.category = _clean_category(changes["category"])
    if "description" in changes:
        description = changes["description"]
        item.description = description.strip() if description and description.strip() else None
    if "vendor" in changes:
        vendor = changes["vendor"]
        item.vendor = vendor.strip() if vendor and vendor.strip() else None
    if changes.get("expense_date") is not None:
        item.expense_date = changes["expense_date"]
    for field in ("receipt_url", "receipt_is_official", "receipt_suggestion"):
        if field in changes:
            setattr(item, field, changes[field])

    recapture = False
    if "amount_original_amount" in changes:
        item.amount_original_amount = _check_amount(changes["amount_original_amount"])
        recapture = True
    if "amount_original_currency" in changes:
        item.amount_original_currency = _clean_currency(changes["amount_original_currency"])
        recapture = True
    if changes.get("fx_rate") is not None:
        recapture = True

    if recapture:
        rate = _capture_rate(
            session,
            claim=claim,
            currency=item.amount_original_currency,
            override=changes.get("fx_rate"),
        )
        _apply_rate(item, claim=claim, rate=rate)

    if recapture or "category" in changes:
        _apply_cap(session, item, claim=claim)
        _recompute_total(claim)
        session.add(claim)

    session.add(item)
    session.commit()
    session.refresh(item)
    return item


def delete_item(session: Session, *, claim: Claim, user: User, item_id: uuid.UUID) -> None:
    _assert_claim_editable(claim=claim, user=user)
    item = _get_item(session, claim=claim, item_id=item_id)
    claim.items.remove(item)
    _recompute_total(claim)
    session.add(claim)
    session.commit()
