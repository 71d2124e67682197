from __future__ import annotations

import uuid
from datetime import date
from decimal import Decimal

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from claimflow.core.currencies import normalize_currency
from claimflow.modules.fx.models import FxRate

CENT = Decimal("0.01")


def _require_currency(code: str, field: str) -> str:
    norm = normalize_currency(code)
    if not norm:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{field} must be a valid ISO-4217 code",
        )
    return norm


def upsert_fx_rate(
    session: Session,
    *,
    org_id: uuid.UUID,
    from_currency: str,
    to_currency: str,
    rate: Decimal,
    as_of_date: date | None = None,
    source: str | None = None,
) -> FxRate:
    from_currency = _require_currency(from_currency, "from_currency")
    to_currency = _require_currency(to_currency, "to_currency")
    if rate <= 0:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="rate must be positive")

    fx = session.scalar(
        select(FxRate).where(
            FxRate.org_id == org_id,
            FxRate.from_currency == from_currency,
            FxRate.to_currency == to_currency,
        )
    )
    if not fx:
        fx = FxRate(
            org_id=org_id,
            from_currency=from_currency,
            to_currency=to_currency,
            rate=rate,
            as_of_date=as_of_date,
            source=source,
        )
    else:
        fx.rate = rate
        fx.as_of_date = as_of_date
        fx.source = source
    session.add(fx)
    session.commit()
    session.refresh(fx)
    return fx


def list_fx_rates(session: Session, *, org_id: uuid.UUID) -> list[FxRate]:
    return list(
        session.scalars(
            select(FxRate)
            .where(FxRate.org_id == org_id)
            .order_by(FxRate.from_currency, FxRate.to_currency)
        )
    )


def lookup_rate(
    session: Session, *, org_id: uuid.UUID, from_currency: str, to_currency: str
) -> Decimal | None:
    from_currency = from_currency.upper()
    to_currency = to_currency.upper()
    if from_currency == to_currency:
        return Decimal("1")

    direct = session.scalar(
        select(FxRate.rate).where(
            FxRate.org_id == org_id,
            FxRate.from_currency == from_currency,
            FxRate.to_currency == to_currency,
        )
    )
    if direct is not None:
        return direct

    inverse = session.scalar(
        select(FxRate.rate).where(
            FxRate.org_id == org_id,
            FxRate.from_currency == to_currency,
            FxRate.to_currency == from_currency,
        )
    )
    if inverse:
        return (Decimal("1") / inverse).quantize(Decimal("0.00000001"))
    return None


def convert(amount: Decimal, rate: Decimal) -> Decimal:
    return (amount * rate).quantize(CENT)
