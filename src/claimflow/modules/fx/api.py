from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user, require_role
from claimflow.core.db import db_session
from claimflow.modules.fx.schemas import FxRateOut, FxRateUpsert
from claimflow.modules.fx.service import list_fx_rates, upsert_fx_rate
from claimflow.modules.identity.models import User, UserRole

router = APIRouter(tags=["fx"])


@router.get("/fx-rates", response_model=list[FxRateOut])
def list_fx_rates_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[FxRateOut]:
    rates = list_fx_rates(session, org_id=user.org_id)
    return [FxRateOut.model_validate(r, from_attributes=True) for r in rates]


@router.post("/fx-rates", response_model=list[FxRateOut])
def set_fx_rates(
    payload: list[FxRateUpsert],
    session: Session = Depends(db_session),
    user: User = Depends(require_role(UserRole.FINANCE, UserRole.ADMIN)),
) -> list[FxRateOut]:
    out: list[FxRateOut] = []
    for r in payload:
        fx = upsert_fx_rate(
            session,
            org_id=user.org_id,
            from_currency=r.from_currency,
            to_currency=r.to_currency,
            rate=r.rate,
            as_of_date=r.as_of_date,
            source=r.source,
        )
        out.append(FxRateOut.model_validate(fx, from_attributes=True))
    return out
