from __future__ import annotations

from datetime import date
from decimal import Decimal

from sqlalchemy import Date, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from claimflow.core.models import Base, OrgScoped, Timestamped, UUIDPrimaryKey


class FxRate(UUIDPrimaryKey, Timestamped, OrgScoped, Base):
    __tablename__ = "fx_rate"
    __table_args__ = (
        UniqueConstraint("org_id", "from_currency", "to_currency", name="uq_fx_org_pair"),
    )

    from_currency: Mapped[str] = mapped_column(String(3))
    to_currency: Mapped[str] = mapped_column(String(3))
    rate: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    as_of_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    source: Mapped[str | None] = mapped_column(String(100), nullable=True)
