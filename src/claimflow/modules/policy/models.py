from __future__ import annotations

import enum
import uuid
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Enum, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claimflow.core.models import Base, OrgScoped, Timestamped, UUIDPrimaryKey


class LimitType(str, enum.Enum):
    PER_ITEM = "per_item"
    PER_DAY = "per_day"
    PER_MONTH = "per_month"
    PER_TRIP = "per_trip"
    PER_YEAR = "per_year"


class Policy(UUIDPrimaryKey, Timestamped, OrgScoped, Base):
    __tablename__ = "policy_policy"

    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    version: Mapped[int] = mapped_column(Integer, default=1)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    rules = relationship(
        "PolicyRule",
        back_populates="policy",
        order_by="PolicyRule.position",
        cascade="all, delete-orphan",
    )


class PolicyRule(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "policy_rule"

    policy_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("policy_policy.id", ondelete="CASCADE"), index=True
    )
    position: Mapped[int] = mapped_column(Integer, default=0)
    name: Mapped[str] = mapped_column(String(200))

    # None means every category.
    categories: Mapped[list | None] = mapped_column(JSON, nullable=True)

    limit_type: Mapped[LimitType | None] = mapped_column(
        Enum(LimitType, native_enum=False), nullable=True
    )
    limit_amount: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    # None means the organization's base currency.
    limit_currency: Mapped[str | None] = mapped_column(String(3), nullable=True)

    requires_receipt: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_approval: Mapped[bool] = mapped_column(Boolean, default=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)
    suggestion: Mapped[str | None] = mapped_column(Text, nullable=True)

    policy = relationship("Policy", back_populates="rules")

    @property
    def has_limit(self) -> bool:
        return self.limit_type is not None and self.limit_amount is not None

    def applies_to(self, category: str | None) -> bool:
        if not self.categories:
            return True
        return category in self.categories
