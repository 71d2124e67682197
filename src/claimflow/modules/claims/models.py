from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import DateTime, Enum, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claimflow.core.models import Base, OrgScoped, Timestamped, UUIDPrimaryKey


class ClaimStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    PROCESSING = "PROCESSING"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


# Claims in these states can no longer be touched by the submitter.
LOCKED_STATUSES = frozenset(
    {
        ClaimStatus.PENDING,
        ClaimStatus.APPROVED,
        ClaimStatus.PROCESSING,
        ClaimStatus.PAID,
    }
)


class Claim(UUIDPrimaryKey, Timestamped, OrgScoped, Base):
    __tablename__ = "claims_claim"

    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), index=True
    )
    approval_rule_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("approvals_rule.id", ondelete="SET NULL"), nullable=True
    )

    title: Mapped[str | None] = mapped_column(String(200), nullable=True)
    purpose: Mapped[str | None] = mapped_column(Text, nullable=True)

    base_currency: Mapped[str] = mapped_column(String(3), default="USD")
    total_base_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))
    # Payable total after per-item policy caps.
    eligible_base_amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), default=Decimal("0"))

    status: Mapped[ClaimStatus] = mapped_column(Enum(ClaimStatus, native_enum=False), index=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    submitted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    rejected_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    employee = relationship("User", foreign_keys=[employee_id])
    approval_rule = relationship("ApprovalRule")
    items = relationship(
        "ExpenseItem",
        back_populates="claim",
        order_by="ExpenseItem.expense_date",
        cascade="all, delete-orphan",
    )
    steps = relationship(
        "ApprovalStep",
        back_populates="claim",
        order_by="ApprovalStep.step_order",
        cascade="all, delete-orphan",
    )

    @property
    def original_totals(self) -> dict[str, Decimal]:
        totals: dict[str, Decimal] = {}
        for item in self.items:
            currency = item.amount_original_currency
            totals[currency] = totals.get(currency, Decimal("0")) + item.amount_original_amount
        return totals

    @property
    def categories(self) -> frozenset[str]:
        return frozenset(item.category for item in self.items if item.category)
