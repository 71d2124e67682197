from __future__ import annotations

import enum
import uuid
from datetime import date
from decimal import Decimal

from sqlalchemy import Boolean, Date, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claimflow.core.models import Base, Timestamped, UUIDPrimaryKey


class ExpenseCategory(str, enum.Enum):
    FLIGHT = "flight"
    TRAIN = "train"
    HOTEL = "hotel"
    MEAL = "meal"
    TAXI = "taxi"
    CAR_RENTAL = "car_rental"
    FUEL = "fuel"
    PARKING = "parking"
    TOLL = "toll"
    OFFICE_SUPPLIES = "office_supplies"
    EQUIPMENT = "equipment"
    SOFTWARE = "software"
    AI_TOKEN = "ai_token"
    CLOUD_RESOURCE = "cloud_resource"
    API_SERVICE = "api_service"
    HOSTING = "hosting"
    DOMAIN = "domain"
    ADMIN_GENERAL = "admin_general"
    COURIER = "courier"
    PRINTING = "printing"
    PHONE = "phone"
    INTERNET = "internet"
    UTILITIES = "utilities"
    CLIENT_ENTERTAINMENT = "client_entertainment"
    MARKETING = "marketing"
    TRAINING = "training"
    CONFERENCE = "conference"
    MEMBERSHIP = "membership"
    OTHER = "other"


class ExpenseItem(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "expenses_expense_item"

    claim_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("claims_claim.id"), index=True
    )

    category: Mapped[str] = mapped_column(String(50), index=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    vendor: Mapped[str | None] = mapped_column(String(100), nullable=True)
    expense_date: Mapped[date] = mapped_column(Date)

    amount_original_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    amount_original_currency: Mapped[str] = mapped_column(String(3))
    # Captured once from the organization's rate table; never recomputed.
    fx_rate_to_base: Mapped[Decimal] = mapped_column(Numeric(18, 8))
    amount_base_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))
    amount_base_currency: Mapped[str] = mapped_column(String(3))
    # Base amount capped at the tightest per-item policy limit for the category.
    amount_eligible_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2))

    receipt_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    receipt_is_official: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    receipt_suggestion: Mapped[str | None] = mapped_column(Text, nullable=True)

    claim = relationship("Claim", back_populates="items")

    @property
    def was_capped(self) -> bool:
        return self.amount_eligible_amount < self.amount_base_amount
