from __future__ import annotations

import enum
import uuid
from datetime import datetime
from decimal import Decimal

from sqlalchemy import (
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claimflow.core.models import Base, Timestamped, UUIDPrimaryKey
from claimflow.modules.identity.models import UserRole


class StepStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SKIPPED = "SKIPPED"


class ApproverKind(str, enum.Enum):
    SPECIFIC = "SPECIFIC"
    ROLE = "ROLE"


class StepDecision(str, enum.Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"
    SKIP = "SKIP"


class ApprovalStep(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "workflow_approval_step"
    __table_args__ = (UniqueConstraint("claim_id", "step_order", name="uq_step_claim_order"),)

    claim_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("claims_claim.id"), index=True
    )
    step_order: Mapped[int] = mapped_column(Integer)
    step_type: Mapped[str] = mapped_column(String(50))
    step_name: Mapped[str] = mapped_column(String(200))

    approver_kind: Mapped[ApproverKind] = mapped_column(Enum(ApproverKind, native_enum=False))
    approver_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), nullable=True, index=True
    )
    approver_role: Mapped[UserRole | None] = mapped_column(
        Enum(UserRole, native_enum=False), nullable=True, index=True
    )
    amount_threshold: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)

    status: Mapped[StepStatus] = mapped_column(Enum(StepStatus, native_enum=False), index=True)
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    decided_by_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    claim = relationship("Claim", back_populates="steps")
    approver = relationship("User", foreign_keys=[approver_user_id])
    decided_by = relationship("User", foreign_keys=[decided_by_user_id])
