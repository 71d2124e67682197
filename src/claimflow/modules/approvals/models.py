from __future__ import annotations

import enum

from sqlalchemy import JSON, Boolean, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from claimflow.core.models import Base, OrgScoped, Timestamped, UUIDPrimaryKey


class StepType(str, enum.Enum):
    SPECIFIC_USER = "specific_user"
    ROLE = "role"
    MANAGER = "manager"
    DEPARTMENT_HEAD = "department_head"
    PARENT_DEPARTMENT_HEAD = "parent_department_head"
    AMOUNT_THRESHOLD = "amount_threshold"


class ApprovalRule(UUIDPrimaryKey, Timestamped, OrgScoped, Base):
    __tablename__ = "approvals_rule"

    name: Mapped[str] = mapped_column(String(200))
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, index=True)
    conditions_json: Mapped[dict] = mapped_column(JSON, default=dict)
    steps_json: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)
