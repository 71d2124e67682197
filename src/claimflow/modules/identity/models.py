from __future__ import annotations

import enum
import uuid

from sqlalchemy import Boolean, Enum, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from claimflow.core.models import Base, OrgScoped, Timestamped, UUIDPrimaryKey


class UserRole(str, enum.Enum):
    EMPLOYEE = "EMPLOYEE"
    MANAGER = "MANAGER"
    FINANCE = "FINANCE"
    ADMIN = "ADMIN"


class Organization(UUIDPrimaryKey, Timestamped, Base):
    __tablename__ = "identity_organization"

    name: Mapped[str] = mapped_column(String(200))
    base_currency: Mapped[str] = mapped_column(String(3), default="USD")


class Department(UUIDPrimaryKey, Timestamped, OrgScoped, Base):
    __tablename__ = "identity_department"

    name: Mapped[str] = mapped_column(String(200))
    parent_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_department.id"), nullable=True
    )
    head_user_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id", use_alter=True), nullable=True
    )

    parent = relationship("Department", remote_side="Department.id")
    head = relationship("User", foreign_keys=[head_user_id])


class User(UUIDPrimaryKey, Timestamped, OrgScoped, Base):
    __tablename__ = "identity_user"

    email: Mapped[str] = mapped_column(String(320), unique=True, index=True)
    full_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(200))
    role: Mapped[UserRole] = mapped_column(Enum(UserRole, native_enum=False), index=True)
    department_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_department.id"), nullable=True, index=True
    )
    manager_id: Mapped[uuid.UUID | None] = mapped_column(
        Uuid(as_uuid=True), ForeignKey("identity_user.id"), nullable=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    organization = relationship("Organization")
    department = relationship("Department", foreign_keys=[department_id])
    manager = relationship("User", remote_side="User.id", foreign_keys=[manager_id])
