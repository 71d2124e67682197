from __future__ import annotations

import uuid

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from claimflow.core.config import settings
from claimflow.core.currencies import normalize_currency
from claimflow.core.security import hash_password, verify_password
from claimflow.modules.identity.models import Department, Organization, User, UserRole


def create_organization(
    session: Session, *, name: str, base_currency: str | None = None
) -> Organization:
    currency = normalize_currency(base_currency or settings.default_base_currency)
    if not currency:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="base_currency must be a valid ISO-4217 code",
        )
    org = Organization(name=name.strip(), base_currency=currency)
    session.add(org)
    session.commit()
    session.refresh(org)
    return org


def get_organization(session: Session, *, org_id: uuid.UUID) -> Organization:
    org = session.scalar(select(Organization).where(Organization.id == org_id))
    if not org:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Organization not found")
    return org


def get_user_by_email(session: Session, *, email: str) -> User | None:
    return session.scalar(select(User).where(User.email == email))


def get_org_user(session: Session, *, org_id: uuid.UUID, user_id: uuid.UUID) -> User | None:
    return session.scalar(select(User).where(User.id == user_id, User.org_id == org_id))


def create_user(
    session: Session,
    *,
    org_id: uuid.UUID,
    email: str,
    password: str,
    role: UserRole,
    full_name: str | None = None,
    department_id: uuid.UUID | None = None,
    manager_id: uuid.UUID | None = None,
) -> User:
    existing = get_user_by_email(session, email=email)
    if existing:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Email already exists")

    if department_id and not session.scalar(
        select(Department.id).where(Department.id == department_id, Department.org_id == org_id)
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown department")
    if manager_id and not get_org_user(session, org_id=org_id, user_id=manager_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown manager")

    user = User(
        org_id=org_id,
        email=email,
        full_name=full_name,
        password_hash=hash_password(password),
        role=role,
        department_id=department_id,
        manager_id=manager_id,
        is_active=True,
    )
    session.add(user)
    session.commit()
    session.refresh(user)
    return user


def authenticate_user(session: Session, *, email: str, password: str) -> User:
    user = get_user_by_email(session, email=email)
    if not user or not user.is_active or not verify_password(password, user.password_hash):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")
    return user


def create_department(
    session: Session,
    *,
    org_id: uuid.UUID,
    name: str,
    parent_id: uuid.UUID | None = None,
    head_user_id: uuid.UUID | None = None,
) -> Department:
    name = name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Name is required")
    if parent_id and not session.scalar(
        select(Department.id).where(Department.id == parent_id, Department.org_id == org_id)
    ):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown parent")
    if head_user_id and not get_org_user(session, org_id=org_id, user_id=head_user_id):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Unknown head")

    dept = Department(org_id=org_id, name=name, parent_id=parent_id, head_user_id=head_user_id)
    session.add(dept)
    session.commit()
    session.refresh(dept)
    return dept


def list_departments(session: Session, *, org_id: uuid.UUID) -> list[Department]:
    return list(
        session.scalars(
            select(Department).where(Department.org_id == org_id).order_by(Department.name)
        )
    )


class OrgDirectory:
    """Read-only view of an organization's reporting lines.

    Used by the chain builder to turn person-relative step templates
    (manager, department head) into concrete approver ids.
    """

    def __init__(self, session: Session, *, org_id: uuid.UUID) -> None:
        self._session = session
        self._org_id = org_id

    def _department(self, department_id: uuid.UUID | None) -> Department | None:
        if not department_id:
            return None
        return self._session.scalar(
            select(Department).where(
                Department.id == department_id, Department.org_id == self._org_id
            )
        )

    def manager_of(self, user: User) -> uuid.UUID | None:
        return user.manager_id

    def department_head(self, department_id: uuid.UUID | None) -> uuid.UUID | None:
        dept = self._department(department_id)
        return dept.head_user_id if dept else None

    def parent_department_head(self, department_id: uuid.UUID | None) -> uuid.UUID | None:
        dept = self._department(department_id)
        if not dept:
            return None
        parent = self._department(dept.parent_id)
        return parent.head_user_id if parent else None
