from __future__ import annotations

import uuid

from pydantic import BaseModel, EmailStr

from claimflow.modules.identity.models import UserRole


class UserOut(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    email: EmailStr
    full_name: str | None
    role: UserRole
    department_id: uuid.UUID | None
    manager_id: uuid.UUID | None
    is_active: bool


class UserCreate(BaseModel):
    email: EmailStr
    full_name: str | None = None
    password: str
    role: UserRole = UserRole.EMPLOYEE
    department_id: uuid.UUID | None = None
    manager_id: uuid.UUID | None = None


class DepartmentCreate(BaseModel):
    name: str
    parent_id: uuid.UUID | None = None
    head_user_id: uuid.UUID | None = None


class DepartmentOut(BaseModel):
    id: uuid.UUID
    org_id: uuid.UUID
    name: str
    parent_id: uuid.UUID | None
    head_user_id: uuid.UUID | None


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
