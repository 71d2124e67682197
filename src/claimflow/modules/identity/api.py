from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user, require_role
from claimflow.core.db import db_session
from claimflow.core.security import create_access_token
from claimflow.modules.identity.models import User, UserRole
from claimflow.modules.identity.schemas import (
    DepartmentCreate,
    DepartmentOut,
    TokenOut,
    UserCreate,
    UserOut,
)
from claimflow.modules.identity.service import (
    authenticate_user,
    create_department,
    create_user,
    list_departments,
)

router = APIRouter(tags=["identity"])


@router.post("/auth/token", response_model=TokenOut)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    session: Session = Depends(db_session),
) -> TokenOut:
    user = authenticate_user(session, email=form_data.username, password=form_data.password)
    token = create_access_token(subject=str(user.id), org_id=str(user.org_id))
    return TokenOut(access_token=token)


@router.get("/auth/me", response_model=UserOut)
def me(user: User = Depends(get_current_user)) -> UserOut:
    return UserOut.model_validate(user, from_attributes=True)


@router.post("/users", response_model=UserOut)
def create_user_endpoint(
    payload: UserCreate,
    session: Session = Depends(db_session),
    admin: User = Depends(require_role(UserRole.ADMIN)),
) -> UserOut:
    user = create_user(
        session,
        org_id=admin.org_id,
        email=str(payload.email),
        password=payload.password,
        role=payload.role,
        full_name=payload.full_name,
        department_id=payload.department_id,
        manager_id=payload.manager_id,
    )
    return UserOut.model_validate(user, from_attributes=True)


@router.get("/departments", response_model=list[DepartmentOut])
def list_departments_endpoint(
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[DepartmentOut]:
    depts = list_departments(session, org_id=user.org_id)
    return [DepartmentOut.model_validate(d, from_attributes=True) for d in depts]


@router.post("/departments", response_model=DepartmentOut)
def create_department_endpoint(
    payload: DepartmentCreate,
    session: Session = Depends(db_session),
    admin: User = Depends(require_role(UserRole.ADMIN)),
) -> DepartmentOut:
    dept = create_department(
        session,
        org_id=admin.org_id,
        name=payload.name,
        parent_id=payload.parent_id,
        head_user_id=payload.head_user_id,
    )
    return DepartmentOut.model_validate(dept, from_attributes=True)
