from __future__ import annotations

from fastapi import APIRouter

from claimflow.modules.approvals.api import router as approvals_router
from claimflow.modules.audit.api import router as audit_router
from claimflow.modules.claims.api import router as claims_router
from claimflow.modules.expenses.api import router as expenses_router
from claimflow.modules.fx.api import router as fx_router
from claimflow.modules.identity.api import router as identity_router
from claimflow.modules.policy.api import router as policy_router
from claimflow.modules.workflow.api import router as workflow_router

router = APIRouter()

router.include_router(identity_router, prefix="/api")
router.include_router(claims_router, prefix="/api")
router.include_router(expenses_router, prefix="/api")
router.include_router(fx_router, prefix="/api")
router.include_router(approvals_router, prefix="/api")
router.include_router(workflow_router, prefix="/api")
router.include_router(policy_router, prefix="/api")
router.include_router(audit_router, prefix="/api")


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}
