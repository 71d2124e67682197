from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from claimflow.api.deps import get_current_user
from claimflow.core.db import db_session
from claimflow.modules.audit.schemas import AuditEventOut
from claimflow.modules.audit.service import list_events
from claimflow.modules.claims.service import get_claim_for_user
from claimflow.modules.identity.models import User

router = APIRouter(tags=["audit"])


@router.get("/claims/{claim_id}/audit", response_model=list[AuditEventOut])
def list_claim_audit(
    claim_id: uuid.UUID,
    session: Session = Depends(db_session),
    user: User = Depends(get_current_user),
) -> list[AuditEventOut]:
    claim = get_claim_for_user(session, claim_id=claim_id, user=user)
    return [AuditEventOut.model_validate(e) for e in list_events(session, claim_id=claim.id)]
