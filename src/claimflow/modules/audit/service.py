from __future__ import annotations

import uuid

from sqlalchemy import select
from sqlalchemy.orm import Session

from claimflow.modules.audit.models import AuditEvent


def record_event(
    session: Session,
    *,
    claim,
    event_type: str,
    actor_id: uuid.UUID | None = None,
    from_status=None,
    to_status=None,
    step_id: uuid.UUID | None = None,
    **payload,
) -> AuditEvent:
    """Stage an audit row in the caller's transaction.

    Never commits; the row lands together with the state change it describes.
    """
    event = AuditEvent(
        org_id=claim.org_id,
        claim_id=claim.id,
        step_id=step_id,
        actor_user_id=actor_id,
        event_type=event_type,
        from_status=getattr(from_status, "value", from_status),
        to_status=getattr(to_status, "value", to_status),
        payload_json={k: v for k, v in payload.items() if v is not None},
    )
    session.add(event)
    return event


def list_events(session: Session, *, claim_id: uuid.UUID) -> list[AuditEvent]:
    return list(
        session.scalars(
            select(AuditEvent)
            .where(AuditEvent.claim_id == claim_id)
            .order_by(AuditEvent.occurred_at, AuditEvent.id)
        )
    )
