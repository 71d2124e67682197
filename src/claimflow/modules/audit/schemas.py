from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class AuditEventOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    claim_id: uuid.UUID | None
    step_id: uuid.UUID | None
    actor_user_id: uuid.UUID | None
    event_type: str
    from_status: str | None
    to_status: str | None
    payload_json: dict
    occurred_at: datetime
