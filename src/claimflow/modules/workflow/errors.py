"""Error taxonomy for rule selection and the approval state machine.

Each error is an ``HTTPException`` so routers can let it propagate; the
``detail`` payload carries a stable ``code`` for clients.
"""

from __future__ import annotations

from fastapi import HTTPException, status


class ApprovalError(HTTPException):
    http_status: int = status.HTTP_409_CONFLICT
    code: str = "approval_error"
    default_message: str = "Approval operation failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(
            status_code=self.http_status,
            detail={"code": self.code, "message": self.message},
        )


class NoApplicableRule(ApprovalError):
    http_status = 422
    code = "no_applicable_rule"
    default_message = "No active approval rule applies to this claim"


class NotActionable(ApprovalError):
    code = "not_actionable"
    default_message = "Step is not the active step of this chain"


class AlreadyResolved(ApprovalError):
    code = "already_resolved"
    default_message = "Step has already been resolved"


class Unauthorized(ApprovalError):
    http_status = status.HTTP_403_FORBIDDEN
    code = "unauthorized"
    default_message = "You are not the approver for this step"


class InvalidDecision(ApprovalError):
    http_status = status.HTTP_400_BAD_REQUEST
    code = "invalid_decision"
    default_message = "Decision is not valid"
