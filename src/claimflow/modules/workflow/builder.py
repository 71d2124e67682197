"""Expansion of an approval rule's step templates into a claim's chain.

Every template position becomes one ``ApprovalStep`` whose ``step_order`` is
the template index, so the chain can be addressed by position. Templates that
do not apply to this claim are materialized as already ``SKIPPED`` with a
comment, which keeps the positions stable and lets the state machine treat
them exactly like approved steps.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from claimflow.core.models import utcnow
from claimflow.modules.approvals.models import ApprovalRule, StepType
from claimflow.modules.approvals.schemas import StepTemplate, parse_step_templates
from claimflow.modules.identity.models import UserRole
from claimflow.modules.workflow.models import ApprovalStep, ApproverKind, StepStatus


class Directory(Protocol):
    def manager_of(self, user) -> uuid.UUID | None: ...

    def department_head(self, department_id: uuid.UUID | None) -> uuid.UUID | None: ...

    def parent_department_head(self, department_id: uuid.UUID | None) -> uuid.UUID | None: ...


@dataclass(frozen=True)
class _Resolved:
    kind: ApproverKind
    user_id: uuid.UUID | None = None
    role: UserRole | None = None
    skip_reason: str | None = None


_DEFAULT_NAMES = {
    StepType.SPECIFIC_USER: "Designated approver",
    StepType.MANAGER: "Manager approval",
    StepType.DEPARTMENT_HEAD: "Department head approval",
    StepType.PARENT_DEPARTMENT_HEAD: "Parent department head approval",
}


def _step_name(template: StepTemplate) -> str:
    if template.name and template.name.strip():
        return template.name.strip()
    if template.type == StepType.ROLE and template.role:
        return f"{template.role.value.title()} approval"
    if template.type == StepType.AMOUNT_THRESHOLD:
        return f"Approval above {template.amount_threshold}"
    return _DEFAULT_NAMES.get(template.type, "Approval")


def _specific(user_id: uuid.UUID | None, missing: str) -> _Resolved:
    if not user_id:
        return _Resolved(kind=ApproverKind.SPECIFIC, skip_reason=missing)
    return _Resolved(kind=ApproverKind.SPECIFIC, user_id=user_id)


def _resolve(
    template: StepTemplate, *, submitter, total: Decimal, directory: Directory
) -> _Resolved:
    if template.type == StepType.SPECIFIC_USER:
        return _specific(template.user_id, "No approver configured")
    if template.type == StepType.ROLE:
        return _Resolved(kind=ApproverKind.ROLE, role=template.role)
    if template.type == StepType.MANAGER:
        return _specific(directory.manager_of(submitter), "Submitter has no manager")
    if template.type == StepType.DEPARTMENT_HEAD:
        return _specific(
            directory.department_head(submitter.department_id), "No department head found"
        )
    if template.type == StepType.PARENT_DEPARTMENT_HEAD:
        return _specific(
            directory.parent_department_head(submitter.department_id),
            "No parent department head found",
        )

    role = template.role or UserRole.ADMIN
    threshold = template.amount_threshold or Decimal("0")
    if total < threshold:
        return _Resolved(
            kind=ApproverKind.ROLE,
            role=role,
            skip_reason=f"Claim total {total} is below threshold {threshold}",
        )
    return _Resolved(kind=ApproverKind.ROLE, role=role)


def build_chain(
    rule: ApprovalRule,
    claim,
    submitter,
    *,
    directory: Directory,
    now: datetime | None = None,
) -> list[ApprovalStep]:
    now = now or utcnow()
    total = claim.total_base_amount or Decimal("0")
    seen_approvers: set[uuid.UUID] = set()
    steps: list[ApprovalStep] = []

    for index, template in enumerate(parse_step_templates(rule.steps_json)):
        resolved = _resolve(template, submitter=submitter, total=total, directory=directory)
        skip_reason = resolved.skip_reason
        if skip_reason is None and resolved.user_id is not None:
            if resolved.user_id == submitter.id:
                skip_reason = "Approver is the submitter"
            elif resolved.user_id in seen_approvers:
                skip_reason = "Approver already appears earlier in the chain"
            else:
                seen_approvers.add(resolved.user_id)

        steps.append(
            ApprovalStep(
                id=uuid.uuid4(),
                claim_id=claim.id,
                step_order=index,
                step_type=template.type.value,
                step_name=_step_name(template),
                approver_kind=resolved.kind,
                approver_user_id=resolved.user_id,
                approver_role=resolved.role,
                amount_threshold=template.amount_threshold,
                status=StepStatus.SKIPPED if skip_reason else StepStatus.PENDING,
                comment=skip_reason,
                completed_at=now if skip_reason else None,
            )
        )

    return steps


def skipped_count(steps: Sequence[ApprovalStep]) -> int:
    return sum(1 for s in steps if s.status == StepStatus.SKIPPED)
