"""
Alembic model import hook.

Importing this module ensures all SQLAlchemy models are registered on Base.metadata.
"""

from __future__ import annotations

# Import identity first - other models have relationships to User and Organization
from claimflow.modules.identity.models import Department, Organization, User  # noqa: F401

from claimflow.modules.approvals.models import ApprovalRule  # noqa: F401
from claimflow.modules.audit.models import AuditEvent  # noqa: F401
from claimflow.modules.claims.models import Claim  # noqa: F401
from claimflow.modules.expenses.models import ExpenseItem  # noqa: F401
from claimflow.modules.fx.models import FxRate  # noqa: F401
from claimflow.modules.policy.models import Policy, PolicyRule  # noqa: F401
from claimflow.modules.workflow.models import ApprovalStep  # noqa: F401
