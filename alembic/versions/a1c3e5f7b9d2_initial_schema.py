"""initial schema

Revision ID: a1c3e5f7b9d2
Revises:
Create Date: 2026-10-16

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "a1c3e5f7b9d2"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _base_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def _org_column() -> sa.Column:
    return sa.Column("org_id", sa.Uuid(), sa.ForeignKey("identity_organization.id"), nullable=False)


def upgrade() -> None:
    op.create_table(
        "identity_organization",
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("base_currency", sa.String(length=3), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "identity_department",
        _org_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("parent_id", sa.Uuid(), nullable=True),
        sa.Column("head_user_id", sa.Uuid(), nullable=True),
        *_base_columns(),
        sa.ForeignKeyConstraint(["parent_id"], ["identity_department.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_identity_department_org_id"), "identity_department", ["org_id"])

    op.create_table(
        "identity_user",
        _org_column(),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("full_name", sa.String(length=200), nullable=True),
        sa.Column("password_hash", sa.String(length=200), nullable=False),
        sa.Column(
            "role",
            sa.Enum("EMPLOYEE", "MANAGER", "FINANCE", "ADMIN", name="userrole", native_enum=False),
            nullable=False,
        ),
        sa.Column("department_id", sa.Uuid(), nullable=True),
        sa.Column("manager_id", sa.Uuid(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["department_id"], ["identity_department.id"]),
        sa.ForeignKeyConstraint(["manager_id"], ["identity_user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_identity_user_email"), "identity_user", ["email"], unique=True)
    op.create_index(op.f("ix_identity_user_org_id"), "identity_user", ["org_id"])
    op.create_index(op.f("ix_identity_user_role"), "identity_user", ["role"])
    op.create_index(op.f("ix_identity_user_department_id"), "identity_user", ["department_id"])
    with op.batch_alter_table("identity_department") as batch:
        batch.create_foreign_key(
            "fk_identity_department_head_user_id", "identity_user", ["head_user_id"], ["id"]
        )

    op.create_table(
        "fx_rate",
        _org_column(),
        sa.Column("from_currency", sa.String(length=3), nullable=False),
        sa.Column("to_currency", sa.String(length=3), nullable=False),
        sa.Column("rate", sa.Numeric(18, 8), nullable=False),
        sa.Column("as_of_date", sa.Date(), nullable=True),
        sa.Column("source", sa.String(length=100), nullable=True),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("org_id", "from_currency", "to_currency", name="uq_fx_org_pair"),
    )
    op.create_index(op.f("ix_fx_rate_org_id"), "fx_rate", ["org_id"])

    op.create_table(
        "approvals_rule",
        _org_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("priority", sa.Integer(), nullable=False),
        sa.Column("conditions_json", sa.JSON(), nullable=False),
        sa.Column("steps_json", sa.JSON(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_approvals_rule_org_id"), "approvals_rule", ["org_id"])
    op.create_index(op.f("ix_approvals_rule_priority"), "approvals_rule", ["priority"])
    op.create_index(op.f("ix_approvals_rule_is_active"), "approvals_rule", ["is_active"])

    op.create_table(
        "claims_claim",
        _org_column(),
        sa.Column("employee_id", sa.Uuid(), nullable=False),
        sa.Column("approval_rule_id", sa.Uuid(), nullable=True),
        sa.Column("title", sa.String(length=200), nullable=True),
        sa.Column("purpose", sa.Text(), nullable=True),
        sa.Column("base_currency", sa.String(length=3), nullable=False),
        sa.Column("total_base_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("eligible_base_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column(
            "status",
            sa.Enum(
                "DRAFT",
                "PENDING",
                "APPROVED",
                "REJECTED",
                "PROCESSING",
                "PAID",
                "CANCELLED",
                name="claimstatus",
                native_enum=False,
            ),
            nullable=False,
        ),
        sa.Column("rejection_reason", sa.Text(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("rejected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_base_columns(),
        sa.ForeignKeyConstraint(["employee_id"], ["identity_user.id"]),
        sa.ForeignKeyConstraint(["approval_rule_id"], ["approvals_rule.id"], ondelete="SET NULL"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_claims_claim_org_id"), "claims_claim", ["org_id"])
    op.create_index(op.f("ix_claims_claim_employee_id"), "claims_claim", ["employee_id"])
    op.create_index(op.f("ix_claims_claim_status"), "claims_claim", ["status"])

    op.create_table(
        "expenses_expense_item",
        sa.Column("claim_id", sa.Uuid(), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("vendor", sa.String(length=100), nullable=True),
        sa.Column("expense_date", sa.Date(), nullable=False),
        sa.Column("amount_original_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount_original_currency", sa.String(length=3), nullable=False),
        sa.Column("fx_rate_to_base", sa.Numeric(18, 8), nullable=False),
        sa.Column("amount_base_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("amount_base_currency", sa.String(length=3), nullable=False),
        sa.Column("amount_eligible_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("receipt_url", sa.String(length=500), nullable=True),
        sa.Column("receipt_is_official", sa.Boolean(), nullable=True),
        sa.Column("receipt_suggestion", sa.Text(), nullable=True),
        *_base_columns(),
        sa.ForeignKeyConstraint(["claim_id"], ["claims_claim.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        op.f("ix_expenses_expense_item_claim_id"), "expenses_expense_item", ["claim_id"]
    )
    op.create_index(
        op.f("ix_expenses_expense_item_category"), "expenses_expense_item", ["category"]
    )

    op.create_table(
        "workflow_approval_step",
        sa.Column("claim_id", sa.Uuid(), nullable=False),
        sa.Column("step_order", sa.Integer(), nullable=False),
        sa.Column("step_type", sa.String(length=50), nullable=False),
        sa.Column("step_name", sa.String(length=200), nullable=False),
        sa.Column(
            "approver_kind",
            sa.Enum("SPECIFIC", "ROLE", name="approverkind", native_enum=False),
            nullable=False,
        ),
        sa.Column("approver_user_id", sa.Uuid(), nullable=True),
        sa.Column(
            "approver_role",
            sa.Enum("EMPLOYEE", "MANAGER", "FINANCE", "ADMIN", name="userrole", native_enum=False),
            nullable=True,
        ),
        sa.Column("amount_threshold", sa.Numeric(14, 2), nullable=True),
        sa.Column(
            "status",
            sa.Enum(
                "PENDING", "APPROVED", "REJECTED", "SKIPPED", name="stepstatus", native_enum=False
            ),
            nullable=False,
        ),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.Column("decided_by_user_id", sa.Uuid(), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_base_columns(),
        sa.ForeignKeyConstraint(["claim_id"], ["claims_claim.id"]),
        sa.ForeignKeyConstraint(["approver_user_id"], ["identity_user.id"]),
        sa.ForeignKeyConstraint(["decided_by_user_id"], ["identity_user.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("claim_id", "step_order", name="uq_step_claim_order"),
    )
    op.create_index(
        op.f("ix_workflow_approval_step_claim_id"), "workflow_approval_step", ["claim_id"]
    )
    op.create_index(
        op.f("ix_workflow_approval_step_approver_user_id"),
        "workflow_approval_step",
        ["approver_user_id"],
    )
    op.create_index(
        op.f("ix_workflow_approval_step_approver_role"),
        "workflow_approval_step",
        ["approver_role"],
    )
    op.create_index(op.f("ix_workflow_approval_step_status"), "workflow_approval_step", ["status"])

    op.create_table(
        "policy_policy",
        _org_column(),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        *_base_columns(),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_policy_policy_org_id"), "policy_policy", ["org_id"])
    op.create_index(op.f("ix_policy_policy_is_active"), "policy_policy", ["is_active"])

    op.create_table(
        "policy_rule",
        sa.Column("policy_id", sa.Uuid(), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("categories", sa.JSON(), nullable=True),
        sa.Column(
            "limit_type",
            sa.Enum(
                "PER_ITEM",
                "PER_DAY",
                "PER_MONTH",
                "PER_TRIP",
                "PER_YEAR",
                name="limittype",
                native_enum=False,
            ),
            nullable=True,
        ),
        sa.Column("limit_amount", sa.Numeric(14, 2), nullable=True),
        sa.Column("limit_currency", sa.String(length=3), nullable=True),
        sa.Column("requires_receipt", sa.Boolean(), nullable=False),
        sa.Column("requires_approval", sa.Boolean(), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("suggestion", sa.Text(), nullable=True),
        *_base_columns(),
        sa.ForeignKeyConstraint(["policy_id"], ["policy_policy.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_policy_rule_policy_id"), "policy_rule", ["policy_id"])

    op.create_table(
        "audit_event",
        sa.Column("id", sa.Uuid(), nullable=False),
        _org_column(),
        sa.Column("claim_id", sa.Uuid(), nullable=True),
        sa.Column("step_id", sa.Uuid(), nullable=True),
        sa.Column("actor_user_id", sa.Uuid(), nullable=True),
        sa.Column("event_type", sa.String(length=50), nullable=False),
        sa.Column("from_status", sa.String(length=20), nullable=True),
        sa.Column("to_status", sa.String(length=20), nullable=True),
        sa.Column("payload_json", sa.JSON(), nullable=False),
        sa.Column("occurred_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["claim_id"], ["claims_claim.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["actor_user_id"], ["identity_user.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_audit_event_org_id"), "audit_event", ["org_id"])
    op.create_index(op.f("ix_audit_event_claim_id"), "audit_event", ["claim_id"])
    op.create_index(op.f("ix_audit_event_actor_user_id"), "audit_event", ["actor_user_id"])
    op.create_index(op.f("ix_audit_event_event_type"), "audit_event", ["event_type"])


def downgrade() -> None:
    op.drop_table("audit_event")
    op.drop_table("policy_rule")
    op.drop_table("policy_policy")
    op.drop_table("workflow_approval_step")
    op.drop_table("expenses_expense_item")
    op.drop_table("claims_claim")
    op.drop_table("approvals_rule")
    op.drop_table("fx_rate")
    with op.batch_alter_table("identity_department") as batch:
        batch.drop_constraint("fk_identity_department_head_user_id", type_="foreignkey")
    op.drop_table("identity_user")
    op.drop_table("identity_department")
    op.drop_table("identity_organization")
