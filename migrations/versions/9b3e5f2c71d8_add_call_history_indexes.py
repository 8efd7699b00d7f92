"""Add indexes for call history and pending-effects queries.

Revision ID: 9b3e5f2c71d8
Revises: 6d1c2a9e4b70
Create Date: 2026-10-17

"""

from alembic import op


revision = "9b3e5f2c71d8"
down_revision = "6d1c2a9e4b70"
branch_labels = None
depends_on = None


def upgrade():
    # Call history is listed newest first, filtered by date range
    op.create_index("ix_call_logs_call_date", "call_logs", ["call_date"])
    # apply-pending-call-effects scans for NULL effects_applied_at
    op.create_index(
        "ix_call_logs_effects_applied_at", "call_logs", ["effects_applied_at"]
    )

    # Lead list default ordering and status filter
    op.create_index("ix_leads_created_at", "leads", ["created_at"])
    op.create_index("ix_leads_lead_status", "leads", ["lead_status"])

    # Queue: telecaller + status is the hot path
    op.create_index(
        "ix_leads_telecaller_status",
        "leads",
        ["assigned_telecaller_id", "lead_status"],
    )


def downgrade():
    op.drop_index("ix_leads_telecaller_status", table_name="leads")
    op.drop_index("ix_leads_lead_status", table_name="leads")
    op.drop_index("ix_leads_created_at", table_name="leads")
    op.drop_index("ix_call_logs_effects_applied_at", table_name="call_logs")
    op.drop_index("ix_call_logs_call_date", table_name="call_logs")
