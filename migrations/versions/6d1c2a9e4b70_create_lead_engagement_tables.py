"""create lead engagement tables

Revision ID: 6d1c2a9e4b70
Revises:
Create Date: 2026-10-17 10:12:41.208113

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '6d1c2a9e4b70'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('users',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('email', sa.String(length=255), nullable=False),
    sa.Column('password_hash', sa.String(length=255), nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('role', sa.String(length=50), nullable=False),
    sa.Column('phone', sa.String(length=50), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('daily_call_limit', sa.Integer(), nullable=False),
    sa.Column('monthly_call_limit', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('email')
    )
    op.create_table('courses',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('code', sa.String(length=50), nullable=True),
    sa.Column('is_active', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('code')
    )
    op.create_table('leads',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('name', sa.String(length=255), nullable=False),
    sa.Column('phone', sa.String(length=50), nullable=False),
    sa.Column('email', sa.String(length=255), nullable=True),
    sa.Column('whatsapp_number', sa.String(length=50), nullable=True),
    sa.Column('lead_source', sa.String(length=50), nullable=False),
    sa.Column('lead_stage', sa.String(length=50), nullable=False),
    sa.Column('lead_status', sa.String(length=50), nullable=False),
    sa.Column('course_interest_id', sa.Integer(), nullable=True),
    sa.Column('assigned_telecaller_id', sa.Integer(), nullable=True),
    sa.Column('assigned_counselor_id', sa.Integer(), nullable=True),
    sa.Column('city', sa.String(length=100), nullable=True),
    sa.Column('state', sa.String(length=100), nullable=True),
    sa.Column('country', sa.String(length=100), nullable=True),
    sa.Column('education_level', sa.String(length=100), nullable=True),
    sa.Column('current_occupation', sa.String(length=100), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('conversion_date', sa.DateTime(timezone=True), nullable=True),
    sa.Column('lost_reason', sa.Text(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.ForeignKeyConstraint(['course_interest_id'], ['courses.id'], ),
    sa.ForeignKeyConstraint(['assigned_telecaller_id'], ['users.id'], ),
    sa.ForeignKeyConstraint(['assigned_counselor_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('phone')
    )
    op.create_index('ix_leads_lead_stage', 'leads', ['lead_stage'])
    op.create_index('ix_leads_assigned_telecaller_id', 'leads', ['assigned_telecaller_id'])
    op.create_index('ix_leads_assigned_counselor_id', 'leads', ['assigned_counselor_id'])
    op.create_table('call_logs',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('lead_id', sa.Integer(), nullable=False),
    sa.Column('caller_id', sa.Integer(), nullable=False),
    sa.Column('call_date', sa.DateTime(timezone=True), nullable=False),
    sa.Column('call_outcome', sa.String(length=50), nullable=False),
    sa.Column('call_duration_seconds', sa.Integer(), nullable=True),
    sa.Column('next_followup_date', sa.DateTime(timezone=True), nullable=True),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('requested_stage', sa.String(length=50), nullable=True),
    sa.Column('stats_date', sa.String(length=10), nullable=False),
    sa.Column('effects_applied_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ),
    sa.ForeignKeyConstraint(['caller_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_call_logs_lead_id', 'call_logs', ['lead_id'])
    op.create_index('ix_call_logs_caller_id', 'call_logs', ['caller_id'])
    op.create_table('telecaller_call_stats',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('telecaller_id', sa.Integer(), nullable=False),
    sa.Column('date', sa.String(length=10), nullable=False),
    sa.Column('calls_made', sa.Integer(), nullable=False),
    sa.Column('calls_answered', sa.Integer(), nullable=False),
    sa.Column('total_duration_seconds', sa.Integer(), nullable=False),
    sa.Column('leads_contacted', sa.Integer(), nullable=False),
    sa.Column('leads_converted', sa.Integer(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.ForeignKeyConstraint(['telecaller_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id'),
    sa.UniqueConstraint('telecaller_id', 'date', name='uq_telecaller_call_stats_telecaller_date')
    )
    op.create_index('ix_telecaller_call_stats_telecaller_id', 'telecaller_call_stats', ['telecaller_id'])
    op.create_table('audit_events',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('actor_user_id', sa.Integer(), nullable=True),
    sa.Column('action', sa.String(length=255), nullable=False),
    sa.Column('metadata', sa.JSON(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.ForeignKeyConstraint(['actor_user_id'], ['users.id'], ),
    sa.PrimaryKeyConstraint('id')
    )


def downgrade():
    op.drop_table('audit_events')
    op.drop_index('ix_telecaller_call_stats_telecaller_id', table_name='telecaller_call_stats')
    op.drop_table('telecaller_call_stats')
    op.drop_index('ix_call_logs_caller_id', table_name='call_logs')
    op.drop_index('ix_call_logs_lead_id', table_name='call_logs')
    op.drop_table('call_logs')
    op.drop_index('ix_leads_assigned_counselor_id', table_name='leads')
    op.drop_index('ix_leads_assigned_telecaller_id', table_name='leads')
    op.drop_index('ix_leads_lead_stage', table_name='leads')
    op.drop_table('leads')
    op.drop_table('courses')
    op.drop_table('users')
