"""add counselor notes

Revision ID: c4a7d2e91f35
Revises: 9b3e5f2c71d8
Create Date: 2026-10-17 15:40:02.517904

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = 'c4a7d2e91f35'
down_revision = '9b3e5f2c71d8'
branch_labels = None
depends_on = None


def upgrade():
    op.create_table('counselor_notes',
    sa.Column('id', sa.Integer(), autoincrement=True, nullable=False),
    sa.Column('lead_id', sa.Integer(), nullable=False),
    sa.Column('counselor_id', sa.Integer(), nullable=False),
    sa.Column('note_type', sa.String(length=50), nullable=False),
    sa.Column('content', sa.Text(), nullable=False),
    sa.Column('is_important', sa.Boolean(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
    sa.ForeignKeyConstraint(['counselor_id'], ['users.id'], ),
    sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(op.f('ix_counselor_notes_counselor_id'), 'counselor_notes', ['counselor_id'], unique=False)
    op.create_index(op.f('ix_counselor_notes_lead_id'), 'counselor_notes', ['lead_id'], unique=False)


def downgrade():
    op.drop_index(op.f('ix_counselor_notes_lead_id'), table_name='counselor_notes')
    op.drop_index(op.f('ix_counselor_notes_counselor_id'), table_name='counselor_notes')
    op.drop_table('counselor_notes')
