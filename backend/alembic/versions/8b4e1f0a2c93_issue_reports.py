"""Issue reports

Revision ID: 8b4e1f0a2c93
Revises: 3f2a9c1d5e77
Create Date: 2026-10-18 15:47:09.532817

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# Revision identifiers used by Alembic
revision: str = '8b4e1f0a2c93'
down_revision: Union[str, Sequence[str], None] = '3f2a9c1d5e77'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        'issue_reports',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('customer_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('customer_name', sa.String(), nullable=False),
        sa.Column('customer_email', sa.String(), nullable=False),
        sa.Column('subject', sa.String(), nullable=False),
        sa.Column('description', sa.String(), nullable=False),
        sa.Column('status', sa.Enum('open', 'resolved', native_enum=False, length=20), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
    )
    op.create_index('ix_issue_reports_id', 'issue_reports', ['id'])
    op.create_index('ix_issue_reports_customer_id', 'issue_reports', ['customer_id'])
    op.create_index('ix_issue_reports_created_at', 'issue_reports', ['created_at'])


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table('issue_reports')
