"""Create monthly_balance table

Revision ID: c71a0d4e2f93
Revises: 8d3e5f7a9b21
Create Date: 2026-09-09 10:22:03.915276

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = 'c71a0d4e2f93'
down_revision: Union[str, Sequence[str], None] = '8d3e5f7a9b21'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'monthly_balance',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.Column('month_year', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('opening_balance', sa.Float(), nullable=False),
        sa.Column('closing_balance', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'month_year', name='uq_monthly_balance_user_month'),
    )
    op.create_index(op.f('ix_monthly_balance_user_id'), 'monthly_balance', ['user_id'], unique=False)
    op.create_index(op.f('ix_monthly_balance_month_year'), 'monthly_balance', ['month_year'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_monthly_balance_month_year'), table_name='monthly_balance')
    op.drop_index(op.f('ix_monthly_balance_user_id'), table_name='monthly_balance')
    op.drop_table('monthly_balance')
