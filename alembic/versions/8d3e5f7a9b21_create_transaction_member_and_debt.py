"""Create transaction, transaction_member and debt tables

Revision ID: 8d3e5f7a9b21
Revises: 1f6c2b8e4a10
Create Date: 2026-09-02 19:05:47.120384

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = '8d3e5f7a9b21'
down_revision: Union[str, Sequence[str], None] = '1f6c2b8e4a10'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'transaction',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('creator_id', sa.Uuid(), nullable=False),
        sa.Column('type', sa.Enum('revenue', 'personal', 'shared', name='transactiontype'), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('payment_mode', sa.Enum('cash', 'online', name='paymentmode'), nullable=False),
        sa.Column('description', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('date', sa.DateTime(), nullable=False),
        sa.Column(
            'category',
            sa.Enum('rent', 'food', 'social', 'transport', 'apparel', 'beauty', 'education', 'other', name='expensecategory'),
            nullable=True,
        ),
        sa.Column('payers', sa.JSON(), nullable=False),
        sa.Column('split_details', sa.JSON(), nullable=True),
        sa.Column('activity_log', sa.JSON(), nullable=False),
        sa.Column('deleted_at', sa.DateTime(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['creator_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_transaction_creator_id'), 'transaction', ['creator_id'], unique=False)
    op.create_index(op.f('ix_transaction_date'), 'transaction', ['date'], unique=False)
    op.create_index(op.f('ix_transaction_deleted_at'), 'transaction', ['deleted_at'], unique=False)

    # Reemplaza el filtro por JSON de pagadores/participantes
    op.create_table(
        'transaction_member',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Uuid(), nullable=False),
        sa.Column('user_id', sa.Uuid(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transaction.id']),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('transaction_id', 'user_id', name='uq_transaction_member'),
    )
    op.create_index(op.f('ix_transaction_member_transaction_id'), 'transaction_member', ['transaction_id'], unique=False)
    op.create_index(op.f('ix_transaction_member_user_id'), 'transaction_member', ['user_id'], unique=False)

    op.create_table(
        'debt',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('transaction_id', sa.Uuid(), nullable=False),
        sa.Column('debtor_id', sa.Uuid(), nullable=False),
        sa.Column('creditor_id', sa.Uuid(), nullable=False),
        sa.Column('amount', sa.Float(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['transaction_id'], ['transaction.id']),
        sa.ForeignKeyConstraint(['debtor_id'], ['user.id']),
        sa.ForeignKeyConstraint(['creditor_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_debt_transaction_id'), 'debt', ['transaction_id'], unique=False)
    op.create_index(op.f('ix_debt_debtor_id'), 'debt', ['debtor_id'], unique=False)
    op.create_index(op.f('ix_debt_creditor_id'), 'debt', ['creditor_id'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_debt_creditor_id'), table_name='debt')
    op.drop_index(op.f('ix_debt_debtor_id'), table_name='debt')
    op.drop_index(op.f('ix_debt_transaction_id'), table_name='debt')
    op.drop_table('debt')
    op.drop_index(op.f('ix_transaction_member_user_id'), table_name='transaction_member')
    op.drop_index(op.f('ix_transaction_member_transaction_id'), table_name='transaction_member')
    op.drop_table('transaction_member')
    op.drop_index(op.f('ix_transaction_deleted_at'), table_name='transaction')
    op.drop_index(op.f('ix_transaction_date'), table_name='transaction')
    op.drop_index(op.f('ix_transaction_creator_id'), table_name='transaction')
    op.drop_table('transaction')
    bind = op.get_bind()
    for name in ('expensecategory', 'paymentmode', 'transactiontype'):
        sa.Enum(name=name).drop(bind, checkfirst=True)
