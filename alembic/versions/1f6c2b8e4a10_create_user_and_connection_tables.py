"""Create user and user_connection tables

Revision ID: 1f6c2b8e4a10
Revises: 
Create Date: 2026-09-02 18:40:11.482913

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
import sqlmodel


# revision identifiers, used by Alembic.
revision: str = '1f6c2b8e4a10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'user',
        sa.Column('id', sa.Uuid(), nullable=False),
        sa.Column('email', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('display_name', sqlmodel.sql.sqltypes.AutoString(), nullable=True),
        sa.Column('hashed_password', sqlmodel.sql.sqltypes.AutoString(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_user_email'), 'user', ['email'], unique=True)

    op.create_table(
        'user_connection',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('user_id_1', sa.Uuid(), nullable=False),
        sa.Column('user_id_2', sa.Uuid(), nullable=False),
        sa.Column('status', sa.Enum('pending', 'accepted', 'blocked', name='connectionstatus'), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('updated_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id_1'], ['user.id']),
        sa.ForeignKeyConstraint(['user_id_2'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id_1', 'user_id_2', name='uq_user_connection_pair'),
    )
    op.create_index(op.f('ix_user_connection_user_id_1'), 'user_connection', ['user_id_1'], unique=False)
    op.create_index(op.f('ix_user_connection_user_id_2'), 'user_connection', ['user_id_2'], unique=False)


def downgrade() -> None:
    op.drop_index(op.f('ix_user_connection_user_id_2'), table_name='user_connection')
    op.drop_index(op.f('ix_user_connection_user_id_1'), table_name='user_connection')
    op.drop_table('user_connection')
    op.drop_index(op.f('ix_user_email'), table_name='user')
    op.drop_table('user')
    sa.Enum(name='connectionstatus').drop(op.get_bind(), checkfirst=True)
