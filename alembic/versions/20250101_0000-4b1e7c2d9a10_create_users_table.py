"""create users table

Revision ID: 4b1e7c2d9a10
Revises:
Create Date: 2025-01-01 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '4b1e7c2d9a10'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # id 取自独立序列，从 1 开始单调递增，不复用
    op.execute("CREATE SEQUENCE IF NOT EXISTS seq_users_id START 1")
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), server_default=sa.text("nextval('seq_users_id')"), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('name', sa.Text(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )


def downgrade() -> None:
    op.drop_table('users')
    op.execute("DROP SEQUENCE IF EXISTS seq_users_id")
