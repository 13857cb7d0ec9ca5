"""Key-value entries table

Revision ID: 001_kv_entries
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

# revision identifiers, used by Alembic.
revision: str = '001_kv_entries'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """
    Create the kv_entries table shared by the link and telemetry namespaces.

    Skipped when the table already exists (created by init_models on a
    development database).
    """
    bind = op.get_bind()
    if 'kv_entries' in inspect(bind).get_table_names():
        return

    op.create_table(
        'kv_entries',
        sa.Column('namespace', sa.String(length=64), nullable=False),
        sa.Column('key', sa.String(length=512), nullable=False),
        sa.Column('value', sa.Text(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('namespace', 'key'),
    )


def downgrade() -> None:
    op.drop_table('kv_entries')
