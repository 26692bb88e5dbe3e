"""create_licenses

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Keys are never deleted; revoked rows double as the deny-list.
    op.create_table(
        'licenses',
        sa.Column('key', sa.String(128), nullable=False),
        sa.Column('owner', sa.String(255), nullable=False),
        sa.Column('server_ip', sa.String(45), nullable=True),
        sa.Column('active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('notes', sa.Text(), nullable=False, server_default=''),
        sa.PrimaryKeyConstraint('key'),
    )
    op.create_index('idx_license_owner', 'licenses', ['owner'])
    op.create_index('idx_license_created_at', 'licenses', ['created_at'])


def downgrade() -> None:
    op.drop_index('idx_license_created_at', table_name='licenses')
    op.drop_index('idx_license_owner', table_name='licenses')
    op.drop_table('licenses')
