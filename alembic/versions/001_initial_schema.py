"""Initial snapshot schema

Revision ID: 001_initial_schema
Revises:
Create Date: 2026-10-18 00:00:00.000000

Tables created:
- accounts: One funded account per row, balance in drops
- thresholds: Minimum balance per tier from the latest completed scan
"""
from alembic import op
import sqlalchemy as sa
import logging

logger = logging.getLogger('alembic.runtime.migration')

# revision identifiers, used by Alembic.
revision = '001_initial_schema'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create accounts and thresholds tables."""
    logger.info("Creating accounts table...")
    op.create_table(
        'accounts',
        sa.Column('address', sa.String(), nullable=False),
        sa.Column('balance_drops', sa.BigInteger(), nullable=False),
        sa.PrimaryKeyConstraint('address')
    )
    op.create_index(
        'idx_accounts_balance_desc',
        'accounts',
        [sa.text('balance_drops DESC')]
    )

    logger.info("Creating thresholds table...")
    op.create_table(
        'thresholds',
        sa.Column('tier_id', sa.String(), nullable=False),
        sa.Column('name', sa.String(), nullable=False),
        sa.Column('emoji', sa.String(), nullable=False),
        sa.Column('percentile', sa.Float(), nullable=False),
        sa.Column('minimum_balance_drops', sa.BigInteger(), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('tier_id')
    )
    logger.info("✓ Snapshot schema created")


def downgrade() -> None:
    """Drop snapshot tables."""
    op.drop_table('thresholds')
    op.drop_index('idx_accounts_balance_desc', table_name='accounts')
    op.drop_table('accounts')
