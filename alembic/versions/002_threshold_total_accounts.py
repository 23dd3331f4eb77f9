"""Store the published account total with the thresholds

Revision ID: 002_threshold_total_accounts
Revises: 001_initial_schema
Create Date: 2026-10-18 12:00:00.000000

Lookups report the total from the last published scan instead of counting
the accounts table, which a running scan clears and refills.
"""
from alembic import op
import sqlalchemy as sa
import logging

logger = logging.getLogger('alembic.runtime.migration')

# revision identifiers, used by Alembic.
revision = '002_threshold_total_accounts'
down_revision = '001_initial_schema'
branch_labels = None
depends_on = None


def upgrade() -> None:
    logger.info("Adding thresholds.total_accounts...")
    with op.batch_alter_table('thresholds') as batch_op:
        batch_op.add_column(
            sa.Column('total_accounts', sa.BigInteger(), nullable=False, server_default='0')
        )
    # Backfill from the current snapshot; correct as long as no scan is running
    op.execute("UPDATE thresholds SET total_accounts = (SELECT COUNT(*) FROM accounts)")
    logger.info("✓ thresholds.total_accounts added")


def downgrade() -> None:
    with op.batch_alter_table('thresholds') as batch_op:
        batch_op.drop_column('total_accounts')
