"""Bulk operation job and per-record ledgers."""

from alembic import op

from app.db import ledger


revision = "0002_bulk_operations"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    ledger.migrate(op.get_bind())


def downgrade() -> None:
    ledger.rollback(op.get_bind())
