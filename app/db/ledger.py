import logging

from sqlalchemy import Table
from sqlalchemy.engine import Connection
from sqlalchemy.exc import SQLAlchemyError

from app.models.bulk_operation import BulkOperationJob, BulkOperationRecord

logger = logging.getLogger(__name__)

# Parent first: bulk_operation_records.job_id references bulk_operation_jobs.job_id.
LEDGER_TABLES: tuple[Table, ...] = (BulkOperationJob.__table__, BulkOperationRecord.__table__)


def migrate(connection: Connection) -> None:
    try:
        for table in LEDGER_TABLES:
            logger.info("Creating %s table...", table.name)
            table.create(bind=connection, checkfirst=True)
        logger.info("Bulk operations tables created successfully")
    except SQLAlchemyError as exc:
        logger.error("Failed to create bulk operations tables: %s", exc)
        raise


def rollback(connection: Connection) -> None:
    try:
        logger.info("Rolling back bulk operations tables...")
        for table in reversed(LEDGER_TABLES):
            table.drop(bind=connection, checkfirst=True)
        logger.info("Bulk operations tables rolled back successfully")
    except SQLAlchemyError as exc:
        logger.error("Failed to rollback bulk operations tables: %s", exc)
        raise
