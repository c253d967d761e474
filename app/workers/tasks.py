import logging

from app.db.session import SessionLocal
from app.services.bulk_operations import cleanup_old_jobs
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


def cleanup_bulk_jobs(older_than_days: int | None = None) -> int:
    db = SessionLocal()
    try:
        return cleanup_old_jobs(db, older_than_days)
    except Exception:
        logger.exception("bulk_jobs_cleanup_failed")
        db.rollback()
        raise
    finally:
        db.close()


@celery_app.task(name="app.workers.tasks.cleanup_bulk_jobs_task")
def cleanup_bulk_jobs_task(older_than_days: int | None = None) -> int:
    return cleanup_bulk_jobs(older_than_days)
