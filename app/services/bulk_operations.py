import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import timedelta

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.config import get_settings
from app.core.errors import (
    BulkOperationError,
    InvalidJobStateError,
    InvalidProgressError,
    JobNotFoundError,
    RecordProcessingError,
)
from app.models.bulk_operation import (
    JOB_TRANSITIONS,
    TERMINAL_JOB_STATUSES,
    BulkJobStatus,
    BulkOperationJob,
    BulkOperationRecord,
    BulkOperationType,
    BulkRecordStatus,
)
from app.models.common import utcnow
from app.models.record import Record
from app.schemas.bulk_operation import ErrorLog, ErrorLogEntry, FieldUpdate, JobConfig

logger = logging.getLogger(__name__)

UPDATABLE_COLUMNS = {"name"}
PROTECTED_FIELDS = {"id", "owner_id", "created_at", "updated_at"}


@dataclass(slots=True)
class BulkRunResult:
    status: BulkJobStatus
    processed: int
    errors: list[ErrorLogEntry]
    duplicated: list[str] = field(default_factory=list)


def generate_job_id() -> str:
    millis = int(utcnow().timestamp() * 1000)
    return f"job_{millis}_{uuid.uuid4().hex[:9]}"


def create_bulk_job(
    db: Session,
    user_id: str,
    operation_type: BulkOperationType | str,
    record_count: int,
    config: JobConfig | dict | None = None,
) -> BulkOperationJob:
    try:
        op_type = BulkOperationType(operation_type)
    except ValueError as exc:
        raise BulkOperationError(f"Unsupported operation type: {operation_type}") from exc
    if record_count < 1:
        raise BulkOperationError("Record count must be at least 1")
    try:
        job_config = config if isinstance(config, JobConfig) else JobConfig.model_validate(config or {})
    except ValidationError as exc:
        raise BulkOperationError(f"Invalid job config: {exc.errors()[0]['msg']}") from exc

    job = BulkOperationJob(
        job_id=generate_job_id(),
        user_id=user_id,
        operation_type=op_type,
        total_records=record_count,
        status=BulkJobStatus.PENDING,
        config=job_config.model_dump(mode="json"),
    )
    db.add(job)
    db.commit()
    db.refresh(job)
    logger.info(
        "bulk_job_created",
        extra={"job_id": job.job_id, "operation_type": op_type.value, "total_records": record_count},
    )
    return job


def get_job(db: Session, job_id: str, user_id: str) -> BulkOperationJob | None:
    return db.scalar(
        select(BulkOperationJob).where(BulkOperationJob.job_id == job_id, BulkOperationJob.user_id == user_id)
    )


def require_job(db: Session, job_id: str, user_id: str) -> BulkOperationJob:
    job = get_job(db, job_id, user_id)
    if job is None:
        raise JobNotFoundError(job_id)
    return job


def read_job_config(job: BulkOperationJob) -> JobConfig:
    return JobConfig.model_validate(job.config or {})


def read_error_log(job: BulkOperationJob) -> ErrorLog:
    return ErrorLog.model_validate(job.error_log or {})


def get_job_status(db: Session, job_id: str, user_id: str) -> dict | None:
    job = get_job(db, job_id, user_id)
    if job is None:
        return None
    return {
        "id": job.job_id,
        "status": job.status,
        "operation_type": job.operation_type,
        "current": job.processed_records,
        "total": job.total_records,
        "failed": job.failed_records,
        "errors": read_error_log(job).entries,
        "created_at": job.created_at,
        "completed_at": job.completed_at,
    }


def get_user_bulk_operations(db: Session, user_id: str, limit: int | None = None) -> list[BulkOperationJob]:
    settings = get_settings()
    if limit is None:
        limit = settings.bulk_history_default_limit
    limit = max(1, min(limit, settings.bulk_history_max_limit))
    stmt = (
        select(BulkOperationJob)
        .where(BulkOperationJob.user_id == user_id)
        .order_by(BulkOperationJob.created_at.desc(), BulkOperationJob.id.desc())
        .limit(limit)
    )
    return list(db.scalars(stmt).all())


def list_job_records(db: Session, job: BulkOperationJob) -> list[BulkOperationRecord]:
    stmt = (
        select(BulkOperationRecord)
        .where(BulkOperationRecord.job_id == job.job_id)
        .order_by(BulkOperationRecord.id)
    )
    return list(db.scalars(stmt).all())


def _transition(job: BulkOperationJob, target: BulkJobStatus) -> None:
    if target not in JOB_TRANSITIONS.get(job.status, frozenset()):
        raise InvalidJobStateError(f"Job {job.job_id} cannot move from {job.status.value} to {target.value}")
    job.status = target


def start_job(db: Session, job: BulkOperationJob, total: int) -> BulkOperationJob:
    _transition(job, BulkJobStatus.RUNNING)
    if total != job.total_records:
        logger.warning(
            "bulk_job_total_reconciled",
            extra={"job_id": job.job_id, "declared": job.total_records, "submitted": total},
        )
    job.total_records = total
    job.processed_records = 0
    job.failed_records = 0
    db.commit()
    return job


def update_job_progress(db: Session, job: BulkOperationJob, processed: int, failed: int) -> BulkOperationJob:
    if not 0 <= failed <= processed <= job.total_records:
        raise InvalidProgressError(
            f"Invalid progress for {job.job_id}: processed={processed} failed={failed} total={job.total_records}"
        )
    job.processed_records = processed
    job.failed_records = failed
    db.commit()
    return job


def complete_job(
    db: Session,
    job: BulkOperationJob,
    status: BulkJobStatus = BulkJobStatus.COMPLETED,
    errors: Sequence[ErrorLogEntry] = (),
) -> BulkOperationJob:
    if status not in TERMINAL_JOB_STATUSES:
        raise InvalidJobStateError(f"{status.value} is not a terminal status")
    _transition(job, status)
    job.failed_records = len(errors)
    job.error_log = ErrorLog(entries=list(errors)).model_dump(mode="json")
    if job.completed_at is None:
        job.completed_at = utcnow()
    db.commit()
    logger.info(
        "bulk_job_completed",
        extra={"job_id": job.job_id, "status": status.value, "failed_records": len(errors)},
    )
    return job


def cancel_job(db: Session, job: BulkOperationJob) -> BulkOperationJob:
    _transition(job, BulkJobStatus.CANCELLED)
    if job.completed_at is None:
        job.completed_at = utcnow()
    db.commit()
    logger.info("bulk_job_cancelled", extra={"job_id": job.job_id})
    return job


def fail_job(db: Session, job_id: str, user_id: str, message: str) -> BulkOperationJob | None:
    """Mark a job failed after an unexpected error; the session may hold a broken transaction."""
    db.rollback()
    job = get_job(db, job_id, user_id)
    if job is None or job.status.is_terminal:
        return job
    error_log = read_error_log(job)
    error_log.fatal = message
    job.error_log = error_log.model_dump(mode="json")
    _transition(job, BulkJobStatus.FAILED)
    job.completed_at = utcnow()
    db.commit()
    logger.error("bulk_job_failed", extra={"job_id": job.job_id, "error": message})
    return job


def run_bulk_items(
    db: Session,
    job: BulkOperationJob,
    item_ids: Sequence[str | None],
    action: Callable[[str | None], None],
) -> BulkRunResult:
    start_job(db, job, len(item_ids))
    errors: list[ErrorLogEntry] = []
    processed = 0
    for index, item_id in enumerate(item_ids):
        db.refresh(job, attribute_names=["status"])
        if job.status == BulkJobStatus.CANCELLED:
            logger.info("bulk_job_stopped_after_cancel", extra={"job_id": job.job_id, "processed": processed})
            break

        entry = BulkOperationRecord(job_id=job.job_id, record_id=item_id, status=BulkRecordStatus.PENDING)
        db.add(entry)
        db.flush()
        try:
            action(item_id)
        except RecordProcessingError as exc:
            entry.status = BulkRecordStatus.FAILED
            entry.error_message = str(exc)
            errors.append(ErrorLogEntry(record=index, id=item_id, error=str(exc)))
        else:
            entry.status = BulkRecordStatus.SUCCESS
        processed = index + 1
        update_job_progress(db, job, processed, len(errors))

    if job.status == BulkJobStatus.CANCELLED:
        job.error_log = ErrorLog(entries=errors).model_dump(mode="json")
        if job.completed_at is None:
            job.completed_at = utcnow()
        db.commit()
        return BulkRunResult(status=BulkJobStatus.CANCELLED, processed=processed, errors=errors)

    final_status = BulkJobStatus.COMPLETED_WITH_ERRORS if errors else BulkJobStatus.COMPLETED
    complete_job(db, job, final_status, errors)
    return BulkRunResult(status=final_status, processed=processed, errors=errors)


def _require_operation(job: BulkOperationJob, expected: BulkOperationType) -> None:
    if job.operation_type != expected:
        raise InvalidJobStateError(
            f"Job {job.job_id} is a {job.operation_type.value} job, not {expected.value}"
        )


def _owned_record(db: Session, owner_id: str, record_id: str | None) -> Record:
    if not record_id:
        raise RecordProcessingError("Record missing id field")
    record = db.scalar(select(Record).where(Record.id == record_id, Record.owner_id == owner_id))
    if record is None:
        raise RecordProcessingError("Record not found")
    return record


def execute_bulk_update(
    db: Session,
    job: BulkOperationJob,
    record_ids: Sequence[str | None],
    field_updates: Sequence[FieldUpdate],
) -> BulkRunResult:
    _require_operation(job, BulkOperationType.UPDATE)

    def apply_updates(record_id: str | None) -> None:
        record = _owned_record(db, job.user_id, record_id)
        data = dict(record.data or {})
        columns: dict[str, str] = {}
        for update in field_updates:
            if update.field in PROTECTED_FIELDS:
                raise RecordProcessingError(f"Field cannot be updated: {update.field}")
            if update.field in UPDATABLE_COLUMNS:
                if not isinstance(update.value, str) or not update.value.strip():
                    raise RecordProcessingError(f"Field {update.field} requires a non-empty string")
                columns[update.field] = update.value
            else:
                data[update.field] = update.value
        for column, value in columns.items():
            setattr(record, column, value)
        record.data = data

    return run_bulk_items(db, job, record_ids, apply_updates)


def execute_bulk_delete(db: Session, job: BulkOperationJob, record_ids: Sequence[str]) -> BulkRunResult:
    _require_operation(job, BulkOperationType.DELETE)

    def delete_record(record_id: str | None) -> None:
        db.delete(_owned_record(db, job.user_id, record_id))

    return run_bulk_items(db, job, record_ids, delete_record)


def execute_bulk_duplicate(db: Session, job: BulkOperationJob, record_ids: Sequence[str]) -> BulkRunResult:
    _require_operation(job, BulkOperationType.DUPLICATE)
    duplicated: list[str] = []

    def duplicate_record(record_id: str | None) -> None:
        original = _owned_record(db, job.user_id, record_id)
        clone = Record(owner_id=original.owner_id, name=original.name, data=dict(original.data or {}))
        db.add(clone)
        db.flush()
        duplicated.append(clone.id)

    result = run_bulk_items(db, job, record_ids, duplicate_record)
    result.duplicated = duplicated
    return result


def cleanup_old_jobs(db: Session, older_than_days: int | None = None) -> int:
    days = older_than_days if older_than_days is not None else get_settings().bulk_job_retention_days
    cutoff = utcnow() - timedelta(days=days)
    stale = db.scalars(
        select(BulkOperationJob).where(
            BulkOperationJob.status.in_(TERMINAL_JOB_STATUSES),
            BulkOperationJob.completed_at < cutoff,
        )
    ).all()
    deleted = 0
    for job in stale:
        db.delete(job)
        deleted += 1
    db.commit()
    logger.info("bulk_jobs_cleaned_up", extra={"deleted": deleted, "older_than_days": days})
    return deleted
