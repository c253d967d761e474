import re
from datetime import timedelta

import pytest
from sqlalchemy import func, select, update

from app.core.errors import BulkOperationError, InvalidJobStateError, InvalidProgressError
from app.models.bulk_operation import (
    BulkJobStatus,
    BulkOperationJob,
    BulkOperationRecord,
    BulkOperationType,
    BulkRecordStatus,
)
from app.models.common import utcnow
from app.models.record import Record
from app.schemas.bulk_operation import FieldUpdate
from app.services import bulk_operations
from app.workers.tasks import cleanup_bulk_jobs


def _record(db, owner, name="Card", data=None) -> Record:
    record = Record(owner_id=owner.id, name=name, data=data or {})
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def _ledger_rows(db, job) -> list[tuple[str | None, BulkRecordStatus, str | None]]:
    return [(row.record_id, row.status, row.error_message) for row in bulk_operations.list_job_records(db, job)]


def test_create_bulk_job_starts_pending(db, user):
    job = bulk_operations.create_bulk_job(db, user.id, "update", 3, {"source": "grid", "options": {"dry_run": False}})

    assert re.fullmatch(r"job_\d+_[0-9a-f]{9}", job.job_id)
    assert job.status == BulkJobStatus.PENDING
    assert job.operation_type == BulkOperationType.UPDATE
    assert (job.total_records, job.processed_records, job.failed_records) == (3, 0, 0)
    assert job.config == {"version": 1, "source": "grid", "filters": {}, "options": {"dry_run": False}}
    assert job.completed_at is None
    assert bulk_operations.read_job_config(job).source == "grid"


def test_job_ids_are_unique():
    ids = {bulk_operations.generate_job_id() for _ in range(200)}
    assert len(ids) == 200


@pytest.mark.parametrize(
    ("operation_type", "count", "config"),
    [
        ("rename", 1, None),
        ("update", 0, None),
        ("update", 1, {"unexpected": True}),
        ("update", 1, {"version": 2}),
    ],
)
def test_create_bulk_job_rejects_invalid_input(db, user, operation_type, count, config):
    with pytest.raises(BulkOperationError):
        bulk_operations.create_bulk_job(db, user.id, operation_type, count, config)
    assert db.scalar(select(func.count()).select_from(BulkOperationJob)) == 0


def test_execute_bulk_update_collects_per_record_errors(db, user, other_user):
    mine = _record(db, user, data={"size": "s"})
    theirs = _record(db, other_user)
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.UPDATE, 4)

    result = bulk_operations.execute_bulk_update(
        db,
        job,
        [mine.id, "missing", None, theirs.id],
        [FieldUpdate(field="name", value="Renamed"), FieldUpdate(field="color", value="red")],
    )

    assert result.status == BulkJobStatus.COMPLETED_WITH_ERRORS
    assert result.processed == 4
    assert [(e.record, e.id, e.error) for e in result.errors] == [
        (1, "missing", "Record not found"),
        (2, None, "Record missing id field"),
        (3, theirs.id, "Record not found"),
    ]

    db.refresh(job)
    assert job.status == BulkJobStatus.COMPLETED_WITH_ERRORS
    assert (job.total_records, job.processed_records, job.failed_records) == (4, 4, 3)
    assert job.completed_at is not None
    assert len(bulk_operations.read_error_log(job).entries) == 3

    assert _ledger_rows(db, job) == [
        (mine.id, BulkRecordStatus.SUCCESS, None),
        ("missing", BulkRecordStatus.FAILED, "Record not found"),
        (None, BulkRecordStatus.FAILED, "Record missing id field"),
        (theirs.id, BulkRecordStatus.FAILED, "Record not found"),
    ]

    db.refresh(mine)
    db.refresh(theirs)
    assert mine.name == "Renamed"
    assert mine.data == {"size": "s", "color": "red"}
    assert theirs.name == "Card"


def test_execute_bulk_update_rejects_protected_fields_without_partial_writes(db, user):
    record = _record(db, user, name="Keep")
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.UPDATE, 1)

    result = bulk_operations.execute_bulk_update(
        db,
        job,
        [record.id],
        [FieldUpdate(field="name", value="Changed"), FieldUpdate(field="owner_id", value="hijack")],
    )

    assert result.status == BulkJobStatus.COMPLETED_WITH_ERRORS
    assert result.errors[0].error == "Field cannot be updated: owner_id"
    db.refresh(record)
    assert record.name == "Keep"
    assert record.owner_id == user.id


def test_execute_bulk_delete_removes_owned_records(db, user):
    first = _record(db, user, name="One")
    second = _record(db, user, name="Two")
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.DELETE, 2)

    result = bulk_operations.execute_bulk_delete(db, job, [first.id, second.id])

    assert result.status == BulkJobStatus.COMPLETED
    assert result.errors == []
    assert db.scalar(select(func.count()).select_from(Record)) == 0
    db.refresh(job)
    assert (job.processed_records, job.failed_records) == (2, 0)
    assert bulk_operations.read_error_log(job).entries == []


def test_execute_bulk_duplicate_returns_new_ids(db, user):
    original = _record(db, user, name="Template", data={"layout": "grid"})
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.DUPLICATE, 2)

    result = bulk_operations.execute_bulk_duplicate(db, job, [original.id, original.id])

    assert result.status == BulkJobStatus.COMPLETED
    assert len(result.duplicated) == 2
    assert original.id not in result.duplicated
    copies = db.scalars(select(Record).where(Record.id.in_(result.duplicated))).all()
    assert {(c.name, c.owner_id) for c in copies} == {("Template", user.id)}
    assert all(c.data == {"layout": "grid"} for c in copies)


def test_total_is_reconciled_with_submitted_items(db, user):
    record = _record(db, user)
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.DELETE, 10)

    bulk_operations.execute_bulk_delete(db, job, [record.id])

    db.refresh(job)
    assert (job.total_records, job.processed_records) == (1, 1)


def test_executor_must_match_operation_type(db, user):
    record = _record(db, user)
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.DELETE, 1)

    with pytest.raises(InvalidJobStateError):
        bulk_operations.execute_bulk_duplicate(db, job, [record.id])

    db.refresh(job)
    assert job.status == BulkJobStatus.PENDING


def test_terminal_job_cannot_run_again(db, user):
    record = _record(db, user)
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.DUPLICATE, 1)
    bulk_operations.execute_bulk_duplicate(db, job, [record.id])

    with pytest.raises(InvalidJobStateError):
        bulk_operations.execute_bulk_duplicate(db, job, [record.id])


def test_cancel_pending_job_and_reject_second_cancel(db, user):
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.EXPORT, 5)

    bulk_operations.cancel_job(db, job)
    db.refresh(job)
    assert job.status == BulkJobStatus.CANCELLED
    assert job.completed_at is not None

    with pytest.raises(InvalidJobStateError):
        bulk_operations.cancel_job(db, job)


def test_run_stops_when_job_is_cancelled_midway(db, user):
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.IMPORT, 3)
    seen: list[str | None] = []

    def cancel_after_first(item_id):
        seen.append(item_id)
        db.execute(
            update(BulkOperationJob)
            .where(BulkOperationJob.job_id == job.job_id)
            .values(status=BulkJobStatus.CANCELLED)
        )

    result = bulk_operations.run_bulk_items(db, job, ["a", "b", "c"], cancel_after_first)

    assert seen == ["a"]
    assert result.status == BulkJobStatus.CANCELLED
    assert result.processed == 1
    db.refresh(job)
    assert job.status == BulkJobStatus.CANCELLED
    assert job.processed_records == 1
    assert job.completed_at is not None
    assert _ledger_rows(db, job) == [("a", BulkRecordStatus.SUCCESS, None)]


def test_update_job_progress_rejects_inconsistent_counters(db, user):
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.UPDATE, 2)
    bulk_operations.start_job(db, job, 2)

    bulk_operations.update_job_progress(db, job, 1, 1)
    with pytest.raises(InvalidProgressError):
        bulk_operations.update_job_progress(db, job, 1, 2)
    with pytest.raises(InvalidProgressError):
        bulk_operations.update_job_progress(db, job, 3, 0)


def test_complete_job_requires_terminal_status(db, user):
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.UPDATE, 1)
    bulk_operations.start_job(db, job, 1)

    with pytest.raises(InvalidJobStateError):
        bulk_operations.complete_job(db, job, BulkJobStatus.PENDING)

    bulk_operations.complete_job(db, job, BulkJobStatus.COMPLETED)
    first_completed_at = job.completed_at
    assert first_completed_at is not None
    with pytest.raises(InvalidJobStateError):
        bulk_operations.complete_job(db, job, BulkJobStatus.FAILED)


def test_fail_job_records_fatal_error(db, user):
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.UPDATE, 1)
    bulk_operations.start_job(db, job, 1)

    failed = bulk_operations.fail_job(db, job.job_id, user.id, "disk on fire")

    assert failed.status == BulkJobStatus.FAILED
    assert failed.completed_at is not None
    assert bulk_operations.read_error_log(failed).fatal == "disk on fire"


def test_fail_job_leaves_terminal_jobs_alone(db, user):
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.UPDATE, 1)
    bulk_operations.cancel_job(db, job)

    untouched = bulk_operations.fail_job(db, job.job_id, user.id, "late failure")

    assert untouched.status == BulkJobStatus.CANCELLED
    assert bulk_operations.read_error_log(untouched).fatal is None


def test_job_status_is_scoped_to_owner(db, user, other_user):
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.UPDATE, 2)

    status = bulk_operations.get_job_status(db, job.job_id, user.id)
    assert status["id"] == job.job_id
    assert status["status"] == BulkJobStatus.PENDING
    assert (status["current"], status["total"], status["failed"]) == (0, 2, 0)
    assert status["errors"] == []

    assert bulk_operations.get_job_status(db, job.job_id, other_user.id) is None
    assert bulk_operations.get_job_status(db, "job_0_nothere", user.id) is None


def test_history_is_newest_first_and_limited(db, user, other_user):
    first = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.UPDATE, 1)
    second = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.DELETE, 1)
    third = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.EXPORT, 1)
    bulk_operations.create_bulk_job(db, other_user.id, BulkOperationType.EXPORT, 1)

    history = bulk_operations.get_user_bulk_operations(db, user.id, limit=2)
    assert [job.job_id for job in history] == [third.job_id, second.job_id]

    everything = bulk_operations.get_user_bulk_operations(db, user.id)
    assert [job.job_id for job in everything] == [third.job_id, second.job_id, first.job_id]


def test_cleanup_old_jobs_removes_only_stale_terminal_jobs(db, user):
    record = _record(db, user)
    stale = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.DELETE, 1)
    bulk_operations.execute_bulk_delete(db, stale, [record.id])
    stale.completed_at = utcnow() - timedelta(days=45)
    db.commit()

    recent = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.EXPORT, 1)
    bulk_operations.cancel_job(db, recent)

    running = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.UPDATE, 1)
    bulk_operations.start_job(db, running, 1)
    running.completed_at = utcnow() - timedelta(days=45)
    db.commit()

    stale_id = stale.job_id
    deleted = bulk_operations.cleanup_old_jobs(db, older_than_days=30)

    assert deleted == 1
    remaining = set(db.scalars(select(BulkOperationJob.job_id)).all())
    assert remaining == {recent.job_id, running.job_id}
    orphans = db.scalar(
        select(func.count()).select_from(BulkOperationRecord).where(BulkOperationRecord.job_id == stale_id)
    )
    assert orphans == 0


def test_cleanup_task_uses_its_own_session(db, user):
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.EXPORT, 1)
    bulk_operations.cancel_job(db, job)
    job.completed_at = utcnow() - timedelta(days=90)
    db.commit()

    assert cleanup_bulk_jobs(30) == 1
    assert cleanup_bulk_jobs(30) == 0


def test_job_updated_at_advances_on_each_write(db, user):
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.UPDATE, 2)
    stale = utcnow() - timedelta(minutes=5)
    db.execute(update(BulkOperationJob).where(BulkOperationJob.job_id == job.job_id).values(updated_at=stale))
    db.commit()
    db.refresh(job)
    backdated = job.updated_at

    bulk_operations.start_job(db, job, 2)
    db.refresh(job)
    assert job.updated_at > backdated

    started = job.updated_at
    bulk_operations.update_job_progress(db, job, 1, 0)
    db.refresh(job)
    assert job.updated_at >= started
    assert job.updated_at > backdated


def test_ledger_row_updated_at_advances_when_settled(db, user):
    record = _record(db, user)
    job = bulk_operations.create_bulk_job(db, user.id, BulkOperationType.DELETE, 1)
    pending_stamps = []

    def backdate_then_delete(record_id):
        stale = utcnow() - timedelta(minutes=5)
        db.execute(
            update(BulkOperationRecord).where(BulkOperationRecord.job_id == job.job_id).values(updated_at=stale)
        )
        row = db.scalars(select(BulkOperationRecord).where(BulkOperationRecord.job_id == job.job_id)).one()
        pending_stamps.append((row.status, row.updated_at))
        db.delete(db.get(Record, record_id))

    bulk_operations.run_bulk_items(db, job, [record.id], backdate_then_delete)

    [(status, backdated)] = pending_stamps
    assert status == BulkRecordStatus.PENDING
    row = db.scalars(select(BulkOperationRecord).where(BulkOperationRecord.job_id == job.job_id)).one()
    db.refresh(row)
    assert row.status == BulkRecordStatus.SUCCESS
    assert row.updated_at.replace(tzinfo=None) > backdated.replace(tzinfo=None)
