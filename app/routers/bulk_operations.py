import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from app.core.errors import BulkOperationError
from app.db.session import get_db
from app.models.bulk_operation import BulkOperationJob, BulkOperationRecord
from app.models.user import User
from app.routers.deps import get_current_user
from app.schemas.bulk_operation import (
    BulkOperationRecordRead,
    CancelJobRequest,
    CancelJobResponse,
    CreateJobRequest,
    CreateJobResponse,
    ExecuteByIdsRequest,
    ExecuteDuplicateResponse,
    ExecuteResponse,
    ExecuteUpdateRequest,
    HistoryResponse,
    JobHistoryItem,
    JobStatusRead,
)
from app.services import bulk_operations
from app.services.bulk_operations import BulkRunResult

router = APIRouter(prefix="/bulk-operations", tags=["bulk-operations"])
logger = logging.getLogger(__name__)


def _execute(
    db: Session,
    user: User,
    job_id: str,
    run: Callable[[BulkOperationJob], BulkRunResult],
) -> BulkRunResult:
    job = bulk_operations.require_job(db, job_id, user.id)
    try:
        return run(job)
    except BulkOperationError:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.exception("bulk_execution_failed", extra={"job_id": job_id})
        bulk_operations.fail_job(db, job_id, user.id, str(exc))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to execute bulk operation"
        ) from exc


@router.post("/create-job", response_model=CreateJobResponse)
def create_job(
    payload: CreateJobRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CreateJobResponse:
    job = bulk_operations.create_bulk_job(
        db,
        current_user.id,
        payload.operation_type,
        payload.record_count,
        payload.config,
    )
    return CreateJobResponse(job_id=job.job_id)


@router.post("/execute-update", response_model=ExecuteResponse)
def execute_update(
    payload: ExecuteUpdateRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ExecuteResponse:
    if not payload.records or not payload.field_updates:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Records and field updates are required")
    record_ids = [ref.id for ref in payload.records]
    result = _execute(
        db,
        current_user,
        payload.job_id,
        lambda job: bulk_operations.execute_bulk_update(db, job, record_ids, payload.field_updates),
    )
    return ExecuteResponse(success=True, status=result.status, processed=result.processed, errors=result.errors)


@router.post("/execute-delete", response_model=ExecuteResponse)
def execute_delete(
    payload: ExecuteByIdsRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ExecuteResponse:
    if not payload.record_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Record IDs are required")
    result = _execute(
        db,
        current_user,
        payload.job_id,
        lambda job: bulk_operations.execute_bulk_delete(db, job, payload.record_ids),
    )
    return ExecuteResponse(success=True, status=result.status, processed=result.processed, errors=result.errors)


@router.post("/execute-duplicate", response_model=ExecuteDuplicateResponse)
def execute_duplicate(
    payload: ExecuteByIdsRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> ExecuteDuplicateResponse:
    if not payload.record_ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Record IDs are required")
    result = _execute(
        db,
        current_user,
        payload.job_id,
        lambda job: bulk_operations.execute_bulk_duplicate(db, job, payload.record_ids),
    )
    return ExecuteDuplicateResponse(
        success=True,
        status=result.status,
        processed=result.processed,
        errors=result.errors,
        duplicated=result.duplicated,
    )


@router.get("/job-status/{job_id}", response_model=JobStatusRead)
def get_job_status(
    job_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> dict:
    job_status = bulk_operations.get_job_status(db, job_id, current_user.id)
    if job_status is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Job not found")
    return job_status


@router.get("/jobs/{job_id}/records", response_model=list[BulkOperationRecordRead])
def get_job_records(
    job_id: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> list[BulkOperationRecord]:
    job = bulk_operations.require_job(db, job_id, current_user.id)
    return bulk_operations.list_job_records(db, job)


@router.get("/history", response_model=HistoryResponse)
def get_history(
    limit: int | None = Query(default=None, ge=1),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> HistoryResponse:
    jobs = bulk_operations.get_user_bulk_operations(db, current_user.id, limit)
    return HistoryResponse(history=[JobHistoryItem.model_validate(job) for job in jobs])


@router.post("/cancel-job", response_model=CancelJobResponse)
def cancel_job(
    payload: CancelJobRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
) -> CancelJobResponse:
    job = bulk_operations.require_job(db, payload.job_id, current_user.id)
    bulk_operations.cancel_job(db, job)
    return CancelJobResponse(job_id=job.job_id, status=job.status)
