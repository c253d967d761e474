from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from app.models.bulk_operation import BulkJobStatus, BulkOperationType, BulkRecordStatus


class JobConfig(BaseModel):
    """Parameters of a bulk job, stored in ``bulk_operation_jobs.config``."""

    model_config = ConfigDict(extra="forbid")

    version: Literal[1] = 1
    source: str | None = Field(default=None, max_length=255)
    filters: dict[str, Any] = Field(default_factory=dict)
    options: dict[str, Any] = Field(default_factory=dict)


class ErrorLogEntry(BaseModel):
    record: int = Field(ge=0)
    id: str | None = None
    error: str


class ErrorLog(BaseModel):
    """Failure details, stored in ``bulk_operation_jobs.error_log``."""

    model_config = ConfigDict(extra="forbid")

    version: Literal[1] = 1
    entries: list[ErrorLogEntry] = Field(default_factory=list)
    fatal: str | None = None


class CreateJobRequest(BaseModel):
    operation_type: BulkOperationType
    record_count: int = Field(ge=1)
    config: JobConfig = Field(default_factory=JobConfig)


class CreateJobResponse(BaseModel):
    job_id: str
    status: Literal["created"] = "created"


class FieldUpdate(BaseModel):
    field: str = Field(min_length=1, max_length=255)
    value: Any = None


class RecordRef(BaseModel):
    id: str | None = None


class ExecuteUpdateRequest(BaseModel):
    job_id: str
    records: list[RecordRef] = Field(default_factory=list)
    field_updates: list[FieldUpdate] = Field(default_factory=list)


class ExecuteByIdsRequest(BaseModel):
    job_id: str
    record_ids: list[str] = Field(default_factory=list)


class ExecuteResponse(BaseModel):
    success: bool
    status: BulkJobStatus
    processed: int
    errors: list[ErrorLogEntry]


class ExecuteDuplicateResponse(ExecuteResponse):
    duplicated: list[str]


class JobStatusRead(BaseModel):
    id: str
    status: BulkJobStatus
    operation_type: BulkOperationType
    current: int
    total: int
    failed: int
    errors: list[ErrorLogEntry]
    created_at: datetime
    completed_at: datetime | None


class JobHistoryItem(BaseModel):
    job_id: str
    operation_type: BulkOperationType
    total_records: int
    processed_records: int
    failed_records: int
    status: BulkJobStatus
    created_at: datetime
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class HistoryResponse(BaseModel):
    history: list[JobHistoryItem]


class CancelJobRequest(BaseModel):
    job_id: str = Field(min_length=1)


class CancelJobResponse(BaseModel):
    job_id: str
    status: BulkJobStatus


class BulkOperationRecordRead(BaseModel):
    id: int
    job_id: str
    record_id: str | None
    status: BulkRecordStatus
    error_message: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}
