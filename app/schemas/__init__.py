from app.schemas.auth import LoginRequest, TokenResponse, UserCreate, UserRead
from app.schemas.bulk_operation import (
    BulkOperationRecordRead,
    CreateJobRequest,
    ErrorLog,
    ErrorLogEntry,
    JobConfig,
    JobHistoryItem,
    JobStatusRead,
)
from app.schemas.cursor import CursorLayerRequest, CursorMarkerRead, CursorState
from app.schemas.record import RecordCreate, RecordRead

__all__ = [
    "UserCreate",
    "UserRead",
    "LoginRequest",
    "TokenResponse",
    "RecordCreate",
    "RecordRead",
    "JobConfig",
    "ErrorLog",
    "ErrorLogEntry",
    "CreateJobRequest",
    "JobStatusRead",
    "JobHistoryItem",
    "BulkOperationRecordRead",
    "CursorState",
    "CursorLayerRequest",
    "CursorMarkerRead",
]
