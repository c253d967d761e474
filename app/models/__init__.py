from app.models.bulk_operation import (
    BulkJobStatus,
    BulkOperationJob,
    BulkOperationRecord,
    BulkOperationType,
    BulkRecordStatus,
)
from app.models.record import Record
from app.models.user import User

__all__ = [
    "User",
    "Record",
    "BulkOperationJob",
    "BulkOperationRecord",
    "BulkOperationType",
    "BulkJobStatus",
    "BulkRecordStatus",
]
