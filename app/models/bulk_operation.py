import enum
from datetime import datetime

from sqlalchemy import JSON, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.db.base import Base
from app.models.common import TimestampMixin


class BulkOperationType(str, enum.Enum):
    UPDATE = "update"
    DELETE = "delete"
    DUPLICATE = "duplicate"
    EXPORT = "export"
    IMPORT = "import"


class BulkJobStatus(str, enum.Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    COMPLETED_WITH_ERRORS = "completed_with_errors"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_JOB_STATUSES


class BulkRecordStatus(str, enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"


TERMINAL_JOB_STATUSES = frozenset(
    {
        BulkJobStatus.COMPLETED,
        BulkJobStatus.FAILED,
        BulkJobStatus.CANCELLED,
        BulkJobStatus.COMPLETED_WITH_ERRORS,
    }
)

JOB_TRANSITIONS: dict[BulkJobStatus, frozenset[BulkJobStatus]] = {
    BulkJobStatus.PENDING: frozenset({BulkJobStatus.RUNNING, BulkJobStatus.CANCELLED, BulkJobStatus.FAILED}),
    BulkJobStatus.RUNNING: frozenset(
        {
            BulkJobStatus.COMPLETED,
            BulkJobStatus.COMPLETED_WITH_ERRORS,
            BulkJobStatus.FAILED,
            BulkJobStatus.CANCELLED,
        }
    ),
}


def _enum_column(enum_cls: type[enum.Enum], name: str) -> Enum:
    # Stored as VARCHAR plus a CHECK constraint on every backend.
    return Enum(
        enum_cls,
        name=name,
        native_enum=False,
        create_constraint=True,
        length=32,
        values_callable=lambda members: [member.value for member in members],
        validate_strings=True,
    )


class BulkOperationJob(TimestampMixin, Base):
    __tablename__ = "bulk_operation_jobs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    operation_type: Mapped[BulkOperationType] = mapped_column(
        _enum_column(BulkOperationType, "bulk_operation_type"), nullable=False
    )
    total_records: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    processed_records: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    failed_records: Mapped[int] = mapped_column(Integer, default=0, server_default="0", nullable=False)
    status: Mapped[BulkJobStatus] = mapped_column(
        _enum_column(BulkJobStatus, "bulk_job_status"),
        default=BulkJobStatus.PENDING,
        server_default=BulkJobStatus.PENDING.value,
        nullable=False,
    )
    config: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    error_log: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    user = relationship("User", back_populates="bulk_jobs")
    records = relationship(
        "BulkOperationRecord",
        back_populates="job",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="BulkOperationRecord.id",
    )

    __table_args__ = (
        Index("ix_bulk_operation_jobs_user_id", "user_id"),
        Index("ix_bulk_operation_jobs_job_id", "job_id"),
        Index("ix_bulk_operation_jobs_status", "status"),
        Index("ix_bulk_operation_jobs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<BulkOperationJob(job_id={self.job_id}, type={self.operation_type}, status={self.status})>"


class BulkOperationRecord(TimestampMixin, Base):
    __tablename__ = "bulk_operation_records"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    job_id: Mapped[str] = mapped_column(
        ForeignKey("bulk_operation_jobs.job_id", ondelete="CASCADE"), nullable=False
    )
    record_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[BulkRecordStatus] = mapped_column(
        _enum_column(BulkRecordStatus, "bulk_record_status"),
        default=BulkRecordStatus.PENDING,
        server_default=BulkRecordStatus.PENDING.value,
        nullable=False,
    )
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    job = relationship("BulkOperationJob", back_populates="records")

    __table_args__ = (
        Index("ix_bulk_operation_records_job_id", "job_id"),
        Index("ix_bulk_operation_records_status", "status"),
    )
