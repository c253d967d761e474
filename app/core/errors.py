import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class BulkOperationError(Exception):
    """Base class for bulk operation failures the caller can act on."""

    status_code = status.HTTP_400_BAD_REQUEST


class JobNotFoundError(BulkOperationError, LookupError):
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, job_id: str) -> None:
        super().__init__(f"Job not found: {job_id}")
        self.job_id = job_id


class InvalidJobStateError(BulkOperationError):
    status_code = status.HTTP_409_CONFLICT


class InvalidProgressError(BulkOperationError, ValueError):
    pass


class RecordProcessingError(BulkOperationError):
    """Raised for a single item inside a bulk run; collected, never fatal to the job."""


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(BulkOperationError)
    async def bulk_operation_error_handler(request: Request, exc: BulkOperationError) -> JSONResponse:
        logger.info("bulk_operation_rejected", extra={"path": request.url.path, "error": str(exc)})
        return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error("unhandled_error path=%s error=%s", request.url.path, exc, exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal server error"},
        )
