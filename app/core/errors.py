import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AssignmentError(Exception):
    """Base for every caller-facing error raised by the assignment core."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "assignment_error"

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class ValidationError(AssignmentError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class Unauthenticated(AssignmentError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthenticated"


class Forbidden(AssignmentError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFound(AssignmentError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class SubmissionLocked(AssignmentError):
    status_code = status.HTTP_409_CONFLICT
    code = "submission_locked"


class ImmutableField(AssignmentError):
    status_code = status.HTTP_409_CONFLICT
    code = "immutable_field"


class OutOfRange(AssignmentError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "out_of_range"


class Conflict(AssignmentError):
    """Concurrent write detected; the caller may retry."""

    status_code = status.HTTP_409_CONFLICT
    code = "conflict"


async def assignment_error_handler(request: Request, exc: AssignmentError) -> JSONResponse:
    logger.info(
        "%s %s rejected: %s (%s)",
        request.method,
        request.url.path,
        exc.code,
        exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error": exc.code},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AssignmentError, assignment_error_handler)
