from typing import NoReturn

from fastapi import HTTPException, status

from src.core.work_requests import (
    WorkRequestAuthorizationError,
    WorkRequestInvalidStateError,
    WorkRequestNotFoundError,
    WorkRequestValidationError,
)

HTTP_422_UNPROCESSABLE = getattr(
    status,
    "HTTP_422_UNPROCESSABLE_CONTENT",
    status.HTTP_422_UNPROCESSABLE_ENTITY,
)


def raise_work_request_http_exception(exc: Exception) -> NoReturn:
    if isinstance(exc, WorkRequestNotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    if isinstance(exc, WorkRequestAuthorizationError):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc
    if isinstance(exc, WorkRequestInvalidStateError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    if isinstance(exc, WorkRequestValidationError):
        raise HTTPException(
            status_code=HTTP_422_UNPROCESSABLE,
            detail=[violation.model_dump() for violation in exc.violations],
        ) from exc
    raise exc
