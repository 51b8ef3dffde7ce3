"""Translation of engine errors into HTTP errors, shared by the routers."""

from fastapi import HTTPException

from assessment_batches.errors import (
    BatchError, EditValidationError, PermissionDeniedError, SessionBusyError,
    SessionNotFoundError, StoreError
)


def http_error(exc: BatchError) -> HTTPException:
    if isinstance(exc, EditValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, PermissionDeniedError):
        return HTTPException(status_code=403, detail=str(exc))
    if isinstance(exc, SessionNotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, SessionBusyError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, StoreError):
        return HTTPException(status_code=502, detail="Record store error: {}".format(exc))
    return HTTPException(status_code=500, detail=str(exc))
