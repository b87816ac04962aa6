"""Map data-layer errors to JSON responses."""

from __future__ import annotations

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from terrabuild.errors import (
    ConstraintViolationError,
    ExpiredLinkError,
    ImmutableRecordError,
    InvalidStateError,
    LookupStrategyError,
    NotFoundError,
    PermissionDeniedError,
    RecordValidationError,
    TerraBuildError,
)

logger = structlog.get_logger(__name__)

STATUS_BY_ERROR: dict[type[TerraBuildError], int] = {
    RecordValidationError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    ConstraintViolationError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    InvalidStateError: status.HTTP_409_CONFLICT,
    ExpiredLinkError: status.HTTP_410_GONE,
    ImmutableRecordError: status.HTTP_409_CONFLICT,
    LookupStrategyError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    TerraBuildError: status.HTTP_400_BAD_REQUEST,
}


def status_for(exc: TerraBuildError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in STATUS_BY_ERROR:
            return STATUS_BY_ERROR[error_type]
    return status.HTTP_400_BAD_REQUEST


async def terrabuild_error_handler(request: Request, exc: TerraBuildError) -> JSONResponse:
    status_code = status_for(exc)
    logger.info(
        "request_rejected",
        error=exc.kind,
        status_code=status_code,
        path=request.url.path,
        detail=exc.message,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def install_error_handlers(app: FastAPI) -> None:
    """Register one handler per error class."""
    for error_type in STATUS_BY_ERROR:
        app.add_exception_handler(error_type, terrabuild_error_handler)
