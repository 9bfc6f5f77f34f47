from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from labquote_api.core.errors import (
    ConflictError,
    LabquoteError,
    NotFoundError,
    ValidationError,
)

logger = logging.getLogger(__name__)

STATUS_BY_KIND: dict[str, int] = {
    ValidationError.kind: 422,
    NotFoundError.kind: status.HTTP_404_NOT_FOUND,
    ConflictError.kind: status.HTTP_409_CONFLICT,
}


async def labquote_error_handler(request: Request, exc: LabquoteError) -> JSONResponse:
    status_code = STATUS_BY_KIND.get(exc.kind, status.HTTP_400_BAD_REQUEST)
    logger.info(
        "%s %s -> %d %s %s", request.method, request.url.path, status_code, exc.kind, exc.identifiers
    )
    return JSONResponse(status_code=status_code, content={"error": exc.to_payload()})


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    identifiers = sorted(
        {
            ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query"))
            for error in exc.errors()
        }
        - {""}
    )
    error = ValidationError("Request payload is invalid", identifiers)
    return JSONResponse(status_code=422, content={"error": error.to_payload()})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(LabquoteError, labquote_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)


__all__ = ["STATUS_BY_KIND", "register_exception_handlers"]
