"""
Rendering of domain exceptions as HTTP responses.

Services raise CourtsideError subclasses; this handler turns them into
`{"detail": {"code": ..., "message": ..., **details}}` with the status
code carried by the exception class.
"""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from courtside.core.exceptions import CourtsideError
from courtside.core.logging import get_logger

logger = get_logger(__name__)


def error_body(err: CourtsideError) -> dict:
    return {"detail": {"code": err.code, "message": err.message, **err.details}}


async def courtside_error_handler(request: Request, err: CourtsideError) -> JSONResponse:
    if err.status_code >= 500:
        logger.warning("upstream_failure", code=err.code, path=request.url.path, **err.details)
    headers = {"Retry-After": "5"} if err.details.get("retryable") else None
    return JSONResponse(status_code=err.status_code, content=error_body(err), headers=headers)


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(CourtsideError, courtside_error_handler)
