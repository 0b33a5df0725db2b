from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from leadflow.models.errors import InvalidRequestError, LeadflowError

logger = logging.getLogger(__name__)


def _serialize_error(exc: LeadflowError) -> dict[str, object]:
    return {
        "success": False,
        "error": {
            "message": exc.message,
            "type": exc.error_type,
            "param": exc.param,
            "code": exc.code,
        },
    }


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(LeadflowError)
    async def leadflow_error_handler(_: Request, exc: LeadflowError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("request failed with %s: %s", exc.error_type, exc.message)
        return JSONResponse(status_code=exc.status_code, content=_serialize_error(exc))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
        first = exc.errors()[0] if exc.errors() else {}
        location = first.get("loc") or ()
        error = InvalidRequestError(
            message=first.get("msg") or "Invalid request",
            param=str(location[-1]) if location else None,
        )
        return JSONResponse(status_code=error.status_code, content=_serialize_error(error))

    @app.exception_handler(Exception)
    async def unhandled_error_handler(_: Request, exc: Exception) -> JSONResponse:
        logger.exception("unhandled exception", exc_info=exc)
        error = LeadflowError()
        return JSONResponse(status_code=error.status_code, content=_serialize_error(error))
