from __future__ import annotations

import logging
import uuid

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from dapi.errors import DapiError

log = logging.getLogger(__name__)


def request_id_for(request: Request) -> str:
    """Request id for logs and error payloads; echoes X-Request-ID when given."""
    assigned = getattr(request.state, "request_id", None)
    if assigned:
        return assigned
    return request.headers.get("X-Request-ID") or str(uuid.uuid4())


def register_exception_handlers(app: FastAPI) -> None:
    """Register global exception handlers for the FastAPI application."""

    @app.exception_handler(DapiError)
    async def dapi_error_handler(request: Request, exc: DapiError) -> JSONResponse:
        request_id = request_id_for(request)
        log.info(
            "%d - %s %s - %s",
            exc.http_status,
            request.method,
            request.url.path,
            exc.message,
            extra={"code": exc.code, "request_id": request_id},
        )

        headers = {"X-Request-ID": request_id}
        if exc.retryable:
            headers["Retry-After"] = "2"

        return JSONResponse(
            status_code=exc.http_status,
            content=jsonable_encoder(exc.to_payload(request_id)),
            headers=headers,
        )
