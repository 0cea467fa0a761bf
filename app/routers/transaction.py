from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from adapters.db.base import DataSource
from adapters.metrics.base import Metrics
from app.dependencies import build_handlers, get_data_source, get_metrics
from app.exception_handlers import request_id_for
from app.schemas import TransactionRequest, TransactionResponse
from app.settings import Settings, get_settings
from dapi.coordinator import SubRequest, TransactionCoordinator
from dapi.errors import MalformedBody

router = APIRouter()


@router.post("/transaction", name="transaction")
async def post_transaction(
    request: Request,
    source: DataSource = Depends(get_data_source),
    settings: Settings = Depends(get_settings),
    metrics: Metrics = Depends(get_metrics),
) -> JSONResponse:
    """
    Run a list of CRUD requests as one atomic unit.

    Answers 200 with outcome "committed" when every step succeeded, or the
    failing error status with outcome "rolled_back" and the error that
    stopped the batch.
    """
    raw = await request.body()
    try:
        payload = TransactionRequest.model_validate_json(raw or b"")
    except ValidationError as exc:
        raise MalformedBody(
            "unable to decode transaction",
            details=[e.get("msg", "") for e in exc.errors()],
        ) from exc

    coordinator = TransactionCoordinator(
        begin=lambda: source.begin(metrics),
        handlers_for=lambda ctx: build_handlers(source, ctx, settings),
        prefix=settings.api_prefix,
        timeout_sec=settings.transaction_timeout_sec,
        max_requests=settings.transaction_max_requests,
        metrics=metrics,
    )
    batch = [SubRequest(r.method, r.url, r.body) for r in payload.requests]
    result = await run_in_threadpool(coordinator.run, batch)

    request_id = request_id_for(request)
    body = TransactionResponse.model_validate(
        jsonable_encoder(result.to_payload(request_id))
    )
    return JSONResponse(
        status_code=result.http_status,
        content=body.model_dump(),
        headers={"X-Request-ID": request_id},
    )
