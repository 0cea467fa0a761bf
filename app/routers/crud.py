from __future__ import annotations

from typing import Any, Callable, Dict

from fastapi import APIRouter, Depends, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from adapters.db.base import DataSource
from adapters.metrics.base import Metrics
from app.dependencies import build_handlers, get_data_source, get_metrics
from app.settings import Settings, get_settings
from dapi.dispatch import CRUD_ROUTES, Route
from dapi.handlers import HandlerRequest
from dapi.sink import CaptureSink

router = APIRouter()


class ResponseSink(CaptureSink):
    """Sink for live requests: the captured outcome becomes the HTTP response."""

    def to_response(self) -> Response:
        headers = {
            k: v for k, v in self.headers.items() if k.lower() != "content-type"
        }
        return JSONResponse(
            status_code=self.status,
            content=jsonable_encoder(self.body),
            headers=headers,
        )


def _handler_request(request: Request, body: bytes) -> HandlerRequest:
    query: Dict[str, str] = {}
    for key, value in request.query_params.multi_items():
        query.setdefault(key, value)
    return HandlerRequest(
        method=request.method,
        path=request.url.path,
        path_params=dict(request.path_params),
        query=query,
        body=body,
    )


def _endpoint(route: Route) -> Callable[..., Any]:
    async def endpoint(
        request: Request,
        source: DataSource = Depends(get_data_source),
        settings: Settings = Depends(get_settings),
        metrics: Metrics = Depends(get_metrics),
    ) -> Response:
        handler_request = _handler_request(request, await request.body())
        sink = ResponseSink()

        def call() -> None:
            handlers = build_handlers(source, source.pool(metrics), settings)
            getattr(handlers, route.endpoint)(handler_request, sink)

        # Handlers block on the database; keep them off the event loop.
        await run_in_threadpool(call)
        return sink.to_response()

    endpoint.__name__ = route.name
    return endpoint


# Live routes come from the same table the transaction coordinator replays.
for _route in CRUD_ROUTES:
    router.add_api_route(
        _route.path,
        _endpoint(_route),
        methods=[_route.method],
        name=_route.name,
    )
