import logging
import time

from fastapi import Depends, FastAPI, Request, Response, HTTPException
from fastapi.responses import PlainTextResponse
from dotenv import load_dotenv
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST

from adapters.db.base import DataSource
from adapters.metrics.prometheus import observe_http
from app.dependencies import get_data_source
from app.exception_handlers import register_exception_handlers, request_id_for
from app.routers import crud, transaction
from app.settings import get_settings
from dapi.prom import REGISTRY

load_dotenv()


settings = get_settings()
logging.basicConfig(level=settings.log_level)
log = logging.getLogger(__name__)

# ----------------------------------------------------------------------------
#  App definition
# ----------------------------------------------------------------------------
application = FastAPI(
    title="dapi",
    version=settings.app_version,
    description="Schema-driven REST CRUD over a relational store, with atomic batches",
)
register_exception_handlers(application)

application.include_router(crud.router, prefix=settings.api_prefix)
application.include_router(transaction.router, prefix=settings.api_prefix)


# ----------------------------------------------------------------------------
#  Request id + HTTP metrics
# ----------------------------------------------------------------------------
@application.middleware("http")
async def request_middleware(request: Request, call_next):
    request.state.request_id = request_id_for(request)
    t0 = time.perf_counter()
    response: Response = await call_next(request)
    dt_ms = (time.perf_counter() - t0) * 1000

    # Label by route name so path parameters do not explode cardinality.
    route = request.scope.get("route")
    label = getattr(route, "name", None) or "unmatched"
    observe_http(
        route=label,
        method=request.method,
        status=response.status_code,
        dt_ms=dt_ms,
    )
    response.headers.setdefault("X-Request-ID", request.state.request_id)
    return response


# ----------------------------------------------------------------------------
#  System Endpoints
# ----------------------------------------------------------------------------
@application.get("/healthz", response_class=PlainTextResponse, tags=["system"])
def healthz() -> str:
    return "ok"


@application.get("/readyz", response_class=PlainTextResponse, tags=["system"])
def readyz(source: DataSource = Depends(get_data_source)) -> str:
    """Ready once the configured data source answers a ping."""
    try:
        source.ping()
    except Exception as exc:
        log.warning(
            "readiness check failed",
            extra={"source": type(source).__name__, "error": str(exc)},
        )
        raise HTTPException(status_code=503, detail="not ready") from exc
    return "ready"


@application.get("/", tags=["system"])
def root():
    paths = sorted(
        path
        for path in application.openapi()["paths"]
        if path.startswith(settings.api_prefix + "/")
    )
    return {"status": "ok", "version": settings.app_version, "paths": paths}


@application.get("/metrics", tags=["system"])
def metrics():
    return Response(content=generate_latest(REGISTRY), media_type=CONTENT_TYPE_LATEST)


app = application
