from functools import lru_cache

from adapters.db.base import DataSource
from adapters.metrics.base import Metrics
from adapters.metrics.prometheus import PrometheusMetrics
from app.errors import DataSourceConfigError
from app.settings import Settings, get_settings
from dapi.composer import QueryComposer
from dapi.context import ExecutionContext
from dapi.handlers import CrudHandlers


@lru_cache()
def get_data_source() -> DataSource:
    """
    Singleton-ish DataSource for the FastAPI app.

    Chosen by DB_MODE; the catalog it carries is loaded once and shared.
    """
    settings = get_settings()
    mode = settings.db_mode.lower()

    if mode == "postgres":
        from adapters.db.postgres_adapter import PostgresDataSource

        dsn = (settings.postgres_dsn or "").strip()
        if not dsn:
            raise DataSourceConfigError("Postgres DSN is not configured")
        return PostgresDataSource(dsn)

    if mode == "sqlite":
        from adapters.db.sqlite_adapter import SQLiteDataSource

        return SQLiteDataSource(settings.sqlite_path, timeout=settings.sqlite_timeout_sec)

    raise DataSourceConfigError(f"Unsupported DB_MODE: {settings.db_mode!r}")


@lru_cache()
def get_metrics() -> Metrics:
    return PrometheusMetrics()


def build_handlers(
    source: DataSource, ctx: ExecutionContext, settings: Settings
) -> CrudHandlers:
    """CRUD handlers bound to ``ctx``, for live routes and batches alike."""
    return CrudHandlers(
        source.catalog(),
        ctx,
        QueryComposer(source.dialect),
        allow_unfiltered_delete=settings.allow_unfiltered_delete,
    )
