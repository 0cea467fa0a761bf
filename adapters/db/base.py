from typing import Optional, Protocol

from adapters.metrics.base import Metrics
from dapi.catalog import Catalog
from dapi.context import PoolContext, TransactionContext
from dapi.dialect import Dialect


class DataSource(Protocol):
    """A backing store: catalog introspection plus the two context providers."""

    name: str
    label: str
    dialect: Dialect

    def catalog(self) -> Catalog:
        """Table metadata, loaded once and cached."""

    def refresh_catalog(self) -> Catalog:
        """Reload table metadata from the store."""

    def pool(self, metrics: Optional[Metrics] = None) -> PoolContext:
        """Ad hoc context; each call takes its own connection."""

    def begin(self, metrics: Optional[Metrics] = None) -> TransactionContext:
        """Reserve a connection and open a transaction on it."""

    def ping(self) -> None:
        """Raise if the store cannot be reached."""
