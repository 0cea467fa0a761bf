import sqlite3
import logging
import threading
from contextlib import closing
from pathlib import Path
from typing import Optional

from adapters.metrics.base import Metrics
from dapi.catalog import Catalog, Column, build_table
from dapi.context import PoolContext, TransactionContext
from dapi.dialect import SQLITE
from dapi.errors import QueryExecutionError

log = logging.getLogger(__name__)

ERRORS = (sqlite3.Error,)


class SQLiteDataSource:
    name = "sqlite"
    label = "SQLite"
    dialect = SQLITE

    def __init__(self, path: str, timeout: float = 5.0):
        # resolve absolute path for safety
        self.path = Path(path).resolve()
        self.timeout = timeout
        self._catalog: Optional[Catalog] = None
        self._lock = threading.Lock()
        log.info("SQLiteDataSource initialized with DB path: %s", self.path)

    def connect(self, *, autocommit: bool = False) -> sqlite3.Connection:
        # isolation_level=None leaves transaction control to explicit BEGIN.
        conn = sqlite3.connect(
            str(self.path),
            timeout=self.timeout,
            isolation_level=None if autocommit else "DEFERRED",
        )
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    # -- execution contexts ------------------------------------------------

    def pool(self, metrics: Optional[Metrics] = None) -> PoolContext:
        return PoolContext(self.connect, ERRORS, metrics)

    def begin(self, metrics: Optional[Metrics] = None) -> TransactionContext:
        conn = None
        try:
            conn = self.connect(autocommit=True)
            conn.execute("BEGIN")
        except sqlite3.Error as exc:
            if conn is not None:
                conn.close()
            raise QueryExecutionError(
                f"unable to create transaction: {exc}", details=[str(exc)]
            ) from exc
        return TransactionContext(conn, ERRORS, metrics)

    def ping(self) -> None:
        if not self.path.exists():
            raise FileNotFoundError(f"SQLite DB does not exist: {self.path}")
        with closing(self.connect()) as conn:
            conn.execute("SELECT 1").fetchone()

    # -- catalog -----------------------------------------------------------

    def catalog(self) -> Catalog:
        with self._lock:
            if self._catalog is None:
                self._catalog = self._load_catalog()
            return self._catalog

    def refresh_catalog(self) -> Catalog:
        with self._lock:
            self._catalog = self._load_catalog()
            return self._catalog

    def _load_catalog(self) -> Catalog:
        catalog = Catalog(backend=self.label)
        with closing(self.connect()) as conn:
            cur = conn.execute(
                "SELECT name FROM sqlite_master "
                "WHERE type='table' AND name NOT LIKE 'sqlite_%' "
                "ORDER BY name"
            )
            tables = [t[0] for t in cur.fetchall() if t and t[0]]

            for t in tables:
                # cid, name, type, notnull, dflt_value, pk
                info = conn.execute(
                    "SELECT cid, name, type, \"notnull\", dflt_value, pk "
                    "FROM pragma_table_info(?)",
                    (t,),
                ).fetchall()
                single_key = sum(1 for row in info if row[5]) == 1

                columns = []
                for cid, name, col_type, notnull, default, pk in info:
                    # A lone INTEGER PRIMARY KEY aliases the rowid.
                    auto = single_key and pk and (col_type or "").upper() == "INTEGER"
                    columns.append(
                        Column(
                            name=name,
                            ordinal_position=cid + 1,
                            nullable=not notnull,
                            data_type=(col_type or "").lower(),
                            primary_key=bool(pk),
                            extra="auto_increment" if auto else "",
                            default=default,
                        )
                    )
                catalog.tables[t] = build_table(t, columns)

        log.info("Loaded catalog with %d tables", len(catalog.tables))
        return catalog
