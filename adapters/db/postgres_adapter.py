import logging
import threading
from typing import Dict, List, Optional, Set, Tuple

import psycopg

from adapters.metrics.base import Metrics
from dapi.catalog import Catalog, Column, build_table
from dapi.context import PoolContext, TransactionContext
from dapi.dialect import POSTGRES
from dapi.errors import QueryExecutionError

log = logging.getLogger(__name__)

ERRORS = (psycopg.Error,)


class PostgresDataSource:
    name = "postgres"
    label = "PostgreSQL"
    dialect = POSTGRES

    def __init__(self, dsn: str, schema: str = "public"):
        """
        DSN example:
        "dbname=demo user=postgres password=postgres host=localhost port=5432"
        """
        self.dsn = dsn
        self.schema = schema
        self._catalog: Optional[Catalog] = None
        self._lock = threading.Lock()

    def connect(self) -> psycopg.Connection:
        return psycopg.connect(self.dsn)

    # -- execution contexts ------------------------------------------------

    def pool(self, metrics: Optional[Metrics] = None) -> PoolContext:
        return PoolContext(self.connect, ERRORS, metrics)

    def begin(self, metrics: Optional[Metrics] = None) -> TransactionContext:
        # Not in autocommit: the first statement opens the transaction.
        try:
            conn = self.connect()
        except psycopg.Error as exc:
            raise QueryExecutionError(
                f"unable to create transaction: {exc}", details=[str(exc)]
            ) from exc
        return TransactionContext(conn, ERRORS, metrics)

    def ping(self) -> None:
        with psycopg.connect(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                cur.fetchone()

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
        with psycopg.connect(self.dsn) as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    SELECT kcu.table_name, kcu.column_name
                    FROM information_schema.table_constraints tc
                    JOIN information_schema.key_column_usage kcu
                      ON tc.constraint_name = kcu.constraint_name
                     AND tc.table_schema = kcu.table_schema
                    WHERE tc.constraint_type = 'PRIMARY KEY'
                      AND tc.table_schema = %s;
                    """,
                    (self.schema,),
                )
                keys: Set[Tuple[str, str]] = {
                    (t, c) for t, c in (cur.fetchall() or [])
                }

                cur.execute(
                    """
                    SELECT c.table_name, c.column_name, c.ordinal_position,
                           c.is_nullable, c.data_type, c.column_default,
                           c.is_identity,
                           col_description(
                               format('%%I.%%I', c.table_schema, c.table_name)::regclass,
                               c.ordinal_position
                           )
                    FROM information_schema.columns c
                    JOIN information_schema.tables t
                      ON t.table_schema = c.table_schema
                     AND t.table_name = c.table_name
                    WHERE c.table_schema = %s AND t.table_type = 'BASE TABLE'
                    ORDER BY c.table_name, c.ordinal_position;
                    """,
                    (self.schema,),
                )
                rows = cur.fetchall() or []

        columns: Dict[str, List[Column]] = {}
        for table, name, pos, nullable, dtype, default, identity, comment in rows:
            auto = identity == "YES" or str(default or "").startswith("nextval(")
            columns.setdefault(table, []).append(
                Column(
                    name=name,
                    ordinal_position=int(pos),
                    nullable=nullable == "YES",
                    data_type=dtype or "",
                    primary_key=(table, name) in keys,
                    extra="auto_increment" if auto else "",
                    default=default,
                    comment=comment or "",
                )
            )

        catalog = Catalog(backend=self.label)
        for table, cols in columns.items():
            catalog.tables[table] = build_table(table, cols)
        log.info("Loaded catalog with %d tables", len(catalog.tables))
        return catalog
