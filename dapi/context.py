from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Iterator, List, Optional, Protocol, Tuple, Type

from adapters.metrics.base import Metrics
from adapters.metrics.noop import NoOpMetrics
from dapi.composer import Statement
from dapi.errors import ClosedContext, CommitFailed, QueryExecutionError

log = logging.getLogger(__name__)

# Raised by drivers while binding parameters (e.g. an int wider than 64 bits).
BIND_ERRORS: Tuple[Type[BaseException], ...] = (OverflowError, ValueError, TypeError)

Rows = Tuple[List[Tuple[Any, ...]], List[str]]
Connect = Callable[[], Any]


@dataclass(frozen=True)
class ExecResult:
    rows_affected: int
    last_insert_id: Optional[int] = None


class ExecutionContext(Protocol):
    """Anything a handler can apply a statement through."""

    def execute(self, stmt: Statement) -> ExecResult:
        """Apply a write statement and report its effect."""

    def query(self, stmt: Statement) -> Rows:
        """Run a read statement and return (rows, columns)."""


class TransactionState(str, Enum):
    OPEN = "open"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"


# -------------------------------
# DB-API plumbing shared by both providers
# -------------------------------


def _run_execute(conn: Any, stmt: Statement) -> ExecResult:
    cur = conn.cursor()
    try:
        cur.execute(stmt.sql, stmt.params)
        last_id = None
        if stmt.returning:
            row = cur.fetchone()
            last_id = row[0] if row else None
        elif stmt.kind == "insert":
            last_id = getattr(cur, "lastrowid", None)
        return ExecResult(rows_affected=max(cur.rowcount, 0), last_insert_id=last_id)
    finally:
        cur.close()


def _run_query(conn: Any, stmt: Statement) -> Rows:
    cur = conn.cursor()
    try:
        cur.execute(stmt.sql, stmt.params)
        rows = cur.fetchall() or []
        cols = [d[0] for d in (cur.description or ()) if d]
        return [tuple(r) for r in rows], cols
    finally:
        cur.close()


class _Instrumented:
    """Translate driver errors and record statement metrics."""

    def __init__(self, errors: Tuple[Type[BaseException], ...], metrics: Optional[Metrics]):
        self._errors = errors
        self.metrics: Metrics = metrics or NoOpMetrics()

    @contextmanager
    def _statement(self, stmt: Statement) -> Iterator[None]:
        t0 = time.perf_counter()
        try:
            yield
        except self._errors + BIND_ERRORS as exc:
            self.metrics.inc_statement(kind=stmt.kind, ok=False)
            log.info(
                "statement failed",
                extra={"kind": stmt.kind, "table": stmt.table, "error": str(exc)},
            )
            raise QueryExecutionError(
                f"unable to execute {stmt.kind}: {exc}",
                details=[str(exc)],
                extra={"table": stmt.table},
            ) from exc
        self.metrics.inc_statement(kind=stmt.kind, ok=True)
        self.metrics.observe_statement_ms(
            kind=stmt.kind, dt_ms=(time.perf_counter() - t0) * 1000
        )


# -------------------------------
# Providers
# -------------------------------


class PoolContext(_Instrumented):
    """
    Ad hoc context: every call takes its own connection and commits on
    success, so concurrent callers never share state.
    """

    def __init__(
        self,
        connect: Connect,
        errors: Tuple[Type[BaseException], ...],
        metrics: Optional[Metrics] = None,
    ):
        super().__init__(errors, metrics)
        self._connect = connect

    @contextmanager
    def _connection(self) -> Iterator[Any]:
        conn = self._connect()
        try:
            yield conn
            conn.commit()
        except BaseException:
            conn.rollback()
            raise
        finally:
            conn.close()

    def execute(self, stmt: Statement) -> ExecResult:
        with self._statement(stmt), self._connection() as conn:
            return _run_execute(conn, stmt)

    def query(self, stmt: Statement) -> Rows:
        with self._statement(stmt), self._connection() as conn:
            return _run_query(conn, stmt)


class TransactionContext(_Instrumented):
    """
    Scoped context bound to one reserved connection and its open transaction.

    ``commit`` and ``rollback`` are terminal: afterwards the connection is
    released and every call raises ClosedContext. Used as a context manager
    it rolls back on exit if still open.
    """

    def __init__(
        self,
        conn: Any,
        errors: Tuple[Type[BaseException], ...],
        metrics: Optional[Metrics] = None,
    ):
        super().__init__(errors, metrics)
        self._conn = conn
        self.state = TransactionState.OPEN

    @property
    def is_open(self) -> bool:
        return self.state is TransactionState.OPEN

    def _ensure_open(self) -> None:
        if not self.is_open:
            raise ClosedContext(f"transaction already {self.state.value}")

    def execute(self, stmt: Statement) -> ExecResult:
        self._ensure_open()
        with self._statement(stmt):
            return _run_execute(self._conn, stmt)

    def query(self, stmt: Statement) -> Rows:
        self._ensure_open()
        with self._statement(stmt):
            return _run_query(self._conn, stmt)

    def commit(self) -> None:
        self._ensure_open()
        try:
            self._conn.commit()
        except self._errors as exc:
            # Still open: the caller is expected to roll back.
            raise CommitFailed(f"unable to commit: {exc}", details=[str(exc)]) from exc
        self._close(TransactionState.COMMITTED)

    def rollback(self) -> None:
        self._ensure_open()
        try:
            self._conn.rollback()
        except self._errors as exc:
            raise QueryExecutionError(
                f"unable to rollback: {exc}", details=[str(exc)]
            ) from exc
        finally:
            self._close(TransactionState.ROLLED_BACK)

    def _close(self, state: TransactionState) -> None:
        self.state = state
        try:
            self._conn.close()
        except self._errors:
            log.debug("error closing transaction connection", exc_info=True)
        log.debug("transaction closed", extra={"state": state.value})

    def __enter__(self) -> "TransactionContext":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.is_open:
            self.rollback()
