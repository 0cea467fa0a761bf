from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional, Tuple

from dapi.catalog import Table
from dapi.dialect import SQLITE, Dialect
from dapi.errors import MalformedBody, MissingLimit, MissingPredicate

log = logging.getLogger(__name__)

Pairs = List[Tuple[str, Any]]


@dataclass(frozen=True)
class Statement:
    """A composed, parameterized statement ready for an ExecutionContext."""

    kind: str  # insert | update | delete | select
    table: str
    sql: str
    params: Tuple[Any, ...] = ()
    # Column whose value the store hands back for an insert (RETURNING).
    returning: Optional[str] = None


class QueryComposer:
    """
    Build parameterized statements from a catalog table plus mappings.

    Every value is bound through a positional placeholder; identifiers come
    from the catalog only. Mappings are flattened into ordered
    (column, value) pairs first, so the i-th placeholder always binds the
    i-th parameter and identical inputs render identical statements.
    """

    def __init__(self, dialect: Dialect = SQLITE):
        self.dialect = dialect

    # -------------------------------
    # Helpers
    # -------------------------------

    def _pairs(
        self, table: Table, mapping: Optional[Mapping[str, Any]], *, strict: bool
    ) -> Pairs:
        pairs: Pairs = []
        unknown: List[str] = []
        for key, value in (mapping or {}).items():
            column = table.column(key)
            if column is None:
                unknown.append(key)
                continue
            pairs.append((column.name, value))

        if unknown:
            if strict:
                raise MalformedBody(
                    f"unknown column(s) for table ({table.name}): {', '.join(unknown)}",
                    details=unknown,
                )
            log.warning(
                "bad column(s) dropped from filter",
                extra={"table": table.name, "columns": unknown},
            )
        return pairs

    def _equalities(self, pairs: Pairs, sep: str) -> str:
        ph = self.dialect.placeholder
        return sep.join(f"{self.dialect.quote(col)} = {ph}" for col, _ in pairs)

    def _where(self, pairs: Pairs) -> str:
        if not pairs:
            return ""
        return " WHERE " + self._equalities(pairs, " AND ")

    def _statement(
        self, kind: str, table: Table, sql: str, params: List[Any], returning=None
    ) -> Statement:
        log.debug("composed %s: %s", kind, sql, extra={"params": len(params)})
        return Statement(
            kind=kind,
            table=table.name,
            sql=sql,
            params=tuple(params),
            returning=returning,
        )

    # -------------------------------
    # Statements
    # -------------------------------

    def insert(self, table: Table, values: Mapping[str, Any]) -> Statement:
        pairs = self._pairs(table, values, strict=True)
        name = self.dialect.quote(table.name)

        if pairs:
            cols = ", ".join(self.dialect.quote(col) for col, _ in pairs)
            phs = ", ".join(self.dialect.placeholder for _ in pairs)
            sql = f"INSERT INTO {name} ({cols}) VALUES ({phs})"
        else:
            sql = f"INSERT INTO {name} DEFAULT VALUES"

        returning = None
        if self.dialect.returning and table.primary_key:
            returning = table.primary_key
            sql += f" RETURNING {self.dialect.quote(returning)}"

        return self._statement(
            "insert", table, sql, [v for _, v in pairs], returning=returning
        )

    def update(
        self,
        table: Table,
        values: Mapping[str, Any],
        predicate: Mapping[str, Any],
    ) -> Statement:
        if not predicate:
            raise MissingPredicate(
                f"update on table ({table.name}) requires a predicate"
            )

        where = self._pairs(table, predicate, strict=True)
        assignments = self._pairs(table, values, strict=True)
        if not assignments:
            raise MalformedBody(f"update on table ({table.name}) has no values to set")

        sql = (
            f"UPDATE {self.dialect.quote(table.name)} "
            f"SET {self._equalities(assignments, ', ')}"
            f"{self._where(where)}"
        )
        params = [v for _, v in assignments] + [v for _, v in where]
        return self._statement("update", table, sql, params)

    def delete(
        self,
        table: Table,
        predicate: Optional[Mapping[str, Any]],
        limit: int,
    ) -> Statement:
        """
        Delete at most ``limit`` rows matching ``predicate``.

        An empty predicate is structurally allowed and removes the first
        ``limit`` rows with no filter. Callers decide whether to permit it.
        """
        if limit is None or limit <= 0:
            raise MissingLimit(
                f"delete on table ({table.name}) requires a positive limit"
            )

        pairs = self._pairs(table, predicate, strict=True)
        name = self.dialect.quote(table.name)
        ph = self.dialect.placeholder
        where = self._where(pairs)

        locator = self.dialect.row_locator
        if locator is None:
            sql = f"DELETE FROM {name}{where} LIMIT {ph}"
        else:
            sql = (
                f"DELETE FROM {name} WHERE {locator} IN "
                f"(SELECT {locator} FROM {name}{where} LIMIT {ph})"
            )

        params = [v for _, v in pairs] + [limit]
        return self._statement("delete", table, sql, params)

    def select(
        self,
        table: Table,
        predicate: Optional[Mapping[str, Any]] = None,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        order: Optional[str] = None,
    ) -> Statement:
        pairs = self._pairs(table, predicate, strict=False)
        cols = ", ".join(self.dialect.quote(c) for c in table.column_names) or "*"
        sql = f"SELECT {cols} FROM {self.dialect.quote(table.name)}{self._where(pairs)}"
        params: List[Any] = [v for _, v in pairs]

        if order:
            descending = order.startswith("-")
            column = table.column(order.lstrip("-"))
            if column is None:
                log.warning(
                    "bad order column dropped",
                    extra={"table": table.name, "order": order},
                )
            else:
                direction = "DESC" if descending else "ASC"
                sql += f" ORDER BY {self.dialect.quote(column.name)} {direction}"

        if limit is not None and limit > 0:
            sql += f" LIMIT {self.dialect.placeholder}"
            params.append(limit)
            if offset is not None and offset > 0:
                sql += f" OFFSET {self.dialect.placeholder}"
                params.append(offset)
        elif offset:
            # An offset means nothing without a bound.
            log.debug("offset dropped without limit", extra={"table": table.name})

        return self._statement("select", table, sql, params)
