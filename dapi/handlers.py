from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Union

from dapi.catalog import Catalog, describe_table
from dapi.composer import QueryComposer
from dapi.context import ExecutionContext
from dapi.errors import MalformedBody, MissingLimit, MissingPredicate, MissingPrimaryKey
from dapi.sink import OutputSink

log = logging.getLogger(__name__)

RESERVED_QUERY_KEYS = ("limit", "offset", "order_by")
# Largest value every supported store binds as an integer.
MAX_INT = 2**63 - 1


@dataclass(frozen=True)
class HandlerRequest:
    """The parts of an HTTP request a CRUD handler looks at."""

    method: str
    path: str
    path_params: Dict[str, str] = field(default_factory=dict)
    query: Dict[str, str] = field(default_factory=dict)
    body: Union[bytes, str, None] = None

    def json_body(self) -> Dict[str, Any]:
        raw = self.body or ""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except ValueError as exc:
            raise MalformedBody("unable to parse args", details=[str(exc)]) from exc
        if not isinstance(data, dict):
            raise MalformedBody("request body must be a JSON object")
        return data


Handler = Callable[[HandlerRequest, OutputSink], None]


def _as_int(name: str, raw: Any) -> int:
    if isinstance(raw, bool):
        raise MalformedBody(f"{name} must be an integer")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise MalformedBody(f"{name} must be an integer", details=[repr(raw)]) from exc
    if abs(value) > MAX_INT:
        raise MalformedBody(f"{name} is out of range", details=[repr(raw)])
    return value


def _cell(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).decode("utf-8", errors="replace")
    return value


class CrudHandlers:
    """
    The CRUD endpoints, bound to one ExecutionContext.

    Live routes bind them to a pool context; the transaction coordinator
    binds a fresh set to its transaction context. Handlers raise DapiError
    subclasses on failure and write successes to the sink.
    """

    def __init__(
        self,
        catalog: Catalog,
        ctx: ExecutionContext,
        composer: Optional[QueryComposer] = None,
        *,
        allow_unfiltered_delete: bool = False,
    ):
        self.catalog = catalog
        self.ctx = ctx
        self.composer = composer or QueryComposer()
        self.allow_unfiltered_delete = allow_unfiltered_delete

    def _success(self, request: HandlerRequest, sink: OutputSink, body: Any) -> None:
        sink.set_status(200)
        sink.set_header("Content-Type", "application/json")
        sink.write(body)
        log.info("200 - %s %s", request.method, request.path)

    # GetTable returns rows of a table, filtered by query string columns.
    def get_table(self, request: HandlerRequest, sink: OutputSink) -> None:
        table = self.catalog.table(request.path_params["table"])

        predicate = {
            k: v for k, v in request.query.items() if k not in RESERVED_QUERY_KEYS
        }
        limit = offset = None
        if "limit" in request.query:
            limit = _as_int("limit", request.query["limit"])
        if "offset" in request.query:
            offset = _as_int("offset", request.query["offset"])

        stmt = self.composer.select(
            table,
            predicate,
            limit=limit,
            offset=offset,
            order=request.query.get("order_by"),
        )
        rows, columns = self.ctx.query(stmt)
        records = [
            {col: _cell(val) for col, val in zip(columns, row)} for row in rows
        ]
        self._success(request, sink, records)

    # PostTable inserts a record.
    def post_table(self, request: HandlerRequest, sink: OutputSink) -> None:
        table = self.catalog.table(request.path_params["table"])
        values = request.json_body()

        result = self.ctx.execute(self.composer.insert(table, values))
        self._success(
            request,
            sink,
            {"message": "success", "inserted_id": result.last_insert_id},
        )

    def put_table(self, request: HandlerRequest, sink: OutputSink) -> None:
        """
        Update records by primary key.

        The key comes from the ``{id}`` path segment when present, otherwise
        it is taken out of the body.
        """
        table = self.catalog.table(request.path_params["table"])
        values = request.json_body()

        pk = table.primary_key
        if not pk:
            raise MissingPrimaryKey(
                f"Update table ({table.name}), no primary key on table"
            )

        key = request.path_params.get("id")
        if key is None:
            if pk not in values:
                raise MissingPrimaryKey(
                    f"Update table ({table.name}), primary key ({pk}) missing from input"
                )
            key = values.pop(pk)

        result = self.ctx.execute(self.composer.update(table, values, {pk: key}))
        self._success(
            request,
            sink,
            {"message": "success", "rows_affected": result.rows_affected},
        )

    def delete_table(self, request: HandlerRequest, sink: OutputSink) -> None:
        """
        Delete at most ``limit`` records matching the body's columns.

        ``limit`` is mandatory. A body with no filter columns is refused
        unless unfiltered deletes were explicitly allowed.
        """
        table = self.catalog.table(request.path_params["table"])
        predicate = request.json_body()

        if "limit" not in predicate:
            raise MissingLimit(f"delete on table ({table.name}) requires a limit")
        limit = _as_int("limit", predicate.pop("limit"))

        stmt = self.composer.delete(table, predicate, limit)
        if not predicate and not self.allow_unfiltered_delete:
            raise MissingPredicate(
                f"delete on table ({table.name}) without a filter is not allowed"
            )

        result = self.ctx.execute(stmt)
        self._success(
            request,
            sink,
            {"message": "success", "rows_affected": result.rows_affected},
        )

    # displays the meta data for a single table
    def table_meta(self, request: HandlerRequest, sink: OutputSink) -> None:
        table = self.catalog.table(request.path_params["table"])
        location = request.path.rstrip("/")[: -len("_meta")]
        self._success(
            request, sink, describe_table(table, location, self.catalog.backend)
        )

    # displays the meta data for the whole database
    def meta(self, request: HandlerRequest, sink: OutputSink) -> None:
        base = request.path.rstrip("/")[: -len("_meta")]
        schema = []
        for table in self.catalog:
            schema.extend(describe_table(table, base + table.name, self.catalog.backend))
        self._success(request, sink, schema)
