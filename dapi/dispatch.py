from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from urllib.parse import parse_qsl, urlsplit

from starlette.routing import compile_path

from dapi.handlers import CrudHandlers, Handler


@dataclass(frozen=True)
class Route:
    method: str
    path: str
    endpoint: str  # CrudHandlers attribute
    name: str


# The CRUD routing table. Order matters: the first match wins.
CRUD_ROUTES: Tuple[Route, ...] = (
    Route("GET", "/crud/_meta", "meta", "crud_meta"),
    Route("GET", "/crud/{table}/_meta", "table_meta", "crud_table_meta"),
    Route("GET", "/crud/{table}", "get_table", "crud_get"),
    Route("POST", "/crud/{table}", "post_table", "crud_post"),
    Route("PUT", "/crud/{table}", "put_table", "crud_put"),
    Route("PUT", "/crud/{table}/{id}", "put_table", "crud_put_id"),
    Route("DELETE", "/crud/{table}", "delete_table", "crud_delete"),
)


@dataclass(frozen=True)
class Resolved:
    route: Route
    handler: Handler
    path: str
    path_params: Dict[str, str]
    query: Dict[str, str]


class Dispatcher:
    """
    Resolve (method, url) against the CRUD routing table, with every
    handler bound to one CrudHandlers instance.

    ``prefix`` is optional on incoming urls, so "/crud/user" and
    "/api/v1/crud/user" resolve the same way.
    """

    def __init__(
        self,
        handlers: CrudHandlers,
        routes: Sequence[Route] = CRUD_ROUTES,
        prefix: str = "",
    ):
        self.prefix = prefix.rstrip("/")
        self._table: List[tuple] = []
        for route in routes:
            regex, _, convertors = compile_path(route.path)
            self._table.append(
                (route, regex, convertors, getattr(handlers, route.endpoint))
            )

    def _strip(self, path: str) -> str:
        if self.prefix and (path == self.prefix or path.startswith(self.prefix + "/")):
            path = path[len(self.prefix):]
        if len(path) > 1:
            path = path.rstrip("/")
        return path or "/"

    def lookup(self, method: str, url: str) -> Optional[Resolved]:
        parts = urlsplit(url)
        path = self._strip(parts.path)
        method = method.upper()

        for route, regex, convertors, handler in self._table:
            if route.method != method:
                continue
            match = regex.match(path)
            if match is None:
                continue
            params = {
                key: convertors[key].convert(value)
                for key, value in match.groupdict().items()
            }
            query: Dict[str, str] = {}
            for key, value in parse_qsl(parts.query, keep_blank_values=True):
                # first value wins, as with a multi-valued query string
                query.setdefault(key, value)
            return Resolved(
                route=route,
                handler=handler,
                path=parts.path,
                path_params=params,
                query=query,
            )
        return None
