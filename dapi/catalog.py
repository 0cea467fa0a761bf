from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Optional

from dapi.errors import UnknownTable

log = logging.getLogger(__name__)

METHODS = ("GET", "POST", "PUT", "DELETE")


@dataclass(frozen=True)
class Column:
    name: str
    ordinal_position: int
    nullable: bool = True
    data_type: str = ""
    primary_key: bool = False
    extra: str = ""
    default: Optional[str] = None
    comment: str = ""


@dataclass(frozen=True)
class Table:
    name: str
    columns: tuple[Column, ...] = ()

    @property
    def column_names(self) -> List[str]:
        return [c.name for c in self.columns]

    def column(self, name: str) -> Optional[Column]:
        for c in self.columns:
            if c.name == name:
                return c
        return None

    @property
    def primary_key(self) -> Optional[str]:
        for c in self.columns:
            if c.primary_key:
                return c.name
        return None


def build_table(name: str, columns: Iterable[Column]) -> Table:
    """
    Build a Table with columns ordered by ordinal position.

    Composite primary keys are not supported: when more than one column is
    flagged, the flags are cleared and the table is treated as keyless.
    """
    ordered = sorted(columns, key=lambda c: c.ordinal_position)
    keyed = [c for c in ordered if c.primary_key]
    if len(keyed) > 1:
        log.warning(
            "Composite primary key ignored",
            extra={"table": name, "columns": [c.name for c in keyed]},
        )
        ordered = [replace(c, primary_key=False) for c in ordered]
    return Table(name=name, columns=tuple(ordered))


@dataclass
class Catalog:
    """Read-mostly table metadata for one data source."""

    backend: str
    tables: Dict[str, Table] = field(default_factory=dict)

    def table(self, name: str) -> Table:
        table = self.tables.get(name)
        if table is None:
            raise UnknownTable(f"table ({name}) not found")
        return table

    def __contains__(self, name: object) -> bool:
        return name in self.tables

    def __iter__(self):
        return iter(self.tables.values())


# -------------------------------
# Metadata documents
# -------------------------------


def required_fields(table: Table, method: str) -> List[str]:
    """Non-nullable columns a caller must supply for ``method``."""
    method = method.upper()
    required: List[str] = []
    for c in table.columns:
        # Primary keys are never nullable, even where the store says so (SQLite).
        not_null = (not c.nullable) or c.primary_key
        if not not_null:
            continue
        if c.primary_key and method in ("GET", "POST"):
            continue
        required.append(c.name)
    if method == "DELETE":
        required.append("limit")
    return required


def table_meta(
    table: Table, location: str, method: str, backend: str = "SQL"
) -> Dict[str, Any]:
    method = method.upper()
    properties: Dict[str, Dict[str, str]] = {
        c.name: {"type": c.data_type, "description": c.comment}
        for c in table.columns
    }

    if method == "GET":
        properties["limit"] = {
            "type": "int",
            "description": "Used to limit the number of results returned",
        }
        properties["offset"] = {
            "type": "int",
            "description": "Used to offset results returned",
        }
        properties["order_by"] = {
            "type": "string",
            "description": "Column to sort by, prefix with '-' for descending",
        }
    elif method == "DELETE":
        properties["limit"] = {
            "type": "int",
            "description": "Used to limit the number of records deleted",
        }

    return {
        "title": table.name,
        "description": f"{backend} Table {table.name}",
        "type": "object",
        "location": location,
        "primary": table.primary_key or "",
        "properties": properties,
        "required": required_fields(table, method),
        "method": method,
        "notes": "",
    }


def describe_table(table: Table, location: str, backend: str) -> List[Dict[str, Any]]:
    return [table_meta(table, location, m, backend) for m in METHODS]
