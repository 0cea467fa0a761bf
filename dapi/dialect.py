from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Dialect:
    """
    The few rendering details that differ between backing stores.

    row_locator: pseudo-column used to bound a DELETE through a sub-select
        when the store has no ``DELETE ... LIMIT``. None means the store
        accepts ``LIMIT`` on DELETE directly.
    """

    name: str
    placeholder: str = "?"
    quote_char: str = '"'
    row_locator: Optional[str] = None
    returning: bool = False

    def quote(self, identifier: str) -> str:
        q = self.quote_char
        return f"{q}{identifier.replace(q, q + q)}{q}"


SQLITE = Dialect(name="sqlite", placeholder="?", row_locator="rowid")
POSTGRES = Dialect(name="postgres", placeholder="%s", row_locator="ctid", returning=True)
# Rendering target only: no adapter ships for it.
MYSQL = Dialect(name="mysql", placeholder="%s", quote_char="`")
