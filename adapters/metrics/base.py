from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

StatementKind = Literal["insert", "update", "delete", "select"]
BatchOutcome = Literal["committed", "rolled_back"]


class Metrics(ABC):
    @abstractmethod
    def observe_statement_ms(self, *, kind: str, dt_ms: float) -> None: ...

    @abstractmethod
    def inc_statement(self, *, kind: str, ok: bool) -> None: ...

    @abstractmethod
    def inc_batch(self, *, outcome: BatchOutcome, reason: str) -> None: ...

    @abstractmethod
    def observe_batch_size(self, *, size: int) -> None: ...
