from __future__ import annotations

from adapters.metrics.base import BatchOutcome, Metrics


class NoOpMetrics(Metrics):
    def observe_statement_ms(self, *, kind: str, dt_ms: float) -> None:
        return

    def inc_statement(self, *, kind: str, ok: bool) -> None:
        return

    def inc_batch(self, *, outcome: BatchOutcome, reason: str) -> None:
        return

    def observe_batch_size(self, *, size: int) -> None:
        return
