from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from adapters.metrics.base import Metrics
from adapters.metrics.noop import NoOpMetrics
from dapi.context import ExecutionContext, TransactionContext, TransactionState
from dapi.dispatch import Dispatcher, Resolved
from dapi.errors import BatchTimeout, CommitFailed, DapiError, MalformedBody, UnknownPath
from dapi.handlers import CrudHandlers, HandlerRequest
from dapi.sink import CaptureSink

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SubRequest:
    method: str
    url: str
    # A JSON document as text, or an already decoded object.
    body: Any = None

    def raw_body(self) -> str:
        if self.body is None:
            return ""
        if isinstance(self.body, str):
            return self.body
        return json.dumps(self.body)


@dataclass
class BatchResult:
    outcome: TransactionState
    responses: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[DapiError] = None

    @property
    def committed(self) -> bool:
        return self.outcome is TransactionState.COMMITTED

    @property
    def http_status(self) -> int:
        if self.committed or self.error is None:
            return 200
        return self.error.http_status

    def to_payload(self, request_id: Optional[str] = None) -> Dict[str, Any]:
        """One envelope for both outcomes."""
        return {
            "outcome": self.outcome.value,
            "responses": list(self.responses),
            "error": self.error.to_payload(request_id)["error"] if self.error else None,
        }


class TransactionCoordinator:
    """
    Replay an ordered batch of CRUD sub-requests inside one transaction.

    Each batch gets its own TransactionContext and its own dispatch table
    whose handlers are bound to that context, so later steps read the
    uncommitted writes of earlier ones. Steps run strictly in order; the
    first failing step rolls everything back and ends the batch.
    """

    def __init__(
        self,
        begin: Callable[[], TransactionContext],
        handlers_for: Callable[[ExecutionContext], CrudHandlers],
        *,
        prefix: str = "",
        timeout_sec: Optional[float] = None,
        max_requests: Optional[int] = None,
        metrics: Optional[Metrics] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._begin = begin
        self._handlers_for = handlers_for
        self.prefix = prefix
        self.timeout_sec = timeout_sec
        self.max_requests = max_requests
        self.metrics: Metrics = metrics or NoOpMetrics()
        self._clock = clock

    def run(self, requests: Sequence[SubRequest]) -> BatchResult:
        if self.max_requests and len(requests) > self.max_requests:
            raise MalformedBody(
                f"transaction has {len(requests)} requests, "
                f"at most {self.max_requests} allowed"
            )
        self.metrics.observe_batch_size(size=len(requests))

        log.info("starting tx...", extra={"requests": len(requests)})
        try:
            with self._begin() as tx:
                return self._replay(tx, requests)
        except Exception:
            self.metrics.inc_batch(outcome="rolled_back", reason="error")
            raise

    def _replay(
        self, tx: TransactionContext, requests: Sequence[SubRequest]
    ) -> BatchResult:
        dispatcher = Dispatcher(self._handlers_for(tx), prefix=self.prefix)
        deadline = None
        if self.timeout_sec:
            deadline = self._clock() + self.timeout_sec

        responses: List[Dict[str, Any]] = []
        for step, req in enumerate(requests):
            if deadline is not None and self._clock() > deadline:
                err = BatchTimeout(
                    f"transaction exceeded {self.timeout_sec}s before step {step}",
                    extra={"step": step},
                )
                return self._abort(tx, responses, err, "batch_timeout")

            log.info("\t%s %s", req.method, req.url)
            resolved = dispatcher.lookup(req.method, req.url)
            if resolved is None:
                err = UnknownPath(
                    f"unknown path: {req.method} {req.url}",
                    extra={"step": step, "method": req.method, "url": req.url},
                )
                return self._abort(tx, responses, err, "unknown_path")

            sink = CaptureSink()
            self._invoke(resolved, req, sink)
            if not sink.ok:
                log.info("\terror: %d", sink.status)
                return self._abort(
                    tx, responses, self._step_error(step, req, sink), "step_failed"
                )
            responses.append(sink.to_dict())

        try:
            tx.commit()
        except CommitFailed as exc:
            return self._abort(tx, responses, exc, "commit_failed")

        log.info("tx committed")
        self.metrics.inc_batch(outcome="committed", reason="ok")
        return BatchResult(outcome=TransactionState.COMMITTED, responses=responses)

    def _invoke(self, resolved: Resolved, req: SubRequest, sink: CaptureSink) -> None:
        request = HandlerRequest(
            method=req.method.upper(),
            path=resolved.path,
            path_params=resolved.path_params,
            query=resolved.query,
            body=req.raw_body(),
        )
        try:
            resolved.handler(request, sink)
        except DapiError as exc:
            sink.set_status(exc.http_status)
            sink.write(exc.to_payload())

    def _step_error(self, step: int, req: SubRequest, sink: CaptureSink) -> DapiError:
        code = "step_failed"
        body = sink.body
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            code = body["error"].get("code") or code
        return DapiError(
            f"sub-request {step} failed: {req.method} {req.url}",
            http_status=sink.status if sink.status >= 400 else 404,
            code=code,
            extra={
                "step": step,
                "method": req.method,
                "url": req.url,
                "status": sink.status,
                "body": body,
            },
        )

    def _abort(
        self,
        tx: TransactionContext,
        responses: List[Dict[str, Any]],
        error: DapiError,
        reason: str,
    ) -> BatchResult:
        log.info("rolling back", extra={"reason": reason, "code": error.code})
        if tx.is_open:
            try:
                tx.rollback()
            except DapiError as exc:
                log.warning("unable to rollback", extra={"error": str(exc)})
                error = exc
        self.metrics.inc_batch(outcome="rolled_back", reason=reason)
        return BatchResult(
            outcome=TransactionState.ROLLED_BACK, responses=responses, error=error
        )
