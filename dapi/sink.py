from __future__ import annotations

from typing import Any, Dict, Optional, Protocol


class OutputSink(Protocol):
    """Where a handler writes its outcome."""

    def set_status(self, status: int) -> None: ...

    def set_header(self, name: str, value: str) -> None: ...

    def write(self, body: Any) -> None: ...


class CaptureSink:
    """
    Records status and body instead of talking to a client.

    Used to replay sub-requests inside a batch, and by the live routes,
    which turn the captured outcome into a real response afterwards.
    """

    def __init__(self) -> None:
        self.status: int = 200
        self.headers: Dict[str, str] = {}
        self.body: Optional[Any] = None

    def set_status(self, status: int) -> None:
        self.status = status

    def set_header(self, name: str, value: str) -> None:
        self.headers[name] = value

    def write(self, body: Any) -> None:
        self.body = body

    @property
    def ok(self) -> bool:
        return self.status < 300

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status, "body": self.body}
