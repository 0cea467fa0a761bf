from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class DapiError(Exception):
    """Base class for every error the CRUD layer reports to a caller.

    All errors answer 404 today: the HTTP surface flattens the taxonomy into
    a single status and lets ``code`` tell the cases apart.
    """

    message: str
    http_status: int = 404
    code: str = "dapi_error"
    retryable: bool = False
    extra: Dict[str, Any] = field(default_factory=dict)
    details: Optional[List[str]] = None

    def __str__(self) -> str:
        return self.message

    def to_payload(self, request_id: Optional[str] = None) -> Dict[str, Any]:
        error: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
            "extra": self.extra,
        }
        if request_id is not None:
            error["request_id"] = request_id
        return {"error": error}


# Routing / catalog
@dataclass
class UnknownTable(DapiError):
    code: str = "unknown_table"


@dataclass
class UnknownPath(DapiError):
    code: str = "unknown_path"


# Request validation
@dataclass
class MalformedBody(DapiError):
    code: str = "malformed_body"


@dataclass
class MissingPrimaryKey(DapiError):
    code: str = "missing_primary_key"


@dataclass
class MissingLimit(DapiError):
    code: str = "missing_limit"


@dataclass
class MissingPredicate(DapiError):
    code: str = "missing_predicate"


# Execution
@dataclass
class QueryExecutionError(DapiError):
    code: str = "query_execution_error"


@dataclass
class ClosedContext(DapiError):
    code: str = "closed_context"


@dataclass
class CommitFailed(DapiError):
    code: str = "commit_failed"


@dataclass
class BatchTimeout(DapiError):
    code: str = "batch_timeout"
