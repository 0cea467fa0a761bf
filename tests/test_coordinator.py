from __future__ import annotations

import json
import sqlite3

import pytest

from dapi.composer import QueryComposer
from dapi.context import TransactionContext, TransactionState
from dapi.coordinator import SubRequest, TransactionCoordinator
from dapi.errors import MalformedBody
from dapi.handlers import CrudHandlers


def make_coordinator(source, **kwargs) -> TransactionCoordinator:
    return TransactionCoordinator(
        begin=source.begin,
        handlers_for=lambda ctx: CrudHandlers(
            source.catalog(), ctx, QueryComposer(source.dialect)
        ),
        prefix="/api/v1",
        **kwargs,
    )


def names(source) -> list[str]:
    rows, _ = source.pool().query(
        QueryComposer().select(source.catalog().table("user"), order="id")
    )
    return [r[0] for r in rows]


def insert(name: str) -> SubRequest:
    return SubRequest("POST", "/crud/user", json.dumps({"name": name}))


def test_all_success_commits(source):
    result = make_coordinator(source).run([insert("jack"), insert("jill")])

    assert result.committed
    assert result.http_status == 200
    assert [r["body"]["inserted_id"] for r in result.responses] == [1, 2]
    assert names(source) == ["jack", "jill"]


def test_failing_step_rolls_back_everything(source):
    # the delete carries no limit and fails
    result = make_coordinator(source).run(
        [insert("jack"), SubRequest("DELETE", "/crud/user", "{}"), insert("never")]
    )

    assert result.outcome is TransactionState.ROLLED_BACK
    assert result.error.code == "missing_limit"
    assert result.error.extra["step"] == 1
    assert result.http_status == 404
    # the failing step and anything after it are not success elements
    assert len(result.responses) == 1
    assert names(source) == []


def test_later_steps_read_earlier_writes(source):
    result = make_coordinator(source).run(
        [
            insert("jack"),
            SubRequest("GET", "/api/v1/crud/user?name=jack"),
            SubRequest("PUT", "/crud/user/1", {"email": "jack@example.com"}),
        ]
    )

    assert result.committed
    assert result.responses[1]["body"] == [
        {"name": "jack", "id": 1, "email": None}
    ]
    assert result.responses[2]["body"]["rows_affected"] == 1


def test_unknown_path_rolls_back(source):
    result = make_coordinator(source).run(
        [insert("jack"), SubRequest("POST", "/nowhere", "{}")]
    )

    assert not result.committed
    assert result.error.code == "unknown_path"
    assert names(source) == []


def test_nested_transaction_is_not_routable(source):
    result = make_coordinator(source).run(
        [SubRequest("POST", "/api/v1/transaction", '{"requests": []}')]
    )
    assert result.error.code == "unknown_path"


def test_unknown_table_in_step_rolls_back(source):
    result = make_coordinator(source).run(
        [insert("jack"), SubRequest("POST", "/crud/ghosts", '{"x": 1}')]
    )
    assert result.error.code == "unknown_table"
    assert result.error.extra["body"]["error"]["code"] == "unknown_table"
    assert names(source) == []


def test_store_error_in_step_rolls_back(source):
    result = make_coordinator(source).run(
        [
            SubRequest("POST", "/crud/user", {"name": "a", "email": "same@example.com"}),
            SubRequest("POST", "/crud/user", {"name": "b", "email": "same@example.com"}),
        ]
    )
    assert result.error.code == "query_execution_error"
    assert names(source) == []


def test_empty_batch_commits(source):
    result = make_coordinator(source).run([])
    assert result.committed
    assert result.responses == []


def test_too_many_requests_rejected_before_begin(source):
    begun = []

    def begin():
        begun.append(True)
        return source.begin()

    coordinator = TransactionCoordinator(
        begin=begin,
        handlers_for=lambda ctx: CrudHandlers(source.catalog(), ctx),
        max_requests=1,
    )
    with pytest.raises(MalformedBody):
        coordinator.run([insert("a"), insert("b")])
    assert begun == []


def test_deadline_rolls_back(source):
    ticks = iter([0.0, 0.0, 100.0])

    result = make_coordinator(source, timeout_sec=10, clock=lambda: next(ticks)).run(
        [insert("jack"), insert("jill")]
    )

    assert result.error.code == "batch_timeout"
    assert names(source) == []


class CommitFailsConnection:
    """Wraps a real sqlite connection but refuses to commit."""

    def __init__(self, conn):
        self._conn = conn

    def commit(self):
        raise sqlite3.OperationalError("database is locked")

    def __getattr__(self, name):
        return getattr(self._conn, name)


def test_commit_failure_reports_commit_failed(source):
    def begin():
        conn = source.connect(autocommit=True)
        conn.execute("BEGIN")
        return TransactionContext(CommitFailsConnection(conn), (sqlite3.Error,))

    coordinator = TransactionCoordinator(
        begin=begin,
        handlers_for=lambda ctx: CrudHandlers(source.catalog(), ctx),
    )
    result = coordinator.run([insert("jack")])

    assert result.outcome is TransactionState.ROLLED_BACK
    assert result.error.code == "commit_failed"
    assert names(source) == []


def test_envelope_is_well_formed_for_both_outcomes(source):
    ok = make_coordinator(source).run([insert("jack")]).to_payload()
    bad = make_coordinator(source).run([SubRequest("DELETE", "/crud/user")]).to_payload()

    assert set(ok) == set(bad) == {"outcome", "responses", "error"}
    assert ok["outcome"] == "committed" and ok["error"] is None
    assert bad["outcome"] == "rolled_back" and bad["error"]["code"] == "missing_limit"


def test_oversized_integer_rolls_back_with_envelope(source):
    result = make_coordinator(source).run(
        [insert("jack"), SubRequest("POST", "/crud/user", {"name": 99999999999999999999})]
    )

    assert result.outcome is TransactionState.ROLLED_BACK
    assert result.error.code == "query_execution_error"
    assert result.error.extra["step"] == 1
    assert names(source) == []


def test_table_meta_location_ignores_trailing_slash(source):
    result = make_coordinator(source).run([SubRequest("GET", "/crud/user/_meta/")])

    assert result.committed
    assert {m["location"] for m in result.responses[0]["body"]} == {"/crud/user/"}
