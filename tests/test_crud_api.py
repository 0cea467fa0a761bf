from __future__ import annotations

import sqlite3

from app.settings import Settings, get_settings

BASE = "/api/v1/crud"


def add_user(client, name: str, email: str | None = None) -> int:
    body = {"name": name}
    if email is not None:
        body["email"] = email
    r = client.post(f"{BASE}/user", json=body)
    assert r.status_code == 200, r.text
    return r.json()["inserted_id"]


def error_code(resp) -> str:
    return resp.json()["error"]["code"]


def test_crud_lifecycle(client):
    """Create, read, update and delete one user end to end."""
    r = client.post(f"{BASE}/user", json={"name": "jack", "email": "jack@example.com"})
    assert r.status_code == 200
    assert r.json() == {"message": "success", "inserted_id": 1}

    r = client.get(f"{BASE}/user", params={"name": "jack"})
    assert r.status_code == 200
    assert r.json() == [{"name": "jack", "id": 1, "email": "jack@example.com"}]

    r = client.put(f"{BASE}/user", json={"id": 1, "email": "jack@corp.example"})
    assert r.status_code == 200
    assert r.json() == {"message": "success", "rows_affected": 1}

    r = client.get(f"{BASE}/user", params={"id": 1})
    assert r.json()[0]["email"] == "jack@corp.example"

    r = client.request("DELETE", f"{BASE}/user", json={"id": 1, "limit": 1})
    assert r.status_code == 200
    assert r.json()["rows_affected"] == 1

    assert client.get(f"{BASE}/user").json() == []


def test_put_with_key_in_path(client):
    user_id = add_user(client, "jill")

    r = client.put(f"{BASE}/user/{user_id}", json={"email": "jill@example.com"})
    assert r.status_code == 200
    assert r.json()["rows_affected"] == 1
    assert client.get(f"{BASE}/user").json()[0]["email"] == "jill@example.com"


def test_put_for_missing_row_affects_nothing(client):
    r = client.put(f"{BASE}/user", json={"id": 99, "name": "nobody"})
    assert r.status_code == 200
    assert r.json()["rows_affected"] == 0


def test_put_without_primary_key_value(client):
    r = client.put(f"{BASE}/user", json={"email": "x@example.com"})
    assert r.status_code == 404
    assert error_code(r) == "missing_primary_key"


def test_put_on_table_without_primary_key(client, db_path):
    conn = sqlite3.connect(str(db_path))
    conn.execute("CREATE TABLE audit (msg TEXT)")
    conn.commit()
    conn.close()

    r = client.put(f"{BASE}/audit", json={"msg": "x"})
    assert r.status_code == 404
    assert error_code(r) == "missing_primary_key"


def test_get_ignores_unknown_filter_columns(client):
    add_user(client, "jack")
    add_user(client, "jill")

    r = client.get(f"{BASE}/user", params={"bogus": "x", "name": "jill"})
    assert r.status_code == 200
    assert [u["name"] for u in r.json()] == ["jill"]


def test_get_paging_and_ordering(client):
    for name in ("a", "b", "c"):
        add_user(client, name)

    r = client.get(f"{BASE}/user", params={"order_by": "-id", "limit": 2})
    assert [u["id"] for u in r.json()] == [3, 2]

    r = client.get(f"{BASE}/user", params={"order_by": "id", "limit": 1, "offset": 1})
    assert [u["name"] for u in r.json()] == ["b"]


def test_get_rejects_non_integer_limit(client):
    r = client.get(f"{BASE}/user", params={"limit": "lots"})
    assert r.status_code == 404
    assert error_code(r) == "malformed_body"


def test_unknown_table(client):
    for resp in (
        client.get(f"{BASE}/ghosts"),
        client.post(f"{BASE}/ghosts", json={"a": 1}),
        client.get(f"{BASE}/ghosts/_meta"),
    ):
        assert resp.status_code == 404
        assert error_code(resp) == "unknown_table"
        assert resp.json()["error"]["message"] == "table (ghosts) not found"


def test_post_rejects_unknown_columns(client):
    r = client.post(f"{BASE}/user", json={"name": "jack", "nickname": "j"})
    assert r.status_code == 404
    assert error_code(r) == "malformed_body"
    assert r.json()["error"]["details"] == ["nickname"]


def test_post_rejects_unparseable_body(client):
    r = client.post(
        f"{BASE}/user",
        content=b"{not json",
        headers={"Content-Type": "application/json"},
    )
    assert r.status_code == 404
    assert error_code(r) == "malformed_body"
    assert r.json()["error"]["message"] == "unable to parse args"


def test_duplicate_unique_value_is_execution_error(client):
    add_user(client, "a", "same@example.com")

    r = client.post(f"{BASE}/user", json={"name": "b", "email": "same@example.com"})
    assert r.status_code == 404
    assert error_code(r) == "query_execution_error"
    assert "UNIQUE" in r.json()["error"]["message"]


def test_delete_requires_limit(client):
    add_user(client, "jack")

    r = client.request("DELETE", f"{BASE}/user", json={"name": "jack"})
    assert r.status_code == 404
    assert error_code(r) == "missing_limit"

    r = client.request("DELETE", f"{BASE}/user", json={"name": "jack", "limit": 0})
    assert error_code(r) == "missing_limit"
    assert len(client.get(f"{BASE}/user").json()) == 1


def test_delete_is_bounded_by_limit(client):
    add_user(client, "twin")
    add_user(client, "twin")

    r = client.request("DELETE", f"{BASE}/user", json={"name": "twin", "limit": 1})
    assert r.json()["rows_affected"] == 1
    assert len(client.get(f"{BASE}/user").json()) == 1


def test_unfiltered_delete_is_refused_by_default(client):
    add_user(client, "jack")

    r = client.request("DELETE", f"{BASE}/user", json={"limit": 10})
    assert r.status_code == 404
    assert error_code(r) == "missing_predicate"
    assert len(client.get(f"{BASE}/user").json()) == 1


def test_unfiltered_delete_when_allowed(client):
    client.app.dependency_overrides[get_settings] = lambda: Settings(
        allow_unfiltered_delete=True
    )
    add_user(client, "jack")
    add_user(client, "jill")

    r = client.request("DELETE", f"{BASE}/user", json={"limit": 1})
    assert r.status_code == 200
    assert r.json()["rows_affected"] == 1
    assert len(client.get(f"{BASE}/user").json()) == 1


def test_table_meta(client):
    r = client.get(f"{BASE}/user/_meta")
    assert r.status_code == 200
    meta = r.json()

    assert [m["method"] for m in meta] == ["GET", "POST", "PUT", "DELETE"]
    for entry in meta:
        assert entry["title"] == "user"
        assert entry["description"] == "SQLite Table user"
        assert entry["location"] == f"{BASE}/user/"
        assert entry["primary"] == "id"
        assert entry["type"] == "object"

    delete = meta[3]
    assert "limit" in delete["properties"]
    assert delete["required"][-1] == "limit"


def test_settings_meta_required_fields(client):
    meta = {m["method"]: m for m in client.get(f"{BASE}/settings/_meta").json()}
    assert meta["POST"]["required"] == ["setting"]
    assert meta["PUT"]["required"] == ["id", "setting"]


def test_database_meta_lists_every_table(client):
    r = client.get(f"{BASE}/_meta")
    assert r.status_code == 200
    entries = r.json()

    assert {e["title"] for e in entries} == {"user", "settings"}
    assert len(entries) == 8
    assert {e["location"] for e in entries} == {f"{BASE}/user", f"{BASE}/settings"}


HUGE = 99999999999999999999


def test_oversized_integer_value_is_execution_error(client):
    r = client.post(f"{BASE}/user", json={"name": HUGE})
    assert r.status_code == 404
    assert error_code(r) == "query_execution_error"

    user_id = add_user(client, "jack")
    r = client.put(f"{BASE}/user/{user_id}", json={"name": HUGE})
    assert r.status_code == 404
    assert error_code(r) == "query_execution_error"


def test_oversized_limit_is_malformed(client):
    r = client.request("DELETE", f"{BASE}/user", json={"name": "jack", "limit": HUGE})
    assert r.status_code == 404
    assert error_code(r) == "malformed_body"

    r = client.get(f"{BASE}/user", params={"limit": str(HUGE)})
    assert error_code(r) == "malformed_body"
