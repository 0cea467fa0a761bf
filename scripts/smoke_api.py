"""Portable smoke requests for dapi.

- Runs the CRUD lifecycle against the ``user`` table
- Runs one committed and one rolled-back transaction batch
- Exits non-zero on failure (so Make/CI can trust it)

Env:
  API_BASE: base URL of API (default: http://127.0.0.1:8000)
"""

from __future__ import annotations

import json
import os
import uuid

import requests


API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000").rstrip("/")
CRUD = f"{API_BASE}/api/v1/crud"
TIMEOUT = float(os.getenv("SMOKE_TIMEOUT", "30"))


def _call(method: str, url: str, body: dict | None = None) -> tuple[int, object]:
    resp = requests.request(method, url, json=body, timeout=TIMEOUT)
    try:
        out = resp.json()
    except ValueError:
        out = {"raw": resp.text}
    print(f"{method} {url} -> HTTP {resp.status_code}")
    print(json.dumps(out, indent=2)[:400])
    return resp.status_code, out


def main() -> int:
    name = f"smoke-{uuid.uuid4().hex[:8]}"
    ok_all = True

    status, body = _call("POST", f"{CRUD}/user", {"name": name, "email": f"{name}@example.com"})
    if status != 200 or not isinstance(body, dict) or "inserted_id" not in body:
        print("❌ insert failed")
        return 2
    row_id = body["inserted_id"]

    status, body = _call("GET", f"{CRUD}/user?name={name}")
    ok_all &= status == 200 and bool(body)

    status, body = _call("PUT", f"{CRUD}/user", {"id": row_id, "email": "new@example.com"})
    ok_all &= status == 200 and isinstance(body, dict) and body.get("rows_affected") == 1

    status, body = _call("DELETE", f"{CRUD}/user", {"id": row_id, "limit": 1})
    ok_all &= status == 200 and isinstance(body, dict) and body.get("rows_affected") == 1

    batch = {
        "requests": [
            {"method": "POST", "url": "/crud/user", "body": json.dumps({"name": name})},
            {"method": "DELETE", "url": "/crud/user", "body": "{}"},
        ]
    }
    status, body = _call("POST", f"{API_BASE}/api/v1/transaction", batch)
    ok_all &= isinstance(body, dict) and body.get("outcome") == "rolled_back"

    status, body = _call("GET", f"{CRUD}/user?name={name}")
    ok_all &= status == 200 and body == []

    if ok_all:
        print("\n✅ smoke passed")
        return 0

    print("\n❌ smoke failed (see output above)")
    return 4


if __name__ == "__main__":
    raise SystemExit(main())
