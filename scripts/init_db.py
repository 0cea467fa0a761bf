"""
Create the demo SQLite database used by the default configuration.

Tables mirror the integration fixtures: ``user`` (auto-increment id) and
``settings`` (one row per user setting).

Usage:
  python scripts/init_db.py [path]   (default: data/dapi.db)
"""

import sqlite3
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_PATH = REPO_ROOT / "data" / "dapi.db"

SCHEMA = """
CREATE TABLE IF NOT EXISTS user (
    name VARCHAR(20) DEFAULT NULL,
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    email VARCHAR(255) DEFAULT NULL
);

CREATE TABLE IF NOT EXISTS settings (
    id INTEGER PRIMARY KEY,
    user_id INTEGER DEFAULT NULL REFERENCES user(id),
    setting VARCHAR(255) NOT NULL,
    enabled TINYINT(1) DEFAULT NULL
);
"""


def ensure_demo_db(path: Path) -> None:
    """Create the demo schema if missing (idempotent)."""
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    try:
        conn.executescript(SCHEMA)
        conn.commit()
    finally:
        conn.close()
    print(f"✅ Demo DB ready at {path}")


if __name__ == "__main__":
    target = Path(sys.argv[1]) if len(sys.argv) > 1 else DEFAULT_PATH
    ensure_demo_db(target)
