import sqlite3
from contextlib import contextmanager

from config import STORAGE_PATH


def init_db():
    with sqlite3.connect(STORAGE_PATH) as conn:
        conn.execute("""
            CREATE TABLE IF NOT EXISTS local_storage (
                key   TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """)
        conn.commit()


@contextmanager
def get_db():
    conn = sqlite3.connect(STORAGE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def _get_item(conn, key: str):
    row = conn.execute("SELECT value FROM local_storage WHERE key = ?", (key,)).fetchone()
    return row["value"] if row else None


def _set_item(conn, key: str, value: str):
    conn.execute(
        "INSERT OR REPLACE INTO local_storage (key, value) VALUES (?, ?)", (key, value)
    )
    conn.commit()


def _remove_item(conn, key: str):
    conn.execute("DELETE FROM local_storage WHERE key = ?", (key,))
    conn.commit()
