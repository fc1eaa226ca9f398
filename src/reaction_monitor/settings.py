"""SQLite backed storage for host settings."""

from __future__ import annotations

import sqlite3
from contextlib import closing
from pathlib import Path

_DB_PRAGMA = "PRAGMA journal_mode=WAL;" "PRAGMA synchronous=NORMAL;"

WEBHOOK_URL_KEY = "webhook.url"


class SettingsStore:
    """Persisted key/value settings.

    Only administrator-provided values live here; the monitored-channel set
    is rebuilt from the platform on every start.
    """

    def __init__(self, path: Path):
        self._path = path
        self._conn = sqlite3.connect(self._path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._setup()

    def _setup(self) -> None:
        with closing(self._conn.cursor()) as cur:
            for statement in _DB_PRAGMA.split(";"):
                if statement.strip():
                    cur.execute(statement)
            cur.executescript(
                """
                CREATE TABLE IF NOT EXISTS settings (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                );
                """
            )
            self._conn.commit()

    def set_setting(self, key: str, value: str) -> None:
        with closing(self._conn.cursor()) as cur:
            cur.execute(
                "INSERT INTO settings(key, value) VALUES(?, ?)"
                " ON CONFLICT(key) DO UPDATE SET value=excluded.value",
                (key, value),
            )
            self._conn.commit()

    def get_setting(self, key: str, default: str | None = None) -> str | None:
        with closing(self._conn.cursor()) as cur:
            cur.execute("SELECT value FROM settings WHERE key=?", (key,))
            row = cur.fetchone()
        return row["value"] if row else default

    def delete_setting(self, key: str) -> None:
        with closing(self._conn.cursor()) as cur:
            cur.execute("DELETE FROM settings WHERE key=?", (key,))
            self._conn.commit()

    def get_webhook_url(self) -> str:
        return (self.get_setting(WEBHOOK_URL_KEY) or "").strip()

    def set_webhook_url(self, url: str | None) -> None:
        cleaned = (url or "").strip()
        if cleaned:
            self.set_setting(WEBHOOK_URL_KEY, cleaned)
        else:
            self.delete_setting(WEBHOOK_URL_KEY)

    def close(self) -> None:
        self._conn.close()
