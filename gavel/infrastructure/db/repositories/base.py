"""Shared query helpers for the SQLite repositories."""

from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

Params = tuple[Any, ...]


class BaseRepository:
    """Wraps one connection; rows come back as plain dicts keyed by column."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    @staticmethod
    def _as_dict(cur: sqlite3.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
        return {column[0]: value for column, value in zip(cur.description, row)}

    def _fetch_all_as_dicts(
        self, query: str, params: Params | None = None
    ) -> list[dict[str, Any]]:
        """Run ``query`` and return every row as a dict.

        Example:
            >>> rows = self._fetch_all_as_dicts(
            ...     "SELECT id, status FROM auctions WHERE seller_id = ?", ("seller-1",)
            ... )
            >>> rows[0]["status"]
            'Active'
        """
        cur = self.conn.execute(query, params or ())
        return [self._as_dict(cur, row) for row in cur.fetchall()]

    def _fetch_one_as_dict(
        self, query: str, params: Params | None = None
    ) -> dict[str, Any] | None:
        cur = self.conn.execute(query, params or ())
        row = cur.fetchone()
        return self._as_dict(cur, row) if row else None

    def _fetch_scalar(self, query: str, params: Params | None = None) -> Any:
        """First column of the first row, or ``None`` when nothing matched."""
        row = self.conn.execute(query, params or ()).fetchone()
        return row[0] if row else None

    def _execute(self, query: str, params: Params | None = None) -> sqlite3.Cursor:
        """Run a write and hand back the cursor, e.g. to read ``rowcount``."""
        return self.conn.execute(query, params or ())

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Commit everything executed inside the block, or roll it all back."""
        with self.conn:
            yield self.conn
