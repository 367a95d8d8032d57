from __future__ import annotations

import sqlite3

from ..connection import iso_utcnow
from ..schema import ensure_schema
from .base import BaseRepository


class OrderRepository(BaseRepository):
    """Minimal order book used to hand settled auctions downstream."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn)
        ensure_schema(self.conn)

    def create_for_auction(
        self, *, auction_id: str, product_id: str, buyer_id: str, amount: float
    ) -> int:
        """Insert the order row; the caller commits."""
        cur = self._execute(
            """
            INSERT INTO orders (auction_id, product_id, buyer_id, amount, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (auction_id, product_id, buyer_id, amount, iso_utcnow()),
        )
        return int(cur.lastrowid or 0)

    def get_by_auction(self, auction_id: str) -> dict[str, object] | None:
        return self._fetch_one_as_dict(
            """
            SELECT id, auction_id, product_id, buyer_id, amount, status, created_at
            FROM orders WHERE auction_id = ?
            """,
            (auction_id,),
        )
