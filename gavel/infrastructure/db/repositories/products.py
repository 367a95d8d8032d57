from __future__ import annotations

import sqlite3

from gavel.domain.models import ProductRecord

from ..connection import iso_utcnow
from ..schema import ensure_schema
from .base import BaseRepository


class DuplicateProductError(ValueError):
    """Raised when attempting to insert a product with an existing id."""


class ProductRepository(BaseRepository):
    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn)
        ensure_schema(self.conn)

    def add(
        self, product_id: str, seller_id: str, stock: int, name: str | None = None
    ) -> None:
        if stock < 0:
            raise ValueError("Stock cannot be negative")
        cursor = self._execute(
            """
            INSERT OR IGNORE INTO products (id, seller_id, name, stock, created_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (product_id, seller_id, name, stock, iso_utcnow()),
        )
        self.conn.commit()

        if cursor.rowcount == 0:
            raise DuplicateProductError(f"Product '{product_id}' already exists")

    def find_by_id(self, product_id: str) -> ProductRecord | None:
        row = self._fetch_one_as_dict(
            "SELECT id, seller_id, name, stock FROM products WHERE id = ?",
            (product_id,),
        )
        return ProductRecord.from_dict(row) if row else None

    def list(self, seller_id: str | None = None) -> list[ProductRecord]:
        query = "SELECT id, seller_id, name, stock FROM products"
        params: tuple[str, ...] = ()
        if seller_id:
            query += " WHERE seller_id = ?"
            params = (seller_id,)
        query += " ORDER BY id"
        return [ProductRecord.from_dict(row) for row in self._fetch_all_as_dicts(query, params)]

    def decrement_stock(self, product_id: str, quantity: int = 1) -> None:
        """Reduce stock atomically; fails instead of going negative.

        The caller commits.
        """
        cur = self._execute(
            "UPDATE products SET stock = stock - ? WHERE id = ? AND stock >= ?",
            (quantity, product_id, quantity),
        )
        if cur.rowcount == 0:
            raise ValueError(
                f"Product '{product_id}' does not exist or has less than {quantity} in stock"
            )
