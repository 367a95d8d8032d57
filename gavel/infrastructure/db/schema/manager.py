from __future__ import annotations

import sqlite3

from .migrations import Migration, SchemaMigrator
from .tables import (SCHEMA_AUCTION_BIDS_SQL, SCHEMA_AUCTIONS_SQL,
                     SCHEMA_ORDERS_SQL, SCHEMA_PRODUCTS_SQL, SCHEMA_USERS_SQL)

MIGRATIONS: tuple[Migration, ...] = (
    ("0001_users", SCHEMA_USERS_SQL),
    ("0001_products", SCHEMA_PRODUCTS_SQL),
    ("0001_auctions", SCHEMA_AUCTIONS_SQL),
    ("0001_auction_bids", SCHEMA_AUCTION_BIDS_SQL),
    ("0001_orders", SCHEMA_ORDERS_SQL),
)


def ensure_schema(conn: sqlite3.Connection) -> None:
    """Create the gavel tables on ``conn`` if they are missing."""
    SchemaMigrator(conn).apply(MIGRATIONS, notes="base table")
