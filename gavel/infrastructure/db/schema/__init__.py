"""SQLite schema for users, products, auctions, bids and orders."""

from .manager import MIGRATIONS, ensure_schema
from .migrations import CURRENT_SCHEMA_VERSION, SchemaMigrator

__all__ = [
    "CURRENT_SCHEMA_VERSION",
    "MIGRATIONS",
    "ensure_schema",
    "SchemaMigrator",
]
