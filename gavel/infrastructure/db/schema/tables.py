from __future__ import annotations

SCHEMA_VERSION_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
);
"""

SCHEMA_MIGRATIONS_SQL = """
CREATE TABLE IF NOT EXISTS schema_migrations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    applied_at TEXT NOT NULL,
    notes TEXT
);
"""

SCHEMA_USERS_SQL = """
CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    name TEXT,
    role TEXT NOT NULL DEFAULT 'buyer'
        CHECK (role IN ('buyer', 'seller', 'admin'))
);
"""

SCHEMA_PRODUCTS_SQL = """
CREATE TABLE IF NOT EXISTS products (
    id TEXT PRIMARY KEY,
    seller_id TEXT NOT NULL,
    name TEXT,
    stock INTEGER NOT NULL DEFAULT 0 CHECK (stock >= 0),
    created_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_products_seller_id ON products (seller_id);
"""

SCHEMA_AUCTIONS_SQL = """
CREATE TABLE IF NOT EXISTS auctions (
    id TEXT PRIMARY KEY,
    product_id TEXT NOT NULL,
    seller_id TEXT NOT NULL,
    start_time TEXT NOT NULL,
    end_time TEXT NOT NULL,
    starting_bid REAL NOT NULL,
    current_highest_bid REAL NOT NULL,
    current_highest_bidder TEXT,
    reserve_price REAL,
    buy_now_price REAL,
    status TEXT NOT NULL,
    winner TEXT,
    view_count INTEGER NOT NULL DEFAULT 0,
    version INTEGER NOT NULL DEFAULT 0,
    created_at TEXT,
    updated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_auctions_product_id ON auctions (product_id);
CREATE INDEX IF NOT EXISTS idx_auctions_seller_id ON auctions (seller_id);
CREATE INDEX IF NOT EXISTS idx_auctions_status ON auctions (status);
CREATE INDEX IF NOT EXISTS idx_auctions_end_time ON auctions (end_time);
CREATE UNIQUE INDEX IF NOT EXISTS idx_auctions_open_product
    ON auctions (product_id)
    WHERE status IN ('Pending', 'Upcoming', 'Active');
"""

SCHEMA_AUCTION_BIDS_SQL = """
CREATE TABLE IF NOT EXISTS auction_bids (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    auction_id TEXT NOT NULL,
    seq INTEGER NOT NULL,
    bidder_id TEXT NOT NULL,
    amount REAL NOT NULL,
    timestamp TEXT NOT NULL,
    FOREIGN KEY (auction_id) REFERENCES auctions (id) ON DELETE CASCADE,
    UNIQUE (auction_id, seq)
);
CREATE INDEX IF NOT EXISTS idx_auction_bids_auction_id ON auction_bids (auction_id);
"""

SCHEMA_ORDERS_SQL = """
CREATE TABLE IF NOT EXISTS orders (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    auction_id TEXT NOT NULL UNIQUE,
    product_id TEXT NOT NULL,
    buyer_id TEXT NOT NULL,
    amount REAL NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending_payment',
    created_at TEXT NOT NULL,
    FOREIGN KEY (auction_id) REFERENCES auctions (id)
);
"""
