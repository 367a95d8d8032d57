"""Domain models package.

This package contains domain model classes for Gavel.
"""

from .auction import (OPEN_STATUSES, TERMINAL_STATUSES, Auction, AuctionStatus,
                      Bid, ensure_utc, parse_datetime)
from .identity import Requester, Role
from .product import ProductRecord

__all__ = [
    "Auction",
    "AuctionStatus",
    "Bid",
    "OPEN_STATUSES",
    "ProductRecord",
    "Requester",
    "Role",
    "TERMINAL_STATUSES",
    "ensure_utc",
    "parse_datetime",
]
