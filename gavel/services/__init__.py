"""Service layer modules for gavel."""

from .auctions import AuctionPage, AuctionService, KeyedLocks
from .catalog import (ProductAlreadyExistsError, ProductService,
                      UserAlreadyExistsError, UserService)
from .orders import OrderService
from .sweeper import SweepRunner, SweepRunnerState

__all__ = [
    "AuctionPage",
    "AuctionService",
    "KeyedLocks",
    "OrderService",
    "ProductAlreadyExistsError",
    "ProductService",
    "SweepRunner",
    "SweepRunnerState",
    "UserAlreadyExistsError",
    "UserService",
]
