from .auctions import AuctionRepository, DuplicateAuctionError, StaleAuctionError
from .orders import OrderRepository
from .products import DuplicateProductError, ProductRepository
from .users import DuplicateUserError, UserRepository

__all__ = [
    "AuctionRepository",
    "DuplicateAuctionError",
    "DuplicateProductError",
    "DuplicateUserError",
    "OrderRepository",
    "ProductRepository",
    "StaleAuctionError",
    "UserRepository",
]
