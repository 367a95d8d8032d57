"""
Centralized DTOs and input/output models for gavel services.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from gavel.domain.engine import cents_up
from gavel.domain.models import Auction, Bid, ProductRecord

# --- Event Publishing Types ---
EventPayload = dict[str, object]
EventPublisher = Callable[[EventPayload], Awaitable[None]]


async def noop_event_publisher(_: EventPayload) -> None:
    """Default publisher for callers that do not consume events."""


# --- Bid DTOs ---
class BidDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    bidder_id: str
    amount: float
    timestamp: datetime

    @classmethod
    def from_bid(cls, bid: Bid) -> "BidDTO":
        return cls(bidder_id=bid.bidder_id, amount=bid.amount, timestamp=bid.timestamp)


class BidCreateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: float


# --- Auction DTOs ---
class AuctionDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    product_id: str
    seller_id: str
    start_time: datetime
    end_time: datetime
    starting_bid: float
    current_highest_bid: float
    current_highest_bidder: str | None = None
    minimum_next_bid: float
    reserve_price: float | None = None
    reserve_met: bool = False
    buy_now_price: float | None = None
    status: str
    winner: str | None = None
    bid_count: int = 0
    view_count: int = 0
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_auction(cls, auction: Auction, *, minimum_next_bid: float) -> "AuctionDTO":
        return cls(
            id=auction.id,
            product_id=auction.product_id,
            seller_id=auction.seller_id,
            start_time=auction.start_time,
            end_time=auction.end_time,
            starting_bid=auction.starting_bid,
            current_highest_bid=auction.current_highest_bid,
            current_highest_bidder=auction.current_highest_bidder,
            minimum_next_bid=cents_up(minimum_next_bid),
            reserve_price=auction.reserve_price,
            reserve_met=auction.has_bids and auction.reserve_met,
            buy_now_price=auction.buy_now_price,
            status=auction.status.value,
            winner=auction.winner,
            bid_count=len(auction.bids),
            view_count=auction.view_count,
            version=auction.version,
            created_at=auction.created_at,
            updated_at=auction.updated_at,
        )


class AuctionCreateDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    product_id: str
    start_time: datetime
    end_time: datetime
    starting_bid: float
    reserve_price: float | None = None
    buy_now_price: float | None = None


class AuctionUpdateDTO(BaseModel):
    """Partial update. Only fields present in the request are applied;
    an explicit ``null`` clears an optional price."""

    model_config = ConfigDict(extra="forbid")

    start_time: datetime | None = None
    end_time: datetime | None = None
    starting_bid: float | None = None
    reserve_price: float | None = None
    buy_now_price: float | None = None
    product_id: str | None = None

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)


class AuctionListDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    items: list[AuctionDTO] = Field(default_factory=list)
    total: int
    page: int
    limit: int
    total_pages: int


class SweepResultDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ended: list[str] = Field(default_factory=list)
    expired: list[str] = Field(default_factory=list)
    checked: int = 0


# --- Catalog DTOs ---
class UserDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    role: str
    name: str | None = None


class ProductDTO(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str
    seller_id: str
    stock: int
    name: str | None = None

    @classmethod
    def from_record(cls, record: ProductRecord) -> "ProductDTO":
        return cls(
            id=record.id, seller_id=record.seller_id, stock=record.stock, name=record.name
        )


__all__ = [
    "AuctionCreateDTO",
    "AuctionDTO",
    "AuctionListDTO",
    "AuctionUpdateDTO",
    "BidCreateDTO",
    "BidDTO",
    "EventPayload",
    "EventPublisher",
    "ProductDTO",
    "SweepResultDTO",
    "UserDTO",
    "noop_event_publisher",
]
