"""Auction domain model with business logic."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class AuctionStatus(str, Enum):
    """Enumeration of auction lifecycle states."""

    PENDING = "Pending"
    UPCOMING = "Upcoming"
    ACTIVE = "Active"
    ENDED = "Ended"
    SOLD = "Sold"
    EXPIRED = "Expired"
    CANCELLED = "Cancelled"

    @property
    def is_terminal(self) -> bool:
        """Terminal states are never changed by status derivation."""
        return self in TERMINAL_STATUSES

    @property
    def is_open(self) -> bool:
        """Open states block a second auction on the same product."""
        return self in OPEN_STATUSES

    @classmethod
    def from_string(cls, value: str | None) -> "AuctionStatus":
        """Convert a string to an AuctionStatus, case-insensitively."""
        if not value:
            raise ValueError("Auction status must not be empty")
        normalized = value.strip().lower()
        for status in cls:
            if status.value.lower() == normalized:
                return status
        raise ValueError(f"Unknown auction status: {value!r}")


TERMINAL_STATUSES = frozenset(
    {AuctionStatus.CANCELLED, AuctionStatus.SOLD, AuctionStatus.EXPIRED}
)
OPEN_STATUSES = frozenset(
    {AuctionStatus.PENDING, AuctionStatus.UPCOMING, AuctionStatus.ACTIVE}
)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: object) -> datetime | None:
    """Parse an ISO-8601 string (``Z`` suffix allowed) into an aware datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        try:
            return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


@dataclass(frozen=True)
class Bid:
    """A single bid. Immutable once appended to an auction."""

    bidder_id: str
    amount: float
    timestamp: datetime

    @classmethod
    def from_dict(cls, data: dict) -> "Bid":
        timestamp = parse_datetime(data.get("timestamp"))
        if timestamp is None:
            raise ValueError("Bid record has no valid timestamp")
        return cls(
            bidder_id=str(data["bidder_id"]),
            amount=float(data["amount"]),
            timestamp=timestamp,
        )


@dataclass
class Auction:
    """Domain model representing a timed auction for one product.

    ``bids`` is a tuple so the history can only grow through
    :meth:`append_bid`; existing entries are never replaced.
    """

    id: str
    product_id: str
    seller_id: str
    start_time: datetime
    end_time: datetime
    starting_bid: float
    current_highest_bid: float
    status: AuctionStatus = AuctionStatus.PENDING
    reserve_price: float | None = None
    buy_now_price: float | None = None
    current_highest_bidder: str | None = None
    bids: tuple[Bid, ...] = field(default_factory=tuple)
    winner: str | None = None
    view_count: int = 0
    version: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def has_bids(self) -> bool:
        return bool(self.bids)

    @property
    def effective_reserve(self) -> float:
        """Reserve price, defaulting to zero when none is set."""
        return self.reserve_price if self.reserve_price is not None else 0.0

    @property
    def reserve_met(self) -> bool:
        return self.current_highest_bid >= self.effective_reserve

    def derive_status(self, now: datetime) -> AuctionStatus:
        """Return the status this auction should have at ``now``.

        Pure: the auction is not modified.
        """
        if self.status.is_terminal:
            return self.status
        now = ensure_utc(now)
        if now < self.start_time:
            return AuctionStatus.UPCOMING
        if now < self.end_time:
            return AuctionStatus.ACTIVE
        if self.current_highest_bidder is not None and self.reserve_met:
            return AuctionStatus.ENDED
        return AuctionStatus.EXPIRED

    def refresh_status(self, now: datetime) -> AuctionStatus:
        """Apply :meth:`derive_status` and return the resulting status."""
        self.status = self.derive_status(now)
        return self.status

    def append_bid(self, bid: Bid) -> None:
        """Append ``bid`` to the history and make it the leading bid."""
        self.bids = self.bids + (bid,)
        self.current_highest_bid = bid.amount
        self.current_highest_bidder = bid.bidder_id

    @classmethod
    def from_dict(cls, data: dict, bids: list[dict] | None = None) -> "Auction":
        """Create an Auction from a dictionary (e.g., from database row)."""
        start_time = parse_datetime(data.get("start_time"))
        end_time = parse_datetime(data.get("end_time"))
        if start_time is None or end_time is None:
            raise ValueError(f"Auction {data.get('id')!r} has invalid timing")

        def optional_float(value: object) -> float | None:
            return float(value) if value is not None else None

        return cls(
            id=str(data["id"]),
            product_id=str(data["product_id"]),
            seller_id=str(data["seller_id"]),
            start_time=start_time,
            end_time=end_time,
            starting_bid=float(data["starting_bid"]),
            current_highest_bid=float(data["current_highest_bid"]),
            status=AuctionStatus.from_string(data.get("status")),
            reserve_price=optional_float(data.get("reserve_price")),
            buy_now_price=optional_float(data.get("buy_now_price")),
            current_highest_bidder=data.get("current_highest_bidder"),
            bids=tuple(Bid.from_dict(row) for row in bids or []),
            winner=data.get("winner"),
            view_count=int(data.get("view_count") or 0),
            version=int(data.get("version") or 0),
            created_at=parse_datetime(data.get("created_at")),
            updated_at=parse_datetime(data.get("updated_at")),
        )


__all__ = [
    "Auction",
    "AuctionStatus",
    "Bid",
    "OPEN_STATUSES",
    "TERMINAL_STATUSES",
    "ensure_utc",
    "parse_datetime",
]
