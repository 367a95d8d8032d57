"""Auction engine: validation and state transitions for a single auction.

The engine never touches storage. Every operation receives the current
auction record (plus whatever collaborator data it needs), validates the
request, mutates the record in memory and returns it for the caller to
persist. Status is time-derived, so each operation refreshes it first.
"""

from __future__ import annotations

import math
import uuid
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any

from .errors import (ConflictError, ForbiddenError, InvalidArgumentError,
                     InvalidStateError, NotFoundError,
                     PreconditionFailedError)
from .models import (Auction, AuctionStatus, Bid, ProductRecord, Requester,
                     ensure_utc)

DEFAULT_MIN_INCREMENT_RATIO = 0.01
DEFAULT_ANTI_SNIPING_WINDOW = timedelta(minutes=5)

UPDATABLE_FIELDS = frozenset(
    {
        "start_time",
        "end_time",
        "starting_bid",
        "reserve_price",
        "buy_now_price",
        "product_id",
    }
)
# Fields frozen once the first bid has been placed.
_BID_LOCKED_FIELDS = ("starting_bid", "product_id", "reserve_price")
# Fields frozen once bids exist and the auction is no longer upcoming.
_SCHEDULE_LOCKED_FIELDS = ("start_time", "end_time", "starting_bid")


@dataclass(frozen=True)
class EngineRules:
    """Business constants applied by the engine."""

    min_increment_ratio: float = DEFAULT_MIN_INCREMENT_RATIO
    anti_sniping_window: timedelta = DEFAULT_ANTI_SNIPING_WINDOW


def cents_up(amount: float) -> float:
    """Round ``amount`` up to whole cents, e.g. a minimum of 102.004 shows as 102.01."""
    return math.ceil(round(amount * 100, 6)) / 100


def _validate_prices(
    *,
    starting_bid: float | None = None,
    reserve_price: float | None = None,
    buy_now_price: float | None = None,
) -> None:
    if starting_bid is not None and not (
        math.isfinite(starting_bid) and starting_bid > 0
    ):
        raise InvalidArgumentError(
            "Starting bid must be a positive number.", starting_bid=starting_bid
        )
    if reserve_price is not None and not (
        math.isfinite(reserve_price) and reserve_price >= 0
    ):
        raise InvalidArgumentError(
            "Reserve price must be a non-negative number.",
            reserve_price=reserve_price,
        )
    if buy_now_price is not None and not (
        math.isfinite(buy_now_price) and buy_now_price > 0
    ):
        raise InvalidArgumentError(
            "Buy Now price must be a positive number.", buy_now_price=buy_now_price
        )


def _validate_timing(start_time: datetime, end_time: datetime) -> None:
    if end_time <= start_time:
        raise InvalidArgumentError(
            "End time must be after start time.",
            start_time=start_time.isoformat(),
            end_time=end_time.isoformat(),
        )


class AuctionEngine:
    """Stateless rule set for the auction lifecycle.

    Example usage:
        engine = AuctionEngine()
        auction = engine.create(product, start, end, 100.0, requester=seller,
                                open_auction_exists=False, now=now)
        engine.place_bid(auction, "buyer-1", 101.0, now=now)
    """

    def __init__(self, rules: EngineRules | None = None) -> None:
        self.rules = rules or EngineRules()

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def refresh_status(self, auction: Auction, now: datetime) -> AuctionStatus:
        """Re-derive the time-based status of ``auction`` at ``now``.

        Idempotent, and a no-op once the auction is in a terminal state.
        """
        return auction.refresh_status(now)

    def minimum_next_bid(self, auction: Auction) -> float:
        """Return the lowest amount the next bid may have.

        The value is exact; round it only for display.
        """
        if not auction.has_bids:
            # Any amount strictly above the starting bid is accepted.
            return auction.current_highest_bid
        increment = self.rules.min_increment_ratio * auction.starting_bid
        return auction.current_highest_bid + increment

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create(
        self,
        product: ProductRecord | None,
        start_time: datetime,
        end_time: datetime,
        starting_bid: float,
        *,
        requester: Requester,
        open_auction_exists: bool,
        now: datetime,
        reserve_price: float | None = None,
        buy_now_price: float | None = None,
        product_id: str | None = None,
        auction_id: str | None = None,
    ) -> Auction:
        """Build a new auction for ``product``.

        ``open_auction_exists`` reports whether the product already has an
        auction in a Pending, Upcoming or Active state.
        """
        if product is None:
            raise NotFoundError("Product not found.", product_id=product_id)
        if not requester.can_manage(product.seller_id):
            raise ForbiddenError(
                "You can only create auctions for your own products.",
                product_id=product.id,
            )
        if open_auction_exists:
            raise ConflictError(
                "This product is already in an active or upcoming auction.",
                product_id=product.id,
            )
        if not product.in_stock:
            raise ConflictError(
                "Product is out of stock and cannot be auctioned.",
                product_id=product.id,
                stock=product.stock,
            )

        start_time = ensure_utc(start_time)
        end_time = ensure_utc(end_time)
        _validate_timing(start_time, end_time)
        _validate_prices(
            starting_bid=starting_bid,
            reserve_price=reserve_price,
            buy_now_price=buy_now_price,
        )

        now = ensure_utc(now)
        auction = Auction(
            id=auction_id or uuid.uuid4().hex,
            product_id=product.id,
            seller_id=product.seller_id,
            start_time=start_time,
            end_time=end_time,
            starting_bid=float(starting_bid),
            current_highest_bid=float(starting_bid),
            reserve_price=reserve_price,
            buy_now_price=buy_now_price,
            created_at=now,
            updated_at=now,
        )
        auction.refresh_status(now)
        return auction

    def place_bid(
        self, auction: Auction, bidder_id: str, amount: float, *, now: datetime
    ) -> Auction:
        """Validate and append a bid, extending the end time near the close."""
        now = ensure_utc(now)
        status = auction.refresh_status(now)
        if status != AuctionStatus.ACTIVE:
            raise InvalidStateError(
                f"Auction is not active. Current status: {status.value}",
                status=status.value,
            )
        if bidder_id == auction.seller_id:
            raise ForbiddenError("You cannot bid on your own auction.")

        current = auction.current_highest_bid
        minimum = self.minimum_next_bid(auction)
        if not math.isfinite(amount) or amount <= current:
            raise InvalidArgumentError(
                f"Your bid must be higher than the current bid of {current:.2f}.",
                current_highest_bid=current,
                minimum_next_bid=minimum,
            )
        if auction.has_bids and amount < minimum:
            raise InvalidArgumentError(
                f"Your bid is not high enough. Minimum next bid is {cents_up(minimum):.2f}.",
                current_highest_bid=current,
                minimum_next_bid=minimum,
            )

        auction.append_bid(Bid(bidder_id=bidder_id, amount=float(amount), timestamp=now))

        window = self.rules.anti_sniping_window
        if auction.end_time - now < window:
            auction.end_time = now + window
        auction.updated_at = now
        return auction

    def update_fields(
        self,
        auction: Auction,
        updates: Mapping[str, Any],
        *,
        requester: Requester,
        now: datetime,
    ) -> Auction:
        """Apply permitted field changes and re-derive the status.

        A key present in ``updates`` counts as touching that field, even when
        its value is ``None`` (which clears an optional price).
        """
        if not requester.can_manage(auction.seller_id):
            raise ForbiddenError("User not authorized to update this auction.")

        unknown = sorted(set(updates) - UPDATABLE_FIELDS)
        if unknown:
            raise InvalidArgumentError(
                f"Unknown auction fields: {', '.join(unknown)}", fields=unknown
            )

        now = ensure_utc(now)
        status = auction.refresh_status(now)
        if auction.has_bids:
            locked = [name for name in _BID_LOCKED_FIELDS if name in updates]
            if locked:
                raise InvalidStateError(
                    "Cannot change starting bid, product, or reserve price "
                    "after bids have been placed.",
                    status=status.value,
                    fields=locked,
                )
            if status != AuctionStatus.UPCOMING:
                locked = [name for name in _SCHEDULE_LOCKED_FIELDS if name in updates]
                if locked:
                    raise InvalidStateError(
                        "Cannot change timing or starting bid for an auction "
                        "with bids. Consider cancelling and recreating.",
                        status=status.value,
                        fields=locked,
                    )
        if "product_id" in updates:
            raise InvalidArgumentError(
                "The product of an auction cannot be changed. "
                "Cancel the auction and create a new one.",
                product_id=auction.product_id,
            )

        for name in ("start_time", "end_time"):
            if name in updates and updates[name] is None:
                raise InvalidArgumentError(
                    "Start and end time cannot be removed.", fields=[name]
                )
        start_time = ensure_utc(updates.get("start_time", auction.start_time))
        end_time = ensure_utc(updates.get("end_time", auction.end_time))
        _validate_timing(start_time, end_time)

        starting_bid = updates.get("starting_bid", auction.starting_bid)
        if starting_bid is None:
            raise InvalidArgumentError("Starting bid cannot be removed.")
        reserve_price = updates.get("reserve_price", auction.reserve_price)
        buy_now_price = updates.get("buy_now_price", auction.buy_now_price)
        _validate_prices(
            starting_bid=starting_bid,
            reserve_price=reserve_price,
            buy_now_price=buy_now_price,
        )

        auction.start_time = start_time
        auction.end_time = end_time
        auction.reserve_price = reserve_price
        auction.buy_now_price = buy_now_price
        if float(starting_bid) != auction.starting_bid:
            auction.starting_bid = float(starting_bid)
            # Only reachable without bids: the leading amount follows the start.
            auction.current_highest_bid = auction.starting_bid
        auction.updated_at = now
        auction.refresh_status(now)
        return auction

    def cancel(
        self, auction: Auction, *, requester: Requester, now: datetime
    ) -> Auction:
        """Move the auction to the terminal Cancelled state."""
        if not requester.can_manage(auction.seller_id):
            raise ForbiddenError("User not authorized to cancel this auction.")

        now = ensure_utc(now)
        status = auction.refresh_status(now)
        if status in (
            AuctionStatus.ENDED,
            AuctionStatus.SOLD,
            AuctionStatus.EXPIRED,
            AuctionStatus.CANCELLED,
        ):
            raise InvalidStateError(
                f"Cannot cancel auction with status: {status.value}",
                status=status.value,
            )
        if status == AuctionStatus.ACTIVE and auction.has_bids and not requester.is_admin:
            raise ForbiddenError(
                "Cannot cancel an active auction with bids. Contact admin if necessary.",
                status=status.value,
                bid_count=len(auction.bids),
            )

        auction.status = AuctionStatus.CANCELLED
        auction.updated_at = now
        return auction

    def settle(
        self, auction: Auction, *, requester: Requester, now: datetime
    ) -> Auction:
        """Record the winner of an ended auction.

        When the reserve is unmet the auction is moved to Expired before
        :class:`PreconditionFailedError` is raised; callers persist it.
        """
        if not requester.can_manage(auction.seller_id):
            raise ForbiddenError("Not authorized to process this auction.")

        now = ensure_utc(now)
        status = auction.refresh_status(now)
        if status != AuctionStatus.ENDED:
            raise InvalidStateError(
                f"Auction cannot be processed. Status: {status.value}. It must be 'Ended'.",
                status=status.value,
            )
        if auction.current_highest_bidder is None:
            raise InvalidStateError(
                "Auction ended with no bids or no winner.", status=status.value
            )
        # Refresh already expires an unmet reserve; this guards records whose
        # stored status disagrees with their bids.
        if auction.reserve_price is not None and not auction.reserve_met:
            auction.status = AuctionStatus.EXPIRED
            auction.updated_at = now
            raise PreconditionFailedError(
                "Auction reserve price not met.",
                current_highest_bid=auction.current_highest_bid,
                reserve_price=auction.reserve_price,
            )

        auction.winner = auction.current_highest_bidder
        auction.status = AuctionStatus.SOLD
        auction.updated_at = now
        return auction

    def sweep_expired(
        self, auctions: Iterable[Auction], *, now: datetime
    ) -> list[Auction]:
        """Refresh every Upcoming/Active auction whose end time has passed.

        Returns the auctions whose status changed, for the caller to persist.
        """
        now = ensure_utc(now)
        changed: list[Auction] = []
        for auction in auctions:
            if auction.status not in (AuctionStatus.UPCOMING, AuctionStatus.ACTIVE):
                continue
            if auction.end_time > now:
                continue
            previous = auction.status
            if auction.refresh_status(now) != previous:
                auction.updated_at = now
                changed.append(auction)
        return changed


__all__ = [
    "AuctionEngine",
    "cents_up",
    "DEFAULT_ANTI_SNIPING_WINDOW",
    "DEFAULT_MIN_INCREMENT_RATIO",
    "EngineRules",
    "UPDATABLE_FIELDS",
]
