"""Auction service: persistence, locking and retries around the engine.

Every mutation runs as read, validate, write while holding a per-auction
lock. The write is a compare-and-swap on the auction's ``version`` so that
writers in other processes sharing the database are detected too; a lost
swap re-reads the auction and re-validates the same request against the
fresh state, backing off exponentially.
"""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable

from gavel.app.config import AuctionSettings
from gavel.domain.engine import AuctionEngine
from gavel.domain.errors import (AuctionError, ConflictError, ForbiddenError,
                                 InvalidArgumentError, NotFoundError,
                                 PreconditionFailedError)
from gavel.domain.models import (OPEN_STATUSES, Auction, AuctionStatus, Bid,
                                 Requester, ensure_utc)
from gavel.infrastructure.db.repositories import (AuctionRepository,
                                                  DuplicateAuctionError,
                                                  ProductRepository,
                                                  StaleAuctionError)
from gavel.infrastructure.observability import (log_context, log_exception,
                                                record_bid,
                                                record_settlement,
                                                record_status_transition,
                                                record_sweep,
                                                record_write_retry)

from .base import BaseService, ConnectionFactory
from .dto import AuctionDTO, SweepResultDTO
from .orders import OrderPlacer, OrderService

Clock = Callable[[], datetime]

DEFAULT_LIST_STATUSES = (AuctionStatus.ACTIVE, AuctionStatus.UPCOMING)
MAX_PAGE_SIZE = 100
_INITIAL_BACKOFF_SECONDS = 0.01


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class KeyedLocks:
    """One mutex per key, dropped again once nobody holds or waits on it."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[str, list[Any]] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            entry = self._entries.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._entries[key]

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)


# Shared by every service instance in the process.
_default_locks = KeyedLocks()


@dataclass
class AuctionPage:
    items: list[Auction] = field(default_factory=list)
    total: int = 0
    page: int = 1
    limit: int = 10

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0


class AuctionService(BaseService):
    """Runs auction operations against SQLite.

    Example usage:
        service = AuctionService.from_sqlite_path("gavel.db")
        auction = service.create(seller, product_id="p-1", start_time=start,
                                 end_time=end, starting_bid=100.0)
        service.place_bid(auction.id, buyer, 101.0)
    """

    def __init__(
        self,
        connection_factory: ConnectionFactory,
        *,
        settings: AuctionSettings | None = None,
        clock: Clock | None = None,
        order_placer: OrderPlacer | None = None,
        locks: KeyedLocks | None = None,
    ) -> None:
        super().__init__(connection_factory)
        self.settings = settings or AuctionSettings()
        self.engine = AuctionEngine(self.settings.to_rules())
        self._clock = clock or utcnow
        self._order_placer = order_placer or OrderService(connection_factory)
        self._locks = locks if locks is not None else _default_locks

    def now(self) -> datetime:
        return ensure_utc(self._clock())

    def describe(self, auction: Auction) -> AuctionDTO:
        return AuctionDTO.from_auction(
            auction, minimum_next_bid=self.engine.minimum_next_bid(auction)
        )

    # ------------------------------------------------------------------
    # Creation and reads
    # ------------------------------------------------------------------

    def create(
        self,
        requester: Requester,
        *,
        product_id: str,
        start_time: datetime,
        end_time: datetime,
        starting_bid: float,
        reserve_price: float | None = None,
        buy_now_price: float | None = None,
    ) -> Auction:
        with self._locks.hold(f"product:{product_id}"), log_context(
            product_id=product_id, requester=requester.user_id
        ):
            with self._connection_factory() as conn:
                product = ProductRepository(conn).find_by_id(product_id)
                repo = AuctionRepository(conn)
                now = self.now()
                open_exists = self._product_has_open_auction(repo, product_id, now)
                try:
                    auction = self.engine.create(
                        product,
                        start_time,
                        end_time,
                        starting_bid,
                        requester=requester,
                        open_auction_exists=open_exists,
                        now=now,
                        reserve_price=reserve_price,
                        buy_now_price=buy_now_price,
                        product_id=product_id,
                    )
                    repo.insert(auction)
                except DuplicateAuctionError as exc:
                    self._logger.warning("Lost race creating auction: %s", exc)
                    raise ConflictError(
                        "This product is already in an active or upcoming auction.",
                        product_id=product_id,
                    ) from exc
                except AuctionError as exc:
                    self._logger.warning("Auction creation rejected: %s", exc.message)
                    raise
            with log_context(auction_id=auction.id):
                self._logger.info(
                    "Auction created with status %s, starting bid %.2f",
                    auction.status.value,
                    auction.starting_bid,
                )
            return auction

    def get(self, auction_id: str, *, count_view: bool = True) -> Auction:
        """Fetch an auction, persisting any status change the clock implies."""
        if count_view:
            with self._connection_factory() as conn:
                AuctionRepository(conn).increment_view_count(auction_id)
        return self._mutate(
            auction_id,
            "read",
            lambda auction, now: self.engine.refresh_status(auction, now),
            persist_unchanged=False,
        )

    def list_auctions(
        self,
        *,
        statuses: Iterable[AuctionStatus] | None = DEFAULT_LIST_STATUSES,
        seller_id: str | None = None,
        page: int = 1,
        limit: int = 10,
        descending: bool = False,
    ) -> AuctionPage:
        """Page through auctions ordered by end time.

        Statuses are refreshed for display only; nothing is written.
        """
        if page < 1:
            raise InvalidArgumentError("Page must be 1 or greater.", page=page)
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise InvalidArgumentError(
                f"Limit must be between 1 and {MAX_PAGE_SIZE}.", limit=limit
            )
        status_set = list(statuses) if statuses is not None else None
        with self._connection_factory() as conn:
            repo = AuctionRepository(conn)
            total = repo.count_where(statuses=status_set, seller_id=seller_id)
            items = repo.find_where(
                statuses=status_set,
                seller_id=seller_id,
                descending=descending,
                limit=limit,
                offset=(page - 1) * limit,
            )
        now = self.now()
        for auction in items:
            auction.refresh_status(now)
        return AuctionPage(items=items, total=total, page=page, limit=limit)

    def list_mine(
        self,
        requester: Requester,
        *,
        statuses: Iterable[AuctionStatus] | None = None,
        page: int = 1,
        limit: int = 10,
        descending: bool = False,
    ) -> AuctionPage:
        """Auctions of the requester; admins see everybody's."""
        return self.list_auctions(
            statuses=statuses,
            seller_id=None if requester.is_admin else requester.user_id,
            page=page,
            limit=limit,
            descending=descending,
        )

    def list_bids(self, auction_id: str) -> list[Bid]:
        """Bid history, newest first."""
        with self._connection_factory() as conn:
            repo = AuctionRepository(conn)
            if repo.get(auction_id) is None:
                raise NotFoundError("Auction not found.", auction_id=auction_id)
            return repo.list_bids(auction_id, newest_first=True)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def place_bid(self, auction_id: str, requester: Requester, amount: float) -> Auction:
        with log_context(bidder_id=requester.user_id):
            try:
                auction = self._mutate(
                    auction_id,
                    "bid",
                    lambda a, now: self.engine.place_bid(
                        a, requester.user_id, float(amount), now=now
                    ),
                )
            except AuctionError as exc:
                record_bid(exc.code)
                self._logger.warning("Bid of %.2f rejected: %s", amount, exc.message)
                raise
            record_bid("accepted")
            self._logger.info(
                "Bid of %.2f accepted on auction %s, ends %s",
                amount,
                auction_id,
                auction.end_time.isoformat(),
            )
            return auction

    def update(
        self, auction_id: str, requester: Requester, updates: Mapping[str, Any]
    ) -> Auction:
        auction = self._mutate(
            auction_id,
            "update",
            lambda a, now: self.engine.update_fields(
                a, updates, requester=requester, now=now
            ),
        )
        self._logger.info("Auction %s updated: %s", auction_id, ", ".join(sorted(updates)))
        return auction

    def cancel(self, auction_id: str, requester: Requester) -> Auction:
        auction = self._mutate(
            auction_id,
            "cancel",
            lambda a, now: self.engine.cancel(a, requester=requester, now=now),
        )
        self._logger.info("Auction %s cancelled by %s", auction_id, requester.user_id)
        return auction

    def settle(self, auction_id: str, requester: Requester) -> Auction:
        """Settle an ended auction and hand the sale to the order placer."""
        try:
            auction = self._mutate(
                auction_id,
                "settle",
                lambda a, now: self.engine.settle(a, requester=requester, now=now),
            )
        except PreconditionFailedError:
            record_settlement("reserve_not_met")
            self._logger.info("Auction %s expired at settlement: reserve not met", auction_id)
            raise
        except AuctionError as exc:
            record_settlement(exc.code)
            raise
        record_settlement("sold")
        self._logger.info(
            "Auction %s sold to %s for %.2f",
            auction_id,
            auction.winner,
            auction.current_highest_bid,
        )
        self._notify_order_placer(auction)
        return auction

    def sweep_expired(self, requester: Requester | None = None) -> SweepResultDTO:
        """Close every Upcoming or Active auction whose end time has passed."""
        if requester is not None and not requester.is_admin:
            raise ForbiddenError("Only admins may run the expiry sweep.")
        result = SweepResultDTO()
        started = time.perf_counter()
        now = self.now()
        with self._connection_factory() as conn:
            candidates = AuctionRepository(conn).find_where(
                statuses=(AuctionStatus.UPCOMING, AuctionStatus.ACTIVE),
                ends_at_or_before=now,
            )
        result.checked = len(candidates)
        for candidate in candidates:
            auction = self._mutate(
                candidate.id,
                "sweep",
                lambda a, at: self.engine.sweep_expired([a], now=at),
                persist_unchanged=False,
            )
            if auction.status == candidate.status:
                continue
            with log_context(auction_id=auction.id):
                if auction.status == AuctionStatus.ENDED:
                    result.ended.append(auction.id)
                    self._logger.info(
                        "Auction ended; leading bidder %s at %.2f",
                        auction.current_highest_bidder,
                        auction.current_highest_bid,
                    )
                elif auction.status == AuctionStatus.EXPIRED:
                    result.expired.append(auction.id)
                    self._logger.info("Auction expired without a qualifying bid")
        record_sweep(len(result.ended) + len(result.expired), time.perf_counter() - started)
        self._logger.info(
            "Sweep checked %d auctions: %d ended, %d expired",
            result.checked,
            len(result.ended),
            len(result.expired),
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _mutate(
        self,
        auction_id: str,
        operation: str,
        mutate: Callable[[Auction, datetime], object],
        *,
        persist_unchanged: bool = True,
    ) -> Auction:
        """Read, apply ``mutate`` and write back under the per-auction lock.

        A rejection raised by ``mutate`` is re-raised after persisting any
        status change the refresh or the engine made before rejecting, so
        that e.g. an unmet reserve leaves the auction Expired.
        """
        attempts = self.settings.bid_retry_attempts
        delay = _INITIAL_BACKOFF_SECONDS
        with self._locks.hold(auction_id), log_context(
            auction_id=auction_id, operation=operation
        ):
            for attempt in range(1, attempts + 1):
                with self._connection_factory() as conn:
                    repo = AuctionRepository(conn)
                    auction = repo.get(auction_id)
                    if auction is None:
                        raise NotFoundError("Auction not found.", auction_id=auction_id)
                    previous = auction.status
                    rejection: AuctionError | None = None
                    try:
                        mutate(auction, self.now())
                    except AuctionError as exc:
                        if auction.status == previous:
                            raise
                        rejection = exc
                    changed = auction.status != previous
                    if not changed and not persist_unchanged and rejection is None:
                        return auction
                    try:
                        repo.save(auction)
                    except StaleAuctionError:
                        record_write_retry(operation)
                        self._logger.warning(
                            "Version conflict on attempt %d of %d", attempt, attempts
                        )
                        if attempt == attempts:
                            break
                        time.sleep(delay)
                        delay *= 2
                        continue
                    except DuplicateAuctionError as exc:
                        raise ConflictError(
                            "This product is already in an active or upcoming auction.",
                            product_id=auction.product_id,
                        ) from exc
                if changed:
                    record_status_transition(previous.value, auction.status.value)
                    self._logger.info(
                        "Status %s -> %s", previous.value, auction.status.value
                    )
                if rejection is not None:
                    raise rejection
                return auction
        raise ConflictError(
            "The auction was modified concurrently. Please retry.",
            auction_id=auction_id,
            attempts=attempts,
        )

    def _product_has_open_auction(
        self, repo: AuctionRepository, product_id: str, now: datetime
    ) -> bool:
        """Refresh the product's open auctions and report whether one remains."""
        still_open = False
        for auction in repo.find_where(statuses=OPEN_STATUSES, product_id=product_id):
            previous = auction.status
            if auction.refresh_status(now) != previous:
                try:
                    repo.save(auction)
                except StaleAuctionError:
                    # Another writer got there first; trust the stored row.
                    current = repo.get(auction.id)
                    if current is not None:
                        auction = current
                        auction.refresh_status(now)
                else:
                    record_status_transition(previous.value, auction.status.value)
            still_open = still_open or auction.status.is_open
        return still_open

    def _notify_order_placer(self, auction: Auction) -> None:
        if auction.winner is None:
            return
        try:
            self._order_placer(
                auction.id, auction.product_id, auction.winner, auction.current_highest_bid
            )
        except Exception as exc:
            log_exception(
                self._logger,
                "Order creation failed after settlement",
                exc,
                auction_id=auction.id,
            )


__all__ = [
    "AuctionPage",
    "AuctionService",
    "DEFAULT_LIST_STATUSES",
    "KeyedLocks",
    "MAX_PAGE_SIZE",
    "utcnow",
]
