from __future__ import annotations

import logging
import threading
from datetime import timedelta

import pytest

from gavel.app.config import AuctionSettings
from gavel.domain.errors import (ConflictError, ForbiddenError,
                                 InvalidArgumentError, InvalidStateError,
                                 NotFoundError)
from gavel.domain.models import AuctionStatus, Requester, Role
from gavel.infrastructure.db import get_connection
from gavel.infrastructure.db.repositories import (AuctionRepository,
                                                  OrderRepository,
                                                  ProductRepository)
from gavel.infrastructure.observability import get_metrics_summary
from gavel.services import AuctionService, KeyedLocks

SELLER = Requester("seller", Role.SELLER)
OTHER_SELLER = Requester("other-seller", Role.SELLER)
BUYER = Requester("buyer", Role.BUYER)
BUYER_2 = Requester("buyer-2", Role.BUYER)
ADMIN = Requester("admin", Role.ADMIN)


def create_auction(service: AuctionService, product_id: str = "p-1", **kwargs):
    now = service.now()
    params = dict(
        product_id=product_id,
        start_time=now - timedelta(minutes=1),
        end_time=now + timedelta(hours=1),
        starting_bid=100.0,
    )
    params.update(kwargs)
    return service.create(SELLER, **params)


def stored(db_path, auction_id):
    with get_connection(db_path) as conn:
        return AuctionRepository(conn).get(auction_id)


class TestCreateAndRead:
    def test_create_persists_auction(self, service, db_path):
        auction = create_auction(service, reserve_price=150.0)

        saved = stored(db_path, auction.id)
        assert saved is not None
        assert saved.status == AuctionStatus.ACTIVE
        assert saved.reserve_price == 150.0
        assert saved.seller_id == "seller"
        assert saved.version == 0

    def test_unknown_product(self, service):
        with pytest.raises(NotFoundError):
            create_auction(service, product_id="nope")

    def test_out_of_stock_product(self, service):
        with pytest.raises(ConflictError):
            create_auction(service, product_id="p-empty")

    def test_other_seller_forbidden(self, service, clock):
        with pytest.raises(ForbiddenError):
            service.create(
                OTHER_SELLER,
                product_id="p-1",
                start_time=clock.now,
                end_time=clock.now + timedelta(hours=1),
                starting_bid=10.0,
            )

    def test_second_open_auction_conflicts_until_first_ends(self, service, clock, db_path):
        first = create_auction(service)
        with pytest.raises(ConflictError):
            create_auction(service)

        clock.advance(hours=2)
        second = create_auction(service)

        assert stored(db_path, first.id).status == AuctionStatus.EXPIRED
        assert second.status == AuctionStatus.ACTIVE

    def test_get_counts_views_without_bumping_version(self, service):
        auction = create_auction(service)

        service.get(auction.id)
        fetched = service.get(auction.id)

        assert fetched.view_count == 2
        assert fetched.version == 0

    def test_get_persists_status_change(self, service, clock, db_path):
        auction = create_auction(
            service,
            start_time=clock.now + timedelta(minutes=10),
            end_time=clock.now + timedelta(hours=1),
        )
        assert auction.status == AuctionStatus.UPCOMING

        clock.advance(minutes=15)
        assert service.get(auction.id).status == AuctionStatus.ACTIVE
        assert stored(db_path, auction.id).status == AuctionStatus.ACTIVE

    def test_get_missing_auction(self, service):
        with pytest.raises(NotFoundError):
            service.get("missing")


class TestListing:
    def test_default_listing_hides_closed_auctions(self, service):
        open_auction = create_auction(service)
        cancelled = create_auction(service, product_id="p-2")
        service.cancel(cancelled.id, SELLER)

        page = service.list_auctions()

        assert [item.id for item in page.items] == [open_auction.id]
        assert page.total == 1
        assert page.total_pages == 1

    def test_pagination_orders_by_end_time(self, service, clock, db_path):
        with get_connection(db_path) as conn:
            products = ProductRepository(conn)
            for index in range(5):
                products.add(f"bulk-{index}", "seller", 1)
        created = [
            create_auction(
                service,
                product_id=f"bulk-{index}",
                end_time=clock.now + timedelta(hours=5 - index),
            )
            for index in range(5)
        ]

        first_page = service.list_auctions(limit=2)
        last_page = service.list_auctions(limit=2, page=3)
        newest_first = service.list_auctions(limit=5, descending=True)

        assert first_page.total == 5
        assert first_page.total_pages == 3
        assert [a.id for a in first_page.items] == [created[4].id, created[3].id]
        assert [a.id for a in last_page.items] == [created[0].id]
        assert newest_first.items[0].id == created[0].id

    def test_listing_refreshes_status_without_writing(self, service, clock, db_path):
        auction = create_auction(service)
        clock.advance(hours=2)

        page = service.list_auctions(statuses=None)

        assert page.items[0].status == AuctionStatus.EXPIRED
        assert stored(db_path, auction.id).status == AuctionStatus.ACTIVE

    def test_list_mine(self, service, db_path):
        with get_connection(db_path) as conn:
            ProductRepository(conn).add("other-p", "other-seller", 1)
        mine = create_auction(service)
        service.create(
            OTHER_SELLER,
            product_id="other-p",
            start_time=service.now(),
            end_time=service.now() + timedelta(hours=1),
            starting_bid=5.0,
        )

        assert [a.id for a in service.list_mine(SELLER).items] == [mine.id]
        assert service.list_mine(ADMIN).total == 2

    @pytest.mark.parametrize("kwargs", [{"page": 0}, {"limit": 0}, {"limit": 101}])
    def test_invalid_paging(self, service, kwargs):
        with pytest.raises(InvalidArgumentError):
            service.list_auctions(**kwargs)


class TestBidding:
    def test_bids_are_persisted_newest_first(self, service, db_path):
        auction = create_auction(service)

        service.place_bid(auction.id, BUYER, 101.0)
        service.place_bid(auction.id, BUYER_2, 102.0)

        history = service.list_bids(auction.id)
        assert [(b.bidder_id, b.amount) for b in history] == [
            ("buyer-2", 102.0),
            ("buyer", 101.0),
        ]
        saved = stored(db_path, auction.id)
        assert saved.current_highest_bid == 102.0
        assert saved.current_highest_bidder == "buyer-2"
        assert saved.version == 2

    def test_rejected_bid_leaves_state_untouched(self, service, db_path):
        auction = create_auction(service)
        service.place_bid(auction.id, BUYER, 101.0)

        with pytest.raises(InvalidArgumentError) as excinfo:
            service.place_bid(auction.id, BUYER_2, 101.5)

        assert excinfo.value.details["minimum_next_bid"] == 102.0
        saved = stored(db_path, auction.id)
        assert len(saved.bids) == 1
        assert saved.version == 1

    def test_late_bid_extension_is_persisted(self, service, clock, db_path):
        auction = create_auction(service, end_time=clock.now + timedelta(minutes=2))

        service.place_bid(auction.id, BUYER, 110.0)

        assert stored(db_path, auction.id).end_time == clock.now + timedelta(minutes=5)

    def test_bid_on_ended_auction_persists_the_new_status(self, service, clock, db_path):
        auction = create_auction(service)
        service.place_bid(auction.id, BUYER, 110.0)
        clock.advance(hours=2)

        with pytest.raises(InvalidStateError):
            service.place_bid(auction.id, BUYER_2, 200.0)

        assert stored(db_path, auction.id).status == AuctionStatus.ENDED

    def test_bid_on_missing_auction(self, service):
        with pytest.raises(NotFoundError):
            service.place_bid("missing", BUYER, 10.0)
        with pytest.raises(NotFoundError):
            service.list_bids("missing")

    def test_bid_outcomes_are_counted(self, service):
        auction = create_auction(service)
        service.place_bid(auction.id, BUYER, 110.0)
        with pytest.raises(ForbiddenError):
            service.place_bid(auction.id, SELLER, 120.0)

        counters = get_metrics_summary()["counters"]["bids_total"]
        assert counters == {"outcome=accepted": 1.0, "outcome=forbidden": 1.0}

    def test_concurrent_bids_never_lose_the_higher_amount(self, service, db_path):
        for _ in range(10):
            auction = create_auction(service)
            barrier = threading.Barrier(2)
            errors: list[Exception] = []

            def bid(requester: Requester, amount: float) -> None:
                barrier.wait()
                try:
                    service.place_bid(auction.id, requester, amount)
                except InvalidArgumentError as exc:
                    errors.append(exc)

            threads = [
                threading.Thread(target=bid, args=(BUYER, 110.0)),
                threading.Thread(target=bid, args=(BUYER_2, 120.0)),
            ]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join()

            saved = stored(db_path, auction.id)
            assert saved.current_highest_bid == 120.0
            assert saved.current_highest_bidder == "buyer-2"
            amounts = [bid.amount for bid in saved.bids]
            assert amounts in ([110.0, 120.0], [120.0])
            assert len(errors) == 2 - len(amounts)

            service.cancel(auction.id, ADMIN)


class InterferingClock:
    """Clock that lets another writer commit a bid the first time it is read."""

    def __init__(self, inner, interfere) -> None:
        self._inner = inner
        self._interfere = interfere

    def __call__(self):
        interfere, self._interfere = self._interfere, None
        if interfere is not None:
            interfere()
        return self._inner()


class TestVersionConflicts:
    def _services(self, db_path, clock, interfere_with, *, attempts=5):
        other = AuctionService.from_sqlite_path(str(db_path), clock=clock, locks=KeyedLocks())
        racing = AuctionService.from_sqlite_path(
            str(db_path),
            clock=InterferingClock(clock, lambda: interfere_with(other)),
            locks=KeyedLocks(),
            settings=AuctionSettings(bid_retry_attempts=attempts),
        )
        return other, racing

    def test_lost_race_is_retried_against_fresh_state(self, service, db_path, clock):
        auction = create_auction(service)
        _, racing = self._services(
            db_path, clock, lambda other: other.place_bid(auction.id, BUYER, 110.0)
        )

        racing.place_bid(auction.id, BUYER_2, 120.0)

        saved = stored(db_path, auction.id)
        assert [(b.bidder_id, b.amount) for b in saved.bids] == [
            ("buyer", 110.0),
            ("buyer-2", 120.0),
        ]
        retries = get_metrics_summary()["counters"]["bid_write_retries_total"]
        assert retries == {"operation=bid": 1.0}

    def test_retry_revalidates_the_same_amount(self, service, db_path, clock):
        auction = create_auction(service)
        _, racing = self._services(
            db_path, clock, lambda other: other.place_bid(auction.id, BUYER, 120.0)
        )

        with pytest.raises(InvalidArgumentError) as excinfo:
            racing.place_bid(auction.id, BUYER_2, 110.0)

        assert excinfo.value.details["current_highest_bid"] == 120.0
        assert stored(db_path, auction.id).current_highest_bidder == "buyer"

    def test_exhausted_retries_conflict(self, service, db_path, clock):
        auction = create_auction(service)
        _, racing = self._services(
            db_path,
            clock,
            lambda other: other.place_bid(auction.id, BUYER, 110.0),
            attempts=1,
        )

        with pytest.raises(ConflictError) as excinfo:
            racing.place_bid(auction.id, BUYER_2, 120.0)

        assert excinfo.value.details["attempts"] == 1
        assert stored(db_path, auction.id).current_highest_bid == 110.0


class TestLifecycle:
    def test_update_is_persisted(self, service, db_path, clock):
        auction = create_auction(service)
        new_end = clock.now + timedelta(days=1)

        service.update(auction.id, SELLER, {"end_time": new_end, "buy_now_price": 500.0})

        saved = stored(db_path, auction.id)
        assert saved.end_time == new_end
        assert saved.buy_now_price == 500.0

    def test_update_by_other_seller_forbidden(self, service):
        auction = create_auction(service)
        with pytest.raises(ForbiddenError):
            service.update(auction.id, OTHER_SELLER, {"starting_bid": 1.0})

    def test_cancel_with_bids_requires_admin(self, service, db_path):
        auction = create_auction(service)
        service.place_bid(auction.id, BUYER, 110.0)

        with pytest.raises(ForbiddenError):
            service.cancel(auction.id, SELLER)
        service.cancel(auction.id, ADMIN)

        assert stored(db_path, auction.id).status == AuctionStatus.CANCELLED

    def test_settle_creates_order_and_takes_stock(self, service, db_path, clock):
        auction = create_auction(service)
        service.place_bid(auction.id, BUYER, 150.0)
        clock.advance(hours=2)

        settled = service.settle(auction.id, SELLER)

        assert settled.status == AuctionStatus.SOLD
        assert settled.winner == "buyer"
        with get_connection(db_path) as conn:
            order = OrderRepository(conn).get_by_auction(auction.id)
            product = ProductRepository(conn).find_by_id("p-1")
        assert order is not None
        assert order["buyer_id"] == "buyer"
        assert order["amount"] == 150.0
        assert order["status"] == "pending_payment"
        assert product.stock == 1

    def test_settle_with_unmet_reserve(self, service, db_path, clock):
        auction = create_auction(service, reserve_price=500.0)
        service.place_bid(auction.id, BUYER, 150.0)
        clock.advance(hours=2)

        with pytest.raises(InvalidStateError):
            service.settle(auction.id, SELLER)

        saved = stored(db_path, auction.id)
        assert saved.status == AuctionStatus.EXPIRED
        assert saved.winner is None

    def test_order_failure_does_not_undo_settlement(self, db_path, clock, caplog):
        def broken_order_placer(*_args):
            raise RuntimeError("order book offline")

        service = AuctionService.from_sqlite_path(
            str(db_path), clock=clock, order_placer=broken_order_placer, locks=KeyedLocks()
        )
        auction = create_auction(service)
        service.place_bid(auction.id, BUYER, 150.0)
        clock.advance(hours=2)

        caplog.set_level(logging.ERROR, logger="gavel")
        settled = service.settle(auction.id, SELLER)

        assert settled.status == AuctionStatus.SOLD
        assert stored(db_path, auction.id).status == AuctionStatus.SOLD
        assert "order book offline" in caplog.text


class TestSweep:
    def test_sweep_closes_overdue_auctions(self, service, db_path, clock):
        with_bid = create_auction(service)
        without_bid = create_auction(service, product_id="p-2")
        service.place_bid(with_bid.id, BUYER, 120.0)
        clock.advance(hours=2)

        result = service.sweep_expired()

        assert result.checked == 2
        assert result.ended == [with_bid.id]
        assert result.expired == [without_bid.id]
        assert stored(db_path, with_bid.id).status == AuctionStatus.ENDED
        assert stored(db_path, without_bid.id).status == AuctionStatus.EXPIRED
        assert service.sweep_expired().checked == 0

    def test_sweep_ignores_running_auctions(self, service):
        create_auction(service)
        result = service.sweep_expired()
        assert result.checked == 0
        assert result.ended == result.expired == []

    def test_sweep_requires_admin_when_requester_given(self, service):
        with pytest.raises(ForbiddenError):
            service.sweep_expired(SELLER)
        assert service.sweep_expired(ADMIN).checked == 0

    def test_sweep_logs_each_closed_auction(self, service, clock, caplog):
        create_auction(service)
        clock.advance(hours=2)

        caplog.set_level(logging.INFO, logger="gavel")
        service.sweep_expired()

        assert "Auction expired without a qualifying bid" in caplog.text


class TestLocking:
    def test_injected_locks_serialize_mutations(self, db_path, clock):
        locks = KeyedLocks()
        service = AuctionService.from_sqlite_path(str(db_path), clock=clock, locks=locks)
        auction = create_auction(service)

        bidder = threading.Thread(target=service.place_bid, args=(auction.id, BUYER, 120.0))
        with locks.hold(auction.id):
            bidder.start()
            bidder.join(timeout=0.2)
            assert bidder.is_alive()
            assert stored(db_path, auction.id).current_highest_bidder is None
        bidder.join(timeout=5)

        assert not bidder.is_alive()
        assert stored(db_path, auction.id).current_highest_bidder == "buyer"


class TestSettlementOrders:
    def test_out_of_stock_settlement_leaves_no_order(self, service, clock, db_path, caplog):
        first = create_auction(service, product_id="p-2")
        service.place_bid(first.id, BUYER, 150.0)
        clock.advance(hours=2)

        second = create_auction(service, product_id="p-2")
        service.place_bid(second.id, BUYER_2, 130.0)
        clock.advance(hours=2)
        service.settle(second.id, SELLER)

        caplog.set_level(logging.ERROR, logger="gavel")
        settled = service.settle(first.id, SELLER)

        assert settled.status == AuctionStatus.SOLD
        with get_connection(db_path) as conn:
            assert OrderRepository(conn).get_by_auction(first.id) is None
            assert OrderRepository(conn).get_by_auction(second.id) is not None
            assert ProductRepository(conn).find_by_id("p-2").stock == 0
        assert "Order creation failed" in caplog.text
