"""Tests for the Auction domain model."""

from datetime import datetime, timedelta, timezone

import pytest

from gavel.domain.models import (Auction, AuctionStatus, Bid, Requester, Role,
                                 parse_datetime)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


def make_auction(**overrides) -> Auction:
    fields = dict(
        id="a-1",
        product_id="p-1",
        seller_id="seller",
        start_time=NOW - timedelta(hours=1),
        end_time=NOW + timedelta(hours=1),
        starting_bid=100.0,
        current_highest_bid=100.0,
    )
    fields.update(overrides)
    return Auction(**fields)


class TestAuctionStatus:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Active", AuctionStatus.ACTIVE),
            ("active", AuctionStatus.ACTIVE),
            (" UPCOMING ", AuctionStatus.UPCOMING),
            ("cancelled", AuctionStatus.CANCELLED),
        ],
    )
    def test_from_string(self, value, expected):
        assert AuctionStatus.from_string(value) == expected

    @pytest.mark.parametrize("value", ["", None, "closed"])
    def test_from_string_rejects_unknown(self, value):
        with pytest.raises(ValueError):
            AuctionStatus.from_string(value)

    def test_terminal_and_open_sets(self):
        assert {s for s in AuctionStatus if s.is_terminal} == {
            AuctionStatus.SOLD,
            AuctionStatus.EXPIRED,
            AuctionStatus.CANCELLED,
        }
        assert {s for s in AuctionStatus if s.is_open} == {
            AuctionStatus.PENDING,
            AuctionStatus.UPCOMING,
            AuctionStatus.ACTIVE,
        }


class TestDeriveStatus:
    def test_upcoming_before_start(self):
        auction = make_auction(start_time=NOW + timedelta(minutes=1))
        assert auction.derive_status(NOW) == AuctionStatus.UPCOMING

    def test_active_at_start_boundary(self):
        auction = make_auction(start_time=NOW)
        assert auction.derive_status(NOW) == AuctionStatus.ACTIVE

    def test_expired_at_end_without_bids(self):
        auction = make_auction(end_time=NOW)
        assert auction.derive_status(NOW) == AuctionStatus.EXPIRED

    def test_ended_with_bidder_and_no_reserve(self):
        auction = make_auction(end_time=NOW)
        auction.append_bid(Bid("buyer", 120.0, NOW - timedelta(minutes=5)))
        assert auction.derive_status(NOW) == AuctionStatus.ENDED

    def test_expired_when_reserve_unmet(self):
        auction = make_auction(end_time=NOW, reserve_price=500.0)
        auction.append_bid(Bid("buyer", 120.0, NOW - timedelta(minutes=5)))
        assert auction.derive_status(NOW) == AuctionStatus.EXPIRED

    @pytest.mark.parametrize(
        "terminal", [AuctionStatus.SOLD, AuctionStatus.EXPIRED, AuctionStatus.CANCELLED]
    )
    def test_terminal_status_never_changes(self, terminal):
        auction = make_auction(status=terminal, start_time=NOW + timedelta(days=1),
                               end_time=NOW + timedelta(days=2))
        assert auction.refresh_status(NOW) == terminal
        assert auction.refresh_status(NOW + timedelta(days=3)) == terminal

    def test_refresh_is_idempotent(self):
        auction = make_auction()
        first = auction.refresh_status(NOW)
        assert auction.refresh_status(NOW) == first == AuctionStatus.ACTIVE

    def test_naive_now_is_treated_as_utc(self):
        auction = make_auction(start_time=NOW + timedelta(minutes=1))
        assert auction.derive_status(NOW.replace(tzinfo=None)) == AuctionStatus.UPCOMING


def test_append_bid_updates_leader_and_keeps_history():
    auction = make_auction()
    auction.append_bid(Bid("b1", 101.0, NOW))
    auction.append_bid(Bid("b2", 102.0, NOW))

    assert auction.current_highest_bid == 102.0
    assert auction.current_highest_bidder == "b2"
    assert [bid.bidder_id for bid in auction.bids] == ["b1", "b2"]
    assert isinstance(auction.bids, tuple)


def test_from_dict_parses_database_row():
    row = {
        "id": "a-9",
        "product_id": "p-9",
        "seller_id": "s",
        "start_time": "2025-03-01T10:00:00.000000Z",
        "end_time": "2025-03-01T14:00:00.000000Z",
        "starting_bid": 50,
        "current_highest_bid": 60,
        "current_highest_bidder": "b",
        "reserve_price": None,
        "buy_now_price": 90,
        "status": "Active",
        "winner": None,
        "view_count": 3,
        "version": 2,
    }
    bids = [{"bidder_id": "b", "amount": 60, "timestamp": "2025-03-01T11:00:00Z"}]

    auction = Auction.from_dict(row, bids=bids)

    assert auction.start_time == datetime(2025, 3, 1, 10, tzinfo=timezone.utc)
    assert auction.status == AuctionStatus.ACTIVE
    assert auction.buy_now_price == 90.0
    assert auction.bids == (Bid("b", 60.0, datetime(2025, 3, 1, 11, tzinfo=timezone.utc)),)
    assert auction.version == 2


def test_parse_datetime_rejects_garbage():
    assert parse_datetime("not a date") is None
    assert parse_datetime(None) is None


class TestRequester:
    def test_role_from_string_defaults_to_buyer(self):
        assert Role.from_string(None) == Role.BUYER
        assert Role.from_string("Admin") == Role.ADMIN

    def test_role_from_string_rejects_unknown(self):
        with pytest.raises(ValueError):
            Role.from_string("owner")

    def test_can_manage(self):
        seller = Requester("s", Role.SELLER)
        admin = Requester("root", Role.ADMIN)
        other = Requester("x", Role.SELLER)

        assert seller.can_manage("s")
        assert admin.can_manage("s")
        assert not other.can_manage("s")
