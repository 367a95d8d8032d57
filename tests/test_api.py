from __future__ import annotations

import asyncio
import json
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from gavel.app.api import app, auction_error_handler
from gavel.app.dependencies import get_auction_service, get_db_path
from gavel.domain.errors import (InvalidStateError, NotFoundError,
                                 PreconditionFailedError)

SELLER = {"X-User-Id": "seller"}
BUYER = {"X-User-Id": "buyer"}
ADMIN = {"X-User-Id": "admin"}


@pytest.fixture
def client(db_path, service):
    app.dependency_overrides[get_db_path] = lambda: str(db_path)
    app.dependency_overrides[get_auction_service] = lambda: service
    yield TestClient(app)
    app.dependency_overrides.clear()


def create_auction(client, clock, **overrides) -> dict:
    payload = {
        "product_id": "p-1",
        "start_time": clock.now.isoformat(),
        "end_time": (clock.now + timedelta(hours=1)).isoformat(),
        "starting_bid": 100.0,
    }
    payload.update(overrides)
    response = client.post("/auctions", json=payload, headers=SELLER)
    assert response.status_code == 201, response.text
    return response.json()


def test_root_lists_endpoints(client) -> None:
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["endpoints"]["auctions"] == "/auctions"


def test_create_and_fetch_auction(client, clock) -> None:
    created = create_auction(client, clock, reserve_price=150.0)

    assert created["status"] == "Active"
    assert created["seller_id"] == "seller"
    assert created["minimum_next_bid"] == 100.0
    assert created["reserve_met"] is False

    fetched = client.get(f"/auctions/{created['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["view_count"] == 1


def test_mutations_require_known_user(client, clock) -> None:
    payload = {
        "product_id": "p-1",
        "start_time": clock.now.isoformat(),
        "end_time": (clock.now + timedelta(hours=1)).isoformat(),
        "starting_bid": 100.0,
    }

    assert client.post("/auctions", json=payload).status_code == 401
    unknown = client.post("/auctions", json=payload, headers={"X-User-Id": "ghost"})
    assert unknown.status_code == 401


def test_unknown_auction_is_404_with_error_body(client) -> None:
    response = client.get("/auctions/does-not-exist")

    assert response.status_code == 404
    body = response.json()
    assert body["error"] == "not_found"
    assert body["detail"]


def test_bid_flow(client, clock) -> None:
    auction = create_auction(client, clock)
    url = f"/auctions/{auction['id']}/bids"

    accepted = client.post(url, json={"amount": 120.0}, headers=BUYER)
    assert accepted.status_code == 201
    assert accepted.json()["current_highest_bidder"] == "buyer"
    assert accepted.json()["minimum_next_bid"] == 121.0

    too_low = client.post(url, json={"amount": 120.5}, headers={"X-User-Id": "buyer-2"})
    assert too_low.status_code == 400
    assert too_low.json()["error"] == "invalid_argument"

    own = client.post(url, json={"amount": 500.0}, headers=SELLER)
    assert own.status_code == 403

    bids = client.get(url)
    assert [bid["amount"] for bid in bids.json()] == [120.0]


def test_duplicate_open_auction_conflicts(client, clock) -> None:
    create_auction(client, clock)
    payload = {
        "product_id": "p-1",
        "start_time": clock.now.isoformat(),
        "end_time": (clock.now + timedelta(hours=2)).isoformat(),
        "starting_bid": 5.0,
    }

    response = client.post("/auctions", json=payload, headers=SELLER)

    assert response.status_code == 409
    assert response.json()["error"] == "conflict"


def test_update_and_cancel(client, clock) -> None:
    auction = create_auction(client, clock)
    url = f"/auctions/{auction['id']}"

    updated = client.patch(url, json={"reserve_price": 300.0}, headers=SELLER)
    assert updated.status_code == 200
    assert updated.json()["reserve_price"] == 300.0

    forbidden = client.delete(url, headers={"X-User-Id": "other-seller"})
    assert forbidden.status_code == 403

    cancelled = client.delete(url, headers=SELLER)
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "Cancelled"

    again = client.delete(url, headers=SELLER)
    assert again.status_code == 409
    assert again.json()["error"] == "invalid_state"


def test_unknown_update_fields_are_rejected(client, clock) -> None:
    auction = create_auction(client, clock)

    response = client.patch(
        f"/auctions/{auction['id']}", json={"colour": "red"}, headers=SELLER
    )

    assert response.status_code == 422


def test_settle_after_end(client, clock) -> None:
    auction = create_auction(client, clock)
    client.post(f"/auctions/{auction['id']}/bids", json={"amount": 150.0}, headers=BUYER)

    early = client.post(f"/auctions/{auction['id']}/settle", headers=SELLER)
    assert early.status_code == 409

    clock.advance(hours=2)
    settled = client.post(f"/auctions/{auction['id']}/settle", headers=SELLER)

    assert settled.status_code == 200
    assert settled.json()["status"] == "Sold"
    assert settled.json()["winner"] == "buyer"


def test_listing_filters_and_pages(client, clock) -> None:
    create_auction(client, clock)
    create_auction(
        client,
        clock,
        product_id="p-2",
        start_time=(clock.now + timedelta(hours=1)).isoformat(),
        end_time=(clock.now + timedelta(hours=3)).isoformat(),
    )

    everything = client.get("/auctions")
    assert everything.json()["total"] == 2

    upcoming = client.get("/auctions", params={"status": "upcoming"})
    assert [item["product_id"] for item in upcoming.json()["items"]] == ["p-2"]

    paged = client.get("/auctions", params={"limit": 1, "page": 2})
    assert paged.json()["total_pages"] == 2
    assert len(paged.json()["items"]) == 1

    bad = client.get("/auctions", params={"status": "closed"})
    assert bad.status_code == 400

    mine = client.get("/auctions/mine", headers=SELLER)
    assert mine.json()["total"] == 2
    assert client.get("/auctions/mine", headers=BUYER).json()["total"] == 0


def test_sweep_is_admin_only(client, clock) -> None:
    auction = create_auction(client, clock)
    clock.advance(hours=2)

    assert client.post("/auctions/sweep", headers=SELLER).status_code == 403

    response = client.post("/auctions/sweep", headers=ADMIN)
    assert response.status_code == 200
    assert response.json()["expired"] == [auction["id"]]


def test_metrics_endpoint_reports_bids(client, clock) -> None:
    auction = create_auction(client, clock)
    client.post(f"/auctions/{auction['id']}/bids", json={"amount": 101.0}, headers=BUYER)

    response = client.get("/metrics")

    assert response.status_code == 200
    assert "bids_total" in response.text
    assert "api_requests_total" in response.text


@pytest.mark.parametrize(
    "error,status_code",
    [
        (PreconditionFailedError("Auction reserve price not met.", reserve_price=500.0), 412),
        (InvalidStateError("Auction is not active.", status="Ended"), 409),
        (NotFoundError("Auction not found.", auction_id="x"), 404),
    ],
)
def test_error_handler_maps_codes(error, status_code) -> None:
    response = asyncio.run(auction_error_handler(None, error))

    assert response.status_code == status_code
    body = json.loads(response.body)
    assert body["error"] == error.code
    assert body["detail"] == error.message


def test_null_end_time_is_rejected(client, clock) -> None:
    auction = create_auction(client, clock)

    response = client.patch(
        f"/auctions/{auction['id']}", json={"end_time": None}, headers=SELLER
    )

    assert response.status_code == 400
    assert response.json()["fields"] == ["end_time"]
