from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from gavel.domain.models import Role
from gavel.infrastructure.db import get_connection
from gavel.infrastructure.db.repositories import ProductRepository, UserRepository
from gavel.infrastructure.observability import reset_metrics
from gavel.services import AuctionService, KeyedLocks

START = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


def seed(db_path: Path) -> None:
    """Users seller/other-seller/buyer/buyer-2/admin and products p-1, p-2."""
    with get_connection(db_path) as conn:
        users = UserRepository(conn)
        users.add("seller", Role.SELLER, "Sam Seller")
        users.add("other-seller", Role.SELLER)
        users.add("buyer", Role.BUYER, "Bea Buyer")
        users.add("buyer-2", Role.BUYER)
        users.add("admin", Role.ADMIN)
        products = ProductRepository(conn)
        products.add("p-1", "seller", 2, "Vintage lamp")
        products.add("p-2", "seller", 1, "Oak table")
        products.add("p-empty", "seller", 0, "Sold out")


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    path = tmp_path / "gavel.db"
    seed(path)
    return path


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def service(db_path: Path, clock: FakeClock) -> AuctionService:
    return AuctionService.from_sqlite_path(str(db_path), clock=clock, locks=KeyedLocks())


@pytest.fixture(autouse=True)
def _clean_metrics():
    reset_metrics()
    yield
    reset_metrics()
