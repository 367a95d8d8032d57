from __future__ import annotations

import sqlite3
from collections.abc import Iterable
from datetime import datetime
from typing import Any

from gavel.domain.models import Auction, AuctionStatus, Bid

from ..connection import to_iso
from ..schema import ensure_schema
from .base import BaseRepository

_AUCTION_COLUMNS = """
    id, product_id, seller_id, start_time, end_time, starting_bid,
    current_highest_bid, current_highest_bidder, reserve_price, buy_now_price,
    status, winner, view_count, version, created_at, updated_at
"""


class StaleAuctionError(RuntimeError):
    """Raised when a save loses the version compare-and-swap."""

    def __init__(self, auction_id: str, expected_version: int) -> None:
        super().__init__(
            f"Auction '{auction_id}' was modified concurrently "
            f"(expected version {expected_version})"
        )
        self.auction_id = auction_id
        self.expected_version = expected_version


class DuplicateAuctionError(ValueError):
    """Raised when a product would get a second open auction."""


class AuctionRepository(BaseRepository):
    """Persistence for auctions and their append-only bid log.

    Every auction write is a compare-and-swap on the ``version`` column and
    commits the row update together with any newly appended bids.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn)
        ensure_schema(self.conn)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, auction_id: str) -> Auction | None:
        row = self._fetch_one_as_dict(
            f"SELECT {_AUCTION_COLUMNS} FROM auctions WHERE id = ?", (auction_id,)
        )
        if row is None:
            return None
        return Auction.from_dict(row, bids=self._bid_rows([auction_id]).get(auction_id))

    def find_where(
        self,
        *,
        statuses: Iterable[AuctionStatus] | None = None,
        seller_id: str | None = None,
        product_id: str | None = None,
        ends_at_or_before: datetime | None = None,
        sort_by: str = "end_time",
        descending: bool = False,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Auction]:
        """Return auctions matching every given filter."""
        if sort_by not in ("end_time", "start_time", "created_at"):
            raise ValueError(f"Cannot sort auctions by '{sort_by}'")
        where, params = self._where(statuses, seller_id, product_id, ends_at_or_before)
        query = f"SELECT {_AUCTION_COLUMNS} FROM auctions {where}"
        query += f" ORDER BY {sort_by} {'DESC' if descending else 'ASC'}, id"
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])
        rows = self._fetch_all_as_dicts(query, tuple(params))
        bids = self._bid_rows([row["id"] for row in rows])
        return [Auction.from_dict(row, bids=bids.get(row["id"])) for row in rows]

    def count_where(
        self,
        *,
        statuses: Iterable[AuctionStatus] | None = None,
        seller_id: str | None = None,
        product_id: str | None = None,
        ends_at_or_before: datetime | None = None,
    ) -> int:
        where, params = self._where(statuses, seller_id, product_id, ends_at_or_before)
        return int(
            self._fetch_scalar(f"SELECT COUNT(*) FROM auctions {where}", tuple(params))
            or 0
        )

    def list_bids(self, auction_id: str, *, newest_first: bool = True) -> list[Bid]:
        rows = self._bid_rows([auction_id]).get(auction_id, [])
        bids = [Bid.from_dict(row) for row in rows]
        return list(reversed(bids)) if newest_first else bids

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def insert(self, auction: Auction) -> None:
        try:
            with self._transaction():
                self._execute(
                    f"INSERT INTO auctions ({_AUCTION_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        auction.id,
                        auction.product_id,
                        auction.seller_id,
                        *self._mutable_values(auction),
                        auction.view_count,
                        auction.version,
                        to_iso(auction.created_at),
                        to_iso(auction.updated_at),
                    ),
                )
                self._append_bids(auction, already_stored=0)
        except sqlite3.IntegrityError as exc:
            raise DuplicateAuctionError(
                f"Product '{auction.product_id}' already has an open auction"
            ) from exc

    def save(self, auction: Auction) -> None:
        """Write ``auction`` if nobody else has since its version was read.

        Raises:
            StaleAuctionError: the stored version no longer matches.
            DuplicateAuctionError: the write would reopen a second auction
                on the same product.
        """
        expected = auction.version
        try:
            with self._transaction():
                cur = self._execute(
                    """
                    UPDATE auctions SET
                        start_time = ?, end_time = ?, starting_bid = ?,
                        current_highest_bid = ?, current_highest_bidder = ?,
                        reserve_price = ?, buy_now_price = ?, status = ?, winner = ?,
                        updated_at = ?, version = version + 1
                    WHERE id = ? AND version = ?
                    """,
                    (
                        *self._mutable_values(auction),
                        to_iso(auction.updated_at),
                        auction.id,
                        expected,
                    ),
                )
                if cur.rowcount == 0:
                    raise StaleAuctionError(auction.id, expected)
                stored = int(
                    self._fetch_scalar(
                        "SELECT COUNT(*) FROM auction_bids WHERE auction_id = ?",
                        (auction.id,),
                    )
                    or 0
                )
                self._append_bids(auction, already_stored=stored)
        except sqlite3.IntegrityError as exc:
            raise DuplicateAuctionError(
                f"Product '{auction.product_id}' already has an open auction"
            ) from exc
        auction.version = expected + 1

    def increment_view_count(self, auction_id: str) -> int:
        """Bump the advisory view counter without touching ``version``."""
        with self._transaction():
            self._execute(
                "UPDATE auctions SET view_count = view_count + 1 WHERE id = ?",
                (auction_id,),
            )
        return int(
            self._fetch_scalar(
                "SELECT view_count FROM auctions WHERE id = ?", (auction_id,)
            )
            or 0
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _mutable_values(auction: Auction) -> tuple[Any, ...]:
        return (
            to_iso(auction.start_time),
            to_iso(auction.end_time),
            auction.starting_bid,
            auction.current_highest_bid,
            auction.current_highest_bidder,
            auction.reserve_price,
            auction.buy_now_price,
            auction.status.value,
            auction.winner,
        )

    def _append_bids(self, auction: Auction, *, already_stored: int) -> None:
        if already_stored > len(auction.bids):
            # The in-memory log can never be shorter than the stored one.
            raise StaleAuctionError(auction.id, auction.version)
        for seq, bid in enumerate(auction.bids[already_stored:], start=already_stored):
            self._execute(
                """
                INSERT INTO auction_bids (auction_id, seq, bidder_id, amount, timestamp)
                VALUES (?, ?, ?, ?, ?)
                """,
                (auction.id, seq, bid.bidder_id, bid.amount, to_iso(bid.timestamp)),
            )

    def _bid_rows(self, auction_ids: list[str]) -> dict[str, list[dict[str, Any]]]:
        if not auction_ids:
            return {}
        placeholders = ",".join("?" * len(auction_ids))
        rows = self._fetch_all_as_dicts(
            f"""
            SELECT auction_id, bidder_id, amount, timestamp
            FROM auction_bids
            WHERE auction_id IN ({placeholders})
            ORDER BY auction_id, seq
            """,
            tuple(auction_ids),
        )
        grouped: dict[str, list[dict[str, Any]]] = {}
        for row in rows:
            grouped.setdefault(row["auction_id"], []).append(row)
        return grouped

    @staticmethod
    def _where(
        statuses: Iterable[AuctionStatus] | None,
        seller_id: str | None,
        product_id: str | None,
        ends_at_or_before: datetime | None,
    ) -> tuple[str, list[Any]]:
        conditions: list[str] = []
        params: list[Any] = []
        if statuses is not None:
            values = [AuctionStatus(s).value for s in statuses]
            if not values:
                return "WHERE 0", []
            conditions.append(f"status IN ({','.join('?' * len(values))})")
            params.extend(values)
        if seller_id:
            conditions.append("seller_id = ?")
            params.append(seller_id)
        if product_id:
            conditions.append("product_id = ?")
            params.append(product_id)
        if ends_at_or_before is not None:
            conditions.append("end_time <= ?")
            params.append(to_iso(ends_at_or_before))
        if not conditions:
            return "", params
        return "WHERE " + " AND ".join(conditions), params
