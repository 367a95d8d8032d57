"""Downstream order creation for settled auctions."""

from __future__ import annotations

from typing import Callable

from gavel.infrastructure.db.repositories import OrderRepository, ProductRepository

from .base import BaseService

# (auction_id, product_id, winner_id, amount)
OrderPlacer = Callable[[str, str, str, float], object]


class OrderService(BaseService):
    """Records an order for the winner and takes one unit out of stock."""

    def place_order(
        self, auction_id: str, product_id: str, winner_id: str, amount: float
    ) -> int:
        def _place(conn) -> int:
            orders = OrderRepository(conn)
            products = ProductRepository(conn)
            # Stock and order commit together or not at all.
            with conn:
                products.decrement_stock(product_id, 1)
                return orders.create_for_auction(
                    auction_id=auction_id,
                    product_id=product_id,
                    buyer_id=winner_id,
                    amount=amount,
                )

        order_id = self._with_connection(_place)
        self._logger.info(
            "Order %d created for auction %s (winner %s, %.2f)",
            order_id,
            auction_id,
            winner_id,
            amount,
        )
        return order_id

    __call__ = place_order

    def get_for_auction(self, auction_id: str) -> dict[str, object] | None:
        return self._with_connection(
            lambda conn: OrderRepository(conn).get_by_auction(auction_id)
        )
