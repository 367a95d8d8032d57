"""Product record consumed by the auction engine."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class ProductRecord:
    """The slice of a catalog product the engine needs."""

    id: str
    seller_id: str
    stock: int
    name: str | None = None

    @property
    def in_stock(self) -> bool:
        return self.stock >= 1

    @classmethod
    def from_dict(cls, data: dict) -> "ProductRecord":
        return cls(
            id=str(data["id"]),
            seller_id=str(data["seller_id"]),
            stock=int(data.get("stock") or 0),
            name=data.get("name"),
        )


__all__ = ["ProductRecord"]
