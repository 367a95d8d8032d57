"""Error taxonomy for auction operations.

Every error carries a human readable message and a ``details`` mapping with
the values the decision was based on, so callers can render an actionable
message without re-querying the auction.
"""

from __future__ import annotations

from typing import Any


class AuctionError(Exception):
    """Base class for all auction engine errors."""

    code = "auction_error"

    def __init__(self, message: str, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = details

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "error": self.code, **self.details}


class NotFoundError(AuctionError):
    """Raised when an auction, product or user does not exist."""

    code = "not_found"


class ForbiddenError(AuctionError):
    """Raised when the requester may not perform the operation."""

    code = "forbidden"


class ConflictError(AuctionError):
    """Raised for duplicate auctions, missing stock or lost write races."""

    code = "conflict"


class InvalidArgumentError(AuctionError):
    """Raised for malformed timing, price or bid values."""

    code = "invalid_argument"


class InvalidStateError(AuctionError):
    """Raised when the operation is not valid for the current status."""

    code = "invalid_state"


class PreconditionFailedError(AuctionError):
    """Raised when settlement finds the reserve price unmet."""

    code = "precondition_failed"


__all__ = [
    "AuctionError",
    "ConflictError",
    "ForbiddenError",
    "InvalidArgumentError",
    "InvalidStateError",
    "NotFoundError",
    "PreconditionFailedError",
]
