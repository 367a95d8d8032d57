"""Requester identity and role as seen by the auction engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class Role(str, Enum):
    """Enumeration of user roles."""

    BUYER = "buyer"
    SELLER = "seller"
    ADMIN = "admin"

    @classmethod
    def from_string(cls, value: str | None) -> "Role":
        """Convert a string to a Role, defaulting to BUYER."""
        if not value:
            return cls.BUYER
        try:
            return cls(value.strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown role: {value!r}") from exc


@dataclass(frozen=True)
class Requester:
    """Authenticated identity attached to every engine call.

    The engine trusts this value and only compares identities.
    """

    user_id: str
    role: Role = Role.BUYER

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def owns(self, seller_id: str) -> bool:
        return self.user_id == seller_id

    def can_manage(self, seller_id: str) -> bool:
        """Check if the requester is the seller or an admin."""
        return self.is_admin or self.owns(seller_id)


__all__ = ["Requester", "Role"]
