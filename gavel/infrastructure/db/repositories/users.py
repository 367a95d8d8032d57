from __future__ import annotations

import sqlite3

from gavel.domain.models import Requester, Role

from ..schema import ensure_schema
from .base import BaseRepository


class DuplicateUserError(ValueError):
    """Raised when attempting to insert a user with an existing id."""


class UserRepository(BaseRepository):
    def __init__(self, conn: sqlite3.Connection) -> None:
        super().__init__(conn)
        ensure_schema(self.conn)

    def add(self, user_id: str, role: Role, name: str | None = None) -> None:
        cursor = self._execute(
            "INSERT OR IGNORE INTO users (id, name, role) VALUES (?, ?, ?)",
            (user_id, name, role.value),
        )
        self.conn.commit()

        if cursor.rowcount == 0:
            raise DuplicateUserError(f"User '{user_id}' already exists")

    def list(self) -> list[dict[str, str | None]]:
        return self._fetch_all_as_dicts("SELECT id, name, role FROM users ORDER BY id")

    def get_requester(self, user_id: str) -> Requester | None:
        """Resolve the identity and role of ``user_id``."""
        role = self._fetch_scalar("SELECT role FROM users WHERE id = ?", (user_id,))
        if role is None:
            return None
        return Requester(user_id=user_id, role=Role.from_string(role))
