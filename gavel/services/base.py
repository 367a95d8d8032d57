"""Base service class with shared connection and infrastructure patterns."""

from __future__ import annotations

import sqlite3
from contextlib import AbstractContextManager
from typing import Callable, TypeVar

from gavel.infrastructure.db import ensure_schema, get_connection
from gavel.infrastructure.observability import get_logger

ConnectionFactory = Callable[[], AbstractContextManager[sqlite3.Connection]]
T = TypeVar("T")


def sqlite_connection_factory(db_path: str) -> ConnectionFactory:
    """Return a factory opening a fresh connection to ``db_path`` per call.

    Connections are not shared between threads, so every worker thread of
    the API or a test gets its own.
    """

    def connection_factory() -> AbstractContextManager[sqlite3.Connection]:
        return get_connection(db_path, check_same_thread=False)

    return connection_factory


class BaseService:
    """Base class for service layer implementations.

    Example usage:
        service = AuctionService.from_sqlite_path("/path/to/gavel.db")

        # Tests inject their own factory:
        service = AuctionService(lambda: get_connection(tmp_path / "test.db"))
    """

    def __init__(self, connection_factory: ConnectionFactory) -> None:
        self._connection_factory = connection_factory
        self._logger = get_logger(self.__class__.__module__)

    @classmethod
    def from_sqlite_path(cls, db_path: str, **kwargs):
        """Create a service bound to a SQLite database path."""
        return cls(sqlite_connection_factory(db_path), **kwargs)

    def _with_connection(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        """Run ``fn`` on a fresh connection with the schema in place."""
        with self._connection_factory() as conn:
            ensure_schema(conn)
            return fn(conn)
