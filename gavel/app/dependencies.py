"""Shared FastAPI dependencies for the gavel API."""

from __future__ import annotations

import sqlite3
from functools import lru_cache
from typing import Annotated, Iterator

from fastapi import Depends, Header, HTTPException, status

from gavel.app.config import load_auction_settings
from gavel.domain.models import Requester
from gavel.infrastructure.db import ensure_schema, get_connection, get_path_config
from gavel.infrastructure.db.repositories import UserRepository
from gavel.services import AuctionService

__all__ = [
    "get_db_path",
    "get_db_connection",
    "get_user_repository",
    "get_auction_service",
    "get_requester",
    "DbPathDep",
    "UserRepositoryDep",
    "AuctionServiceDep",
    "RequesterDep",
]


def get_db_path() -> str:
    """Database location from ``config.json`` (``paths.db_path``)."""
    return str(get_path_config()["db_path"])


DbPathDep = Annotated[str, Depends(get_db_path)]


def get_db_connection(db_path: DbPathDep) -> Iterator[sqlite3.Connection]:
    """Provide a SQLite connection with the required schema ensured.

    Uses check_same_thread=False because FastAPI may resolve dependencies and
    run the endpoint on different worker threads.
    """
    with get_connection(db_path, check_same_thread=False) as conn:
        ensure_schema(conn)
        yield conn


def get_user_repository(
    conn: sqlite3.Connection = Depends(get_db_connection),
) -> UserRepository:
    return UserRepository(conn)


UserRepositoryDep = Annotated[UserRepository, Depends(get_user_repository)]


@lru_cache(maxsize=8)
def _auction_service_for(db_path: str) -> AuctionService:
    return AuctionService.from_sqlite_path(db_path, settings=load_auction_settings())


def get_auction_service(db_path: DbPathDep) -> AuctionService:
    """One long-lived service per database so its locks are shared."""
    return _auction_service_for(db_path)


AuctionServiceDep = Annotated[AuctionService, Depends(get_auction_service)]


def get_requester(
    users: UserRepositoryDep,
    x_user_id: Annotated[str | None, Header()] = None,
) -> Requester:
    """Resolve the calling user from the ``X-User-Id`` header."""
    if not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header"
        )
    requester = users.get_requester(x_user_id)
    if requester is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Unknown user '{x_user_id}'",
        )
    return requester


RequesterDep = Annotated[Requester, Depends(get_requester)]
