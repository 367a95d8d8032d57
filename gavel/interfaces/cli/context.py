"""Shared helpers for composing CLI command contexts.

Resolves the database path, builds connection factories and wires the
services that commands need.
"""

from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, ContextManager, Iterator, TypeVar

import click
from rich.console import Console

from gavel.app.config import AuctionSettings, load_auction_settings
from gavel.domain.errors import AuctionError
from gavel.domain.models import Requester, parse_datetime
from gavel.infrastructure.db import ensure_schema, get_connection, get_path_config
from gavel.infrastructure.db.repositories import (ProductRepository,
                                                  UserRepository)
from gavel.infrastructure.db.repositories.base import BaseRepository
from gavel.services import AuctionService, ProductService, UserService

RepositoryT = TypeVar("RepositoryT", bound=BaseRepository)

console = Console()


@dataclass(frozen=True)
class CLIContext:
    """Container for CLI dependencies and configuration paths."""

    db_path: Path
    paths: dict[str, Path]
    connection_factory: Callable[[], ContextManager[sqlite3.Connection]]
    settings: AuctionSettings

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        """Open a configured SQLite connection and ensure the schema exists."""
        with self.connection_factory() as connection:
            ensure_schema(connection)
            yield connection

    @contextmanager
    def repository(self, repository_cls: type[RepositoryT]) -> Iterator[RepositoryT]:
        with self.connect() as connection:
            yield repository_cls(connection)

    def auction_service(self) -> AuctionService:
        return AuctionService(self.connection_factory, settings=self.settings)

    def requester(self, user_id: str) -> Requester:
        """Resolve ``--as USER`` to a requester, failing for unknown users."""
        with self.repository(UserRepository) as users:
            requester = users.get_requester(user_id)
        if requester is None:
            raise click.BadParameter(f"Unknown user '{user_id}'", param_hint="--as")
        return requester


@contextmanager
def user_service(cli_context: CLIContext) -> Iterator[UserService]:
    with cli_context.repository(UserRepository) as repository:
        yield UserService(repository)


@contextmanager
def product_service(cli_context: CLIContext) -> Iterator[ProductService]:
    with cli_context.repository(ProductRepository) as repository:
        yield ProductService(repository)


def build_cli_context(db_path: str | Path | None = None) -> CLIContext:
    """Build the CLI context with resolved configuration paths and connection factory."""
    paths = get_path_config()
    resolved_db_path = (
        Path(db_path).expanduser() if db_path is not None else paths["db_path"]
    )

    def connection_factory() -> ContextManager[sqlite3.Connection]:
        return get_connection(resolved_db_path, check_same_thread=False)

    return CLIContext(
        db_path=resolved_db_path,
        paths=paths,
        connection_factory=connection_factory,
        settings=load_auction_settings(),
    )


def db_option(func):
    """Attach the shared ``--db`` option to a command group."""
    return click.option(
        "--db",
        "db_path",
        default=None,
        help="Path to the SQLite database (defaults to paths.db_path in config.json).",
    )(func)


def store_cli_context(ctx: click.Context, db_path: str | None) -> None:
    ctx.ensure_object(dict)
    ctx.obj["cli_context"] = build_cli_context(db_path)


class IsoDateTime(click.ParamType):
    """ISO-8601 timestamp; values without an offset are taken as UTC."""

    name = "iso-datetime"

    def convert(self, value, param, ctx) -> datetime:
        if isinstance(value, datetime):
            return value
        parsed = parse_datetime(value)
        if parsed is None:
            self.fail(f"'{value}' is not an ISO-8601 timestamp", param, ctx)
        return parsed


def fail(ctx: click.Context, exc: AuctionError) -> None:
    """Print ``exc`` in red with its details and exit with status 1."""
    console.print(f"[red]{exc.message}[/red]")
    for key, value in exc.details.items():
        console.print(f"  [dim]{key}[/dim]: {value}")
    ctx.exit(1)
