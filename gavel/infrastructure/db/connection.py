from __future__ import annotations

import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path

from .config import get_default_timeout, get_path_config, load_config


class DatabaseError(Exception):
    """Raised when SQLite cannot be opened or configured."""


def to_iso(value: datetime | None) -> str | None:
    """Format ``value`` as ISO-8601 UTC with a ``Z`` suffix.

    Naive datetimes are taken to be UTC already.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    # Fixed width so stored timestamps compare correctly as text.
    return (
        value.astimezone(timezone.utc)
        .isoformat(timespec="microseconds")
        .replace("+00:00", "Z")
    )


def iso_utcnow() -> str:
    return to_iso(datetime.now(timezone.utc))


def apply_pragmas(
    conn: sqlite3.Connection,
    *,
    enable_wal: bool = True,
    foreign_keys: bool = True,
    busy_timeout_ms: int | None = None,
) -> None:
    """Apply the PRAGMAs every gavel connection runs with."""
    pragmas = []
    if enable_wal:
        pragmas.append("journal_mode=WAL")
    if foreign_keys:
        pragmas.append("foreign_keys=ON")
    if busy_timeout_ms is not None:
        pragmas.append(f"busy_timeout={int(busy_timeout_ms)}")
    try:
        for pragma in pragmas:
            conn.execute(f"PRAGMA {pragma};")
    except sqlite3.Error as exc:
        raise DatabaseError(f"Failed to apply PRAGMAs: {exc}") from exc


@contextmanager
def get_connection(
    db_path: str | Path | None = None,
    *,
    timeout: float | None = None,
    enable_wal: bool | None = None,
    foreign_keys: bool | None = None,
    check_same_thread: bool = True,
) -> Iterator[sqlite3.Connection]:
    """Yield a configured SQLite connection and close it afterwards.

    Unset options fall back to the ``db`` section of ``config.json``.
    """
    path = Path(db_path) if db_path is not None else get_path_config()["db_path"]
    path.parent.mkdir(parents=True, exist_ok=True)
    timeout_value = timeout if timeout is not None else get_default_timeout()
    db_cfg = load_config().get("db")
    if not isinstance(db_cfg, dict):
        db_cfg = {}
    if enable_wal is None:
        enable_wal = bool(db_cfg.get("enable_wal", True))
    if foreign_keys is None:
        foreign_keys = bool(db_cfg.get("foreign_keys", True))

    try:
        conn = sqlite3.connect(
            path, timeout=timeout_value, check_same_thread=check_same_thread
        )
    except sqlite3.Error as exc:
        raise DatabaseError(f"Failed to connect to database: {exc}") from exc
    try:
        apply_pragmas(
            conn,
            enable_wal=enable_wal,
            foreign_keys=foreign_keys,
            busy_timeout_ms=int(timeout_value * 1000),
        )
        yield conn
    finally:
        conn.close()
