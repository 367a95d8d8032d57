from __future__ import annotations

import sqlite3
from collections.abc import Iterable

from ..connection import iso_utcnow
from .tables import SCHEMA_MIGRATIONS_SQL, SCHEMA_VERSION_SQL

# Bump together with any change to the migration list in ``manager``.
CURRENT_SCHEMA_VERSION = 1

Migration = tuple[str, str]


class SchemaMigrator:
    """Applies named SQL scripts once each.

    Applied names are recorded in ``schema_migrations``; ``schema_version``
    holds a single row that is raised to ``CURRENT_SCHEMA_VERSION`` after a
    successful run.
    """

    def __init__(self, conn: sqlite3.Connection) -> None:
        self.conn = conn

    def applied(self) -> set[str]:
        self.conn.executescript(SCHEMA_MIGRATIONS_SQL)
        rows = self.conn.execute("SELECT name FROM schema_migrations").fetchall()
        return {row[0] for row in rows}

    def version(self) -> int | None:
        self.conn.executescript(SCHEMA_VERSION_SQL)
        row = self.conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] if row else None

    def apply(self, migrations: Iterable[Migration], notes: str | None = None) -> list[str]:
        """Run every migration not yet recorded; return the names that ran."""
        done = self.applied()
        ran: list[str] = []
        for name, sql in migrations:
            if name in done or not sql.strip():
                continue
            self.conn.executescript(sql)
            self.conn.execute(
                "INSERT INTO schema_migrations (name, applied_at, notes) VALUES (?, ?, ?)",
                (name, iso_utcnow(), notes),
            )
            ran.append(name)
        current = self.version()
        if current is None or current < CURRENT_SCHEMA_VERSION:
            self.conn.execute("DELETE FROM schema_version")
            self.conn.execute(
                "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                (CURRENT_SCHEMA_VERSION, iso_utcnow()),
            )
        self.conn.commit()
        return ran
