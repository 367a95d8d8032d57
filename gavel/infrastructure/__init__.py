"""Infrastructure layer: SQLite persistence and observability."""

from . import db, observability

__all__ = ["db", "observability"]
