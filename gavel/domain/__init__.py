"""Domain layer for Gavel.

This package groups the pure business logic and shared models that do not
concern infrastructure or interface details: the auction aggregate, the error
taxonomy and the auction engine.
"""

from . import engine, errors, models

__all__ = ["engine", "errors", "models"]
