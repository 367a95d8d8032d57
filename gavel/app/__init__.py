"""Application layer: configuration, HTTP API and its dependencies."""

from . import config

__all__ = ["config"]
