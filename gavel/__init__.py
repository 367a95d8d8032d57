"""
Gavel package initializer.

This package provides a timed auction engine for product listings: auction
creation, time-derived status, bidding with anti-sniping and settlement.

The package exposes a ``__version__`` attribute indicating the installed
version of Gavel. The version is read from pyproject.toml via
importlib.metadata – this is the single source of truth.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("gavel")
except PackageNotFoundError:
    # Package is not installed (running from source without pip install -e .)
    __version__ = "0.0.0.dev"

__all__: list[str] = ["__version__"]
