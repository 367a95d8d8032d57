"""Click commands for gavel.

Use ``gavel.interfaces.cli`` for imports and module execution.
"""

from .__main__ import cli
from .auction import auction
from .product import product
from .user import user

__all__ = ["auction", "cli", "product", "user"]
