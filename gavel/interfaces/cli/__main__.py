"""Entry point for the gavel CLI.

Defines the top-level Click group aggregating every subcommand. Run it as
``gavel`` once installed, or with ``python -m gavel.interfaces.cli``.
"""

import logging

import click

from gavel import __version__
from gavel.infrastructure.observability import configure_logging

from .auction import auction
from .product import product
from .user import user


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-v", "--verbose", is_flag=True, help="Log at DEBUG level.")
@click.version_option(__version__, prog_name="gavel")
def cli(verbose: bool) -> None:
    """Gavel timed auction engine."""
    configure_logging(level=logging.DEBUG if verbose else logging.WARNING)


cli.add_command(user)
cli.add_command(product)
cli.add_command(auction)


if __name__ == "__main__":
    cli()
