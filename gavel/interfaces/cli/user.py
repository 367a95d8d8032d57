"""User management CLI: the identities auctions are created and bid as."""

from __future__ import annotations

import click
from rich.table import Table

from gavel.services import UserAlreadyExistsError

from .context import CLIContext, console, db_option, store_cli_context, user_service


@click.group()
@db_option
@click.pass_context
def user(ctx: click.Context, db_path: str | None) -> None:
    """Manage users and their roles."""
    store_cli_context(ctx, db_path)


@user.command("add")
@click.argument("user_id")
@click.option(
    "--role",
    type=click.Choice(["buyer", "seller", "admin"], case_sensitive=False),
    default="buyer",
    show_default=True,
)
@click.option("--name", default=None, help="Display name.")
@click.pass_context
def add_cmd(ctx: click.Context, user_id: str, role: str, name: str | None) -> None:
    """Add a user with a unique USER_ID."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    with user_service(cli_context) as service:
        try:
            created = service.create_user(user_id=user_id, role=role, name=name)
        except UserAlreadyExistsError:
            console.print(f"[red]User '{user_id}' already exists.[/red]")
            ctx.exit(1)
    console.print(f"[green]Added {created.role} [bold]{user_id}[/bold]")


@user.command("list")
@click.pass_context
def list_cmd(ctx: click.Context) -> None:
    """List all users."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    with user_service(cli_context) as service:
        users = service.list_users()

    if not users:
        console.print("[yellow]No users found.[/yellow]")
        return

    table = Table(title="Users")
    table.add_column("ID", style="bold")
    table.add_column("Role")
    table.add_column("Name")
    for item in users:
        table.add_row(item.id, item.role, item.name or "")
    console.print(table)
