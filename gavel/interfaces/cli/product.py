"""Product CLI: the minimal catalog auctions are created for."""

from __future__ import annotations

import click
from rich.table import Table

from gavel.services import ProductAlreadyExistsError

from .context import (CLIContext, console, db_option, product_service,
                      store_cli_context)


@click.group()
@db_option
@click.pass_context
def product(ctx: click.Context, db_path: str | None) -> None:
    """Manage products available for auction."""
    store_cli_context(ctx, db_path)


@product.command("add")
@click.argument("product_id")
@click.option("--seller", "seller_id", required=True, help="User id of the seller.")
@click.option("--stock", type=click.IntRange(min=0), default=1, show_default=True)
@click.option("--name", default=None, help="Product name.")
@click.pass_context
def add_cmd(
    ctx: click.Context, product_id: str, seller_id: str, stock: int, name: str | None
) -> None:
    """Add a product with a unique PRODUCT_ID."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    with product_service(cli_context) as service:
        try:
            service.create_product(
                product_id=product_id, seller_id=seller_id, stock=stock, name=name
            )
        except ProductAlreadyExistsError:
            console.print(f"[red]Product '{product_id}' already exists.[/red]")
            ctx.exit(1)
    console.print(f"[green]Added product [bold]{product_id}[/bold] (stock {stock})")


@product.command("list")
@click.option("--seller", "seller_id", default=None, help="Only this seller's products.")
@click.pass_context
def list_cmd(ctx: click.Context, seller_id: str | None) -> None:
    """List products."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    with product_service(cli_context) as service:
        products = service.list_products(seller_id=seller_id)

    if not products:
        console.print("[yellow]No products found.[/yellow]")
        return

    table = Table(title="Products")
    table.add_column("ID", style="bold")
    table.add_column("Seller")
    table.add_column("Name")
    table.add_column("Stock", justify="right")
    for item in products:
        table.add_row(item.id, item.seller_id, item.name or "", str(item.stock))
    console.print(table)
