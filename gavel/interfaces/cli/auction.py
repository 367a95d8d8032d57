"""Auction CLI: create, inspect, bid on and settle auctions.

Commands that act on behalf of somebody take ``--as USER_ID``; the user must
exist (see ``gavel user add``).
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta

import click
from rich.table import Table

from gavel.domain.engine import cents_up
from gavel.domain.errors import AuctionError
from gavel.domain.models import Auction, AuctionStatus
from gavel.services import AuctionService, SweepRunner
from gavel.services.dto import SweepResultDTO

from .context import (CLIContext, IsoDateTime, console, db_option, fail,
                      store_cli_context)

_STATUS_STYLES = {
    AuctionStatus.ACTIVE: "green",
    AuctionStatus.UPCOMING: "cyan",
    AuctionStatus.ENDED: "yellow",
    AuctionStatus.SOLD: "bold green",
    AuctionStatus.EXPIRED: "dim",
    AuctionStatus.CANCELLED: "red",
}


def _money(value: float | None) -> str:
    return "-" if value is None else f"{value:.2f}"


def _styled_status(status: AuctionStatus) -> str:
    style = _STATUS_STYLES.get(status, "white")
    return f"[{style}]{status.value}[/{style}]"


def _print_auction(service: AuctionService, auction: Auction) -> None:
    table = Table(title=f"Auction {auction.id}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Status", _styled_status(auction.status))
    table.add_row("Product", auction.product_id)
    table.add_row("Seller", auction.seller_id)
    table.add_row("Starts", auction.start_time.isoformat())
    table.add_row("Ends", auction.end_time.isoformat())
    table.add_row("Starting bid", _money(auction.starting_bid))
    table.add_row("Current bid", _money(auction.current_highest_bid))
    table.add_row("Leader", auction.current_highest_bidder or "-")
    minimum = cents_up(service.engine.minimum_next_bid(auction))
    table.add_row("Minimum next bid", _money(minimum))
    table.add_row("Reserve", _money(auction.reserve_price))
    table.add_row("Buy now", _money(auction.buy_now_price))
    table.add_row("Bids", str(len(auction.bids)))
    table.add_row("Winner", auction.winner or "-")
    table.add_row("Views", str(auction.view_count))
    console.print(table)


def _print_sweep(result: SweepResultDTO) -> None:
    console.print(
        f"Checked {result.checked}: "
        f"[yellow]{len(result.ended)} ended[/yellow], "
        f"[dim]{len(result.expired)} expired[/dim]"
    )
    for auction_id in result.ended:
        console.print(f"  ended   {auction_id}")
    for auction_id in result.expired:
        console.print(f"  expired {auction_id}")


def _parse_statuses(raw: str) -> list[AuctionStatus] | None:
    if raw.strip().lower() == "all":
        return None
    try:
        return [AuctionStatus.from_string(part) for part in raw.split(",") if part.strip()]
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--status") from exc


@click.group()
@db_option
@click.pass_context
def auction(ctx: click.Context, db_path: str | None) -> None:
    """Create and run auctions."""
    store_cli_context(ctx, db_path)


@auction.command("create")
@click.option("--as", "user_id", required=True, help="Seller (or admin) creating it.")
@click.option("--product", "product_id", required=True, help="Product to auction.")
@click.option("--starting-bid", type=float, required=True)
@click.option("--start", "start_time", type=IsoDateTime(), default=None,
              help="ISO-8601 start time (default: now).")
@click.option("--end", "end_time", type=IsoDateTime(), default=None,
              help="ISO-8601 end time.")
@click.option("--duration", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Length in minutes, used when --end is omitted.")
@click.option("--reserve", "reserve_price", type=float, default=None)
@click.option("--buy-now", "buy_now_price", type=float, default=None)
@click.pass_context
def create_cmd(
    ctx: click.Context,
    user_id: str,
    product_id: str,
    starting_bid: float,
    start_time: datetime | None,
    end_time: datetime | None,
    duration: float | None,
    reserve_price: float | None,
    buy_now_price: float | None,
) -> None:
    """Create an auction for a product."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    if end_time is None and duration is None:
        raise click.UsageError("Provide either --end or --duration.")
    service = cli_context.auction_service()
    requester = cli_context.requester(user_id)
    start_time = start_time or service.now()
    end_time = end_time or start_time + timedelta(minutes=duration or 0)
    try:
        created = service.create(
            requester,
            product_id=product_id,
            start_time=start_time,
            end_time=end_time,
            starting_bid=starting_bid,
            reserve_price=reserve_price,
            buy_now_price=buy_now_price,
        )
    except AuctionError as exc:
        fail(ctx, exc)
        return
    console.print(
        f"[green]Created auction [bold]{created.id}[/bold] ({created.status.value})"
    )


@auction.command("list")
@click.option("--status", "status_filter", default="Active,Upcoming", show_default=True,
              help="Comma separated statuses, or 'all'.")
@click.option("--seller", "seller_id", default=None)
@click.option("--mine", "mine_as", default=None, metavar="USER_ID",
              help="Only auctions of this seller (admins see all).")
@click.option("--page", type=click.IntRange(min=1), default=1, show_default=True)
@click.option("--limit", type=click.IntRange(1, 100), default=10, show_default=True)
@click.option("--desc", is_flag=True, help="Latest end time first.")
@click.pass_context
def list_cmd(
    ctx: click.Context,
    status_filter: str,
    seller_id: str | None,
    mine_as: str | None,
    page: int,
    limit: int,
    desc: bool,
) -> None:
    """List auctions ordered by end time."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    service = cli_context.auction_service()
    statuses = _parse_statuses(status_filter)
    try:
        if mine_as is not None:
            result = service.list_mine(
                cli_context.requester(mine_as),
                statuses=statuses,
                page=page,
                limit=limit,
                descending=desc,
            )
        else:
            result = service.list_auctions(
                statuses=statuses,
                seller_id=seller_id,
                page=page,
                limit=limit,
                descending=desc,
            )
    except AuctionError as exc:
        fail(ctx, exc)
        return

    if not result.items:
        console.print("[yellow]No auctions found.[/yellow]")
        return

    table = Table(title=f"Auctions (page {result.page}/{result.total_pages}, {result.total} total)")
    table.add_column("ID", style="bold", no_wrap=True)
    table.add_column("Product")
    table.add_column("Status")
    table.add_column("Current bid", justify="right")
    table.add_column("Bids", justify="right")
    table.add_column("Ends")
    for item in result.items:
        table.add_row(
            item.id,
            item.product_id,
            _styled_status(item.status),
            _money(item.current_highest_bid),
            str(len(item.bids)),
            item.end_time.strftime("%Y-%m-%d %H:%M:%S"),
        )
    console.print(table)


@auction.command("show")
@click.argument("auction_id")
@click.pass_context
def show_cmd(ctx: click.Context, auction_id: str) -> None:
    """Show one auction, refreshing its status."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    service = cli_context.auction_service()
    try:
        found = service.get(auction_id)
    except AuctionError as exc:
        fail(ctx, exc)
        return
    _print_auction(service, found)


@auction.command("bids")
@click.argument("auction_id")
@click.pass_context
def bids_cmd(ctx: click.Context, auction_id: str) -> None:
    """Show the bid history, newest first."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    try:
        bids = cli_context.auction_service().list_bids(auction_id)
    except AuctionError as exc:
        fail(ctx, exc)
        return

    if not bids:
        console.print("[yellow]No bids yet.[/yellow]")
        return

    table = Table(title="Bids")
    table.add_column("Bidder", style="bold")
    table.add_column("Amount", justify="right")
    table.add_column("Time")
    for item in bids:
        table.add_row(item.bidder_id, _money(item.amount), item.timestamp.isoformat())
    console.print(table)


@auction.command("bid")
@click.argument("auction_id")
@click.argument("amount", type=float)
@click.option("--as", "user_id", required=True, help="Bidder.")
@click.pass_context
def bid_cmd(ctx: click.Context, auction_id: str, amount: float, user_id: str) -> None:
    """Bid AMOUNT on AUCTION_ID."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    service = cli_context.auction_service()
    try:
        updated = service.place_bid(auction_id, cli_context.requester(user_id), amount)
    except AuctionError as exc:
        fail(ctx, exc)
        return
    console.print(
        f"[green]Bid of {_money(amount)} accepted.[/green] "
        f"Ends {updated.end_time.isoformat()}, "
        f"minimum next bid {_money(cents_up(service.engine.minimum_next_bid(updated)))}"
    )


@auction.command("update")
@click.argument("auction_id")
@click.option("--as", "user_id", required=True)
@click.option("--start", "start_time", type=IsoDateTime(), default=None)
@click.option("--end", "end_time", type=IsoDateTime(), default=None)
@click.option("--starting-bid", type=float, default=None)
@click.option("--reserve", "reserve_price", type=float, default=None)
@click.option("--clear-reserve", is_flag=True, help="Remove the reserve price.")
@click.option("--buy-now", "buy_now_price", type=float, default=None)
@click.option("--clear-buy-now", is_flag=True, help="Remove the buy now price.")
@click.pass_context
def update_cmd(
    ctx: click.Context,
    auction_id: str,
    user_id: str,
    start_time: datetime | None,
    end_time: datetime | None,
    starting_bid: float | None,
    reserve_price: float | None,
    clear_reserve: bool,
    buy_now_price: float | None,
    clear_buy_now: bool,
) -> None:
    """Change timing or prices of an auction."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    updates: dict[str, object] = {}
    if start_time is not None:
        updates["start_time"] = start_time
    if end_time is not None:
        updates["end_time"] = end_time
    if starting_bid is not None:
        updates["starting_bid"] = starting_bid
    if reserve_price is not None or clear_reserve:
        updates["reserve_price"] = None if clear_reserve else reserve_price
    if buy_now_price is not None or clear_buy_now:
        updates["buy_now_price"] = None if clear_buy_now else buy_now_price
    if not updates:
        raise click.UsageError("Nothing to update.")

    service = cli_context.auction_service()
    try:
        updated = service.update(auction_id, cli_context.requester(user_id), updates)
    except AuctionError as exc:
        fail(ctx, exc)
        return
    console.print(
        f"[green]Updated auction [bold]{auction_id}[/bold] ({updated.status.value})"
    )


@auction.command("cancel")
@click.argument("auction_id")
@click.option("--as", "user_id", required=True)
@click.pass_context
def cancel_cmd(ctx: click.Context, auction_id: str, user_id: str) -> None:
    """Cancel an auction that has not ended."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    service = cli_context.auction_service()
    try:
        service.cancel(auction_id, cli_context.requester(user_id))
    except AuctionError as exc:
        fail(ctx, exc)
        return
    console.print(f"[green]Cancelled auction [bold]{auction_id}[/bold]")


@auction.command("settle")
@click.argument("auction_id")
@click.option("--as", "user_id", required=True)
@click.pass_context
def settle_cmd(ctx: click.Context, auction_id: str, user_id: str) -> None:
    """Record the winner of an ended auction."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    service = cli_context.auction_service()
    try:
        settled = service.settle(auction_id, cli_context.requester(user_id))
    except AuctionError as exc:
        fail(ctx, exc)
        return
    console.print(
        f"[green]Auction sold to [bold]{settled.winner}[/bold] "
        f"for {_money(settled.current_highest_bid)}"
    )


@auction.command("sweep")
@click.option("--as", "user_id", default=None, help="Run as this admin.")
@click.option("--interval", type=click.FloatRange(min=0, min_open=True), default=None,
              help="Keep sweeping every INTERVAL seconds until interrupted.")
@click.option("--runs", type=click.IntRange(min=1), default=None,
              help="With --interval, stop after this many sweeps.")
@click.pass_context
def sweep_cmd(
    ctx: click.Context, user_id: str | None, interval: float | None, runs: int | None
) -> None:
    """Close auctions whose end time has passed."""
    cli_context: CLIContext = ctx.obj["cli_context"]
    service = cli_context.auction_service()
    requester = cli_context.requester(user_id) if user_id else None

    if interval is None:
        try:
            _print_sweep(service.sweep_expired(requester))
        except AuctionError as exc:
            fail(ctx, exc)
        return

    runner = SweepRunner(
        sweep=lambda: service.sweep_expired(requester), interval_seconds=interval
    )
    console.print(f"Sweeping every {interval:g}s (Ctrl+C to stop)")
    try:
        asyncio.run(_run_periodic(runner, runs))
    except KeyboardInterrupt:
        console.print("[yellow]Stopped.[/yellow]")
    state = runner.state
    console.print(f"Completed {state.runs} sweeps, {state.failures} failed")
    if state.last_error:
        console.print(f"[red]Last error: {state.last_error}[/red]")


async def _run_periodic(runner: SweepRunner, max_runs: int | None) -> None:
    await runner.start()
    try:
        while max_runs is None or runner.state.runs + runner.state.failures < max_runs:
            previous = runner.state.last_result
            await asyncio.sleep(0.05)
            if runner.state.last_result is not previous and runner.state.last_result:
                _print_sweep(runner.state.last_result)
    finally:
        await runner.stop()
