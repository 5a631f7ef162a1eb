"""
Dutch auction CLI

Entry point for the pricing calculator and the settlement demo.
"""

import logging

import click

from dutch.core.config import load_config
from dutch.core.errors import DutchError
from dutch.utils.logger import setup_logging


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="JSON config file")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, config_path):
    """Dutch auction settlement on an atomic ledger"""
    cfg = load_config(config_path)
    cfg.ensure_directories()
    setup_logging(
        level=logging.DEBUG if debug else getattr(logging, cfg.log_level),
        log_dir=str(cfg.log_dir),
        log_to_file=cfg.log_to_file,
    )
    ctx.obj = cfg


# =============================================================================
# Price Command
# =============================================================================


@cli.command("price")
@click.option("--start-price", required=True, type=int, help="Price at start_time")
@click.option("--floor-price", required=True, type=int, help="Price at and after end_time")
@click.option("--start-time", required=True, type=int, help="Start of the decay window")
@click.option("--end-time", required=True, type=int, help="End of the decay window")
@click.option("--now", type=int, default=None, help="Time to evaluate (omit for a table)")
@click.option("--steps", default=10, type=click.IntRange(1, 1000), help="Rows in the table")
def price(start_price, floor_price, start_time, end_time, now, steps):
    """Evaluate the price curve at one instant or over the whole window"""
    from dutch.core.auction import PriceSchedule

    try:
        schedule = PriceSchedule(start_price, floor_price, start_time, end_time)
    except DutchError as e:
        raise click.ClickException(f"{e.kind}: {e.message}")

    if now is not None:
        click.echo(schedule.price_at(now))
        return

    click.echo(f"{'time':>12}  {'price':>12}")
    for i in range(steps + 1):
        t = start_time + schedule.duration * i // steps
        click.echo(f"{t:>12}  {schedule.price_at(t):>12}")


# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.option("--settle-at", default=50, type=int, help="Time the buyer settles")
@click.pass_obj
def demo(cfg, settle_at):
    """Run a create / settle / double-settle scenario on an in-memory ledger"""
    from dutch.core.auction import AuctionClient
    from dutch.core.clock import ManualClock
    from dutch.core.state import Ledger, NATIVE_MINT
    from dutch.crypto import bytes_to_hex, generate_keypair, keccak256

    click.echo("=" * 60)
    click.echo("  DUTCH AUCTION - DEMO")
    click.echo("=" * 60)

    seller = generate_keypair()
    buyer = generate_keypair()
    rival = generate_keypair()
    mint = keccak256(b"demo-asset")[-20:]

    clock = ManualClock(now=0)
    ledger = Ledger(clock)
    client = AuctionClient(ledger, program_id=cfg.program_id)
    ledger.create_genesis([
        (seller.address, mint, 5),
        (buyer.address, NATIVE_MINT, 1000),
        (rival.address, NATIVE_MINT, 1000),
    ])

    escrow, _ = client.create_auction(
        seller, mint, amount=5, start_price=100, floor_price=10, start_time=0, end_time=100,
    )
    click.echo(f"Auction created, escrow {bytes_to_hex(escrow)[:18]}...")

    clock.set(settle_at)
    click.echo(f"t={settle_at}: clearing price {client.current_price(escrow)}")

    client.settle_auction(buyer, escrow)
    record = client.get_auction(escrow)
    click.echo(f"Settled: buyer paid {record.price_paid}, received {record.amount} tokens")

    clock.advance(10)
    try:
        client.settle_auction(rival, escrow)
    except DutchError as e:
        click.echo(f"Second settlement rejected: {e.kind}")

    click.echo(f"Seller payment balance: {ledger.get_balance(seller.address, NATIVE_MINT)}")
    click.echo(f"Buyer asset balance:    {ledger.get_balance(buyer.address, mint)}")
    click.echo(f"State root: {bytes_to_hex(ledger.state_root)[:18]}...")


if __name__ == "__main__":
    cli()
