"""MarketSim CLI."""

import asyncio
import logging
import random
import sys
from decimal import Decimal

import click

from marketsim.app import MarketSimApp
from marketsim.config_loader import AppConfig, load_config
from marketsim.constants import LOG_FORMAT, OrderSide


def _load(config_path):
    return load_config(config_path) if config_path else AppConfig()


class SimulatedClock:
    """Manually advanced clock for offline runs."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


@click.group()
def cli():
    """MarketSim Command Line Interface."""
    pass


@cli.command()
@click.option(
    "--config",
    type=click.Path(exists=True),
    default="config/config.yaml",
    help="Path to configuration file",
)
@click.option("--log-level", help="Override log level (DEBUG, INFO, WARNING, ERROR)")
@click.option("--db", "database_path", help="Override ledger database path")
@click.option("--tick-interval", type=float, help="Override tick interval in seconds")
@click.option("--ticks", type=int, help="Stop after this many ticks")
def run(config, log_level, database_path, tick_interval, ticks):
    """Start the market simulation."""
    try:
        app = MarketSimApp(
            config_path=config,
            log_level=log_level,
            database_path=database_path,
            tick_interval=tick_interval,
        )
        asyncio.run(app.run(max_ticks=ticks))
    except KeyboardInterrupt:
        pass
    except Exception as e:
        click.echo(f"Fatal error: {e}", err=True)
        import traceback

        traceback.print_exc()
        sys.exit(1)


@cli.command()
@click.option(
    "--config",
    type=click.Path(exists=True),
    default="config/config.yaml",
    help="Path to configuration file",
)
def smoke_test(config):
    """Run a smoke test (initialize components, tick once and exit)."""

    async def _smoke():
        app = MarketSimApp(config_path=config)
        await app.initialize()
        try:
            await app.service.tick()
        finally:
            await app.service.close()

    try:
        asyncio.run(_smoke())
        click.echo("Smoke test passed: Components initialized successfully.")
    except Exception as e:
        click.echo(f"Smoke test failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--config",
    type=click.Path(exists=True),
    default=None,
    help="Path to configuration file (built-in defaults when omitted)",
)
@click.option("--ticks", default=300, help="Number of ticks to simulate")
@click.option("--seed", type=int, default=None, help="Random seed for a reproducible run")
@click.option("--event", "events", multiple=True, help="SYMBOL:EVENT_TYPE@TICK, may repeat")
def simulate(config, ticks, seed, events):
    """Run an offline simulation and print a candle summary per symbol."""
    from marketsim.service import MarketService

    logging.basicConfig(level=logging.WARNING, format=LOG_FORMAT)
    cfg = _load(config)

    schedule: dict[int, list[tuple[str, str]]] = {}
    for entry in events:
        try:
            target, at = entry.rsplit("@", 1)
            symbol, event_type = target.split(":", 1)
            schedule.setdefault(int(at), []).append((symbol, event_type))
        except ValueError:
            raise click.BadParameter(f"Expected SYMBOL:EVENT_TYPE@TICK, got: {entry}") from None

    async def _simulate():
        # One tick per configured interval, starting at t=0
        clock = SimulatedClock()
        service = MarketService(cfg, rng=random.Random(seed), clock=clock)
        try:
            for i in range(ticks):
                clock.now = i * cfg.clock.tick_interval_seconds
                for symbol, event_type in schedule.get(i, ()):
                    record = await service.trigger_teaching_event(
                        cfg.admin.pin, symbol, event_type
                    )
                    click.echo(f"[tick {i}] {record.message}")
                pending = {s: service.events.pending(s) for s in service.registry.symbols}
                await service.tick()
                for symbol, before in pending.items():
                    if service.events.pending(symbol) < before:
                        click.echo(f"[tick {i}] Reversal applied on {symbol}")
            return service
        finally:
            await service.close()

    service = asyncio.run(_simulate())

    click.echo(f"\nSimulated {ticks} ticks (seed={seed}, {cfg.candles.bucket_seconds}s candles)\n")
    click.echo(f"{'SYMBOL':<8}{'OPEN':>14}{'LAST':>14}{'CHANGE':>10}{'HIGH':>14}{'LOW':>14}{'CANDLES':>9}")
    for cell in service.registry.cells():
        state = cell.state
        history = list(state.candle_history)
        high = max((c.high for c in history), default=state.price)
        low = min((c.low for c in history), default=state.price)
        click.echo(
            f"{state.symbol:<8}{state.session_open_price:>14.4f}{state.price:>14.4f}"
            f"{state.change_pct:>9.2f}%{high:>14.4f}{low:>14.4f}{len(history):>9}"
        )


@cli.command()
@click.argument("symbol")
@click.argument("side", type=click.Choice(["BUY", "SELL"], case_sensitive=False))
@click.argument("qty", type=str)
@click.option(
    "--config",
    type=click.Path(exists=True),
    default=None,
    help="Path to configuration file (built-in defaults when omitted)",
)
def quote(symbol, side, qty, config):
    """Estimate a fill against the configured opening market."""
    from marketsim.errors import MarketSimError
    from marketsim.execution.pricing import quote as price_order
    from marketsim.market.state import MarketRegistry

    cfg = _load(config)
    registry = MarketRegistry(cfg.symbols, cfg.market_defaults, cfg.limits)
    try:
        state = registry.get(symbol).state
        fill = price_order(state, OrderSide(side.upper()), Decimal(qty), cfg.execution)
    except MarketSimError as e:
        click.echo(f"{e.kind}: {e.message}", err=True)
        sys.exit(1)
    except ArithmeticError:
        click.echo(f"Invalid quantity: {qty}", err=True)
        sys.exit(1)

    click.echo(f"{fill.side.value} {fill.qty} {fill.symbol}")
    click.echo(f"  Mid:   {fill.mid_price:.6f}")
    click.echo(f"  Fill:  {fill.fill_price:.6f}")
    click.echo(f"  Fee:   {fill.fee:.6f}")
    if fill.side == OrderSide.BUY:
        click.echo(f"  Total: {fill.total_cost:.6f}")
    else:
        click.echo(f"  Net:   {fill.net_proceeds:.6f}")


if __name__ == "__main__":
    cli()

# Alias for __main__.py
main = cli
