"""Main entry point for the cross-venue divergence arbitrage bot."""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Optional
import click
from dotenv import load_dotenv
from loguru import logger

# uvloop is not available on Windows
try:
    import uvloop
    UVLOOP_AVAILABLE = True
except ImportError:
    UVLOOP_AVAILABLE = False

from .config import Config, LoggingConfig
from .exchanges import create_venue
from .core.lifecycle import PositionLifecycleManager
from .core.liquidity import LiquidityChecker
from .core.matcher import match_snapshots
from .core.monitor import DivergenceArbitrageLoop
from .core.positions import PositionBook
from .core.session import SessionManager
from .core.utils import mask_secret
from .core.volume_filter import filter_by_volume, restrict_to_symbols
from .notify.telegram import TelegramNotifier

STDERR_FORMAT = ("<green>{time:HH:mm:ss}</green> | <level>{level: <8}</level> | "
                 "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>")
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}"


def setup_logging(logging_config: LoggingConfig, level: Optional[str] = None) -> None:
    """stderr sink plus an optional rotating file sink."""
    logger.remove()
    logger.add(sys.stderr, level=level or logging_config.level, format=STDERR_FORMAT)
    if logging_config.file:
        logger.add(logging_config.file, level="DEBUG", format=FILE_FORMAT,
                   rotation="50 MB", retention=5)


def load_config(config_path: Optional[str]) -> Config:
    """Config from ``config_path``, ./config.yaml, or built-in defaults."""
    load_dotenv()
    if config_path:
        return Config.load_from_file(config_path)
    if Path("config.yaml").exists():
        return Config.load_from_file("config.yaml")
    logger.warning("No config.yaml found, using defaults")
    return Config.default()


class DivergenceArbBot:
    """Wires venues, notifier and the monitoring loop for one session."""

    def __init__(self, config: Config):
        self.config = config
        self.venue_a = create_venue(config.exchanges.left)
        self.venue_b = create_venue(config.exchanges.right)
        self.notifier = TelegramNotifier(config.alerts) if config.alerts else None
        self.session_manager = SessionManager(config)
        self.lifecycle = PositionLifecycleManager(
            config,
            self.venue_a,
            self.venue_b,
            book=PositionBook(),
            notifier=self.notifier,
            liquidity=LiquidityChecker(self.venue_a, self.venue_b, config.trading.orderbook_levels),
        )
        self.loop = DivergenceArbitrageLoop(
            config, self.venue_a, self.venue_b, self.lifecycle, session=self.session_manager,
        )

        logger.info("Divergence Arbitrage Bot initialized")
        logger.info(f"Venue A: {self.venue_a.name} ({config.exchanges.left.ccxt_id})")
        logger.info(f"Venue B: {self.venue_b.name} ({config.exchanges.right.ccxt_id})")
        logger.info(f"Pause threshold: {config.monitor.pause_threshold_pct}%")
        logger.info(f"Min volume: {config.monitor.min_volume:,.0f}")
        logger.info(f"Position size: {config.trading.position_pct:.0%} of free collateral")

    def _install_signal_handlers(self) -> None:
        event_loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                event_loop.add_signal_handler(signum, self.loop.stop)
            except (NotImplementedError, RuntimeError):
                # Windows event loops have no signal handler support
                pass

    async def log_balances(self) -> None:
        """Log free collateral on both venues."""
        balances = await self.lifecycle.fetch_balances()
        for venue, balance in zip((self.venue_a, self.venue_b), balances):
            if balance is not None:
                logger.info(f"{venue.name} free {venue.config.settle}: {balance:.2f}")

    async def start(self) -> None:
        """Connect, run the monitoring loop, then shut down."""
        try:
            for venue in (self.venue_a, self.venue_b):
                if not await venue.connect():
                    raise RuntimeError(f"Could not connect to {venue.name}")

            await self.log_balances()
            self._install_signal_handlers()
            await self.loop.run()
        finally:
            await self.stop()

    async def stop(self) -> None:
        """Disconnect venues, flush notifications and export results."""
        logger.info("Stopping Divergence Arbitrage Bot")
        for venue in (self.venue_a, self.venue_b):
            await venue.disconnect()
        if self.notifier:
            await self.notifier.close()

        summary = self.session_manager.get_session_summary()
        logger.info(f"Closed trades: {summary['total_trades']}, net PnL: {summary['total_pnl']:.4f}")
        try:
            self.session_manager.export_results_csv()
        except OSError as e:
            logger.error(f"Failed to export session results: {e}")


async def _snapshot(config: Config, top: int, min_volume: Optional[float]) -> None:
    venue_a = create_venue(config.exchanges.left)
    venue_b = create_venue(config.exchanges.right)
    try:
        for venue in (venue_a, venue_b):
            if not await venue.connect():
                raise click.ClickException(f"Could not connect to {venue.name}")

        snapshot_a, snapshot_b = await asyncio.gather(venue_a.fetch_snapshot(), venue_b.fetch_snapshot())
        threshold = config.monitor.min_volume if min_volume is None else min_volume
        if threshold > 0:
            eligible = {pair.symbol: pair for pair in filter_by_volume(snapshot_a, snapshot_b, threshold)}
            snapshot_a = restrict_to_symbols(snapshot_a, set(eligible))
            snapshot_b = restrict_to_symbols(snapshot_b, set(eligible))
        else:
            eligible = {}

        pairs = match_snapshots(snapshot_a, snapshot_b)
        print(f"\n=== {venue_a.name} vs {venue_b.name}: {len(pairs)} common symbols ===")
        print(f"{'Symbol':<12}{'Price A':>16}{'Price B':>16}{'Diff %':>10}{'Avg volume':>18}")
        for pair in pairs[:top]:
            volume = eligible[pair.symbol].avg_volume if pair.symbol in eligible else 0.0
            print(f"{pair.symbol:<12}{pair.price_a:>16.8g}{pair.price_b:>16.8g}"
                  f"{pair.diff_percent:>10.4f}{volume:>18,.0f}")
    finally:
        for venue in (venue_a, venue_b):
            await venue.disconnect()


@click.group()
def cli():
    """Cross-Venue Divergence Arbitrage Bot CLI."""
    pass


@cli.command()
@click.option('--config', 'config_path', type=click.Path(exists=True), default=None,
              help='Path to config file (default: ./config.yaml)')
@click.option('--dry-run', is_flag=True, help='Monitor only, never place orders')
def run(config_path, dry_run):
    """Monitor divergence and trade reversals."""
    config = load_config(config_path)
    setup_logging(config.logging)

    if dry_run:
        config.trading.enabled = False
        logger.info("Dry run: trading disabled")

    # Use uvloop on Linux for better performance
    if sys.platform != "win32" and UVLOOP_AVAILABLE:
        uvloop.install()

    bot = DivergenceArbBot(config)

    try:
        asyncio.run(bot.start())
    except KeyboardInterrupt:
        logger.info("Bot stopped by user")
    except Exception as e:
        logger.error(f"Bot failed: {e}")
        sys.exit(1)


@cli.command()
@click.option('--config', 'config_path', type=click.Path(exists=True), default=None,
              help='Path to config file (default: ./config.yaml)')
@click.option('--top', default=20, type=int, help='Rows to show (default: 20)')
@click.option('--min-volume', type=float, default=None, help='Override the 24h volume filter')
def snapshot(config_path, top, min_volume):
    """Print one matched, volume-filtered divergence table."""
    config = load_config(config_path)
    setup_logging(config.logging, level="WARNING")
    asyncio.run(_snapshot(config, top, min_volume))


@cli.command('check-auth')
@click.option('--config', 'config_path', type=click.Path(exists=True), default=None,
              help='Path to config file (default: ./config.yaml)')
def check_auth(config_path):
    """Report which venue credentials are configured."""
    config = load_config(config_path)
    setup_logging(config.logging, level="WARNING")

    all_present = True
    for venue in (config.exchanges.left, config.exchanges.right):
        acct = venue.account
        status = "OK" if acct.is_complete else "MISSING"
        all_present = all_present and acct.is_complete
        print(f"{venue.name} ({venue.ccxt_id}): {status}")
        print(f"  key:    {mask_secret(acct.key)}")
        print(f"  secret: {mask_secret(acct.secret, visible=4)}")
        if acct.account_id:
            print(f"  account id: {mask_secret(acct.account_id)}")

    if config.alerts and config.alerts.telegram_token:
        print(f"telegram: token {mask_secret(config.alerts.telegram_token)}, chat {config.alerts.telegram_chat_id or '<missing>'}")
    else:
        print("telegram: disabled")

    if not all_present:
        print("Trading will be disabled until both venues have credentials.")
        sys.exit(1)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
