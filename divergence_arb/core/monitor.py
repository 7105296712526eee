"""Monitoring loop: scan for divergence, enter, watch, repeat."""

import asyncio
import time
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple
from loguru import logger

from ..config import Config
from ..exchanges.base import BaseVenue
from .divergence import DivergenceMonitor, format_session_report
from .errors import DataFetchError
from .lifecycle import PositionLifecycleManager, describe_open_positions
from .session import SessionManager
from .types import MonitoringSession, PriceSnapshotEntry
from .volume_filter import filter_by_volume, log_filter_results, restrict_to_symbols


class MonitorState(Enum):
    """Phase of the monitoring loop."""
    SCANNING = "scanning"
    ENTERING_POSITION = "entering_position"
    WATCHING_POSITION = "watching_position"


TRANSITIONS: Dict[MonitorState, Set[MonitorState]] = {
    MonitorState.SCANNING: {MonitorState.SCANNING, MonitorState.ENTERING_POSITION},
    MonitorState.ENTERING_POSITION: {MonitorState.WATCHING_POSITION, MonitorState.SCANNING},
    MonitorState.WATCHING_POSITION: {MonitorState.SCANNING},
}


class DivergenceArbitrageLoop:
    """Drives the divergence monitor and the position lifecycle on one task.

    Entry and the position watch run inline, so at most one entry or exit
    pipeline is active and scanning resumes only once the watch returns.
    """

    def __init__(self, config: Config, venue_a: BaseVenue, venue_b: BaseVenue,
                 lifecycle: PositionLifecycleManager,
                 monitor: Optional[DivergenceMonitor] = None,
                 session: Optional[SessionManager] = None):
        self.config = config
        self.venue_a = venue_a
        self.venue_b = venue_b
        self.lifecycle = lifecycle
        self.monitor = monitor or DivergenceMonitor()
        self.session = session or SessionManager(config)
        self.state = MonitorState.SCANNING
        self.running = False
        self._eligible_count: Optional[int] = None

    def _transition(self, new_state: MonitorState) -> None:
        if new_state not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Illegal monitor transition {self.state.value} -> {new_state.value}")
        if new_state is not self.state:
            logger.debug(f"Monitor state {self.state.value} -> {new_state.value}")
        self.state = new_state

    def stop(self) -> None:
        """Ask the loop to exit after the current iteration."""
        logger.info("Stop requested")
        self.running = False

    def is_running(self) -> bool:
        return self.running

    async def _fetch_snapshots(self) -> Tuple[List[PriceSnapshotEntry], List[PriceSnapshotEntry]]:
        """Both venue snapshots, an empty list for a venue that failed."""
        results = await asyncio.gather(
            self.venue_a.fetch_snapshot(),
            self.venue_b.fetch_snapshot(),
            return_exceptions=True,
        )
        snapshots = []
        for venue, result in zip((self.venue_a, self.venue_b), results):
            if isinstance(result, DataFetchError):
                logger.warning(f"Snapshot from {venue.name} unavailable: {result}")
                snapshots.append([])
            elif isinstance(result, BaseException):
                logger.error(f"Unexpected snapshot error from {venue.name}: {result}")
                snapshots.append([])
            else:
                snapshots.append(result)
        return snapshots[0], snapshots[1]

    def _apply_volume_filter(self, snapshot_a: List[PriceSnapshotEntry],
                             snapshot_b: List[PriceSnapshotEntry]
                             ) -> Tuple[List[PriceSnapshotEntry], List[PriceSnapshotEntry]]:
        min_volume = self.config.monitor.min_volume
        if min_volume <= 0 or not snapshot_a or not snapshot_b:
            return snapshot_a, snapshot_b

        eligible = filter_by_volume(snapshot_a, snapshot_b, min_volume)
        if self._eligible_count != len(eligible):
            log_filter_results(eligible, min_volume)
            self._eligible_count = len(eligible)

        symbols = {pair.symbol for pair in eligible}
        return restrict_to_symbols(snapshot_a, symbols), restrict_to_symbols(snapshot_b, symbols)

    async def _scan(self) -> bool:
        """One scanning tick. True when the divergence threshold was exceeded."""
        snapshot_a, snapshot_b = await self._fetch_snapshots()
        snapshot_a, snapshot_b = self._apply_volume_filter(snapshot_a, snapshot_b)

        triggered = self.monitor.tick(snapshot_a, snapshot_b, self.config.monitor.pause_threshold_pct)

        every = self.config.monitor.progress_log_every
        if every > 0 and self.monitor.tick_count % every == 0:
            self._log_progress()

        return triggered

    def _log_progress(self) -> None:
        def _fmt(sample) -> str:
            return f"{sample.symbol} {sample.diff_percent:.4f}%" if sample else "none"

        logger.info(
            f"Tick {self.monitor.tick_count}: "
            f"top {_fmt(self.monitor.last_sample)}, max {_fmt(self.monitor.max_sample)}, "
            f"avg {self.monitor.average_diff_percent():.4f}%, "
            f"open positions {len(self.lifecycle.book)}"
        )
        self.session.log_session_status()

    async def _iterate(self) -> None:
        if self.state is MonitorState.SCANNING:
            if len(self.lifecycle.book) > 0:
                self._transition(MonitorState.ENTERING_POSITION)
            elif await self._scan():
                sample = self.monitor.last_sample
                logger.info(
                    f"Divergence {sample.diff_percent:.4f}% on {sample.symbol} exceeds "
                    f"{self.config.monitor.pause_threshold_pct}%, pausing scan"
                )
                self._transition(MonitorState.ENTERING_POSITION)
            else:
                return

        if self.state is MonitorState.ENTERING_POSITION:
            sample = self.monitor.last_sample
            if sample is not None and len(self.lifecycle.book) == 0:
                result = await self.lifecycle.try_enter(sample)
                logger.info(f"Entry attempt for {result.symbol}: {result.status.value}")
            if len(self.lifecycle.book) > 0:
                self._transition(MonitorState.WATCHING_POSITION)
            else:
                self._transition(MonitorState.SCANNING)
                return

        if self.state is MonitorState.WATCHING_POSITION:
            closed = await self.lifecycle.watch_positions(self.is_running, self.session.deadline)
            for trade in closed:
                self.session.record_trade(trade)
            self._transition(MonitorState.SCANNING)

    async def run(self) -> MonitoringSession:
        """Run until stopped or the session deadline passes."""
        self.running = True
        interval = self.config.monitor.interval_sec
        logger.info(
            f"Monitoring {self.venue_a.name} vs {self.venue_b.name}: "
            f"threshold {self.config.monitor.pause_threshold_pct}%, interval {interval}s, "
            f"trading {'on' if self.lifecycle.trading_enabled else 'off'}"
        )

        try:
            while self.running and self.session.should_continue_session():
                started = time.time()
                try:
                    await self._iterate()
                except Exception as e:
                    logger.error(f"Monitoring iteration failed: {e}")
                    self.state = MonitorState.SCANNING

                if not self.running:
                    break
                await asyncio.sleep(max(0.0, interval - (time.time() - started)))
        finally:
            self.running = False
            result = self.monitor.session(end_time=datetime.now())
            self.session.record_monitoring(result)
            logger.info("\n" + format_session_report(result))
            if len(self.lifecycle.book) > 0:
                logger.warning(f"Positions still open at shutdown: {', '.join(self.lifecycle.book.symbols())}")
                for line in describe_open_positions(self.lifecycle.book):
                    logger.warning(f"  {line}")

        return result
