"""Divergence tracking across polling ticks."""

from datetime import datetime
from typing import List, Optional
from loguru import logger

from .matcher import match_snapshots
from .types import DivergenceSample, MonitoringSession, PriceSnapshotEntry


class DivergenceMonitor:
    """Tracks the top cross-venue divergence of every tick.

    Pure state machine: snapshots come in, state is mutated, a pause signal
    goes out. Fetching is the monitoring loop's job.
    """

    def __init__(self):
        self.start_time = datetime.now()
        self.max_sample: Optional[DivergenceSample] = None
        self.last_sample: Optional[DivergenceSample] = None
        self.history: List[DivergenceSample] = []
        self.tick_count = 0

    def tick(self, snapshot_a: List[PriceSnapshotEntry], snapshot_b: List[PriceSnapshotEntry],
             pause_threshold: float) -> bool:
        """Process one tick. True when the top divergence exceeds ``pause_threshold``."""
        self.tick_count += 1
        self.last_sample = None

        ranked = match_snapshots(snapshot_a, snapshot_b)
        if not ranked:
            return False

        sample = DivergenceSample.from_pair(ranked[0])
        self.history.append(sample)
        self.last_sample = sample

        if self.max_sample is None or sample.diff_percent > self.max_sample.diff_percent:
            self.max_sample = sample
            logger.info(
                f"New max divergence: {sample.symbol} {sample.diff_percent:.4f}% "
                f"(A {sample.price_a}, B {sample.price_b})"
            )

        return sample.diff_percent > pause_threshold

    def average_diff_percent(self) -> float:
        """Mean of the per-tick top divergence."""
        if not self.history:
            return 0.0
        return sum(sample.diff_percent for sample in self.history) / len(self.history)

    def session(self, end_time: Optional[datetime] = None) -> MonitoringSession:
        """Snapshot of the session state for reporting."""
        return MonitoringSession(
            start_time=self.start_time,
            end_time=end_time,
            tick_count=self.tick_count,
            max_sample=self.max_sample,
            average_diff_percent=self.average_diff_percent(),
            samples=list(self.history),
        )


def format_session_report(session: MonitoringSession) -> str:
    """Human readable session summary."""
    lines = [
        "=== Monitoring session result ===",
        f"Start: {session.start_time:%Y-%m-%d %H:%M:%S}",
        f"End: {session.end_time:%Y-%m-%d %H:%M:%S}" if session.end_time else "End: running",
        f"Ticks: {session.tick_count}",
        f"Average divergence: {session.average_diff_percent:.4f}%",
    ]
    best = session.max_sample
    if best is not None:
        lines.extend([
            "--- Max divergence ---",
            f"Seen at: {best.timestamp:%Y-%m-%d %H:%M:%S}",
            f"Symbol: {best.symbol}",
            f"Price A: {best.price_a}",
            f"Price B: {best.price_b}",
            f"Difference: {best.abs_diff:.6f}",
            f"Divergence: {best.diff_percent:.4f}%",
        ])
    return "\n".join(lines)
