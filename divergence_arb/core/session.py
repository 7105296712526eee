"""Session time limit, trade records and result export."""

import time
import csv
from datetime import datetime
from typing import Dict, List, Optional, Any
from pathlib import Path
from loguru import logger

from ..config import Config
from .types import ClosedTrade, MonitoringSession
from .utils import format_duration


class SessionManager:
    """Tracks one monitoring session: its deadline, closed trades and exports."""

    def __init__(self, config: Config):
        self.config = config
        self.session_start = time.time()
        self.session_duration_hours = config.monitor.duration_hours
        self.export_results = config.session.export_results
        self.results_dir = Path(config.session.results_dir)

        self.trades_executed: List[Dict[str, Any]] = []
        self.session_pnl = 0.0
        self.session_trades = 0
        self.monitoring: Optional[MonitoringSession] = None

        duration = "unlimited" if self.session_duration_hours <= 0 else f"{self.session_duration_hours}h"
        logger.info(f"Session initialized: {duration} duration")

    @property
    def deadline(self) -> Optional[float]:
        """Epoch seconds at which the session ends, None when unlimited."""
        if self.session_duration_hours <= 0:
            return None
        return self.session_start + self.session_duration_hours * 3600

    def should_continue_session(self) -> bool:
        """Check if session should continue."""
        deadline = self.deadline
        if deadline is not None and time.time() >= deadline:
            elapsed_hours = (time.time() - self.session_start) / 3600
            logger.info(f"Session time limit reached: {elapsed_hours:.1f}h elapsed")
            return False
        return True

    def record_trade(self, trade: ClosedTrade) -> None:
        """Record a closed position pair."""
        record = trade.to_record()
        self.trades_executed.append(record)
        self.session_pnl += trade.net_profit
        self.session_trades += 1

        logger.info(f"Trade recorded: {trade.symbol} {trade.direction.value}, net PnL: {trade.net_profit:.4f}")

    def record_monitoring(self, session: MonitoringSession) -> None:
        self.monitoring = session

    def get_session_summary(self) -> Dict[str, Any]:
        """Get session summary statistics."""
        elapsed_hours = (time.time() - self.session_start) / 3600

        successful_trades = sum(1 for trade in self.trades_executed if trade['success'])
        success_rate = (successful_trades / len(self.trades_executed) * 100) if self.trades_executed else 0
        avg_pnl = self.session_pnl / self.session_trades if self.session_trades else 0
        total_fees = sum(trade['fees'] for trade in self.trades_executed)

        duration_display = "Unlimited" if self.session_duration_hours <= 0 else f"{elapsed_hours:.1f}h"

        summary = {
            'session_duration_hours': duration_display,
            'total_trades': self.session_trades,
            'successful_trades': successful_trades,
            'success_rate_pct': success_rate,
            'total_pnl': self.session_pnl,
            'total_fees': total_fees,
            'avg_pnl_per_trade': avg_pnl,
            'session_start': datetime.fromtimestamp(self.session_start).isoformat(),
            'session_end': datetime.now().isoformat(),
        }

        if self.monitoring is not None:
            summary['ticks'] = self.monitoring.tick_count
            summary['avg_diff_percent'] = self.monitoring.average_diff_percent
            best = self.monitoring.max_sample
            summary['max_diff_symbol'] = best.symbol if best else ""
            summary['max_diff_percent'] = best.diff_percent if best else 0.0
            summary['max_diff_time'] = best.timestamp.isoformat() if best else ""

        return summary

    def export_results_csv(self, filename: Optional[str] = None) -> str:
        """Export session results to CSV. Returns the trades file path, or "" when disabled."""
        if not self.export_results:
            return ""

        if filename is None:
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            filename = f"divergence_session_{timestamp}.csv"

        filepath = Path(filename)
        if not filepath.is_absolute() and filepath.parent == Path("."):
            filepath = self.results_dir / filepath
        filepath.parent.mkdir(parents=True, exist_ok=True)

        if self.trades_executed:
            with open(filepath, 'w', newline='', encoding='utf-8') as csvfile:
                fieldnames = self.trades_executed[0].keys()
                writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
                writer.writeheader()
                writer.writerows(self.trades_executed)

        summary_filepath = filepath.with_name(f"{filepath.stem}_summary.csv")
        summary = self.get_session_summary()

        with open(summary_filepath, 'w', newline='', encoding='utf-8') as csvfile:
            writer = csv.writer(csvfile)
            for key, value in summary.items():
                writer.writerow([key, value])

        logger.info(f"Session results exported to {filepath} and {summary_filepath}")
        return str(filepath)

    def log_session_status(self) -> None:
        """Log current session status."""
        elapsed = time.time() - self.session_start
        logger.info(f"Session Status: {format_duration(elapsed)} elapsed")
        if self.deadline is not None:
            logger.info(f"Remaining: {format_duration(max(0.0, self.deadline - time.time()))}")
        logger.info(f"Trades: {self.session_trades} closed, PnL: {self.session_pnl:.4f}")
