#!/usr/bin/env python3
"""
Shared types and data structures for the divergence arbitrage bot.
This file breaks circular imports between modules.
"""

import time
from datetime import datetime
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field
from enum import Enum


class OrderSide(Enum):
    """Side of a single market order."""
    BUY = "buy"
    SELL = "sell"

    @property
    def opposite(self) -> "OrderSide":
        return OrderSide.SELL if self is OrderSide.BUY else OrderSide.BUY


class EntryDirection(Enum):
    """Direction of a two-leg divergence trade."""
    BUY_A_SELL_B = "buy_a_sell_b"  # A is cheaper: long on A, short on B
    BUY_B_SELL_A = "buy_b_sell_a"  # B is cheaper: long on B, short on A

    @property
    def side_a(self) -> OrderSide:
        return OrderSide.BUY if self is EntryDirection.BUY_A_SELL_B else OrderSide.SELL

    @property
    def side_b(self) -> OrderSide:
        return self.side_a.opposite


@dataclass
class PriceSnapshotEntry:
    """One instrument of one venue, converted at the ingestion boundary."""
    venue: str
    symbol: str  # canonical symbol
    price: float
    volume_24h: float = 0.0
    timestamp: int = 0
    raw_symbol: str = ""

    def __post_init__(self):
        if self.timestamp == 0:
            self.timestamp = int(time.time() * 1000)


@dataclass
class MatchedPair:
    """Prices of one canonical symbol present on both venues."""
    symbol: str
    price_a: float
    price_b: float
    abs_diff: float
    diff_percent: float


@dataclass
class VolumeEligiblePair:
    """Symbol whose 24h volume clears the bar on both venues."""
    symbol: str
    price_a: float
    price_b: float
    volume_a: float
    volume_b: float
    avg_volume: float


@dataclass
class DivergenceSample:
    """Top divergence observed on one polling tick."""
    symbol: str
    price_a: float
    price_b: float
    abs_diff: float
    diff_percent: float
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def from_pair(cls, pair: MatchedPair) -> "DivergenceSample":
        return cls(
            symbol=pair.symbol,
            price_a=pair.price_a,
            price_b=pair.price_b,
            abs_diff=pair.abs_diff,
            diff_percent=pair.diff_percent,
        )


@dataclass
class OpenPosition:
    """Confirmed two-leg position keyed by canonical symbol."""
    symbol: str
    direction: EntryDirection
    entry_price_a: float
    entry_price_b: float
    quantity: float
    opened_at: datetime = field(default_factory=datetime.now)
    order_id_a: Optional[str] = None
    order_id_b: Optional[str] = None

    @property
    def entry_diff_percent(self) -> float:
        if self.entry_price_a <= 0:
            return 0.0
        return abs(self.entry_price_a - self.entry_price_b) / self.entry_price_a * 100


@dataclass
class PnlBreakdown:
    """Realized profit of a closed pair."""
    profit_a: float
    profit_b: float
    gross_profit: float
    fee_a: float
    fee_b: float
    total_fees: float
    net_profit: float
    net_percent: float


@dataclass
class ClosedTrade:
    """Write-once record of a closed position pair."""
    symbol: str
    direction: EntryDirection
    entry_price_a: float
    entry_price_b: float
    exit_price_a: float
    exit_price_b: float
    quantity: float
    fees: float
    gross_profit: float
    net_profit: float
    opened_at: datetime
    closed_at: datetime = field(default_factory=datetime.now)
    success: bool = True
    error: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        """Flat dict used by CSV export and notifications."""
        return {
            'symbol': self.symbol,
            'direction': self.direction.value,
            'entry_price_a': self.entry_price_a,
            'entry_price_b': self.entry_price_b,
            'exit_price_a': self.exit_price_a,
            'exit_price_b': self.exit_price_b,
            'quantity': self.quantity,
            'fees': self.fees,
            'gross_profit': self.gross_profit,
            'net_profit': self.net_profit,
            'opened_at': self.opened_at.isoformat(),
            'closed_at': self.closed_at.isoformat(),
            'success': self.success,
            'error': self.error or "",
        }


class EntryStatus(Enum):
    """Outcome of an entry attempt."""
    OPENED = "opened"
    SKIPPED_EXISTING = "skipped_existing"
    SKIPPED_NO_DIRECTION = "skipped_no_direction"
    SKIPPED_DISABLED = "skipped_disabled"
    SKIPPED_SIZE = "skipped_size"
    SKIPPED_LIQUIDITY = "skipped_liquidity"
    FAILED = "failed"


@dataclass
class EntryResult:
    """Result of PositionLifecycleManager.try_enter."""
    status: EntryStatus
    symbol: str
    direction: Optional[EntryDirection] = None
    position: Optional[OpenPosition] = None
    leg_a_ok: bool = False
    leg_b_ok: bool = False
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return self.status is EntryStatus.OPENED


@dataclass
class MonitoringSession:
    """Summary of one run of the monitoring loop."""
    start_time: datetime
    end_time: Optional[datetime]
    tick_count: int
    max_sample: Optional[DivergenceSample]
    average_diff_percent: float
    samples: List[DivergenceSample] = field(default_factory=list)
