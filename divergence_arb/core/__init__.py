"""Core divergence arbitrage logic."""

from .symbols import SymbolNormalizer, get_normalizer, normalize_gateio_symbol, normalize_orderly_symbol
from .types import (
    ClosedTrade, DivergenceSample, EntryDirection, EntryResult, EntryStatus,
    MatchedPair, MonitoringSession, OpenPosition, OrderSide, PnlBreakdown,
    PriceSnapshotEntry, VolumeEligiblePair,
)
from .matcher import calculate_divergence, match_snapshots, find_opportunities
from .volume_filter import filter_by_volume
from .divergence import DivergenceMonitor, format_session_report
from .positions import PositionBook

__all__ = [
    'SymbolNormalizer',
    'get_normalizer',
    'normalize_gateio_symbol',
    'normalize_orderly_symbol',
    'ClosedTrade',
    'DivergenceSample',
    'EntryDirection',
    'EntryResult',
    'EntryStatus',
    'MatchedPair',
    'MonitoringSession',
    'OpenPosition',
    'OrderSide',
    'PnlBreakdown',
    'PriceSnapshotEntry',
    'VolumeEligiblePair',
    'calculate_divergence',
    'match_snapshots',
    'find_opportunities',
    'filter_by_volume',
    'DivergenceMonitor',
    'format_session_report',
    'PositionBook',
]
