"""Trailing-volume eligibility across both venues."""

from typing import Iterable, List, Set
from loguru import logger

from .matcher import index_by_symbol
from .types import PriceSnapshotEntry, VolumeEligiblePair


def filter_by_volume(entries_a: Iterable[PriceSnapshotEntry],
                     entries_b: Iterable[PriceSnapshotEntry],
                     min_volume: float) -> List[VolumeEligiblePair]:
    """Symbols whose 24h volume is at least ``min_volume`` on both venues.

    Each venue's volume is checked on its own; the average is only reported
    for ranking. Output is sorted by average volume, highest first.
    """
    map_a = index_by_symbol(entries_a)
    map_b = index_by_symbol(entries_b)

    eligible = []
    for symbol in map_a.keys() & map_b.keys():
        entry_a = map_a[symbol]
        entry_b = map_b[symbol]
        if entry_a.volume_24h >= min_volume and entry_b.volume_24h >= min_volume:
            eligible.append(VolumeEligiblePair(
                symbol=symbol,
                price_a=entry_a.price,
                price_b=entry_b.price,
                volume_a=entry_a.volume_24h,
                volume_b=entry_b.volume_24h,
                avg_volume=(entry_a.volume_24h + entry_b.volume_24h) / 2,
            ))

    eligible.sort(key=lambda pair: pair.avg_volume, reverse=True)
    return eligible


def restrict_to_symbols(entries: Iterable[PriceSnapshotEntry], symbols: Set[str]) -> List[PriceSnapshotEntry]:
    """Keep only entries whose canonical symbol is in ``symbols``."""
    return [entry for entry in entries if entry.symbol in symbols]


def log_filter_results(pairs: List[VolumeEligiblePair], min_volume: float, top: int = 5) -> None:
    """Log a short summary of the volume filter."""
    logger.info(f"Volume filter: min {min_volume:,.0f}, {len(pairs)} common symbols eligible")
    if not pairs:
        logger.warning("No common symbols meet the volume requirement")
        return
    for rank, pair in enumerate(pairs[:top], start=1):
        logger.info(f"  {rank}. {pair.symbol} - avg volume {pair.avg_volume:,.0f}")
