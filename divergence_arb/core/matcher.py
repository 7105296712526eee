"""Cross-venue price matching and divergence ranking."""

from typing import Dict, Iterable, List, Tuple
from loguru import logger

from .types import MatchedPair, PriceSnapshotEntry


def calculate_divergence(price_a: float, price_b: float) -> Tuple[float, float]:
    """Absolute and percent divergence, with venue A as the reference price."""
    difference = abs(price_a - price_b)
    if price_a <= 0:
        return difference, 0.0
    return difference, difference / price_a * 100


def index_by_symbol(entries: Iterable[PriceSnapshotEntry]) -> Dict[str, PriceSnapshotEntry]:
    """Map canonical symbol to entry. Later duplicates overwrite earlier ones."""
    index: Dict[str, PriceSnapshotEntry] = {}
    for entry in entries:
        if not entry.symbol:
            continue
        if entry.symbol in index:
            logger.debug(f"Duplicate {entry.symbol} in {entry.venue} snapshot, keeping last")
        index[entry.symbol] = entry
    return index


def match_snapshots(entries_a: Iterable[PriceSnapshotEntry],
                    entries_b: Iterable[PriceSnapshotEntry]) -> List[MatchedPair]:
    """Pair up symbols listed on both venues, largest divergence first."""
    map_a = index_by_symbol(entries_a)
    map_b = index_by_symbol(entries_b)

    matched = []
    for symbol in map_a:
        if symbol not in map_b:
            continue
        price_a = map_a[symbol].price
        price_b = map_b[symbol].price
        abs_diff, diff_percent = calculate_divergence(price_a, price_b)
        matched.append(MatchedPair(
            symbol=symbol,
            price_a=price_a,
            price_b=price_b,
            abs_diff=abs_diff,
            diff_percent=diff_percent,
        ))

    matched.sort(key=lambda pair: pair.diff_percent, reverse=True)
    return matched


def find_opportunities(pairs: List[MatchedPair], threshold: float = 0.5) -> List[MatchedPair]:
    """Pairs whose divergence is at least ``threshold`` percent."""
    return [pair for pair in pairs if pair.diff_percent >= threshold]


def average_diff_percent(pairs: List[MatchedPair]) -> float:
    """Mean divergence across matched pairs."""
    if not pairs:
        return 0.0
    return sum(pair.diff_percent for pair in pairs) / len(pairs)
