"""Order book depth check ahead of a two-leg entry."""

import asyncio
from dataclasses import dataclass
from typing import List, Optional, Tuple
from loguru import logger

from ..exchanges.base import BaseVenue, OrderBook
from .errors import DataFetchError
from .types import EntryDirection


def top_level_quantity(levels: List[Tuple[float, float]], depth: int) -> float:
    """Summed size of the first ``depth`` levels."""
    return sum(size for _, size in levels[:depth])


def spread_percent(book: Optional[OrderBook]) -> Optional[float]:
    """Best ask over best bid spread as a percent of mid, None on an empty side."""
    if book is None or book.best_bid is None or book.best_ask is None:
        return None
    mid = (book.best_bid + book.best_ask) / 2
    if mid <= 0:
        return None
    return (book.best_ask - book.best_bid) / mid * 100


@dataclass
class LiquidityReport:
    """Available size on the sides a two-leg entry would take."""
    symbol: str
    buy_venue: str
    sell_venue: str
    buy_side_quantity: float  # asks on the buy venue
    sell_side_quantity: float  # bids on the sell venue
    levels: int
    buy_spread_percent: Optional[float] = None
    sell_spread_percent: Optional[float] = None

    @property
    def available_quantity(self) -> float:
        return min(self.buy_side_quantity, self.sell_side_quantity)

    def is_sufficient(self, quantity: float) -> bool:
        """True when both sides can absorb ``quantity``."""
        return self.available_quantity >= quantity


def assess_liquidity(symbol: str, book_buy: OrderBook, book_sell: OrderBook, levels: int) -> LiquidityReport:
    """Build a report from the buy venue's asks and the sell venue's bids."""
    return LiquidityReport(
        symbol=symbol,
        buy_venue=book_buy.venue,
        sell_venue=book_sell.venue,
        buy_side_quantity=top_level_quantity(book_buy.asks, levels),
        sell_side_quantity=top_level_quantity(book_sell.bids, levels),
        levels=levels,
        buy_spread_percent=spread_percent(book_buy),
        sell_spread_percent=spread_percent(book_sell),
    )


class LiquidityChecker:
    """Fetches both order books for an entry and reports available depth."""

    def __init__(self, venue_a: BaseVenue, venue_b: BaseVenue, levels: int = 5):
        self.venue_a = venue_a
        self.venue_b = venue_b
        self.levels = levels

    async def check(self, symbol: str, direction: EntryDirection,
                    quantity: float = 0.0) -> Optional[LiquidityReport]:
        """Report for ``symbol``, or None when a book could not be fetched."""
        if direction is EntryDirection.BUY_A_SELL_B:
            buy_venue, sell_venue = self.venue_a, self.venue_b
        else:
            buy_venue, sell_venue = self.venue_b, self.venue_a

        try:
            book_buy, book_sell = await asyncio.gather(
                buy_venue.fetch_order_book(symbol, limit=self.levels),
                sell_venue.fetch_order_book(symbol, limit=self.levels),
            )
        except DataFetchError as e:
            logger.warning(f"Order book unavailable for {symbol}: {e}")
            return None

        if book_buy is None or book_sell is None:
            logger.warning(f"Order book missing for {symbol} on {buy_venue.name if book_buy is None else sell_venue.name}")
            return None

        report = assess_liquidity(symbol, book_buy, book_sell, self.levels)
        self.log_report(report, quantity)
        return report

    @staticmethod
    def log_report(report: LiquidityReport, quantity: float = 0.0) -> None:
        def _fmt(value: Optional[float]) -> str:
            return "n/a" if value is None else f"{value:.4f}%"

        logger.info(
            f"Liquidity {report.symbol} (top {report.levels}): "
            f"{report.buy_venue} asks {report.buy_side_quantity:.4f}, "
            f"{report.sell_venue} bids {report.sell_side_quantity:.4f}, "
            f"spread {_fmt(report.buy_spread_percent)} / {_fmt(report.sell_spread_percent)}"
        )
        if quantity > 0 and not report.is_sufficient(quantity):
            logger.warning(
                f"Thin book for {report.symbol}: need {quantity}, "
                f"available {report.available_quantity:.4f}"
            )
