"""Test order book depth checks."""

from unittest.mock import AsyncMock

import pytest

from divergence_arb.core.errors import DataFetchError
from divergence_arb.core.liquidity import LiquidityChecker, assess_liquidity, spread_percent
from divergence_arb.core.types import EntryDirection
from sample_data import fake_venue, order_book


class TestAssessLiquidity:
    """Test the buy-asks / sell-bids depth rule."""

    def setup_method(self):
        self.book_gate = order_book(
            "gateio", "BTC",
            bids=[(99.9, 1.0), (99.8, 2.0)],
            asks=[(100.1, 1.5), (100.2, 2.5), (100.3, 4.0)],
        )
        self.book_orderly = order_book(
            "orderly", "BTC",
            bids=[(101.9, 0.5), (101.8, 0.7), (101.7, 3.0)],
            asks=[(102.1, 9.0)],
        )

    def test_sums_relevant_sides(self):
        report = assess_liquidity("BTC", self.book_gate, self.book_orderly, levels=2)
        assert report.buy_side_quantity == pytest.approx(4.0)
        assert report.sell_side_quantity == pytest.approx(1.2)
        assert report.available_quantity == pytest.approx(1.2)

    def test_is_sufficient(self):
        report = assess_liquidity("BTC", self.book_gate, self.book_orderly, levels=3)
        assert report.is_sufficient(4.2) is True
        assert report.is_sufficient(4.3) is False

    def test_spread_percent(self):
        assert spread_percent(self.book_gate) == pytest.approx(0.2 / 100.0 * 100)
        assert spread_percent(order_book("x", "BTC", bids=[], asks=[(1.0, 1.0)])) is None


class TestLiquidityChecker:
    """Test fetching both books for a direction."""

    @pytest.mark.asyncio
    async def test_buy_b_reads_asks_on_b(self):
        venue_a = fake_venue("gateio")
        venue_b = fake_venue("orderly")
        venue_a.fetch_order_book = AsyncMock(return_value=order_book("gateio", "BTC", [(99.0, 3.0)], [(100.0, 1.0)]))
        venue_b.fetch_order_book = AsyncMock(return_value=order_book("orderly", "BTC", [(97.0, 1.0)], [(98.0, 5.0)]))
        checker = LiquidityChecker(venue_a, venue_b, levels=5)

        report = await checker.check("BTC", EntryDirection.BUY_B_SELL_A, quantity=2.0)

        assert report.buy_venue == "orderly"
        assert report.buy_side_quantity == 5.0
        assert report.sell_side_quantity == 3.0
        venue_a.fetch_order_book.assert_awaited_once_with("BTC", limit=5)

    @pytest.mark.asyncio
    async def test_fetch_error_returns_none(self):
        venue_a = fake_venue("gateio")
        venue_b = fake_venue("orderly")
        venue_a.fetch_order_book = AsyncMock(side_effect=DataFetchError("down"))
        checker = LiquidityChecker(venue_a, venue_b)

        assert await checker.check("BTC", EntryDirection.BUY_A_SELL_B) is None
