"""Test bot wiring without network access."""

from unittest.mock import AsyncMock

import pytest

from divergence_arb.main import DivergenceArbBot


class TestDivergenceArbBot:
    """Test startup reporting."""

    @pytest.mark.asyncio
    async def test_log_balances_reads_both_venues(self, config):
        bot = DivergenceArbBot(config)
        bot.lifecycle.fetch_balances = AsyncMock(return_value=(250.0, None))

        await bot.log_balances()

        bot.lifecycle.fetch_balances.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_balances_fetched_from_venue_gateways(self, config, venue_a, venue_b):
        bot = DivergenceArbBot(config)
        venue_b.fetch_free_collateral = AsyncMock(side_effect=ConnectionError("reset"))
        bot.lifecycle.venue_a = venue_a
        bot.lifecycle.venue_b = venue_b

        assert await bot.lifecycle.fetch_balances() == (1000.0, None)
