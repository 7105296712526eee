"""Test the monitoring loop state machine."""

from unittest.mock import AsyncMock

import pytest

from divergence_arb.core.errors import DataFetchError
from divergence_arb.core.lifecycle import PositionLifecycleManager
from divergence_arb.core.monitor import DivergenceArbitrageLoop, MonitorState, TRANSITIONS
from divergence_arb.core.positions import PositionBook
from divergence_arb.core.session import SessionManager
from sample_data import snapshot


def _loop(config, venue_a, venue_b):
    lifecycle = PositionLifecycleManager(config, venue_a, venue_b, book=PositionBook())
    return DivergenceArbitrageLoop(config, venue_a, venue_b, lifecycle, session=SessionManager(config))


class TestTransitions:
    """Test the transition table."""

    def test_watching_returns_to_scanning_only(self):
        assert TRANSITIONS[MonitorState.WATCHING_POSITION] == {MonitorState.SCANNING}

    def test_illegal_transition_raises(self, config, venue_a, venue_b):
        loop = _loop(config, venue_a, venue_b)
        with pytest.raises(RuntimeError):
            loop._transition(MonitorState.WATCHING_POSITION)


class TestIterate:
    """Test single iterations of the loop."""

    @pytest.mark.asyncio
    async def test_quiet_tick_stays_scanning(self, config, venue_a, venue_b):
        venue_a.fetch_snapshot = AsyncMock(return_value=snapshot("gateio", {"BTC": 100.0}))
        venue_b.fetch_snapshot = AsyncMock(return_value=snapshot("orderly", {"BTC": 100.1}))
        loop = _loop(config, venue_a, venue_b)

        await loop._iterate()

        assert loop.state is MonitorState.SCANNING
        assert loop.monitor.tick_count == 1
        venue_a.place_market_order.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_fetch_error_is_empty_tick(self, config, venue_a, venue_b):
        venue_a.fetch_snapshot = AsyncMock(side_effect=DataFetchError("502"))
        venue_b.fetch_snapshot = AsyncMock(return_value=snapshot("orderly", {"BTC": 100.1}))
        loop = _loop(config, venue_a, venue_b)

        await loop._iterate()

        assert loop.monitor.tick_count == 1
        assert loop.monitor.history == []
        assert loop.state is MonitorState.SCANNING

    @pytest.mark.asyncio
    async def test_trigger_enters_watches_and_resumes(self, config, venue_a, venue_b):
        venue_a.fetch_snapshot = AsyncMock(return_value=snapshot("gateio", {"BTC": 100.0, "ETH": 50.0}))
        venue_b.fetch_snapshot = AsyncMock(return_value=snapshot("orderly", {"BTC": 102.0, "ETH": 50.0}))
        venue_a.fetch_price = AsyncMock(return_value=103.0)
        venue_b.fetch_price = AsyncMock(return_value=101.0)
        loop = _loop(config, venue_a, venue_b)
        loop.running = True

        await loop._iterate()

        assert loop.state is MonitorState.SCANNING
        assert len(loop.lifecycle.book) == 0
        assert loop.session.session_trades == 1
        assert venue_a.place_market_order.await_count == 2
        assert venue_b.place_market_order.await_count == 2

    @pytest.mark.asyncio
    async def test_volume_filter_hides_thin_symbols(self, config, venue_a, venue_b):
        config.monitor.min_volume = 300_000
        venue_a.fetch_snapshot = AsyncMock(return_value=snapshot(
            "gateio", {"BTC": 100.0, "THIN": 1.0}, {"BTC": 1_000_000, "THIN": 400_000}))
        venue_b.fetch_snapshot = AsyncMock(return_value=snapshot(
            "orderly", {"BTC": 100.1, "THIN": 1.5}, {"BTC": 2_000_000, "THIN": 250_000}))
        loop = _loop(config, venue_a, venue_b)

        await loop._iterate()

        assert loop.monitor.last_sample.symbol == "BTC"
        assert loop.state is MonitorState.SCANNING

    @pytest.mark.asyncio
    async def test_skipped_entry_returns_to_scanning(self, config, venue_a, venue_b):
        config.trading.enabled = False
        venue_a.fetch_snapshot = AsyncMock(return_value=snapshot("gateio", {"BTC": 100.0}))
        venue_b.fetch_snapshot = AsyncMock(return_value=snapshot("orderly", {"BTC": 102.0}))
        loop = _loop(config, venue_a, venue_b)

        await loop._iterate()

        assert loop.state is MonitorState.SCANNING
        venue_a.place_market_order.assert_not_awaited()


class TestRun:
    """Test the outer loop."""

    @pytest.mark.asyncio
    async def test_stop_ends_run_and_returns_session(self, config, venue_a, venue_b):
        loop = _loop(config, venue_a, venue_b)
        calls = {'n': 0}

        async def fetch():
            calls['n'] += 1
            if calls['n'] >= 3:
                loop.stop()
            return snapshot("gateio", {"BTC": 100.0})

        venue_a.fetch_snapshot = AsyncMock(side_effect=fetch)
        venue_b.fetch_snapshot = AsyncMock(return_value=snapshot("orderly", {"BTC": 100.2}))

        session = await loop.run()

        assert session.tick_count == 3
        assert session.max_sample.symbol == "BTC"
        assert session.end_time is not None
        assert loop.session.monitoring is session

    @pytest.mark.asyncio
    async def test_iteration_error_does_not_escape(self, config, venue_a, venue_b):
        loop = _loop(config, venue_a, venue_b)
        calls = {'n': 0}

        async def scan():
            calls['n'] += 1
            if calls['n'] == 1:
                raise ValueError("boom")
            loop.stop()
            return False

        loop._scan = scan

        await loop.run()

        assert calls['n'] == 2
        assert loop.state is MonitorState.SCANNING
