"""Test Telegram notifications."""

from unittest.mock import AsyncMock, Mock

import aiohttp
import pytest

from divergence_arb.config import AlertConfig
from divergence_arb.notify.telegram import TelegramNotifier, format_entry_message, format_exit_message


class TestFormatting:
    """Test message bodies."""

    def test_entry_message(self):
        text = format_entry_message({
            'symbol': 'BTC', 'direction': 'buy_a_sell_b', 'venue_a': 'gateio', 'venue_b': 'orderly',
            'entry_price_a': 100.0, 'entry_price_b': 102.0, 'quantity': 2.0, 'diff_percent': 2.0,
        })
        assert "POSITION OPENED" in text
        assert "<b>BTC</b>" in text
        assert "2.0000%" in text

    def test_exit_message_includes_error(self):
        text = format_exit_message({'symbol': 'BTC', 'net_profit': 7.86, 'error': 'leg <a> failed'})
        assert "7.8600" in text
        assert "leg &lt;a&gt; failed" in text

    def test_exit_message_includes_balances(self):
        text = format_exit_message({
            'symbol': 'BTC', 'net_profit': 1.0,
            'venue_a': 'gateio', 'venue_b': 'orderly',
            'balance_a': 1012.5, 'balance_b': None,
        })
        assert "gateio balance: 1012.50" in text
        assert "orderly balance: unavailable" in text

    def test_exit_message_without_balances(self):
        text = format_exit_message({'symbol': 'BTC', 'net_profit': 1.0})
        assert "balance" not in text


class TestTelegramNotifier:
    """Test fire-and-forget delivery."""

    def test_disabled_without_token(self):
        notifier = TelegramNotifier(AlertConfig())
        assert notifier.enabled is False
        assert notifier.notify_event("entry", {'symbol': 'BTC'}) is None

    @pytest.mark.asyncio
    async def test_notify_event_schedules_send(self):
        notifier = TelegramNotifier(AlertConfig(telegram_token="t", telegram_chat_id="1"))
        notifier.send_message = AsyncMock(return_value=True)

        task = notifier.notify_event("exit", {'symbol': 'BTC', 'net_profit': 1.0})
        await notifier.close()

        assert task is not None and task.done()
        notifier.send_message.assert_awaited_once()
        assert "POSITION CLOSED" in notifier.send_message.call_args[0][0]

    @pytest.mark.asyncio
    async def test_muted_kind_is_skipped(self):
        notifier = TelegramNotifier(AlertConfig(telegram_token="t", telegram_chat_id="1", notify_entries=False))
        notifier.send_message = AsyncMock(return_value=True)

        assert notifier.notify_event("entry", {'symbol': 'BTC'}) is None
        notifier.send_message.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_delivery_failure_returns_false(self):
        notifier = TelegramNotifier(AlertConfig(telegram_token="t", telegram_chat_id="1"))
        session = Mock()
        session.post = Mock(side_effect=aiohttp.ClientConnectionError("offline"))
        notifier._get_session = AsyncMock(return_value=session)

        assert await notifier.send_message("hello") is False
