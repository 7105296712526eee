"""Telegram notifications for position entries and exits."""

import asyncio
from html import escape
from typing import Any, Dict, Optional, Set

import aiohttp
from loguru import logger

from ..config import AlertConfig

TELEGRAM_API_URL = "https://api.telegram.org/bot{token}/sendMessage"


def format_entry_message(payload: Dict[str, Any]) -> str:
    return (
        "<b>📈 POSITION OPENED</b>\n"
        f"Symbol: <b>{escape(str(payload.get('symbol', '')))}</b>\n"
        f"Direction: {escape(str(payload.get('direction', '')))}\n"
        f"{escape(str(payload.get('venue_a', 'A')))}: {payload.get('entry_price_a')}\n"
        f"{escape(str(payload.get('venue_b', 'B')))}: {payload.get('entry_price_b')}\n"
        f"Quantity: {payload.get('quantity')}\n"
        f"Divergence: {payload.get('diff_percent', 0.0):.4f}%"
    )


def format_exit_message(payload: Dict[str, Any]) -> str:
    message = (
        "<b>✅ POSITION CLOSED</b>\n"
        f"Symbol: <b>{escape(str(payload.get('symbol', '')))}</b>\n"
        f"Entry: A {payload.get('entry_price_a')} / B {payload.get('entry_price_b')}\n"
        f"Exit: A {payload.get('exit_price_a')} / B {payload.get('exit_price_b')}\n"
        f"Quantity: {payload.get('quantity')}\n"
        f"Fees: {payload.get('fees', 0.0):.4f}\n"
        f"Net PnL: <b>{payload.get('net_profit', 0.0):.4f}</b> ({payload.get('net_percent', 0.0):.4f}%)"
    )
    for key, venue_key in (('balance_a', 'venue_a'), ('balance_b', 'venue_b')):
        if key not in payload:
            continue
        venue = escape(str(payload.get(venue_key) or venue_key[-1].upper()))
        balance = payload[key]
        shown = f"{balance:.2f}" if balance is not None else "unavailable"
        message += f"\n{venue} balance: {shown}"
    if payload.get('error'):
        message += f"\nError: {escape(str(payload['error']))}"
    return message


FORMATTERS = {
    'entry': format_entry_message,
    'exit': format_exit_message,
}


class TelegramNotifier:
    """Sends entry and exit events to a Telegram chat.

    ``notify_event`` never blocks and never raises: the send runs as a
    background task and delivery failures are only logged.
    """

    def __init__(self, alert_config: Optional[AlertConfig]):
        self.config = alert_config or AlertConfig()
        self.enabled = bool(self.config.telegram_token and self.config.telegram_chat_id)
        self._session: Optional[aiohttp.ClientSession] = None
        self._pending: Set[asyncio.Task] = set()

        if not self.enabled:
            logger.warning("Telegram notifications disabled - missing token or chat ID")

    def _wants(self, kind: str) -> bool:
        if kind == 'entry':
            return self.config.notify_entries
        if kind == 'exit':
            return self.config.notify_exits
        return True

    def notify_event(self, kind: str, payload: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Queue a notification for ``kind`` ('entry' or 'exit')."""
        if not self.enabled or not self._wants(kind):
            return None

        formatter = FORMATTERS.get(kind)
        if formatter is None:
            logger.warning(f"Unknown notification kind: {kind}")
            return None

        task = asyncio.create_task(self.send_message(formatter(payload)))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=10))
        return self._session

    async def send_message(self, text: str, parse_mode: str = "HTML") -> bool:
        """Send one message. Returns False on any delivery failure."""
        if not self.enabled:
            return False

        url = TELEGRAM_API_URL.format(token=self.config.telegram_token)
        payload = {"chat_id": self.config.telegram_chat_id, "text": text, "parse_mode": parse_mode}
        try:
            session = await self._get_session()
            async with session.post(url, json=payload) as response:
                if response.status != 200:
                    body = await response.text()
                    logger.error(f"Telegram API returned {response.status}: {body[:200]}")
                    return False
            logger.debug("Telegram message sent")
            return True
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to send Telegram message: {e}")
            return False

    async def close(self) -> None:
        """Wait for queued sends, then close the HTTP session."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
        if self._session is not None and not self._session.closed:
            await self._session.close()
