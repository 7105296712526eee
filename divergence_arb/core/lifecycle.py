"""Two-leg position entry, reversal detection and close for divergence trades."""

import asyncio
import time
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Tuple
from loguru import logger

from ..config import Config
from ..exchanges.base import BaseVenue, OrderResult
from .errors import (
    AuthMissingError, DataFetchError, FillConfirmationError,
    OrderPlacementError, PositionQueryError,
)
from .liquidity import LiquidityChecker
from .positions import PositionBook
from .types import (
    ClosedTrade, DivergenceSample, EntryDirection, EntryResult, EntryStatus,
    OpenPosition, OrderSide, PnlBreakdown,
)
from .utils import clamp, quantity_from_notional, sign


def choose_direction(price_a: float, price_b: float) -> Optional[EntryDirection]:
    """Buy the cheaper venue, short the dearer one. Equal prices give no trade."""
    if price_a < price_b:
        return EntryDirection.BUY_A_SELL_B
    if price_b < price_a:
        return EntryDirection.BUY_B_SELL_A
    return None


def price_sign(price_a: float, price_b: float) -> int:
    return sign(price_a - price_b)


def is_reversed(entry_price_a: float, entry_price_b: float,
                current_price_a: float, current_price_b: float) -> bool:
    """True only when the price ordering flips to the opposite strict sign.

    A current tie is not a reversal, and neither is any move from a tied entry.
    """
    entry_sign = price_sign(entry_price_a, entry_price_b)
    current_sign = price_sign(current_price_a, current_price_b)
    return entry_sign != 0 and current_sign != 0 and entry_sign != current_sign


def calculate_order_notional(collateral: float, position_pct: float, min_order_amount: float) -> float:
    """Order notional for the available collateral, 0 when it is below the minimum."""
    if collateral < min_order_amount or collateral <= 0:
        return 0.0
    return clamp(collateral * position_pct, min_order_amount, collateral)


def _leg_profit(side: OrderSide, entry_price: float, exit_price: float, quantity: float) -> float:
    if side is OrderSide.BUY:
        return (exit_price - entry_price) * quantity
    return (entry_price - exit_price) * quantity


def calculate_pnl(position: OpenPosition, exit_price_a: float, exit_price_b: float,
                  fee_rate_a: float, fee_rate_b: float) -> PnlBreakdown:
    """Realized profit of a closed pair.

    Each leg earns ``(exit - entry) * quantity`` signed by its direction; each
    venue charges ``(entry + exit) * quantity * fee_rate``. ``net_percent`` is taken
    over the short leg's entry notional.
    """
    quantity = position.quantity
    direction = position.direction

    profit_a = _leg_profit(direction.side_a, position.entry_price_a, exit_price_a, quantity)
    profit_b = _leg_profit(direction.side_b, position.entry_price_b, exit_price_b, quantity)
    gross = profit_a + profit_b

    fee_a = (position.entry_price_a + exit_price_a) * quantity * fee_rate_a
    fee_b = (position.entry_price_b + exit_price_b) * quantity * fee_rate_b
    total_fees = fee_a + fee_b
    net = gross - total_fees

    sell_entry = position.entry_price_a if direction.side_a is OrderSide.SELL else position.entry_price_b
    notional = sell_entry * quantity
    net_percent = net / notional * 100 if notional > 0 else 0.0

    return PnlBreakdown(
        profit_a=profit_a,
        profit_b=profit_b,
        gross_profit=gross,
        fee_a=fee_a,
        fee_b=fee_b,
        total_fees=total_fees,
        net_profit=net,
        net_percent=net_percent,
    )


class PositionLifecycleManager:
    """Opens, watches and closes divergence positions.

    Owns the position book on behalf of the monitoring loop; every mutation
    happens on the loop's task.
    """

    def __init__(self, config: Config, venue_a: BaseVenue, venue_b: BaseVenue,
                 book: Optional[PositionBook] = None, notifier=None,
                 liquidity: Optional[LiquidityChecker] = None):
        self.config = config
        self.trading = config.trading
        self.venue_a = venue_a
        self.venue_b = venue_b
        self.book = book if book is not None else PositionBook()
        self.notifier = notifier
        self.liquidity = liquidity
        self.closed_trades: List[ClosedTrade] = []
        self._trading_enabled = self.trading.enabled
        self._auth_reported = False

        missing = [venue.name for venue in (venue_a, venue_b) if not venue.has_credentials]
        if self._trading_enabled and missing:
            self._disable_trading(AuthMissingError(f"Missing API credentials for {', '.join(missing)}"))

    @property
    def trading_enabled(self) -> bool:
        return self._trading_enabled

    @property
    def realized_pnl(self) -> float:
        return sum(trade.net_profit for trade in self.closed_trades)

    def _disable_trading(self, error: AuthMissingError) -> None:
        self._trading_enabled = False
        if not self._auth_reported:
            self._auth_reported = True
            logger.warning(f"Trading disabled, monitoring only: {error}")

    def _notify(self, kind: str, payload: Dict[str, Any]) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.notify_event(kind, payload)
        except Exception as e:
            logger.error(f"Failed to queue {kind} notification: {e}")

    async def _fetch_collateral(self) -> float:
        balance_a, balance_b = await asyncio.gather(
            self.venue_a.fetch_free_collateral(),
            self.venue_b.fetch_free_collateral(),
        )
        logger.info(f"Free collateral: {self.venue_a.name} {balance_a:.2f}, {self.venue_b.name} {balance_b:.2f}")
        return min(balance_a, balance_b)

    async def fetch_balances(self) -> Tuple[Optional[float], Optional[float]]:
        """Free collateral on venue A and venue B, None where it could not be read."""
        venues = (self.venue_a, self.venue_b)
        results = await asyncio.gather(
            *(venue.fetch_free_collateral() for venue in venues),
            return_exceptions=True,
        )
        balances: List[Optional[float]] = []
        for venue, result in zip(venues, results):
            if isinstance(result, (DataFetchError, AuthMissingError)):
                logger.warning(f"Balance unavailable on {venue.name}: {result}")
                balances.append(None)
            elif isinstance(result, BaseException):
                logger.error(f"Unexpected balance error on {venue.name}: {result}")
                balances.append(None)
            else:
                balances.append(result)
        return balances[0], balances[1]

    def _unpack_leg(self, venue: BaseVenue, result: Any) -> Tuple[Optional[OrderResult], Optional[str]]:
        """Split a gathered leg into (order, error)."""
        if isinstance(result, AuthMissingError):
            self._disable_trading(result)
            return None, f"{venue.name}: {result}"
        if isinstance(result, BaseException):
            return None, f"{venue.name}: {result}"
        if not result.success:
            return None, f"{venue.name}: {result.error or 'order rejected'}"
        return result, None

    async def _confirm_fill_price(self, venue: BaseVenue, symbol: str,
                                  order: OrderResult, fallback: float) -> float:
        """Order fill price, then the venue's position average, then ``fallback``."""
        if order.avg_price > 0:
            return order.avg_price
        try:
            position = await venue.query_position(symbol)
            if position is None or position.avg_entry_price <= 0:
                raise FillConfirmationError(f"No open position reported on {venue.name} for {symbol}")
            return position.avg_entry_price
        except (PositionQueryError, FillConfirmationError) as e:
            logger.warning(f"Using snapshot price {fallback} for {symbol} on {venue.name}: {e}")
            return fallback

    async def try_enter(self, sample: DivergenceSample) -> EntryResult:
        """Open both legs for the sampled symbol, at most one position per symbol."""
        symbol = sample.symbol

        if symbol in self.book:
            logger.info(f"Position already open for {symbol}, not entering again")
            return EntryResult(EntryStatus.SKIPPED_EXISTING, symbol)

        if not self._trading_enabled:
            logger.info(f"Trading disabled, entry for {symbol} skipped")
            return EntryResult(EntryStatus.SKIPPED_DISABLED, symbol)

        direction = choose_direction(sample.price_a, sample.price_b)
        if direction is None:
            logger.info(f"Prices equal for {symbol}, no entry direction")
            return EntryResult(EntryStatus.SKIPPED_NO_DIRECTION, symbol)

        try:
            collateral = await self._fetch_collateral()
        except (DataFetchError, AuthMissingError) as e:
            if isinstance(e, AuthMissingError):
                self._disable_trading(e)
            logger.error(f"Collateral lookup failed, entry for {symbol} skipped: {e}")
            return EntryResult(EntryStatus.FAILED, symbol, direction, error=str(e))

        notional = calculate_order_notional(collateral, self.trading.position_pct, self.trading.min_order_amount)
        quantity = quantity_from_notional(notional, sample.price_a)
        if notional <= 0 or quantity <= 0:
            logger.warning(
                f"Entry for {symbol} skipped: collateral {collateral:.2f} "
                f"below minimum order {self.trading.min_order_amount}"
            )
            return EntryResult(EntryStatus.SKIPPED_SIZE, symbol, direction,
                               metadata={'collateral': collateral})

        try:
            tradable = min(
                self.venue_a.tradable_quantity(symbol, quantity),
                self.venue_b.tradable_quantity(symbol, quantity),
            )
        except DataFetchError as e:
            logger.error(f"Lot size lookup failed, entry for {symbol} skipped: {e}")
            return EntryResult(EntryStatus.FAILED, symbol, direction, error=str(e))
        if tradable <= 0:
            logger.warning(f"Entry for {symbol} skipped: {quantity} is below one lot on at least one venue")
            return EntryResult(EntryStatus.SKIPPED_SIZE, symbol, direction,
                               metadata={'collateral': collateral, 'quantity': quantity})
        if tradable < quantity:
            logger.info(f"Quantity for {symbol} reduced to {tradable} to match venue lot sizes")
            quantity = tradable

        metadata: Dict[str, Any] = {'collateral': collateral, 'notional': notional, 'quantity': quantity}

        if self.liquidity is not None:
            report = await self.liquidity.check(symbol, direction, quantity)
            if report is not None:
                metadata['liquidity'] = report.available_quantity
            if self.trading.liquidity_gate and (report is None or not report.is_sufficient(quantity)):
                logger.warning(f"Entry for {symbol} aborted: not enough book depth for {quantity}")
                return EntryResult(EntryStatus.SKIPPED_LIQUIDITY, symbol, direction, metadata=metadata)

        logger.info(
            f"Entering {symbol}: {direction.side_a.value} {quantity} on {self.venue_a.name} @ ~{sample.price_a}, "
            f"{direction.side_b.value} on {self.venue_b.name} @ ~{sample.price_b} "
            f"(divergence {sample.diff_percent:.4f}%)"
        )

        results = await asyncio.gather(
            self.venue_a.place_market_order(symbol, direction.side_a, quantity),
            self.venue_b.place_market_order(symbol, direction.side_b, quantity),
            return_exceptions=True,
        )
        order_a, error_a = self._unpack_leg(self.venue_a, results[0])
        order_b, error_b = self._unpack_leg(self.venue_b, results[1])

        if order_a is None or order_b is None:
            errors = "; ".join(error for error in (error_a, error_b) if error)
            if order_a is not None or order_b is not None:
                logger.error(f"Partial entry for {symbol}, one leg is open unhedged: {errors}")
            else:
                logger.error(f"Entry failed for {symbol}: {errors}")
            return EntryResult(
                EntryStatus.FAILED, symbol, direction,
                leg_a_ok=order_a is not None, leg_b_ok=order_b is not None,
                error=errors, metadata=metadata,
            )

        await asyncio.sleep(self.trading.fill_confirmation_delay_sec)

        entry_a, entry_b = await asyncio.gather(
            self._confirm_fill_price(self.venue_a, symbol, order_a, sample.price_a),
            self._confirm_fill_price(self.venue_b, symbol, order_b, sample.price_b),
        )

        position = OpenPosition(
            symbol=symbol,
            direction=direction,
            entry_price_a=entry_a,
            entry_price_b=entry_b,
            quantity=quantity,
            order_id_a=order_a.order_id,
            order_id_b=order_b.order_id,
        )
        self.book.set(position)

        self._notify("entry", {
            'symbol': symbol,
            'direction': direction.value,
            'venue_a': self.venue_a.name,
            'venue_b': self.venue_b.name,
            'entry_price_a': entry_a,
            'entry_price_b': entry_b,
            'quantity': quantity,
            'diff_percent': sample.diff_percent,
        })

        return EntryResult(EntryStatus.OPENED, symbol, direction, position=position,
                           leg_a_ok=True, leg_b_ok=True, metadata=metadata)

    async def check_for_reversal(self, position: OpenPosition, price_a: float,
                                 price_b: float) -> Optional[ClosedTrade]:
        """Close both legs once the price ordering has flipped since entry."""
        if not is_reversed(position.entry_price_a, position.entry_price_b, price_a, price_b):
            return None

        symbol = position.symbol
        logger.info(
            f"Reversal on {symbol}: entry A {position.entry_price_a} / B {position.entry_price_b}, "
            f"now A {price_a} / B {price_b}. Closing both legs"
        )

        results = await asyncio.gather(
            self.venue_a.place_market_order(symbol, position.direction.side_a.opposite,
                                            position.quantity, reduce_only=True),
            self.venue_b.place_market_order(symbol, position.direction.side_b.opposite,
                                            position.quantity, reduce_only=True),
            return_exceptions=True,
        )
        order_a, error_a = self._unpack_leg(self.venue_a, results[0])
        order_b, error_b = self._unpack_leg(self.venue_b, results[1])
        errors = [error for error in (error_a, error_b) if error]

        exit_a = order_a.avg_price if order_a is not None and order_a.avg_price > 0 else price_a
        exit_b = order_b.avg_price if order_b is not None and order_b.avg_price > 0 else price_b

        pnl = calculate_pnl(position, exit_a, exit_b, self.venue_a.fee_rate, self.venue_b.fee_rate)

        self.book.delete(symbol)

        trade = ClosedTrade(
            symbol=symbol,
            direction=position.direction,
            entry_price_a=position.entry_price_a,
            entry_price_b=position.entry_price_b,
            exit_price_a=exit_a,
            exit_price_b=exit_b,
            quantity=position.quantity,
            fees=pnl.total_fees,
            gross_profit=pnl.gross_profit,
            net_profit=pnl.net_profit,
            opened_at=position.opened_at,
            success=not errors,
            error="; ".join(errors) or None,
        )
        self.closed_trades.append(trade)

        if errors:
            logger.error(f"Close for {symbol} incomplete, position dropped from book: {trade.error}")
        logger.info(
            f"Closed {symbol}: gross {pnl.gross_profit:.4f}, fees {pnl.total_fees:.4f}, "
            f"net {pnl.net_profit:.4f} ({pnl.net_percent:.4f}%)"
        )

        payload = trade.to_record()
        payload['net_percent'] = pnl.net_percent
        balance_a, balance_b = await self.fetch_balances()
        payload['venue_a'] = self.venue_a.name
        payload['venue_b'] = self.venue_b.name
        payload['balance_a'] = balance_a
        payload['balance_b'] = balance_b
        self._notify("exit", payload)
        return trade

    async def _poll_position(self, position: OpenPosition, log_detail: bool) -> Optional[ClosedTrade]:
        symbol = position.symbol
        try:
            price_a, price_b = await asyncio.gather(
                self.venue_a.fetch_price(symbol),
                self.venue_b.fetch_price(symbol),
            )
        except (DataFetchError, PositionQueryError) as e:
            logger.warning(f"Price poll failed for {symbol}, retrying next poll: {e}")
            return None

        if log_detail:
            unrealized = calculate_pnl(position, price_a, price_b, self.venue_a.fee_rate, self.venue_b.fee_rate)
            logger.info(
                f"Watching {symbol}: entry A {position.entry_price_a} / B {position.entry_price_b}, "
                f"now A {price_a} / B {price_b}, unrealized net {unrealized.net_profit:.4f}"
            )

        try:
            return await self.check_for_reversal(position, price_a, price_b)
        except (OrderPlacementError, PositionQueryError) as e:
            logger.error(f"Close attempt for {symbol} failed, retrying next poll: {e}")
            return None

    async def watch_positions(self, is_running: Callable[[], bool],
                              deadline: Optional[float] = None) -> List[ClosedTrade]:
        """Poll open positions until the book is empty, a stop is requested or time runs out."""
        closed: List[ClosedTrade] = []
        polls = 0
        logger.info(f"Watching {len(self.book)} open position(s) every {self.trading.watch_interval_sec}s")

        while len(self.book) > 0 and is_running():
            if deadline is not None and time.time() >= deadline:
                logger.info("Session deadline reached while watching positions")
                break

            polls += 1
            log_detail = self.trading.watch_detail_every > 0 and polls % self.trading.watch_detail_every == 0
            for position in self.book.values():
                trade = await self._poll_position(position, log_detail)
                if trade is not None:
                    closed.append(trade)

            if len(self.book) == 0:
                break
            await asyncio.sleep(self.trading.watch_interval_sec)

        return closed


def describe_open_positions(book: PositionBook, now: Optional[datetime] = None) -> List[str]:
    """One line per open position for shutdown reporting."""
    now = now or datetime.now()
    lines = []
    for position in book:
        held = (now - position.opened_at).total_seconds()
        lines.append(
            f"{position.symbol} {position.direction.value} qty {position.quantity} "
            f"entry A {position.entry_price_a} / B {position.entry_price_b} "
            f"({position.entry_diff_percent:.4f}%), held {held:.0f}s"
        )
    return lines
