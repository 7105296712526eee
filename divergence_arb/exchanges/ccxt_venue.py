"""ccxt-backed perpetual venue."""

import time
from typing import Dict, List, Optional, Any

import ccxt.pro as ccxt
from ccxt.base.errors import AuthenticationError, BaseError
from loguru import logger

from ..config import VenueConfig
from ..core.errors import (
    AuthMissingError, DataFetchError, OrderPlacementError, PositionQueryError,
)
from ..core.types import OrderSide, PriceSnapshotEntry
from .base import BaseVenue, OrderBook, OrderResult, PositionInfo


def ticker_price(ticker: Dict[str, Any]) -> float:
    """Mark price when the venue reports one, otherwise the last trade."""
    for key in ('markPrice', 'last', 'close'):
        value = ticker.get(key)
        if value:
            return float(value)
    info = ticker.get('info') or {}
    for key in ('mark_price', 'markPrice', 'mark'):
        value = info.get(key) if isinstance(info, dict) else None
        if value:
            return float(value)
    return 0.0


def ticker_volume(ticker: Dict[str, Any], price: float) -> float:
    """24h volume in quote currency."""
    quote_volume = ticker.get('quoteVolume')
    if quote_volume:
        return float(quote_volume)
    base_volume = ticker.get('baseVolume')
    if base_volume:
        return float(base_volume) * price
    return 0.0


class CcxtVenue(BaseVenue):
    """Perpetual swap venue served by a ccxt.pro client.

    Public data uses a keyless client; orders, positions and balances use a
    separate keyed client that only exists when credentials are configured.
    """

    def __init__(self, config: VenueConfig):
        super().__init__(config)
        self.rest_public = None
        self.rest_private = None
        # canonical symbol -> ccxt market
        self.markets: Dict[str, Dict[str, Any]] = {}

    def _client_options(self) -> Dict[str, Any]:
        return {
            "enableRateLimit": True,
            "timeout": 10000,
            "options": {"defaultType": self.config.market_type},
        }

    def _exchange_class(self):
        exchange_class = getattr(ccxt, self.config.ccxt_id, None)
        if exchange_class is None:
            raise ValueError(f"ccxt has no exchange '{self.config.ccxt_id}'")
        return exchange_class

    def _init_public_rest(self):
        """Initialize public REST client (no keys)."""
        self.rest_public = self._exchange_class()(self._client_options())

    def _init_private_rest(self):
        """Initialize private REST client (with keys)."""
        acct = self.config.account
        options = self._client_options()
        options["apiKey"] = acct.key
        options["secret"] = acct.secret
        if acct.password:
            options["password"] = acct.password
        if acct.account_id:
            options["uid"] = acct.account_id
        self.rest_private = self._exchange_class()(options)

        if acct.sandbox:
            self.rest_private.set_sandbox_mode(True)

    async def connect(self) -> bool:
        """Create clients and index the venue's perpetual markets."""
        try:
            self._init_public_rest()
            if self.has_credentials:
                self._init_private_rest()
            else:
                logger.warning(f"{self.name}: no API credentials, private endpoints disabled")

            markets = await self.rest_public.load_markets()
            if self.rest_private is not None:
                await self.rest_private.load_markets()

            self.markets = self._index_markets(markets)
            self._connected = True
            logger.info(f"{self.name} connected: {len(self.markets)} {self.config.settle} perpetuals")
            return True

        except BaseError as e:
            logger.error(f"Failed to connect to {self.name}: {e}")
            return False

    def _index_markets(self, markets: Dict[str, Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
        indexed = {}
        for market in markets.values():
            if market.get('type') != self.config.market_type:
                continue
            if market.get('settle') and market['settle'] != self.config.settle:
                continue
            if market.get('active') is False:
                continue
            canonical = self.normalizer(market.get('id', ''))
            if canonical:
                indexed[canonical] = market
        return indexed

    async def disconnect(self) -> None:
        """Close both clients."""
        for client in (self.rest_public, self.rest_private):
            if client is None:
                continue
            try:
                await client.close()
            except BaseError as e:
                logger.error(f"Error disconnecting from {self.name}: {e}")
        self._connected = False
        logger.info(f"{self.name} disconnected")

    def _market(self, symbol: str) -> Dict[str, Any]:
        market = self.markets.get(symbol)
        if market is None:
            raise DataFetchError(f"{symbol} is not listed on {self.name}")
        return market

    def _contract_size(self, symbol: str) -> float:
        return float(self._market(symbol).get('contractSize') or 1.0)

    async def fetch_snapshot(self) -> List[PriceSnapshotEntry]:
        """Fetch prices and 24h volume for every indexed perpetual."""
        if not self.is_connected():
            raise DataFetchError(f"{self.name} is not connected")

        try:
            tickers = await self.rest_public.fetch_tickers([m['symbol'] for m in self.markets.values()])
        except BaseError as e:
            raise DataFetchError(f"{self.name} tickers: {e}") from e

        now = int(time.time() * 1000)
        entries = []
        for canonical, market in self.markets.items():
            ticker = tickers.get(market['symbol'])
            if not ticker:
                continue
            price = ticker_price(ticker)
            if price <= 0:
                continue
            entries.append(PriceSnapshotEntry(
                venue=self.name,
                symbol=canonical,
                price=price,
                volume_24h=ticker_volume(ticker, price),
                timestamp=ticker.get('timestamp') or now,
                raw_symbol=market.get('id', ''),
            ))

        return entries

    async def fetch_price(self, symbol: str) -> float:
        """Current mark (or last) price of one canonical symbol."""
        market = self._market(symbol)
        try:
            ticker = await self.rest_public.fetch_ticker(market['symbol'])
        except BaseError as e:
            raise DataFetchError(f"{self.name} ticker {symbol}: {e}") from e

        price = ticker_price(ticker)
        if price <= 0:
            raise DataFetchError(f"{self.name} returned no price for {symbol}")
        return price

    async def fetch_order_book(self, symbol: str, limit: int = 10) -> Optional[OrderBook]:
        """Fetch order book for a canonical symbol, sizes in base units."""
        market = self._market(symbol)
        try:
            order_book = await self.rest_public.fetch_order_book(market['symbol'], limit)
        except BaseError as e:
            raise DataFetchError(f"{self.name} order book {symbol}: {e}") from e

        contract_size = self._contract_size(symbol)
        return OrderBook(
            venue=self.name,
            symbol=symbol,
            bids=[(float(level[0]), float(level[1]) * contract_size) for level in order_book['bids'][:limit]],
            asks=[(float(level[0]), float(level[1]) * contract_size) for level in order_book['asks'][:limit]],
            ts_exchange=order_book.get('timestamp') or 0,
            ts_local=int(time.time() * 1000),
        )

    def tradable_quantity(self, symbol: str, quantity: float) -> float:
        """Quantity truncated to whole lots of the market, 0 below the minimum lot."""
        market = self._market(symbol)
        contract_size = self._contract_size(symbol)
        client = self.rest_private or self.rest_public
        try:
            contracts = float(client.amount_to_precision(market['symbol'], quantity / contract_size))
        except BaseError as e:
            logger.debug(f"{self.name}: {quantity} {symbol} is below one lot: {e}")
            return 0.0

        min_amount = ((market.get('limits') or {}).get('amount') or {}).get('min')
        if min_amount and contracts < float(min_amount):
            return 0.0
        return contracts * contract_size

    async def place_market_order(self, symbol: str, side: OrderSide, quantity: float,
                                 reduce_only: bool = False) -> OrderResult:
        """Market order sized in base units."""
        if self.rest_private is None:
            raise AuthMissingError(f"{self.name}: no API credentials for orders")

        market = self._market(symbol)
        contract_size = self._contract_size(symbol)
        params = {'reduceOnly': True} if reduce_only else {}

        try:
            amount = float(self.rest_private.amount_to_precision(market['symbol'], quantity / contract_size))
            result = await self.rest_private.create_order(market['symbol'], 'market', side.value, amount, None, params)
        except AuthenticationError as e:
            raise AuthMissingError(f"{self.name}: {e}") from e
        except BaseError as e:
            raise OrderPlacementError(f"{self.name} {side.value} {quantity} {symbol}: {e}") from e

        fee = result.get('fee') or {}
        logger.info(f"{self.name} order {result.get('id')}: {side.value} {quantity} {symbol} reduce_only={reduce_only}")
        return OrderResult(
            success=True,
            order_id=result.get('id'),
            filled_qty=float(result.get('filled') or 0) * contract_size,
            avg_price=float(result.get('average') or 0),
            fee_amount=float(fee.get('cost') or 0),
            metadata={'status': result.get('status'), 'amount_contracts': amount},
        )

    async def query_position(self, symbol: str) -> Optional[PositionInfo]:
        """Open position for a canonical symbol, or None when flat."""
        if self.rest_private is None:
            raise PositionQueryError(f"{self.name}: no API credentials for positions")

        market = self._market(symbol)
        try:
            positions = await self.rest_private.fetch_positions([market['symbol']])
        except BaseError as e:
            raise PositionQueryError(f"{self.name} positions {symbol}: {e}") from e

        contract_size = self._contract_size(symbol)
        for position in positions:
            if position.get('symbol') != market['symbol']:
                continue
            contracts = float(position.get('contracts') or 0)
            if contracts == 0:
                continue
            quantity = contracts * contract_size
            if position.get('side') == 'short':
                quantity = -quantity
            return PositionInfo(
                symbol=symbol,
                quantity=quantity,
                avg_entry_price=float(position.get('entryPrice') or 0),
            )
        return None

    async def fetch_free_collateral(self) -> float:
        """Free balance of the settle currency."""
        if self.rest_private is None:
            raise AuthMissingError(f"{self.name}: no API credentials for balances")

        try:
            balance = await self.rest_private.fetch_balance({'type': self.config.market_type})
        except AuthenticationError as e:
            raise AuthMissingError(f"{self.name}: {e}") from e
        except BaseError as e:
            raise DataFetchError(f"{self.name} balance: {e}") from e

        return float((balance.get('free') or {}).get(self.config.settle) or 0)


def create_venue(config: VenueConfig) -> CcxtVenue:
    """Venue gateway for a configured venue."""
    return CcxtVenue(config)
