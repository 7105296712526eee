"""Sample snapshots and fake venues for testing the divergence bot."""

from unittest.mock import AsyncMock, Mock

from divergence_arb.core.types import PriceSnapshotEntry
from divergence_arb.exchanges.base import BaseVenue, OrderBook, OrderResult

# Raw venue identifiers as listed by each venue
GATEIO_CONTRACTS = ["BTC_USDT", "ETH_USDT", "ORBS_USDT", "RUNE_USDT"]
ORDERLY_PERPS = ["PERP_BTC_USDC", "PERP_ETH_USDC", "PERP_RUNE_USDC", "PERP_WOO_USDC"]


def snapshot(venue, prices, volumes=None):
    """List of entries from {symbol: price}."""
    volumes = volumes or {}
    return [
        PriceSnapshotEntry(venue=venue, symbol=symbol, price=price, volume_24h=volumes.get(symbol, 0.0))
        for symbol, price in prices.items()
    ]


def order_book(venue, symbol, bids, asks):
    return OrderBook(venue=venue, symbol=symbol, bids=bids, asks=asks, ts_exchange=0, ts_local=0)


def fake_venue(name, fee_rate=0.0002, has_credentials=True, collateral=1000.0):
    """BaseVenue mock whose network methods are AsyncMocks."""
    venue = Mock(spec=BaseVenue)
    venue.name = name
    venue.fee_rate = fee_rate
    venue.has_credentials = has_credentials
    venue.connect = AsyncMock(return_value=True)
    venue.disconnect = AsyncMock()
    venue.fetch_snapshot = AsyncMock(return_value=[])
    venue.fetch_price = AsyncMock()
    venue.fetch_order_book = AsyncMock(return_value=None)
    venue.place_market_order = AsyncMock(
        return_value=OrderResult(success=True, order_id=f"{name}-1", filled_qty=0.0, avg_price=0.0)
    )
    venue.query_position = AsyncMock(return_value=None)
    venue.fetch_free_collateral = AsyncMock(return_value=collateral)
    venue.tradable_quantity = Mock(side_effect=lambda symbol, quantity: quantity)
    return venue
