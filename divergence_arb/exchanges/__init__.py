"""Venue gateways for divergence arbitrage."""

from .base import BaseVenue, OrderBook, OrderResult, PositionInfo
from .ccxt_venue import CcxtVenue, create_venue

__all__ = [
    'BaseVenue',
    'OrderBook',
    'OrderResult',
    'PositionInfo',
    'CcxtVenue',
    'create_venue',
]
