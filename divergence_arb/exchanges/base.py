"""Base venue interface for divergence arbitrage."""

from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Any
from dataclasses import dataclass

from ..config import VenueConfig
from ..core.symbols import SymbolNormalizer, get_normalizer
from ..core.types import OrderSide, PriceSnapshotEntry


@dataclass
class OrderBook:
    """Order book data."""
    venue: str
    symbol: str
    bids: List[tuple[float, float]]  # (price, size)
    asks: List[tuple[float, float]]  # (price, size)
    ts_exchange: int
    ts_local: int

    @property
    def best_bid(self) -> Optional[float]:
        return self.bids[0][0] if self.bids else None

    @property
    def best_ask(self) -> Optional[float]:
        return self.asks[0][0] if self.asks else None


@dataclass
class PositionInfo:
    """Open position on one venue."""
    symbol: str
    quantity: float  # signed: positive long, negative short
    avg_entry_price: float


@dataclass
class OrderResult:
    """Order execution result."""
    success: bool
    order_id: Optional[str] = None
    filled_qty: float = 0.0
    avg_price: float = 0.0
    fee_amount: float = 0.0
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class BaseVenue(ABC):
    """Base venue interface.

    Every method that touches the network raises one of the errors from
    ``core.errors``; raw client exceptions never leak past a venue.
    """

    def __init__(self, config: VenueConfig):
        self.config = config
        self.name = config.name
        self.normalizer: SymbolNormalizer = get_normalizer(config)
        self._connected = False

    @property
    def has_credentials(self) -> bool:
        """True when private endpoints can be used."""
        return self.config.account.is_complete

    @property
    def fee_rate(self) -> float:
        """Taker fee as a decimal rate."""
        return self.config.fee_rate

    @abstractmethod
    async def connect(self) -> bool:
        """Connect to the venue."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the venue."""
        pass

    @abstractmethod
    async def fetch_snapshot(self) -> List[PriceSnapshotEntry]:
        """Fetch prices and 24h volume for every listed instrument."""
        pass

    @abstractmethod
    async def fetch_price(self, symbol: str) -> float:
        """Fetch the current price of one canonical symbol."""
        pass

    @abstractmethod
    async def fetch_order_book(self, symbol: str, limit: int = 10) -> Optional[OrderBook]:
        """Fetch order book for a canonical symbol."""
        pass

    def tradable_quantity(self, symbol: str, quantity: float) -> float:
        """Largest quantity not above ``quantity`` the venue accepts in one order, 0 if none."""
        return quantity

    @abstractmethod
    async def place_market_order(self, symbol: str, side: OrderSide, quantity: float,
                                 reduce_only: bool = False) -> OrderResult:
        """Place a market order for a canonical symbol."""
        pass

    @abstractmethod
    async def query_position(self, symbol: str) -> Optional[PositionInfo]:
        """Return the open position for a canonical symbol, or None."""
        pass

    @abstractmethod
    async def fetch_free_collateral(self) -> float:
        """Free collateral in the venue's settle currency."""
        pass

    def is_connected(self) -> bool:
        """Check if venue is connected."""
        return self._connected
