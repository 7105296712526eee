"""Open position ledger."""

from typing import Dict, Iterator, List, Optional
from loguru import logger

from .errors import PositionExistsError
from .types import OpenPosition


class PositionBook:
    """Open positions keyed by canonical symbol, at most one per symbol.

    Single-writer: only the monitoring loop task may call ``set`` and
    ``delete``. Nothing here locks; a multi-worker port must guard the book
    with a lock or route writes through one task.
    """

    def __init__(self):
        self._positions: Dict[str, OpenPosition] = {}

    def get(self, symbol: str) -> Optional[OpenPosition]:
        return self._positions.get(symbol)

    def set(self, position: OpenPosition) -> None:
        """Record a confirmed position. Raises if the symbol is already open."""
        if position.symbol in self._positions:
            raise PositionExistsError(f"Position already open for {position.symbol}")
        self._positions[position.symbol] = position
        logger.info(
            f"Position recorded: {position.symbol} qty {position.quantity} "
            f"entry A {position.entry_price_a}, B {position.entry_price_b}"
        )

    def delete(self, symbol: str) -> Optional[OpenPosition]:
        """Remove and return the position, or None if there was none."""
        return self._positions.pop(symbol, None)

    def symbols(self) -> List[str]:
        return list(self._positions.keys())

    def values(self) -> List[OpenPosition]:
        return list(self._positions.values())

    def __contains__(self, symbol: object) -> bool:
        return symbol in self._positions

    def __len__(self) -> int:
        return len(self._positions)

    def __iter__(self) -> Iterator[OpenPosition]:
        return iter(self.values())
