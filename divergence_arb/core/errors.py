"""Error taxonomy for the divergence arbitrage bot."""


class ArbitrageError(Exception):
    """Base class for all bot errors."""
    pass


class DataFetchError(ArbitrageError):
    """A venue snapshot or price could not be fetched. Skip this tick only."""
    pass


class AuthMissingError(ArbitrageError):
    """Venue credentials are absent; the dependent feature no-ops."""
    pass


class OrderPlacementError(ArbitrageError):
    """An order was rejected or the request failed."""
    pass


class FillConfirmationError(ArbitrageError):
    """Actual fill price could not be confirmed; fall back to snapshot price."""
    pass


class PositionQueryError(ArbitrageError):
    """Open position lookup failed; retried on the next scheduled poll."""
    pass


class PositionExistsError(ArbitrageError):
    """Raised when a second position is written for the same symbol."""
    pass
