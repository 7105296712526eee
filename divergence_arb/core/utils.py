"""Utility functions for sizing and reporting."""

import math
from typing import Optional


def format_duration(seconds: float) -> str:
    """Format duration in human readable format."""
    if seconds < 60:
        return f"{seconds:.1f}s"
    elif seconds < 3600:
        minutes = seconds / 60
        return f"{minutes:.1f}m"
    else:
        hours = seconds / 3600
        return f"{hours:.1f}h"


def clamp(value: float, min_val: float, max_val: float) -> float:
    """Clamp a value between min and max."""
    return max(min_val, min(value, max_val))


def sign(value: float) -> int:
    """-1, 0 or 1."""
    if value > 0:
        return 1
    if value < 0:
        return -1
    return 0


def _round_half_up(value: float) -> float:
    return math.floor(value + 0.5)


def round_quantity_by_price(quantity: float, price: float) -> float:
    """Round an order quantity to a lot size that suits the price level."""
    if price <= 0.1:
        return _round_half_up(quantity / 10) * 10
    elif price <= 1:
        return _round_half_up(quantity)
    elif price <= 10:
        return _round_half_up(quantity * 10) / 10
    elif price <= 3000:
        return _round_half_up(quantity * 100) / 100
    elif price <= 50000:
        return _round_half_up(quantity * 1000) / 1000
    else:
        return _round_half_up(quantity * 100000) / 100000


def quantity_from_notional(notional: float, price: float) -> float:
    """Order quantity for a notional at ``price``, rounded by price level."""
    if price <= 0:
        return 0.0
    return round_quantity_by_price(notional / price, price)


def mask_secret(value: Optional[str], visible: int = 8) -> str:
    """First characters of a secret followed by an ellipsis."""
    if not value:
        return "<missing>"
    return f"{value[:visible]}..."
