"""Symbol normalization across venues.

Each venue names the same perpetual differently (``ORBS_USDT`` on Gate.io,
``PERP_ORBS_USDC`` on Orderly). Normalizers strip the venue-specific
prefix/suffix so both map to the canonical ``ORBS``.
"""

from typing import Dict, Optional
from loguru import logger

GATEIO_SUFFIX = "_USDT"
ORDERLY_PREFIX = "PERP_"
ORDERLY_SUFFIX = "_USDC"


def _strip(symbol: Optional[str], prefix: str, suffix: str, caller: str) -> str:
    if not symbol:
        logger.warning(f"{caller}: symbol is empty or undefined")
        return ""
    if prefix and symbol.startswith(prefix):
        symbol = symbol[len(prefix):]
    if suffix and symbol.endswith(suffix):
        symbol = symbol[:-len(suffix)]
    return symbol


def normalize_gateio_symbol(symbol: Optional[str]) -> str:
    """Gate.io contract to canonical symbol (ORBS_USDT -> ORBS)."""
    return _strip(symbol, "", GATEIO_SUFFIX, "normalize_gateio_symbol")


def normalize_orderly_symbol(symbol: Optional[str]) -> str:
    """Orderly perp to canonical symbol (PERP_RUNE_USDC -> RUNE)."""
    return _strip(symbol, ORDERLY_PREFIX, ORDERLY_SUFFIX, "normalize_orderly_symbol")


class SymbolNormalizer:
    """Prefix/suffix normalizer for one venue."""

    def __init__(self, venue: str, prefix: str = "", suffix: str = ""):
        self.venue = venue
        self.prefix = prefix
        self.suffix = suffix

    def __call__(self, symbol: Optional[str]) -> str:
        return self.normalize(symbol)

    def normalize(self, symbol: Optional[str]) -> str:
        """Raw venue identifier to canonical symbol. Never raises."""
        return _strip(symbol, self.prefix, self.suffix, f"normalize[{self.venue}]")

    def __repr__(self) -> str:
        return f"SymbolNormalizer(venue={self.venue!r}, prefix={self.prefix!r}, suffix={self.suffix!r})"


KNOWN_NORMALIZERS: Dict[str, SymbolNormalizer] = {
    "gateio": SymbolNormalizer("gateio", suffix=GATEIO_SUFFIX),
    "orderly": SymbolNormalizer("orderly", prefix=ORDERLY_PREFIX, suffix=ORDERLY_SUFFIX),
}


def get_normalizer(venue_config) -> SymbolNormalizer:
    """Normalizer for a venue config.

    Explicit prefix/suffix in the config win; otherwise fall back to the
    built-in rule for a known venue name, and finally to identity.
    """
    if venue_config.symbol_prefix or venue_config.symbol_suffix:
        return SymbolNormalizer(
            venue_config.name,
            prefix=venue_config.symbol_prefix,
            suffix=venue_config.symbol_suffix,
        )
    known = KNOWN_NORMALIZERS.get(venue_config.name)
    if known is not None:
        return known
    logger.debug(f"No symbol rule for venue {venue_config.name}, using identity")
    return SymbolNormalizer(venue_config.name)
