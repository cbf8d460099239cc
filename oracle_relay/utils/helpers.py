"""
ORACLE RELAY — Common Utility Functions
Fixed-point price arithmetic and time helpers.
"""
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Tuple, Union
import time

PRICE_DECIMALS = 8


def utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


def utc_timestamp() -> str:
    """Return current UTC timestamp as ISO string."""
    return utc_now().isoformat()


def unix_now() -> int:
    """Return current unix time in whole seconds."""
    return int(time.time())


def normalize_symbol(symbol: str) -> str:
    """Normalize asset symbol: ' btc/usd ' -> 'BTC'."""
    return symbol.strip().upper().replace("-", "/").split("/")[0]


def to_fixed_point(value: Union[str, int, float, Decimal], decimals: int = PRICE_DECIMALS) -> int:
    """
    Convert a provider quote into a fixed-point integer scaled by 10**decimals.
    Floats go through their repr so 0.1 stays 0.1 rather than its binary expansion.
    """
    if isinstance(value, float):
        value = repr(value)
    scaled = Decimal(value).scaleb(decimals)
    return int(scaled.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def align_decimals(a: int, a_decimals: int, b: int, b_decimals: int) -> Tuple[int, int]:
    """Rescale two fixed-point integers to a common exponent."""
    if a_decimals == b_decimals:
        return a, b
    if a_decimals > b_decimals:
        return a, b * 10 ** (a_decimals - b_decimals)
    return a * 10 ** (b_decimals - a_decimals), b


def format_price(price: int, decimals: int, fraction_digits: int = 2) -> str:
    """Format a fixed-point price for display, truncating extra digits."""
    whole, fraction = divmod(price, 10 ** decimals)
    if fraction_digits <= 0:
        return str(whole)
    frac = str(fraction).rjust(decimals, "0")[:fraction_digits].ljust(fraction_digits, "0")
    return f"{whole}.{frac}"


def parse_price(price_str: str, decimals: int = PRICE_DECIMALS) -> int:
    """Parse a decimal string ('52500.00') into a fixed-point integer."""
    whole, _, fraction = price_str.strip().partition(".")
    fraction = fraction.ljust(decimals, "0")[:decimals]
    return int(f"{whole or '0'}{fraction}")
