"""
Data validation utilities.
"""
import re
from typing import Optional

TICKER_PATTERN = re.compile(r'^[A-Z0-9]{1,6}([.-][A-Z0-9]{1,4}){0,2}$')


def validate_ticker(ticker: Optional[str]) -> bool:
    """
    Validate exchange ticker format.

    Accepts plain US tickers (AAPL), share classes (BRK.B), numeric codes
    (2330.TW) and exchange-suffixed European listings (NOKIA.HE, ERIC-B.ST).

    Args:
        ticker: Upper-case ticker symbol

    Returns:
        True if valid, False otherwise
    """
    if not ticker:
        return False
    return bool(TICKER_PATTERN.match(ticker))


def validate_market_cap_range(
    market_cap: Optional[float],
    min_market_cap: float,
    max_market_cap: float
) -> bool:
    """
    Check that a market capitalization falls inside a scanning range.

    The lower bound is inclusive and the upper bound exclusive.

    Args:
        market_cap: Market capitalization in quote currency
        min_market_cap: Inclusive lower bound
        max_market_cap: Exclusive upper bound

    Returns:
        True if inside the range, False otherwise (including missing values)
    """
    if market_cap is None:
        return False
    return min_market_cap <= market_cap < max_market_cap
