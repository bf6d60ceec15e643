"""Implied probability and overround helpers for decimal prices."""


def implied_probabilities(prices: list[float]) -> list[float]:
    """Convert decimal prices to raw implied probabilities (1 / price).

    Raises:
        ValueError: If prices is empty or contains a price below 1.0
    """
    if not prices:
        raise ValueError("prices list cannot be empty")

    if any(p < 1.0 for p in prices):
        raise ValueError(f"All prices must be >= 1.0 (European decimal), got: {prices}")

    return [1.0 / price for price in prices]


def overround(prices: list[float]) -> float:
    """Book margin of a mutually exclusive market: sum(1 / price) - 1.

    Negative means the market pays out more than it takes in.
    """
    return sum(implied_probabilities(prices)) - 1.0


def proportional_devig(prices: list[float]) -> list[float]:
    """Strip the margin from a market's prices proportionally.

    Args:
        prices: Decimal prices for all selections of a market (>= 1.0)

    Returns:
        Fair probabilities summing to 1.0

    Example:
        >>> proportional_devig([1.91, 1.91])
        [0.5, 0.5]
    """
    implied = implied_probabilities(prices)
    total = sum(implied)
    return [imp / total for imp in implied]
