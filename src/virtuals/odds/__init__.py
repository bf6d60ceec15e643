"""Pricing, market generation and live odds adjustment."""

from virtuals.odds.duel_markets import generate_duel_markets
from virtuals.odds.live import reprice_market
from virtuals.odds.overround import implied_probabilities, overround, proportional_devig
from virtuals.odds.pricing import (
    Market,
    MarketStatus,
    Selection,
    enforce_monotonic_ladder,
    enforce_overround,
    price_band_ladder,
    price_probability,
)
from virtuals.odds.quiz_markets import generate_quiz_markets

__all__ = [
    "Market",
    "MarketStatus",
    "Selection",
    "enforce_monotonic_ladder",
    "enforce_overround",
    "generate_duel_markets",
    "generate_quiz_markets",
    "implied_probabilities",
    "overround",
    "price_band_ladder",
    "price_probability",
    "proportional_devig",
    "reprice_market",
]
