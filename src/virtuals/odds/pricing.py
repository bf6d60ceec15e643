"""Probability to decimal odds.

Implements:
- Damped seeded noise so displayed prices are not perfectly round
- Dynamic margin that grows as the probability falls (longshots cost more)
- Target return-to-player scaling, per-market bands and one global cap
- Monotonic Over/Under ladders and an overround floor for N-way markets
"""

import math
import re
from dataclasses import dataclass, replace
from enum import Enum
from typing import Sequence

from virtuals.config import AppConfig, get_config
from virtuals.odds.overround import implied_probabilities
from virtuals.simulation.rng import clamp, seeded_random

PROB_FLOOR = 0.01
PROB_CEIL = 0.99
MAX_IMPLIED = 0.95
DEFAULT_NOISE_RANGE = 0.16
ABSOLUTE_MIN_ODDS = 1.01


class MarketStatus(str, Enum):
    OPEN = "open"
    LOCKED = "locked"
    SETTLED = "settled"


@dataclass(frozen=True)
class Selection:
    """One priced answer within a market."""

    selection_id: str
    label: str
    odds: float
    probability: float


@dataclass(frozen=True)
class Market:
    """A named betting question with mutually exclusive selections."""

    market_id: str
    name: str
    kind: str
    selections: tuple[Selection, ...]
    status: MarketStatus = MarketStatus.OPEN

    def selection(self, label: str) -> Selection | None:
        for s in self.selections:
            if s.label == label:
                return s
        return None

    @property
    def odds(self) -> dict[str, float]:
        return {s.label: s.odds for s in self.selections}


def slug(text: str) -> str:
    """'Over 120.5' -> 'over-120-5'."""
    return re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")


def build_market(
    event_id: str,
    name: str,
    kind: str,
    priced: Sequence[tuple[str, float, float]],
) -> Market:
    """Assemble a Market from (label, odds, probability) triples."""
    market_id = f"{event_id}:{slug(name)}"
    return Market(
        market_id=market_id,
        name=name,
        kind=kind,
        selections=tuple(
            Selection(f"{market_id}:{slug(label)}", label, odds, probability)
            for label, odds, probability in priced
        ),
    )


def price_probability(
    probability: float,
    margin: float,
    seed: float = 0,
    min_odds: float = 1.20,
    max_odds: float = 6.00,
    noise_range: float = DEFAULT_NOISE_RANGE,
    config: AppConfig | None = None,
) -> float:
    """Convert a modeled probability to decimal odds.

    Args:
        probability: Modeled probability of the selection
        margin: Base margin before dynamic scaling
        seed: Pricing seed for the noise draw
        min_odds: Market floor
        max_odds: Market ceiling (further capped by ``max_odds_cap``)
        noise_range: Width of the noise band before damping
        config: Pricing constants (None = use global config)

    Returns:
        Odds rounded to 2dp within ``[min_odds, min(max_odds, max_odds_cap)]``
    """
    config = config or get_config()

    noise = (seeded_random(seed) * noise_range - noise_range / 2) * config.volatility_damping
    p = clamp(probability + noise, PROB_FLOOR, PROB_CEIL)

    dynamic_margin = margin * (1 + (1 - p) * (config.dynamic_margin_factor - 1))
    implied = min(MAX_IMPLIED, p * (1 + dynamic_margin))
    odds = (1 / implied) * config.target_rtp

    ceiling = min(max_odds, config.max_odds_cap)
    return round(clamp(odds, min_odds, ceiling), 2)


def enforce_monotonic_ladder(
    over_odds: Sequence[float],
    under_odds: Sequence[float],
    increment: float = 0.01,
    max_odds: float | None = None,
) -> tuple[list[float], list[float]]:
    """Repair an Over/Under ladder ordered by ascending line.

    Over prices must not fall as the line rises and Under prices must not
    rise. A violating price is raised to its neighbour plus ``increment``
    (never above ``max_odds``, where equal neighbours still satisfy the order).

    Returns:
        (over_odds, under_odds) as new lists
    """
    over = list(over_odds)
    under = list(under_odds)
    ceiling = max_odds if max_odds is not None else math.inf

    for i in range(1, len(over)):
        if over[i] < over[i - 1]:
            over[i] = round(min(ceiling, over[i - 1] + increment), 2)

    for i in range(len(under) - 2, -1, -1):
        if under[i] < under[i + 1]:
            under[i] = round(min(ceiling, under[i + 1] + increment), 2)

    return over, under


def enforce_overround(
    selections: Sequence[Selection],
    min_odds: float | Sequence[float] = ABSOLUTE_MIN_ODDS,
    increment: float = 0.01,
) -> list[Selection]:
    """Shorten prices of a mutually exclusive market until sum(1/odds) >= 1.

    Prices are scaled proportionally first, then the longest remaining price
    is shortened step by step to absorb 2dp rounding. Prices never drop
    below their floor: ``min_odds`` is either one floor for the whole market
    or one floor per selection, for markets whose sides are priced in
    different bands.
    """
    odds = [s.odds for s in selections]
    if not odds:
        return []

    if isinstance(min_odds, (int, float)):
        floors = [float(min_odds)] * len(odds)
    else:
        floors = [float(f) for f in min_odds]
        if len(floors) != len(odds):
            raise ValueError(f"Expected {len(odds)} floors, got {len(floors)}")

    total = sum(implied_probabilities(odds))
    if total >= 1.0:
        return list(selections)

    odds = [max(floor, math.floor(o * total * 100) / 100) for o, floor in zip(odds, floors)]

    while sum(implied_probabilities(odds)) < 1.0:
        shortenable = [i for i in range(len(odds)) if round(odds[i] - increment, 2) >= floors[i]]
        if not shortenable:
            break
        longest = max(shortenable, key=lambda i: odds[i])
        odds[longest] = round(odds[longest] - increment, 2)

    return [replace(s, odds=o) for s, o in zip(selections, odds)]


def price_band_ladder(
    lines: Sequence[float],
    over_probabilities: Sequence[float],
    price: "PropPricer",
    config: AppConfig | None = None,
) -> list[tuple[str, float, float]]:
    """Price every line of an Over/Under ladder from one probability curve.

    Args:
        lines: Ascending thresholds
        over_probabilities: P(actual > line) for each line
        price: Callable mapping a probability to odds for this market
        config: Source of ``min_odds_increment``

    Returns:
        (label, odds, probability) triples, Over then Under for each line
    """
    config = config or get_config()

    over_odds = [price(p) for p in over_probabilities]
    under_odds = [price(1 - p) for p in over_probabilities]
    over_odds, under_odds = enforce_monotonic_ladder(
        over_odds,
        under_odds,
        increment=config.min_odds_increment,
        max_odds=min(price.max_odds, config.max_odds_cap),
    )

    priced: list[tuple[str, float, float]] = []
    for line, p, o_odds, u_odds in zip(lines, over_probabilities, over_odds, under_odds):
        priced.append((f"Over {format_line(line)}", o_odds, p))
        priced.append((f"Under {format_line(line)}", u_odds, 1 - p))
    return priced


def format_line(line: float) -> str:
    """120.5 -> '120.5', 120.0 -> '120'."""
    return f"{line:g}"


@dataclass(frozen=True)
class PropPricer:
    """Prices proposition selections with a per-probability chaos tweak.

    The probability itself shapes the seed, so different selections of one
    market draw different noise from a shared pricing seed.
    """

    seed: float
    volatility: float = 0.25
    margin: float = 0.20
    min_odds: float = 1.20
    max_odds: float = 6.00
    config: AppConfig | None = None

    def __call__(self, probability: float) -> float:
        chaos = (seeded_random(self.seed + probability * 1000) - 0.5) * self.volatility
        p = clamp(probability * (1 + chaos), PROB_FLOOR, PROB_CEIL)
        return price_probability(
            p,
            self.margin,
            self.seed + probability * 777,
            self.min_odds,
            self.max_odds,
            config=self.config,
        )


def with_overround(market: Market, min_odds: float | Sequence[float] = ABSOLUTE_MIN_ODDS) -> Market:
    """Copy of ``market`` with its selections passed through enforce_overround."""
    return replace(market, selections=tuple(enforce_overround(market.selections, min_odds=min_odds)))
