"""Market generation for duel outcomes.

Only the hidden skill tiers feed the probabilities. Ladder lines whose Over
probability falls outside 0.22-0.78 are not offered.
"""

import math

import numpy as np
from scipy.special import expit

from virtuals.config import AppConfig, get_config
from virtuals.odds.pricing import (
    Market,
    PropPricer,
    build_market,
    price_band_ladder,
    price_probability,
    with_overround,
)
from virtuals.settlement.markets import MarketKind
from virtuals.simulation.duel import ROUNDS, DuelOutcome

SKILL_WEIGHT = {"Low": 0.8, "Medium": 1.0, "High": 1.2}
WINNER_MARGIN = 0.13
TOTAL_MARGIN = 0.16
PROPS_MARGIN = 0.22
MAX_FAVOURITE = 0.78
LADDER_BAND = (0.22, 0.78)


def _ladder(
    projected: float,
    lines: list[float],
    scale: float,
) -> tuple[list[float], list[float]]:
    """Keep only lines whose Over probability sits inside the offered band."""
    over = expit((projected - np.asarray(lines)) * scale).tolist()
    kept = [(line, p) for line, p in zip(lines, over) if LADDER_BAND[0] <= p <= LADDER_BAND[1]]
    return [line for line, _ in kept], [p for _, p in kept]


def generate_duel_markets(
    outcome: DuelOutcome,
    pricing_seed: int | None = None,
    config: AppConfig | None = None,
) -> list[Market]:
    """Price the duel market set.

    Args:
        outcome: Simulated duel
        pricing_seed: Seed for noise draws (None = the duel seed)
        config: Pricing constants (None = use global config)
    """
    config = config or get_config()
    seed = outcome.seed if pricing_seed is None else pricing_seed
    event_id = outcome.event_id

    s_a = SKILL_WEIGHT[outcome.skill_a]
    s_b = SKILL_WEIGHT[outcome.skill_b]
    p_a = s_a / (s_a + s_b)
    p_b = s_b / (s_a + s_b)

    markets: list[Market] = []

    if p_a <= MAX_FAVOURITE and p_b <= MAX_FAVOURITE:
        priced = [
            (outcome.player_a, price_probability(p_a, WINNER_MARGIN, seed, 1.08, 3.50, 0.10, config=config), p_a),
            (outcome.player_b, price_probability(p_b, WINNER_MARGIN, seed + 1, 1.08, 3.50, 0.10, config=config), p_b),
        ]
        winner = build_market(event_id, "Match Winner", MarketKind.MATCH_WINNER.value, priced)
        markets.append(with_overround(winner, 1.08))

    ladder_pricer = PropPricer(seed, volatility=0.10, margin=TOTAL_MARGIN, min_odds=1.08, max_odds=3.50, config=config)
    props_pricer = PropPricer(seed, volatility=0.10, margin=PROPS_MARGIN, min_odds=1.08, max_odds=3.50, config=config)

    # Roughly 100 points per round per player at Medium skill
    projected_total = (s_a + s_b) * ROUNDS * 100
    lines, over = _ladder(
        projected_total,
        [math.floor(projected_total * f) + 0.5 for f in (0.85, 0.95, 1.05, 1.15)],
        1 / 100,
    )
    if lines:
        markets.append(
            build_market(
                event_id,
                "Total Match Score",
                MarketKind.TOTAL_MATCH_SCORE.value,
                price_band_ladder(lines, over, ladder_pricer, config),
            )
        )

    lines, over = _ladder((s_a + s_b) * 1.2, [0.5, 1.5, 2.5], 1.5)
    if lines:
        markets.append(
            build_market(
                event_id, "Total Bulls", MarketKind.TOTAL_BULLS.value, price_band_ladder(lines, over, props_pricer, config)
            )
        )

    # About 0.27 trebles per throw at Medium skill over 30 throws
    projected_triples = (s_a + s_b) * 4.05
    lines, over = _ladder(
        projected_triples,
        [math.floor(projected_triples * f) + 0.5 for f in (0.8, 1.0, 1.2)],
        0.8,
    )
    if lines:
        markets.append(
            build_market(
                event_id,
                "Total Triples",
                MarketKind.TOTAL_TRIPLES.value,
                price_band_ladder(lines, over, props_pricer, config),
            )
        )

    p180 = (s_a + s_b) * 0.05
    if 0.05 <= p180 <= 0.50:
        yes = PropPricer(seed, volatility=0.0, margin=PROPS_MARGIN, min_odds=1.50, max_odds=15.00, config=config)
        no = PropPricer(seed, volatility=0.0, margin=PROPS_MARGIN, min_odds=1.01, max_odds=1.80, config=config)
        perfect = build_market(
            event_id,
            "Any Player Perfect Throw (180)",
            MarketKind.PERFECT_THROW.value,
            [("Yes", yes(p180), p180), ("No", no(1 - p180), 1 - p180)],
        )
        markets.append(with_overround(perfect, (yes.min_odds, no.min_odds)))

    round_pricer = PropPricer(seed + 3, volatility=0.25, margin=0.20, min_odds=1.20, max_odds=8.00, config=config)
    even = 1 / ROUNDS
    highest = build_market(
        event_id,
        "Highest Scoring Round",
        MarketKind.HIGHEST_SCORING_ROUND.value,
        [(f"Round {r}", round_pricer(even), even) for r in range(1, ROUNDS + 1)],
    )
    markets.append(with_overround(highest, 1.20))

    return markets
