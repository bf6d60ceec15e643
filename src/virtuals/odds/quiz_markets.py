"""Market generation for quiz outcomes.

Probabilities come from the participants' strengths, never from the
simulated result itself, so prices can be shown before the event is revealed.
"""

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
from virtuals.simulation.event_id import EventId
from virtuals.simulation.quiz import MAIN_ROUNDS, QuizOutcome
from virtuals.simulation.rng import seeded_random

SHARPEN_EXPONENT = 1.8
WINNER_MARGIN = 0.125
POINTS_PER_STRENGTH = 45
TOTAL_POINTS_SCALE = 35
TOTAL_POINTS_MARGIN = 0.165
LINE_OFFSETS = (-20, -10, 0, 10, 20)
# Maximum points per main round, used to weight Highest Scoring Round
ROUND_MAX_POINTS = (45, 24, 10, 20, 12)
PERFECT_DIFFICULTY = (0.3, 0.6, 0.8, 0.5, 0.7)


def default_pricing_seed(outcome: QuizOutcome) -> int:
    """Round-slot based pricing seed, offset per match."""
    parsed = EventId.parse(outcome.event_id)
    return outcome.round_slot * 60000 + parsed.match_slot * 1000


def win_probabilities(strengths: tuple[float, ...]) -> list[float]:
    """Sharpened strength shares; stronger participants are favoured super-linearly."""
    sharpened = np.power(np.asarray(strengths, dtype=float), SHARPEN_EXPONENT)
    return (sharpened / sharpened.sum()).tolist()


def _participant_market(
    event_id: str,
    name: str,
    kind: MarketKind,
    participants: tuple[str, ...],
    probabilities: list[float],
    pricer: PropPricer,
) -> Market:
    priced = [(p_name, pricer(max(0.01, p)), p) for p_name, p in zip(participants, probabilities)]
    return with_overround(build_market(event_id, name, kind.value, priced), pricer.min_odds)


def _yes_no_market(event_id: str, name: str, kind: MarketKind, yes: float, seed: float, config) -> Market:
    pricer = PropPricer(seed, volatility=0.25, margin=0.25, min_odds=1.10, max_odds=15.00, config=config)
    yes = min(0.99, max(0.01, yes))
    priced = [("Yes", pricer(yes), yes), ("No", pricer(1 - yes), 1 - yes)]
    return with_overround(build_market(event_id, name, kind.value, priced), pricer.min_odds)


def generate_quiz_markets(
    outcome: QuizOutcome,
    pricing_seed: int | None = None,
    config: AppConfig | None = None,
) -> list[Market]:
    """Price the full quiz market set for one outcome.

    Args:
        outcome: Simulated quiz
        pricing_seed: Seed for all noise draws (None = derived from the event id)
        config: Pricing constants (None = use global config)

    Returns:
        Markets in display order; deterministic for a given outcome and seed
    """
    config = config or get_config()
    seed = default_pricing_seed(outcome) if pricing_seed is None else pricing_seed
    event_id = outcome.event_id
    names = outcome.participants
    strengths = outcome.strengths
    probs = win_probabilities(strengths)

    markets: list[Market] = []

    # Match Winner
    winner_priced = [
        (
            name,
            price_probability(p, WINNER_MARGIN, seed + i + 1, 1.10, 6.00, 0.12, config=config),
            p,
        )
        for i, (name, p) in enumerate(zip(names, probs))
    ]
    markets.append(
        with_overround(
            build_market(event_id, "Match Winner", MarketKind.MATCH_WINNER.value, winner_priced), 1.10
        )
    )

    # Total Points ladder around the projected total
    projected = sum(strengths) * POINTS_PER_STRENGTH
    centre = round(projected / 10) * 10 + 0.5
    lines = [centre + offset for offset in LINE_OFFSETS]
    over_probs = expit((projected - np.asarray(lines)) / TOTAL_POINTS_SCALE).tolist()
    total_pricer = PropPricer(seed, volatility=0.15, margin=TOTAL_POINTS_MARGIN, min_odds=1.20, max_odds=3.00, config=config)
    markets.append(
        build_market(
            event_id,
            "Total Points",
            MarketKind.TOTAL_POINTS.value,
            price_band_ladder(lines, over_probs, total_pricer, config),
        )
    )

    # Winning Margin bands shift toward blowouts as strengths spread
    spread = max(strengths) - min(strengths)
    shift = min(1.0, spread / 1.5)
    margin_pricer = PropPricer(seed, volatility=0.20, margin=0.18, min_odds=1.20, max_odds=5.00, config=config)
    band_probs = [("1-10", 0.50 - shift * 0.30), ("11-25", 0.35 + shift * 0.10), ("26+", 0.15 + shift * 0.20)]
    markets.append(
        with_overround(
            build_market(
                event_id,
                "Winning Margin",
                MarketKind.WINNING_MARGIN.value,
                [(label, margin_pricer(p), p) for label, p in band_probs],
            ),
            margin_pricer.min_odds,
        )
    )

    # Round N Winner
    round_pricer = PropPricer(seed, volatility=0.25, margin=0.18, min_odds=1.15, max_odds=6.00, config=config)
    for r_idx in range(MAIN_ROUNDS):
        r_noise = seeded_random(seed + r_idx * 777) * 0.16 - 0.08
        phase = 1.05 if r_idx >= 3 else 0.95
        markets.append(
            _participant_market(
                event_id,
                f"Round {r_idx + 1} Winner",
                MarketKind.ROUND_WINNER,
                names,
                [p * phase + r_noise for p in probs],
                round_pricer,
            )
        )

    default_pricer = PropPricer(seed, config=config)
    markets.append(
        _participant_market(
            event_id, "Leader After Round 1", MarketKind.LEADER_AFTER_ROUND, names, probs, default_pricer
        )
    )

    # Perfect rounds
    match_noise = seeded_random(seed) * 0.06 - 0.03
    top_strength = max(strengths)

    def perfect_probability(difficulty: float, r_idx: int) -> float:
        r_noise = seeded_random(seed + r_idx * 555) * 0.08 - 0.04
        p = (0.15 + top_strength * 0.10 + match_noise + r_noise) * (1 - difficulty * 0.4)
        return max(0.01, p)

    any_perfect = min(
        0.40,
        perfect_probability(0.3, 0) + perfect_probability(0.6, 1) + perfect_probability(0.5, 2),
    )
    markets.append(_yes_no_market(event_id, "Perfect Round", MarketKind.PERFECT_ROUND, any_perfect, seed, config))
    for r_idx, difficulty in enumerate(PERFECT_DIFFICULTY):
        markets.append(
            _yes_no_market(
                event_id,
                f"Perfect Round {r_idx + 1}",
                MarketKind.PERFECT_ROUND,
                perfect_probability(difficulty, r_idx + 1),
                seed + r_idx + 1,
                config,
            )
        )

    shutout = 0.12 + (0.15 if min(strengths) < 0.8 else 0.0) + match_noise
    markets.append(_yes_no_market(event_id, "Shutout Round", MarketKind.SHUTOUT_ROUND, shutout, seed, config))

    # Award and phase markets
    markets.append(
        _participant_market(
            event_id, "First Bonus", MarketKind.FIRST_BONUS, names, [p * 0.4 + 0.2 for p in probs], default_pricer
        )
    )
    markets.append(
        _participant_market(
            event_id, "Fastest Buzz", MarketKind.FASTEST_BUZZ, names, [p * 0.5 + 0.16 for p in probs], default_pricer
        )
    )
    markets.append(
        _participant_market(
            event_id, "Late Surge", MarketKind.LATE_SURGE, names, probs, PropPricer(seed, volatility=0.4, config=config)
        )
    )
    markets.append(
        _participant_market(
            event_id, "Strong Start", MarketKind.STRONG_START, names, probs, PropPricer(seed, volatility=0.1, config=config)
        )
    )

    round_weights = np.asarray(ROUND_MAX_POINTS, dtype=float) / sum(ROUND_MAX_POINTS)
    markets.append(
        _participant_market(
            event_id,
            "Highest Scoring Round",
            MarketKind.HIGHEST_SCORING_ROUND,
            tuple(f"Round {i + 1}" for i in range(MAIN_ROUNDS)),
            round_weights.tolist(),
            PropPricer(seed + 5, max_odds=25.0, config=config),
        )
    )

    lead_changes_high = 0.65 - shift * 0.40
    markets.append(
        with_overround(
            build_market(
                event_id,
                "Lead Changes",
                MarketKind.LEAD_CHANGES.value,
                [
                    ("Over 2.5", default_pricer(lead_changes_high), lead_changes_high),
                    ("Under 2.5", default_pricer(1 - lead_changes_high), 1 - lead_changes_high),
                ],
            ),
            default_pricer.min_odds,
        )
    )

    markets.append(
        _yes_no_market(event_id, "Comeback Win", MarketKind.COMEBACK_WIN, 0.18 - shift * 0.13, seed + 7, config)
    )

    return markets
