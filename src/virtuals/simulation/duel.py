"""Two-player darts duel simulator.

A match is five rounds of three throws per player. Throw outcomes come from a
tiered probability model keyed by a hidden skill tier, so higher tiers land
bulls and trebles more often and miss less.
"""

import math
from dataclasses import asdict, dataclass
from typing import Any, Literal

from virtuals.config import AppConfig, get_config
from virtuals.simulation.event_id import EventId
from virtuals.simulation.rng import clamp, seeded_random

Skill = Literal["Low", "Medium", "High"]
Side = Literal["A", "B", "tie"]

DUEL_PLAYERS: tuple[str, ...] = ("Michael", "Jaguar", "Charles", "Righteous")
SKILLS: tuple[Skill, ...] = ("Low", "Medium", "High")
SKILL_MULTIPLIER: dict[str, float] = {"Low": 0.75, "Medium": 1.0, "High": 1.3}

ROUNDS = 5
THROWS_PER_ROUND = 3
PERFECT_THROW = 60


@dataclass(frozen=True)
class Throw:
    score: int
    bullseye: bool = False
    triple: bool = False
    double: bool = False
    miss: bool = False


@dataclass(frozen=True)
class DuelRound:
    number: int  # 1-based
    throws_a: tuple[Throw, ...]
    throws_b: tuple[Throw, ...]

    @property
    def score_a(self) -> int:
        return sum(t.score for t in self.throws_a)

    @property
    def score_b(self) -> int:
        return sum(t.score for t in self.throws_b)

    @property
    def total(self) -> int:
        return self.score_a + self.score_b


@dataclass(frozen=True)
class DuelOutcome:
    """Immutable result of one duel."""

    event_id: str
    seed: int
    timestamp: int
    player_a: str
    player_b: str
    skill_a: Skill
    skill_b: Skill
    rounds: tuple[DuelRound, ...]
    total_a: int
    total_b: int
    winner: Side
    total_bulls: int
    total_triples: int
    perfect_a: bool
    perfect_b: bool
    highest_round: int  # 1-based
    highest_round_points: int
    late_surge_a: bool
    late_surge_b: bool

    @property
    def total_score(self) -> int:
        return self.total_a + self.total_b

    @property
    def winner_name(self) -> str | None:
        if self.winner == "A":
            return self.player_a
        if self.winner == "B":
            return self.player_b
        return None

    @property
    def any_perfect(self) -> bool:
        return self.perfect_a or self.perfect_b

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DuelOutcome":
        fields = dict(data)
        fields["rounds"] = tuple(
            DuelRound(
                number=r["number"],
                throws_a=tuple(Throw(**t) for t in r["throws_a"]),
                throws_b=tuple(Throw(**t) for t in r["throws_b"]),
            )
            for r in data["rounds"]
        )
        return cls(**fields)


def simulate_throw(seed: int, skill: Skill, turn_index: int) -> Throw:
    """Draw one dart from the tiered outcome model.

    The categories are tested in order against a single draw; a second draw
    picks the number inside a banded category.
    """
    r1 = seeded_random(seed + turn_index * 7)
    r2 = seeded_random(seed + turn_index * 13)
    k = SKILL_MULTIPLIER[skill]

    p_miss = clamp(0.05 / k, 0, 0.15)
    p_inner_bull = clamp(0.04 * k, 0.01, 0.12)
    p_outer_bull = clamp(0.08 * k, 0.03, 0.15)
    p_treble_20 = clamp(0.12 * k, 0.05, 0.35)
    p_other_treble = clamp(0.15 * k, 0.05, 0.25)
    p_double = clamp(0.15 * k, 0.05, 0.25)

    if r1 < p_miss:
        return Throw(0, miss=True)
    roll = r1 - p_miss

    if roll < p_inner_bull:
        return Throw(50, bullseye=True)
    roll -= p_inner_bull

    if roll < p_outer_bull:
        return Throw(25, bullseye=True)
    roll -= p_outer_bull

    if roll < p_treble_20:
        return Throw(60, triple=True)
    roll -= p_treble_20

    if roll < p_other_treble:
        return Throw((17 + math.floor(r2 * 3)) * 3, triple=True)
    roll -= p_other_treble

    if roll < p_double:
        return Throw((1 + math.floor(r2 * 20)) * 2, double=True)

    # Skilled players mostly hit the 15-20 segments
    if r2 < 0.6 * k:
        return Throw(15 + math.floor(seeded_random(seed + turn_index * 3) * 6))
    return Throw(1 + math.floor(seeded_random(seed + turn_index * 5) * 20))


def pick_players(seed: int) -> tuple[int, int]:
    """Two distinct roster indices for a duel seed."""
    n = len(DUEL_PLAYERS)
    first = math.floor(seeded_random(seed + 1) * n)
    second = math.floor(seeded_random(seed + 2) * n)
    if first == second:
        second = (second + 1) % n
    return first, second


def simulate_duel(seed: int, timestamp: int = 0, config: AppConfig | None = None) -> DuelOutcome:
    """Simulate one duel.

    Args:
        seed: Global seed; also forms the event id
        timestamp: Cosmetic, carried into the outcome unchanged
        config: Source of the late-surge threshold (None = global config)

    Returns:
        DuelOutcome; identical seeds always return an equal outcome
    """
    config = config or get_config()

    idx_a, idx_b = pick_players(seed)
    skill_a = SKILLS[math.floor(seeded_random(seed + 3) * 3)]
    skill_b = SKILLS[math.floor(seeded_random(seed + 4) * 3)]

    rounds: list[DuelRound] = []
    for r in range(1, ROUNDS + 1):
        throws_a = tuple(
            simulate_throw(seed + r * 100 + t * 10, skill_a, r * 10 + t)
            for t in range(THROWS_PER_ROUND)
        )
        throws_b = tuple(
            simulate_throw(seed + r * 200 + t * 20, skill_b, r * 10 + t)
            for t in range(THROWS_PER_ROUND)
        )
        rounds.append(DuelRound(r, throws_a, throws_b))

    all_throws = [t for rnd in rounds for t in rnd.throws_a + rnd.throws_b]
    total_a = sum(rnd.score_a for rnd in rounds)
    total_b = sum(rnd.score_b for rnd in rounds)

    # Earliest round wins ties for the highest round
    highest = rounds[0]
    for rnd in rounds[1:]:
        if rnd.total > highest.total:
            highest = rnd

    late_a = sum(rnd.score_a for rnd in rounds[3:])
    late_b = sum(rnd.score_b for rnd in rounds[3:])
    threshold = config.late_aggression_threshold

    if total_a > total_b:
        winner: Side = "A"
    elif total_b > total_a:
        winner = "B"
    else:
        winner = "tie"

    return DuelOutcome(
        event_id=EventId.duel(seed).format(),
        seed=seed,
        timestamp=timestamp,
        player_a=DUEL_PLAYERS[idx_a],
        player_b=DUEL_PLAYERS[idx_b],
        skill_a=skill_a,
        skill_b=skill_b,
        rounds=tuple(rounds),
        total_a=total_a,
        total_b=total_b,
        winner=winner,
        total_bulls=sum(1 for t in all_throws if t.bullseye),
        total_triples=sum(1 for t in all_throws if t.triple),
        perfect_a=any(all(t.score == PERFECT_THROW for t in rnd.throws_a) for rnd in rounds),
        perfect_b=any(all(t.score == PERFECT_THROW for t in rnd.throws_b) for rnd in rounds),
        highest_round=highest.number,
        highest_round_points=highest.total,
        late_surge_a=late_a > total_a * threshold,
        late_surge_b=late_b > total_b * threshold,
    )
