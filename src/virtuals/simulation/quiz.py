"""Three-participant, round-based quiz simulator.

Implements:
- Round-slot selection seed shared by every match in the round
- Strength assignment from learned form (small noise) or a wide random draw
- Five scoring rounds with off-day / hot-streak multipliers and a capped
  chaos inversion
- Bonus awards followed by a bounded, seeded tie-break
- Summary statistics consumed by proposition markets
"""

import logging
import math
from dataclasses import asdict, dataclass, field
from typing import Any, Callable, Mapping

from virtuals.config import AppConfig, get_config
from virtuals.errors import InvalidEventId, TieExhausted
from virtuals.simulation.event_id import Category, EventId, slugify_region
from virtuals.simulation.rng import clamp, seeded_index, seeded_random, stable_hash
from virtuals.simulation.roster import (
    DEFAULT_POOL,
    Participant,
    pick_region,
    select_quiz_participants,
)

logger = logging.getLogger(__name__)

MAIN_ROUNDS = 5
REGIONAL_OFFSET = 10000
NATIONAL_OFFSET = 20000
POOL_KEY_MODULUS = 9973
STRENGTH_FLOOR = 0.3
STRENGTH_SPREAD = 2.0
# Chaos inverts strength across the unranked 0.3-2.3 range.
STRENGTH_FLIP = STRENGTH_FLOOR * 2 + STRENGTH_SPREAD
BONUS_ROUND = "Bonus Awards"
TIE_BREAK_ROUND = "Tie Breaker"


@dataclass(frozen=True)
class SimulationContext:
    """Everything besides the slot numbers that feeds a quiz simulation.

    Passed explicitly so identical contexts replay identical outcomes.
    """

    pool: tuple[Participant, ...] = DEFAULT_POOL
    strengths: Mapping[str, float] = field(default_factory=dict)
    user_seed: int = 0


@dataclass(frozen=True)
class RoundScore:
    """Scores of all three participants for one round."""

    name: str
    scores: tuple[int, ...]


@dataclass(frozen=True)
class CommentaryLine:
    """Cosmetic commentary entry; never consulted by settlement."""

    second: int
    text: str


@dataclass(frozen=True)
class QuizStats:
    """Derived statistics consumed by proposition markets."""

    lead_changes: int
    perfect_rounds: tuple[tuple[bool, ...], ...]  # [round][participant]
    shutout_rounds: tuple[tuple[bool, ...], ...]  # [round][participant]
    first_bonus_index: int
    fastest_buzz_index: int
    strong_start_index: int  # leader of rounds 1+2
    late_surge_index: int  # leader of rounds 4+5
    highest_round_index: int  # 0-based main round with the highest combined score
    leader_after_round: tuple[int, ...]  # cumulative unique leader, -1 when shared
    comeback_win: bool
    winning_margin: int

    @property
    def any_perfect(self) -> bool:
        return any(any(flags) for flags in self.perfect_rounds)

    @property
    def any_shutout(self) -> bool:
        return any(any(flags) for flags in self.shutout_rounds)

    def perfect_in_round(self, round_number: int) -> bool:
        """Whether anyone was perfect in the 1-based main round."""
        return any(self.perfect_rounds[round_number - 1])


@dataclass(frozen=True)
class QuizOutcome:
    """Immutable result of one quiz event."""

    event_id: str
    participants: tuple[str, ...]
    regions: tuple[str, ...]
    category: Category
    round_slot: int
    rounds: tuple[RoundScore, ...]
    total_scores: tuple[int, ...]
    winner_index: int
    strengths: tuple[float, ...]
    stats: QuizStats
    commentary: tuple[CommentaryLine, ...] = ()
    tie_exhausted: bool = False

    @property
    def winner(self) -> str:
        return self.participants[self.winner_index]

    @property
    def total_points(self) -> int:
        return sum(self.total_scores)

    @property
    def main_rounds(self) -> tuple[RoundScore, ...]:
        return self.rounds[:MAIN_ROUNDS]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuizOutcome":
        stats = data["stats"]
        return cls(
            event_id=data["event_id"],
            participants=tuple(data["participants"]),
            regions=tuple(data["regions"]),
            category=data["category"],
            round_slot=data["round_slot"],
            rounds=tuple(RoundScore(r["name"], tuple(r["scores"])) for r in data["rounds"]),
            total_scores=tuple(data["total_scores"]),
            winner_index=data["winner_index"],
            strengths=tuple(data["strengths"]),
            stats=QuizStats(
                lead_changes=stats["lead_changes"],
                perfect_rounds=tuple(tuple(r) for r in stats["perfect_rounds"]),
                shutout_rounds=tuple(tuple(r) for r in stats["shutout_rounds"]),
                first_bonus_index=stats["first_bonus_index"],
                fastest_buzz_index=stats["fastest_buzz_index"],
                strong_start_index=stats["strong_start_index"],
                late_surge_index=stats["late_surge_index"],
                highest_round_index=stats["highest_round_index"],
                leader_after_round=tuple(stats["leader_after_round"]),
                comeback_win=stats["comeback_win"],
                winning_margin=stats["winning_margin"],
            ),
            commentary=tuple(
                CommentaryLine(c["second"], c["text"]) for c in data.get("commentary", ())
            ),
            tie_exhausted=data.get("tie_exhausted", False),
        )


# ---------------------------------------------------------------------------
# Round rules: (performance in [0, 1], round seed) -> (score, perfect)
# ---------------------------------------------------------------------------


def _general(performance: float, r_seed: int) -> tuple[int, bool]:
    correct = math.floor(15 * performance)
    return correct * 3, correct == 15


def _speed_race(performance: float, r_seed: int) -> tuple[int, bool]:
    correct = math.floor(8 * performance)
    wrong = math.floor(2 * seeded_random(r_seed + 1))
    return max(-5, correct * 3 - wrong * 2), correct == 8 and wrong == 0


def _problem_of_the_day(performance: float, r_seed: int) -> tuple[int, bool]:
    score = math.floor(10 * performance)
    return score, score == 10


def _true_false(performance: float, r_seed: int) -> tuple[int, bool]:
    correct = math.floor(10 * performance)
    wrong = math.floor(3 * seeded_random(r_seed + 2))
    return max(-2, correct * 2 - wrong), correct == 10 and wrong == 0


def _riddles(performance: float, r_seed: int) -> tuple[int, bool]:
    solved = math.floor(4 * performance)
    return solved * 3, solved == 4


ROUND_RULES: tuple[tuple[str, Callable[[float, int], tuple[int, bool]]], ...] = (
    ("General", _general),
    ("Speed Race", _speed_race),
    ("Problem of the Day", _problem_of_the_day),
    ("True/False", _true_false),
    ("Riddles", _riddles),
)


# ---------------------------------------------------------------------------
# Seeds and strengths
# ---------------------------------------------------------------------------


def _pool_key(pool: tuple[Participant, ...] | list[Participant]) -> int:
    return stable_hash("|".join(sorted(p.name for p in pool))) % POOL_KEY_MODULUS


def selection_seed(
    round_slot: int,
    category: Category,
    region_slug: str | None,
    pool: tuple[Participant, ...] | list[Participant],
    user_seed: int = 0,
) -> int:
    """Seed shared by every match in a round slot (participant assignment)."""
    offset = REGIONAL_OFFSET if category == "regional" else NATIONAL_OFFSET
    region_key = stable_hash(region_slug) if region_slug else 0
    return round_slot * 100 + offset + region_key + _pool_key(pool) + user_seed


def _assign_strength(name: str, seed: int, strengths: Mapping[str, float], form_noise: float) -> float:
    r = seeded_random(seed)
    form = strengths.get(name)
    if form is not None:
        return form * (1 + (r - 0.5) * form_noise)
    # Unranked participants get the wide draw
    return STRENGTH_FLOOR + r * STRENGTH_SPREAD


def _performance_multiplier(r_seed: int, config: AppConfig) -> float:
    roll = seeded_random(r_seed + 5000)
    if roll < config.off_day_probability:
        low, high = config.off_day_range
        return low + seeded_random(r_seed + 6000) * (high - low)
    if roll > 1 - config.hot_streak_probability:
        low, high = config.hot_streak_range
        return low + seeded_random(r_seed + 7000) * (high - low)
    return 1.0


def _unique_leader(totals: list[int]) -> int:
    top = max(totals)
    leaders = [i for i, t in enumerate(totals) if t == top]
    return leaders[0] if len(leaders) == 1 else -1


def _argmax(values: list[int]) -> int:
    return values.index(max(values))


def _break_ties(totals: list[int], seed: int, max_iterations: int) -> tuple[list[int], list[int]]:
    """Add seeded bonus points to still-tied leaders until one remains.

    Returns:
        (totals, added) where ``added`` holds the tie-break points per participant

    Raises:
        TieExhausted: If ``max_iterations`` pass without a unique leader
    """
    totals = list(totals)
    added = [0] * len(totals)
    top = max(totals)
    tied = [i for i, t in enumerate(totals) if t == top]

    attempts = 0
    while len(tied) > 1:
        if attempts >= max_iterations:
            raise TieExhausted(tuple(totals), attempts, tuple(added))
        for idx in tied:
            bump = math.floor(seeded_random(seed + (idx + attempts) * 777) * 5) + 1
            added[idx] += bump
            totals[idx] += bump
        top = max(totals)
        tied = [i for i, t in enumerate(totals) if t == top]
        attempts += 1

    return totals, added


def _commentary(
    names: tuple[str, ...],
    rounds: list[RoundScore],
    cumulative: list[list[int]],
    winner_index: int,
    totals: list[int],
) -> tuple[CommentaryLine, ...]:
    lines = [CommentaryLine(0, f"{' vs '.join(names)} - the contest is under way!")]
    for r_idx, round_score in enumerate(rounds[:MAIN_ROUNDS]):
        leader = _unique_leader(cumulative[r_idx])
        second = 10 * (r_idx + 1)
        if leader == -1:
            text = f"{round_score.name} ends level at the top on {max(cumulative[r_idx])} points."
        else:
            text = f"{round_score.name} done: {names[leader]} lead with {cumulative[r_idx][leader]}."
        lines.append(CommentaryLine(second, text))
    lines.append(
        CommentaryLine(60, f"Final: {names[winner_index]} win with {totals[winner_index]} points.")
    )
    return tuple(lines)


def simulate_quiz(
    round_slot: int,
    match_slot: int,
    context: SimulationContext | None = None,
    category: Category = "national",
    region: str | None = None,
    config: AppConfig | None = None,
) -> QuizOutcome:
    """Simulate one quiz event.

    Args:
        round_slot: Round slot (shared selection seed for all matches in it)
        match_slot: Match index within the round
        context: Pool, learned strength snapshot and user seed offset
        category: 'regional' or 'national'
        region: Region for regional events (picked deterministically if None)
        config: Simulation constants (None = use global config)

    Returns:
        QuizOutcome; identical arguments always return an equal outcome

    Raises:
        InsufficientParticipants: If no pool can field three participants
    """
    config = config or get_config()
    context = context or SimulationContext()
    pool = context.pool

    region_slug: str | None = None
    if category == "regional":
        if region is None:
            # Rotates regions across the matches of a round
            base = selection_seed(round_slot, "regional", None, pool, context.user_seed)
            region = pick_region(pool, base + match_slot)
        region_slug = slugify_region(region)

    sel_seed = selection_seed(round_slot, category, region_slug, pool, context.user_seed)
    match_seed = sel_seed + match_slot

    selected, effective_category = select_quiz_participants(
        pool, category, region_slug, sel_seed, match_slot
    )
    names = tuple(p.name for p in selected)
    strengths = [
        _assign_strength(name, match_seed + i + 100, context.strengths, config.form_noise)
        for i, name in enumerate(names)
    ]

    rounds: list[RoundScore] = []
    perfect_rounds: list[tuple[bool, ...]] = []
    shutout_rounds: list[tuple[bool, ...]] = []
    cumulative_by_round: list[list[int]] = []
    leader_after_round: list[int] = []
    cumulative = [0, 0, 0]
    lead_changes = 0
    current_leader = -1

    for r_idx, (round_name, rule) in enumerate(ROUND_RULES):
        scores: list[int] = []
        perfect: list[bool] = []
        for i, strength in enumerate(strengths):
            r_seed = match_seed + i + r_idx * 100
            effective = strength
            if seeded_random(r_seed + 999) < config.chaos_probability:
                effective = max(0.0, STRENGTH_FLIP - strength)

            performance = effective * 0.1 + seeded_random(r_seed) * 0.9
            performance = clamp(performance * _performance_multiplier(r_seed, config), 0.0, 1.0)

            score, is_perfect = rule(performance, r_seed)
            scores.append(score)
            perfect.append(is_perfect)

        rounds.append(RoundScore(round_name, tuple(scores)))
        perfect_rounds.append(tuple(perfect))
        shutout_rounds.append(tuple(s <= 0 for s in scores))

        cumulative = [c + s for c, s in zip(cumulative, scores)]
        cumulative_by_round.append(list(cumulative))
        leader = _unique_leader(cumulative)
        if leader != -1:
            if current_leader != -1 and leader != current_leader:
                lead_changes += 1
            current_leader = leader
        else:
            current_leader = -1
        leader_after_round.append(leader)

    # Bonus awards go into totals before the tie-break so the unique-winner
    # guarantee holds for final totals.
    first_bonus_index = seeded_index(match_seed + 9991, 3)
    fastest_buzz_index = seeded_index(match_seed + 8881, 3)
    bonus = [0, 0, 0]
    bonus[first_bonus_index] += config.first_bonus_points
    bonus[fastest_buzz_index] += config.fastest_buzz_points
    rounds.append(RoundScore(BONUS_ROUND, tuple(bonus)))
    totals = [c + b for c, b in zip(cumulative, bonus)]

    tie_exhausted = False
    if _unique_leader(totals) == -1:
        try:
            totals, added = _break_ties(totals, match_seed, config.tie_break_max_iterations)
        except TieExhausted as e:
            logger.warning(f"Event round={round_slot} match={match_slot}: {e}; accepting last state")
            totals, added = list(e.totals), list(e.added)
            tie_exhausted = True
        rounds.append(RoundScore(TIE_BREAK_ROUND, tuple(added)))

    winner_index = _argmax(totals)
    runner_up = max(t for i, t in enumerate(totals) if i != winner_index)

    main = rounds[:MAIN_ROUNDS]
    strong_start = [main[0].scores[i] + main[1].scores[i] for i in range(3)]
    late_surge = [main[3].scores[i] + main[4].scores[i] for i in range(3)]
    round_sums = [sum(r.scores) for r in main]

    stats = QuizStats(
        lead_changes=lead_changes,
        perfect_rounds=tuple(perfect_rounds),
        shutout_rounds=tuple(shutout_rounds),
        first_bonus_index=first_bonus_index,
        fastest_buzz_index=fastest_buzz_index,
        strong_start_index=_argmax(strong_start),
        late_surge_index=_argmax(late_surge),
        highest_round_index=_argmax(round_sums),
        leader_after_round=tuple(leader_after_round),
        comeback_win=leader_after_round[2] != winner_index,
        winning_margin=totals[winner_index] - runner_up,
    )

    event_id = EventId.quiz(
        round_slot,
        match_slot,
        category,
        region_slug if category == "regional" else None,
    )

    return QuizOutcome(
        event_id=event_id.format(),
        participants=names,
        regions=tuple(p.region for p in selected),
        category=effective_category,
        round_slot=round_slot,
        rounds=tuple(rounds),
        total_scores=tuple(totals),
        winner_index=winner_index,
        strengths=tuple(strengths),
        stats=stats,
        commentary=_commentary(names, rounds, cumulative_by_round, winner_index, totals),
        tie_exhausted=tie_exhausted,
    )


def simulate_quiz_from_event_id(
    event_id: str,
    context: SimulationContext | None = None,
    config: AppConfig | None = None,
) -> QuizOutcome:
    """Re-derive a quiz outcome from its event id alone.

    Raises:
        InvalidEventId: If the id is malformed or not a quiz id
    """
    parsed = EventId.parse(event_id)
    if parsed.kind != "quiz":
        raise InvalidEventId(event_id)
    return simulate_quiz(
        parsed.round_slot,
        parsed.match_slot,
        context=context,
        category=parsed.category,
        region=parsed.region_slug,
        config=config,
    )
