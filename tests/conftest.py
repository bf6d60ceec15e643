"""Shared fixtures: configuration, hand-built outcomes and asyncpg stand-ins."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from virtuals.config import AppConfig
from virtuals.simulation.duel import DuelOutcome, DuelRound, Throw
from virtuals.simulation.quiz import MAIN_ROUNDS, QuizOutcome, QuizStats, RoundScore

PARTICIPANTS = ("Alpha Academy", "Bravo College", "Charlie School")


@pytest.fixture
def config() -> AppConfig:
    """Default configuration, independent of the process environment."""
    return AppConfig(_env_file=None)


def _split(total: int) -> list[int]:
    """Spread a total over the main rounds, remainder in round 1."""
    share, rest = divmod(total, MAIN_ROUNDS)
    return [share + rest] + [share] * (MAIN_ROUNDS - 1)


def make_quiz_outcome(
    totals: tuple[int, int, int] = (60, 45, 25),
    event_id: str = "vmt-5-0-national",
    participants: tuple[str, str, str] = PARTICIPANTS,
    **stats_overrides,
) -> QuizOutcome:
    """Quiz outcome with the given final totals and neutral statistics."""
    per_participant = [_split(t) for t in totals]
    rounds = tuple(
        RoundScore(f"Round {r + 1}", tuple(scores[r] for scores in per_participant))
        for r in range(MAIN_ROUNDS)
    )
    winner_index = totals.index(max(totals))
    runner_up = max(t for i, t in enumerate(totals) if i != winner_index)

    stats = dict(
        lead_changes=0,
        perfect_rounds=tuple((False, False, False) for _ in range(MAIN_ROUNDS)),
        shutout_rounds=tuple((False, False, False) for _ in range(MAIN_ROUNDS)),
        first_bonus_index=0,
        fastest_buzz_index=1,
        strong_start_index=winner_index,
        late_surge_index=winner_index,
        highest_round_index=0,
        leader_after_round=tuple(winner_index for _ in range(MAIN_ROUNDS)),
        comeback_win=False,
        winning_margin=max(totals) - runner_up,
    )
    stats.update(stats_overrides)

    return QuizOutcome(
        event_id=event_id,
        participants=participants,
        regions=("Central", "Ashanti", "Volta"),
        category="national",
        round_slot=5,
        rounds=rounds,
        total_scores=tuple(totals),
        winner_index=winner_index,
        strengths=(1.4, 1.0, 0.7),
        stats=QuizStats(**stats),
    )


def make_duel_outcome(
    total_a: int = 320,
    total_b: int = 280,
    seed: int = 42,
    **overrides,
) -> DuelOutcome:
    """Duel outcome with the given totals; round detail is filler."""
    filler = tuple(Throw(score=20) for _ in range(3))
    fields = dict(
        event_id=f"qdt-{seed}",
        seed=seed,
        timestamp=0,
        player_a="Michael",
        player_b="Jaguar",
        skill_a="High",
        skill_b="Medium",
        rounds=tuple(DuelRound(r, filler, filler) for r in range(1, 6)),
        total_a=total_a,
        total_b=total_b,
        winner="A" if total_a > total_b else "B" if total_b > total_a else "tie",
        total_bulls=2,
        total_triples=9,
        perfect_a=False,
        perfect_b=False,
        highest_round=3,
        highest_round_points=150,
        late_surge_a=False,
        late_surge_b=True,
    )
    fields.update(overrides)
    return DuelOutcome(**fields)


@pytest.fixture
def quiz_outcome() -> QuizOutcome:
    return make_quiz_outcome()


@pytest.fixture
def duel_outcome() -> DuelOutcome:
    return make_duel_outcome()


class FakeTransaction:
    """Async context manager standing in for ``conn.transaction()``."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


def make_conn() -> AsyncMock:
    """AsyncMock connection whose ``transaction()`` is a usable context manager."""
    conn = AsyncMock()
    conn.transaction = MagicMock(return_value=FakeTransaction())
    return conn


def make_pool(conn: AsyncMock) -> MagicMock:
    """Pool whose ``acquire()`` always yields ``conn``."""
    acquire = MagicMock()
    acquire.__aenter__ = AsyncMock(return_value=conn)
    acquire.__aexit__ = AsyncMock(return_value=False)
    pool = MagicMock()
    pool.acquire = MagicMock(return_value=acquire)
    return pool


@pytest.fixture
def conn() -> AsyncMock:
    return make_conn()


@pytest.fixture
def pool(conn) -> MagicMock:
    return make_pool(conn)
