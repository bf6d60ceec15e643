"""Pipeline orchestration for virtual rounds.

Implements:
- build_round() to simulate and price every event of a round slot
- build_duel() for a single seeded duel
- round_duel_seeds() for the duels scheduled alongside a round
- run_round() to load roster and form, build a round and its duels and persist them
- settle_round() to finalize a round, settle its bets and learn form
- reprice_open_markets() to apply stake volume to open markets
- recent_results() for display of previous rounds
"""

import logging
from dataclasses import dataclass

from virtuals.config import AppConfig, get_config
from virtuals.db.models import EventStatus
from virtuals.db.pool import get_pool
from virtuals.errors import VirtualsError
from virtuals.ingestion.base import RosterProvider, StrengthProvider
from virtuals.ingestion.roster import DbRosterProvider, DbStrengthProvider
from virtuals.odds.duel_markets import generate_duel_markets
from virtuals.odds.live import reprice_market
from virtuals.odds.pricing import Market, MarketStatus
from virtuals.odds.quiz_markets import generate_quiz_markets
from virtuals.settlement.markets import Outcome
from virtuals.settlement.service import Ledger, settle_event
from virtuals.simulation.duel import simulate_duel
from virtuals.simulation.event_id import ROUND_INTERVAL_SECONDS, Category, EventId
from virtuals.simulation.form import strength_snapshot, update_form
from virtuals.simulation.persistence import (
    load_event,
    load_markets,
    load_round_event_ids,
    load_stakes,
    load_strength_map,
    persist_event,
    persist_form,
    set_event_status,
    set_market_status,
    update_market_prices,
)
from virtuals.simulation.quiz import QuizOutcome, SimulationContext, simulate_quiz
from virtuals.simulation.roster import DEFAULT_POOL

logger = logging.getLogger(__name__)

DEFAULT_ROUND_SIZE = 8
DUELS_PER_ROUND = 1
# Round slot times this plus the duel index; keeps scheduled duel ids distinct per round
DUEL_SEED_STRIDE = 100


@dataclass(frozen=True)
class PricedEvent:
    outcome: Outcome
    markets: list[Market]


def round_category(match_slot: int, count: int) -> Category:
    """First half of a round is regional, the rest national."""
    return "regional" if match_slot < count / 2 else "national"


def build_round(
    round_slot: int,
    count: int = DEFAULT_ROUND_SIZE,
    context: SimulationContext | None = None,
    config: AppConfig | None = None,
) -> list[PricedEvent]:
    """Simulate and price every event of a round slot.

    Args:
        round_slot: Round slot number
        count: Number of events in the round
        context: Pool, strength snapshot and user seed offset
        config: Simulation and pricing constants (None = use global config)

    Returns:
        Priced events in match-slot order. An event whose simulation raises
        VirtualsError is left out; the rest of the round is unaffected.
    """
    config = config or get_config()
    context = context or SimulationContext()
    events: list[PricedEvent] = []

    for match_slot in range(count):
        category = round_category(match_slot, count)
        try:
            outcome = simulate_quiz(round_slot, match_slot, context, category=category, config=config)
        except VirtualsError as e:
            logger.warning(f"Excluding round={round_slot} match={match_slot} ({category}): {e}")
            continue

        events.append(PricedEvent(outcome, generate_quiz_markets(outcome, config=config)))

    logger.info(f"Built round {round_slot}: {len(events)}/{count} events")
    return events


def build_duel(seed: int, timestamp: int = 0, config: AppConfig | None = None) -> PricedEvent:
    config = config or get_config()
    outcome = simulate_duel(seed, timestamp, config)
    return PricedEvent(outcome, generate_duel_markets(outcome, config=config))


def round_duel_seeds(round_slot: int, duels: int = DUELS_PER_ROUND) -> list[int]:
    if not 0 <= duels <= DUEL_SEED_STRIDE:
        raise ValueError(f"duels must be between 0 and {DUEL_SEED_STRIDE}, got {duels}")
    return [round_slot * DUEL_SEED_STRIDE + i for i in range(duels)]


async def load_context(
    roster_provider: RosterProvider,
    strength_provider: StrengthProvider,
    user_seed: int = 0,
) -> SimulationContext:
    """Snapshot roster and learned form at round start.

    An empty roster falls back to the curated national pool.
    """
    rows = await roster_provider.fetch_participants()
    pool = tuple(row.to_participant() for row in rows if row.active)
    if len(pool) < 3:
        logger.warning(f"Roster has {len(pool)} active participants, using curated pool")
        pool = DEFAULT_POOL

    form = await strength_provider.fetch_form()
    return SimulationContext(pool=pool, strengths=strength_snapshot(form), user_seed=user_seed)


async def run_round(
    round_slot: int,
    count: int = DEFAULT_ROUND_SIZE,
    roster_provider: RosterProvider | None = None,
    strength_provider: StrengthProvider | None = None,
    duels: int = DUELS_PER_ROUND,
) -> list[str]:
    """Build a round from the current roster and form and persist it.

    The round's duels are stored under the same round slot so that
    settle_round finalizes them with the quizzes.

    Returns:
        Event ids newly stored by this run (re-runs of a slot store nothing)
    """
    logger.info(f"Starting round run: {round_slot}")

    context = await load_context(
        roster_provider or DbRosterProvider(),
        strength_provider or DbStrengthProvider(),
    )
    events = build_round(round_slot, count, context)
    events += [
        build_duel(seed, round_slot * ROUND_INTERVAL_SECONDS) for seed in round_duel_seeds(round_slot, duels)
    ]

    stored: list[str] = []
    pool = await get_pool()
    async with pool.acquire() as conn:
        for event in events:
            try:
                if await persist_event(conn, event.outcome, event.markets, round_slot=round_slot):
                    stored.append(event.outcome.event_id)
            except Exception as e:
                logger.error(f"Persisting {event.outcome.event_id} failed: {e}", exc_info=True)

    logger.info(f"Completed round run {round_slot}: stored {len(stored)} event(s)")
    return stored


def _in_round(event_id: str, count: int) -> bool:
    parsed = EventId.parse(event_id)
    return parsed.kind == "duel" or parsed.match_slot < count


async def settle_round(
    round_slot: int,
    count: int,
    ledger: Ledger,
    context: SimulationContext | None = None,
) -> int:
    """Finalize the stored events of a round, settle their bets and learn form.

    Args:
        round_slot: Round slot to settle
        count: Number of quiz events the round was built with; duels stored
            under the slot are always included
        ledger: External ledger credited by settlement
        context: Simulation context used when an outcome must be re-derived

    Returns:
        Number of bets that reached a terminal state

    Notes:
        - Void events are settled but never finalized
        - Form is only learned from events that turn final in this call
    """
    logger.info(f"Starting settlement of round {round_slot}")

    settled = 0
    finalized: list[QuizOutcome] = []

    pool = await get_pool()
    async with pool.acquire() as conn:
        event_ids = [
            event_id
            for event_id in await load_round_event_ids(conn, round_slot)
            if _in_round(event_id, count)
        ]

    for event_id in event_ids:
        try:
            async with pool.acquire() as conn:
                stored = await load_event(conn, event_id)
                if stored is not None and stored.status is EventStatus.SCHEDULED:
                    async with conn.transaction():
                        await set_event_status(conn, event_id, EventStatus.FINAL)
                        await set_market_status(conn, event_id, MarketStatus.SETTLED)
                    if isinstance(stored.outcome, QuizOutcome):
                        finalized.append(stored.outcome)

            settled += await settle_event(pool, event_id, ledger, context)
        except Exception as e:
            logger.error(f"Settlement failed for {event_id}: {e}", exc_info=True)

    if finalized:
        try:
            async with pool.acquire() as conn:
                records = await load_strength_map(conn)
                for outcome in finalized:
                    records = update_form(records, outcome)
                await persist_form(conn, records)
            logger.info(f"Updated form from {len(finalized)} outcome(s)")
        except Exception as e:
            logger.error(f"Form update failed for round {round_slot}: {e}", exc_info=True)

    logger.info(f"Completed settlement of round {round_slot}: {settled} bet(s) settled")
    return settled


async def reprice_open_markets(event_id: str, config: AppConfig | None = None) -> int:
    """Reprice the open markets of an event from their accumulated stakes.

    Returns:
        Number of markets whose prices were written
    """
    config = config or get_config()
    updated = 0

    pool = await get_pool()
    async with pool.acquire() as conn:
        for market in await load_markets(conn, event_id):
            if market.status is not MarketStatus.OPEN:
                continue
            stakes = await load_stakes(conn, market.market_id)
            repriced = reprice_market(market, stakes, config)
            if repriced is market:
                continue
            if await update_market_prices(conn, repriced):
                updated += 1

    logger.debug(f"Repriced {updated} market(s) on {event_id}")
    return updated


def recent_results(
    round_slot: int,
    count: int = 5,
    context: SimulationContext | None = None,
    config: AppConfig | None = None,
) -> dict[Category, list[QuizOutcome]]:
    """Match-0 results of the previous ``count`` rounds, newest first."""
    config = config or get_config()
    context = context or SimulationContext()
    results: dict[Category, list[QuizOutcome]] = {"regional": [], "national": []}

    for previous in range(round_slot - 1, max(round_slot - 1 - count, -1), -1):
        for category in results:
            try:
                results[category].append(simulate_quiz(previous, 0, context, category=category, config=config))
            except VirtualsError as e:
                logger.warning(f"No {category} result for round {previous}: {e}")

    return results

