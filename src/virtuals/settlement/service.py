"""Batch settlement against the database.

Settlement of one event is serialized with a session advisory lock keyed by
the event id. Each bet is then settled in its own transaction: the row is
locked, re-checked, updated, and the ledger credited before commit, so a
status change and its payment commit or roll back together.
"""

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import asdict
from typing import Any, Mapping

import asyncpg

from virtuals.db.models import BetMode, EventStatus, Table
from virtuals.errors import InvalidEventId
from virtuals.odds.pricing import MarketStatus
from virtuals.settlement.markets import Outcome
from virtuals.settlement.resolver import Leg, SelectionStatus
from virtuals.settlement.slips import (
    Bet,
    BetStatus,
    MultiBet,
    SingleBet,
    SystemBet,
    settle_bet,
)
from virtuals.simulation.duel import simulate_duel
from virtuals.simulation.event_id import EventId, current_round_slot
from virtuals.simulation.persistence import load_event, set_event_status, set_market_status
from virtuals.simulation.quiz import SimulationContext, simulate_quiz_from_event_id

logger = logging.getLogger(__name__)


class Ledger(ABC):
    """Balance bookkeeping lives outside the core.

    ``credit`` runs on the settlement connection inside the bet's
    transaction, so it must not commit on its own.
    """

    @abstractmethod
    async def credit(
        self,
        conn: asyncpg.Connection,
        user_id: str,
        amount: float,
        reference: str,
    ) -> None:
        """Credit ``amount`` to ``user_id`` for bet ``reference``."""


def _leg_from_json(data: Mapping[str, Any]) -> Leg:
    return Leg(
        event_id=data["event_id"],
        market_name=data["market_name"],
        label=data["label"],
        odds=float(data["odds"]),
        stake=float(data.get("stake", 0.0)),
        status=SelectionStatus(data.get("status", SelectionStatus.PENDING.value)),
        reason=data.get("reason"),
    )


def bet_from_row(row: Mapping[str, Any]) -> Bet:
    """Rebuild the tagged bet variant from a ``bets`` row."""
    raw_legs = json.loads(row["legs"]) if isinstance(row["legs"], str) else row["legs"]
    legs = tuple(_leg_from_json(leg) for leg in raw_legs)
    status = BetStatus(row["status"])
    payout = float(row["payout"] or 0)
    mode = BetMode(row["mode"])

    if mode is BetMode.SINGLE:
        return SingleBet(row["bet_id"], row["user_id"], legs, status=status, payout=payout)
    if mode is BetMode.MULTI:
        return MultiBet(row["bet_id"], row["user_id"], legs, float(row["stake"]), status=status, payout=payout)

    raw_combos = row["combinations"]
    combos = json.loads(raw_combos) if isinstance(raw_combos, str) else raw_combos
    return SystemBet(
        row["bet_id"],
        row["user_id"],
        legs,
        float(row["stake"]),
        combinations=tuple(tuple(c) for c in combos or ()),
        status=status,
        payout=payout,
    )


def legs_to_json(legs: tuple[Leg, ...]) -> str:
    return json.dumps([{**asdict(leg), "status": leg.status.value} for leg in legs])


def rederive_outcome(event_id: str, context: SimulationContext | None = None) -> Outcome:
    """Replay an outcome from its id alone.

    Raises:
        InvalidEventId: If the id does not follow the event id contract
    """
    parsed = EventId.parse(event_id)
    if parsed.kind == "duel":
        return simulate_duel(parsed.seed)
    return simulate_quiz_from_event_id(event_id, context)


class _EventCache:
    """Per-batch view of the events referenced by the bets being settled."""

    def __init__(self, conn: asyncpg.Connection, context: SimulationContext | None):
        self.conn = conn
        self.context = context
        self.outcomes: dict[str, Outcome] = {}
        self.void_events: set[str] = set()
        self.overrides: dict[str, dict[str, str]] = {}
        self._seen: set[str] = set()

    async def load(self, event_ids: set[str]) -> None:
        for event_id in event_ids - self._seen:
            self._seen.add(event_id)
            stored = await load_event(self.conn, event_id)
            if stored is not None:
                if stored.status is EventStatus.VOID:
                    self.void_events.add(event_id)
                elif stored.status is EventStatus.FINAL:
                    self.outcomes[event_id] = stored.outcome
                self.overrides[event_id] = stored.overrides
                continue

            try:
                parsed = EventId.parse(event_id)
            except InvalidEventId:
                logger.warning(f"Event {event_id} is neither stored nor derivable; legs stay pending")
                continue

            # Unstored duels carry no schedule, and a quiz is final only once its round has passed
            if parsed.kind == "duel" or parsed.round_slot >= current_round_slot():
                logger.info(f"Event {event_id} is not stored and not yet final; legs stay pending")
                continue

            try:
                self.outcomes[event_id] = rederive_outcome(event_id, self.context)
            except InvalidEventId:
                logger.warning(f"Event {event_id} is neither stored nor derivable; legs stay pending")


async def settle_event(
    pool: asyncpg.Pool,
    event_id: str,
    ledger: Ledger,
    context: SimulationContext | None = None,
) -> int:
    """Settle every pending bet that references ``event_id``.

    Args:
        pool: Database pool
        event_id: Event that has just become final (or void)
        ledger: External ledger credited inside each bet's transaction
        context: Simulation context used when an outcome must be re-derived

    Returns:
        Number of bets that reached a terminal state in this pass; 0 when
        another settlement of the same event holds the lock
    """
    settled = 0

    async with pool.acquire() as conn:
        locked = await conn.fetchval("SELECT pg_try_advisory_lock(hashtext($1))", event_id)
        if not locked:
            logger.info(f"Settlement of {event_id} already running elsewhere; skipping")
            return 0

        try:
            bet_ids = [
                row["bet_id"]
                for row in await conn.fetch(
                    f"""
                    SELECT bet_id FROM {Table.BETS}
                    WHERE status = 'pending' AND $1 = ANY(event_ids)
                    ORDER BY placed_at
                    """,
                    event_id,
                )
            ]
            logger.info(f"Settling {len(bet_ids)} pending bet(s) on {event_id}")

            events = _EventCache(conn, context)
            for bet_id in bet_ids:
                try:
                    if await _settle_one(conn, bet_id, events, ledger):
                        settled += 1
                except Exception as e:
                    logger.error(f"Settlement failed for bet {bet_id}: {e}", exc_info=True)
        finally:
            await conn.execute("SELECT pg_advisory_unlock(hashtext($1))", event_id)

    logger.info(f"Settled {settled} bet(s) on {event_id}")
    return settled


async def _settle_one(
    conn: asyncpg.Connection,
    bet_id: str,
    events: _EventCache,
    ledger: Ledger,
) -> bool:
    """Settle one bet in its own transaction; True if it became terminal."""
    async with conn.transaction():
        row = await conn.fetchrow(
            f"""
            SELECT bet_id, user_id, mode, stake, combinations, legs, status, payout
            FROM {Table.BETS}
            WHERE bet_id = $1
            FOR UPDATE
            """,
            bet_id,
        )
        if row is None or BetStatus(row["status"]).terminal:
            logger.debug(f"Bet {bet_id} already settled or gone; skipping")
            return False

        bet = bet_from_row(row)
        await events.load({leg.event_id for leg in bet.legs})

        resolved = settle_bet(bet, events.outcomes, events.void_events, events.overrides)
        if not resolved.changed:
            return False

        terminal = resolved.bet.status.terminal
        await conn.execute(
            f"""
            UPDATE {Table.BETS}
            SET legs = $2, status = $3, payout = $4,
                settled_at = CASE WHEN $5 THEN now() ELSE settled_at END
            WHERE bet_id = $1
            """,
            bet_id,
            legs_to_json(resolved.legs),
            resolved.bet.status.value,
            resolved.payout,
            terminal,
        )

        if resolved.credit > 0:
            await ledger.credit(conn, bet.user_id, resolved.credit, bet_id)

        return terminal


async def void_event(
    pool: asyncpg.Pool,
    event_id: str,
    ledger: Ledger,
    context: SimulationContext | None = None,
) -> int:
    """Void an event, lock its markets and settle the bets on it."""
    async with pool.acquire() as conn:
        async with conn.transaction():
            await set_event_status(conn, event_id, EventStatus.VOID)
            await set_market_status(conn, event_id, MarketStatus.SETTLED)
    logger.info(f"Event {event_id} voided")
    return await settle_event(pool, event_id, ledger, context)
