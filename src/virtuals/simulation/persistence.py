"""Storage of outcomes, markets, stakes and learned form.

Outcomes and their markets are written once per event id and never updated;
only the event status, override table, market status/prices and stake
totals change afterwards. JSONB columns travel as JSON text, as asyncpg
returns them.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Mapping

import asyncpg

from virtuals.db.models import EventStatus, EventType, Table
from virtuals.odds.pricing import Market, MarketStatus, Selection
from virtuals.settlement.markets import Outcome
from virtuals.simulation.duel import DuelOutcome
from virtuals.simulation.form import FormRecord
from virtuals.simulation.quiz import QuizOutcome

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredEvent:
    outcome: Outcome
    status: EventStatus
    overrides: dict[str, str] = field(default_factory=dict)


def event_type_of(outcome: Outcome) -> EventType:
    return EventType.DUEL if isinstance(outcome, DuelOutcome) else EventType.QUIZ


def outcome_from_json(event_type: str, payload: str | dict[str, Any]) -> Outcome:
    """Rebuild an outcome from its stored JSON."""
    data = json.loads(payload) if isinstance(payload, str) else payload
    if EventType(event_type) is EventType.DUEL:
        return DuelOutcome.from_dict(data)
    return QuizOutcome.from_dict(data)


def _loads(value: Any) -> Any:
    return json.loads(value) if isinstance(value, str) else value


def market_from_row(row: Mapping[str, Any]) -> Market:
    return Market(
        market_id=row["market_id"],
        name=row["name"],
        kind=row["kind"],
        selections=tuple(Selection(**s) for s in _loads(row["selections"])),
        status=MarketStatus(row["status"]),
    )


async def persist_event(
    conn: asyncpg.Connection,
    outcome: Outcome,
    markets: list[Market],
    round_slot: int | None = None,
) -> bool:
    """Insert an event and its markets.

    Args:
        conn: Database connection
        outcome: Simulated outcome (stored as JSONB)
        markets: Priced markets for the outcome
        round_slot: Round the event is settled with (None = the quiz's own
            round; an unscheduled duel has none)

    Returns:
        True if the event was new, False if the id already existed (the
        stored outcome and markets are left untouched)
    """
    if round_slot is None and isinstance(outcome, QuizOutcome):
        round_slot = outcome.round_slot

    async with conn.transaction():
        inserted = await conn.fetchval(
            f"""
            INSERT INTO {Table.EVENTS} (event_id, event_type, round_slot, status, outcome)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (event_id) DO NOTHING
            RETURNING event_id
            """,
            outcome.event_id,
            event_type_of(outcome).value,
            round_slot,
            EventStatus.SCHEDULED.value,
            json.dumps(outcome.to_dict()),
        )
        if inserted is None:
            logger.debug(f"Event {outcome.event_id} already stored")
            return False

        if markets:
            await conn.executemany(
                f"""
                INSERT INTO {Table.MARKETS} (market_id, event_id, name, kind, status, selections)
                VALUES ($1, $2, $3, $4, $5, $6)
                ON CONFLICT (market_id) DO NOTHING
                """,
                [
                    (
                        m.market_id,
                        outcome.event_id,
                        m.name,
                        m.kind,
                        m.status.value,
                        json.dumps([asdict(s) for s in m.selections]),
                    )
                    for m in markets
                ],
            )

    return True


async def load_event(conn: asyncpg.Connection, event_id: str) -> StoredEvent | None:
    row = await conn.fetchrow(
        f"SELECT event_type, status, outcome, overrides FROM {Table.EVENTS} WHERE event_id = $1",
        event_id,
    )
    if row is None:
        return None
    return StoredEvent(
        outcome=outcome_from_json(row["event_type"], row["outcome"]),
        status=EventStatus(row["status"]),
        overrides=_loads(row["overrides"]) or {},
    )


async def load_outcome(conn: asyncpg.Connection, event_id: str) -> Outcome | None:
    """Stored outcome for an event id, or None if it was never persisted."""
    stored = await load_event(conn, event_id)
    return stored.outcome if stored else None


async def set_event_status(conn: asyncpg.Connection, event_id: str, status: EventStatus) -> None:
    await conn.execute(
        f"UPDATE {Table.EVENTS} SET status = $2 WHERE event_id = $1",
        event_id,
        status.value,
    )


async def set_override(conn: asyncpg.Connection, event_id: str, market_name: str, label: str) -> None:
    """Record an operator result for one market ('void' voids the market)."""
    await conn.execute(
        f"""
        UPDATE {Table.EVENTS}
        SET overrides = overrides || jsonb_build_object($2::text, $3::text)
        WHERE event_id = $1
        """,
        event_id,
        market_name,
        label,
    )


async def load_markets(conn: asyncpg.Connection, event_id: str) -> list[Market]:
    rows = await conn.fetch(
        f"""
        SELECT market_id, name, kind, status, selections
        FROM {Table.MARKETS}
        WHERE event_id = $1
        ORDER BY market_id
        """,
        event_id,
    )
    return [market_from_row(row) for row in rows]


async def load_stakes(conn: asyncpg.Connection, market_id: str) -> dict[str, float]:
    raw = await conn.fetchval(f"SELECT stakes FROM {Table.MARKETS} WHERE market_id = $1", market_id)
    return {k: float(v) for k, v in (_loads(raw) or {}).items()}


async def record_stake(
    conn: asyncpg.Connection,
    market_id: str,
    selection_id: str,
    stake: float,
) -> bool:
    """Add ``stake`` to a selection's accumulated total.

    Returns:
        False if the market is not open (the stake is not recorded)
    """
    result = await conn.execute(
        f"""
        UPDATE {Table.MARKETS}
        SET stakes = jsonb_set(
                stakes,
                ARRAY[$2::text],
                to_jsonb(COALESCE((stakes ->> $2::text)::numeric, 0) + $3::numeric)
            ),
            updated_at = now()
        WHERE market_id = $1 AND status = 'open'
        """,
        market_id,
        selection_id,
        stake,
    )
    return result.endswith(" 1")


async def update_market_prices(conn: asyncpg.Connection, market: Market) -> bool:
    """Store repriced selections; only open markets are written."""
    result = await conn.execute(
        f"""
        UPDATE {Table.MARKETS}
        SET selections = $2, updated_at = now()
        WHERE market_id = $1 AND status = 'open'
        """,
        market.market_id,
        json.dumps([asdict(s) for s in market.selections]),
    )
    return result.endswith(" 1")


async def set_market_status(conn: asyncpg.Connection, event_id: str, status: MarketStatus) -> None:
    await conn.execute(
        f"UPDATE {Table.MARKETS} SET status = $2, updated_at = now() WHERE event_id = $1",
        event_id,
        status.value,
    )


async def load_strength_map(conn: asyncpg.Connection) -> dict[str, FormRecord]:
    """Learned form for every participant with a record."""
    rows = await conn.fetch(
        f"""
        SELECT name, matches_played, wins, current_form, volatility_index
        FROM {Table.PARTICIPANT_FORM}
        """
    )
    return {
        row["name"]: FormRecord(
            name=row["name"],
            matches_played=row["matches_played"],
            wins=row["wins"],
            current_form=row["current_form"],
            volatility_index=row["volatility_index"],
        )
        for row in rows
    }


async def persist_form(conn: asyncpg.Connection, records: Mapping[str, FormRecord]) -> None:
    """Upsert learned form records."""
    if not records:
        return
    await conn.executemany(
        f"""
        INSERT INTO {Table.PARTICIPANT_FORM} (name, matches_played, wins, current_form, volatility_index)
        VALUES ($1, $2, $3, $4, $5)
        ON CONFLICT (name) DO UPDATE SET
            matches_played = EXCLUDED.matches_played,
            wins = EXCLUDED.wins,
            current_form = EXCLUDED.current_form,
            volatility_index = EXCLUDED.volatility_index,
            updated_at = now()
        """,
        [
            (r.name, r.matches_played, r.wins, r.current_form, r.volatility_index)
            for r in records.values()
        ],
    )


async def load_round_event_ids(conn: asyncpg.Connection, round_slot: int) -> list[str]:
    """Stored event ids of a round slot, scheduled duels included."""
    rows = await conn.fetch(
        f"SELECT event_id FROM {Table.EVENTS} WHERE round_slot = $1 ORDER BY event_id",
        round_slot,
    )
    return [row["event_id"] for row in rows]
