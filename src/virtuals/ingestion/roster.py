"""Concrete roster and strength providers."""

import logging

import asyncpg

from virtuals.db.models import Table
from virtuals.db.pool import get_pool
from virtuals.ingestion.base import ParticipantRow, RosterProvider, StrengthProvider
from virtuals.simulation.form import FormRecord
from virtuals.simulation.persistence import load_strength_map
from virtuals.simulation.roster import DEFAULT_POOL, Participant

logger = logging.getLogger(__name__)


class StaticRosterProvider(RosterProvider):
    """Fixed in-memory pool (defaults to the curated national pool)."""

    def __init__(self, participants: tuple[Participant, ...] = DEFAULT_POOL):
        self.participants = participants

    async def fetch_participants(self) -> list[ParticipantRow]:
        return [ParticipantRow(p.name, p.region) for p in self.participants]


class DbRosterProvider(RosterProvider):
    """
    Roster stored in the participants table.

    Conservative fallback: on a database error, log a warning and return an
    empty list so the caller falls back to the curated pool.
    """

    async def fetch_participants(self) -> list[ParticipantRow]:
        try:
            pool = await get_pool()
            async with pool.acquire() as conn:
                rows = await conn.fetch(
                    f"SELECT name, region FROM {Table.PARTICIPANTS} WHERE active ORDER BY name"
                )
        except (asyncpg.PostgresError, OSError) as e:
            logger.warning(f"Roster fetch failed: {e}")
            return []

        logger.info(f"Fetched {len(rows)} active participants")
        return [ParticipantRow(row["name"], row["region"]) for row in rows]

    async def write_participants(self, rows: list[ParticipantRow]) -> None:
        """Upsert roster rows on name."""
        if not rows:
            return

        pool = await get_pool()
        async with pool.acquire() as conn:
            await conn.executemany(
                f"""
                INSERT INTO {Table.PARTICIPANTS} (name, region, active)
                VALUES ($1, $2, $3)
                ON CONFLICT (name) DO UPDATE SET
                    region = EXCLUDED.region,
                    active = EXCLUDED.active
                """,
                [(r.name, r.region, r.active) for r in rows],
            )
        logger.info(f"Upserted {len(rows)} participants")


class DbStrengthProvider(StrengthProvider):
    """Learned form from the participant_form table.

    On a database error every participant is treated as unranked.
    """

    async def fetch_form(self) -> dict[str, FormRecord]:
        try:
            pool = await get_pool()
            async with pool.acquire() as conn:
                return await load_strength_map(conn)
        except (asyncpg.PostgresError, OSError) as e:
            logger.warning(f"Strength fetch failed, simulating all participants unranked: {e}")
            return {}
