"""Event id contract.

Quiz events:  ``vmt-{round}-{index}-{category}[-{region-slug}]``
Duel events:  ``qdt-{seed}``

The region slug may itself contain hyphens, so parsing splits with a bounded
max-split and keeps the remainder as the slug.
"""

import re
import time
from dataclasses import dataclass
from typing import Literal

from virtuals.errors import InvalidEventId

QUIZ_PREFIX = "vmt"
DUEL_PREFIX = "qdt"

Category = Literal["regional", "national"]
_CATEGORIES = ("regional", "national")

ROUND_INTERVAL_SECONDS = 300


def current_round_slot(now: float | None = None) -> int:
    """Whole round intervals since the epoch; the same on every host."""
    now = time.time() if now is None else now
    return int(now // ROUND_INTERVAL_SECONDS)


def slugify_region(region: str) -> str:
    """'Greater Accra' -> 'greater-accra'."""
    return re.sub(r"[^a-z0-9]+", "-", region.strip().lower()).strip("-")


@dataclass(frozen=True)
class EventId:
    """Parsed event id; reconstructs the simulation inputs exactly."""

    kind: Literal["quiz", "duel"]
    round_slot: int = 0
    match_slot: int = 0
    category: Category = "national"
    region_slug: str | None = None
    seed: int = 0

    def format(self) -> str:
        if self.kind == "duel":
            return f"{DUEL_PREFIX}-{self.seed}"
        base = f"{QUIZ_PREFIX}-{self.round_slot}-{self.match_slot}-{self.category}"
        if self.region_slug:
            return f"{base}-{self.region_slug}"
        return base

    def __str__(self) -> str:
        return self.format()

    @classmethod
    def quiz(
        cls,
        round_slot: int,
        match_slot: int,
        category: Category = "national",
        region: str | None = None,
    ) -> "EventId":
        slug = slugify_region(region) if region and category == "regional" else None
        return cls(
            kind="quiz",
            round_slot=round_slot,
            match_slot=match_slot,
            category=category,
            region_slug=slug,
        )

    @classmethod
    def duel(cls, seed: int) -> "EventId":
        return cls(kind="duel", seed=seed)

    @classmethod
    def parse(cls, event_id: str) -> "EventId":
        """Parse an event id string.

        Raises:
            InvalidEventId: If the string does not follow the contract
        """
        if not isinstance(event_id, str):
            raise InvalidEventId(str(event_id))

        if event_id.startswith(f"{DUEL_PREFIX}-"):
            try:
                return cls.duel(int(event_id[len(DUEL_PREFIX) + 1:]))
            except ValueError as e:
                raise InvalidEventId(event_id) from e

        parts = event_id.split("-", 4)
        if len(parts) < 4 or parts[0] != QUIZ_PREFIX:
            raise InvalidEventId(event_id)

        try:
            round_slot = int(parts[1])
            match_slot = int(parts[2])
        except ValueError as e:
            raise InvalidEventId(event_id) from e

        category = parts[3]
        if category not in _CATEGORIES:
            raise InvalidEventId(event_id)

        region_slug = parts[4] if len(parts) == 5 and parts[4] else None
        if region_slug is not None and category != "regional":
            raise InvalidEventId(event_id)

        return cls(
            kind="quiz",
            round_slot=round_slot,
            match_slot=match_slot,
            category=category,
            region_slug=region_slug,
        )
