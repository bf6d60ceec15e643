"""Participant pools and deterministic participant selection.

Regional events draw from the requested region, widening to neighbouring
regions and finally to the curated national pool when fewer than three
participants remain. Selection shuffles the pool with the round-level
selection seed and partitions it into disjoint triplets, so every match slot
in a round gets different participants until the shuffle cycle repeats.
"""

import logging
from dataclasses import dataclass

from virtuals.errors import InsufficientParticipants
from virtuals.simulation.event_id import Category, slugify_region
from virtuals.simulation.rng import seeded_index, seeded_shuffle

logger = logging.getLogger(__name__)

QUIZ_SIZE = 3


@dataclass(frozen=True)
class Participant:
    """Roster entry."""

    name: str
    region: str


DEFAULT_POOL: tuple[Participant, ...] = (
    Participant("Mfantsipim School", "Central"),
    Participant("St. Augustine's College", "Central"),
    Participant("Adisadel College", "Central"),
    Participant("Opoku Ware School", "Ashanti"),
    Participant("Prempeh College", "Ashanti"),
    Participant("Kumasi Academy", "Ashanti"),
    Participant("PRESEC Legon", "Greater Accra"),
    Participant("Achimota School", "Greater Accra"),
    Participant("Accra Academy", "Greater Accra"),
    Participant("St. Peter's SHS", "Eastern"),
    Participant("Pope John's Seminary", "Eastern"),
    Participant("Mawuli School", "Volta"),
    Participant("Keta SHTS", "Volta"),
    Participant("GSTS Takoradi", "Western"),
    Participant("Tamale SHS", "Northern"),
)

# Adjacency used when a region cannot field three participants on its own.
NEIGHBOR_REGIONS: dict[str, tuple[str, ...]] = {
    "greater-accra": ("eastern", "central", "volta"),
    "central": ("western", "greater-accra", "ashanti", "eastern"),
    "ashanti": ("bono", "eastern", "central", "ahafo", "western-north"),
    "eastern": ("greater-accra", "ashanti", "volta", "central", "oti"),
    "volta": ("oti", "eastern", "greater-accra"),
    "oti": ("volta", "northern", "bono-east", "eastern"),
    "western": ("western-north", "central", "ashanti"),
    "western-north": ("western", "ahafo", "bono", "ashanti"),
    "bono": ("bono-east", "ahafo", "ashanti", "savannah"),
    "bono-east": ("bono", "savannah", "northern", "oti", "ashanti"),
    "ahafo": ("bono", "ashanti", "western-north"),
    "northern": ("savannah", "north-east", "oti", "bono-east"),
    "savannah": ("northern", "upper-west", "bono", "bono-east"),
    "north-east": ("northern", "upper-east"),
    "upper-east": ("north-east", "upper-west"),
    "upper-west": ("upper-east", "savannah"),
}


def pick_region(pool: tuple[Participant, ...] | list[Participant], seed: int) -> str:
    """Deterministically choose a region present in the pool."""
    regions = sorted({p.region for p in pool})
    if not regions:
        raise InsufficientParticipants("regional", None, 0)
    return regions[seeded_index(seed, len(regions))]


def _regional_candidates(
    pool: tuple[Participant, ...] | list[Participant],
    region_slug: str,
) -> list[Participant]:
    """Participants from the region, widened by the neighbour table if needed."""
    candidates = [p for p in pool if slugify_region(p.region) == region_slug]
    if len(candidates) >= QUIZ_SIZE:
        return candidates

    for neighbor in NEIGHBOR_REGIONS.get(region_slug, ()):
        candidates.extend(p for p in pool if slugify_region(p.region) == neighbor)
        if len(candidates) >= QUIZ_SIZE:
            logger.debug(
                f"Region {region_slug} widened to neighbours ({len(candidates)} participants)"
            )
            return candidates

    return candidates


def select_quiz_participants(
    pool: tuple[Participant, ...] | list[Participant],
    category: Category,
    region: str | None,
    selection_seed: int,
    match_slot: int,
    fallback_pool: tuple[Participant, ...] = DEFAULT_POOL,
) -> tuple[tuple[Participant, Participant, Participant], Category]:
    """Select the three participants for a quiz match.

    Args:
        pool: Roster to draw from
        category: 'regional' or 'national'
        region: Region name or slug (regional events only)
        selection_seed: Seed shared by every match in the round slot
        match_slot: Match index within the round
        fallback_pool: Curated national pool used when ``pool`` is too small

    Returns:
        (participants, effective_category); a regional event that had to
        fall back to the national pool reports 'national'

    Raises:
        InsufficientParticipants: If even the curated national pool is too small
    """
    effective: Category = category

    if category == "regional" and region:
        candidates = _regional_candidates(pool, slugify_region(region))
        if len(candidates) < QUIZ_SIZE:
            logger.info(
                f"Region {region!r} has {len(candidates)} participants after neighbours; "
                "falling back to curated national pool"
            )
            effective = "national"
            candidates = list(fallback_pool)
    else:
        effective = "national"
        candidates = list(pool)
        if len(candidates) < QUIZ_SIZE:
            candidates = list(fallback_pool)

    if len(candidates) < QUIZ_SIZE:
        raise InsufficientParticipants(category, region, len(candidates))

    # Sort first so the shuffle never depends on provider ordering.
    ordered = sorted(candidates, key=lambda p: (p.name, p.region))
    shuffled = seeded_shuffle(ordered, selection_seed)

    triplet_count = len(shuffled) // QUIZ_SIZE
    start = (match_slot % triplet_count) * QUIZ_SIZE
    a, b, c = shuffled[start:start + QUIZ_SIZE]
    return (a, b, c), effective
