"""Roster and strength providers."""

from virtuals.ingestion.base import ParticipantRow, RosterProvider, StrengthProvider
from virtuals.ingestion.roster import DbRosterProvider, DbStrengthProvider, StaticRosterProvider

__all__ = [
    "ParticipantRow",
    "RosterProvider",
    "StrengthProvider",
    "DbRosterProvider",
    "DbStrengthProvider",
    "StaticRosterProvider",
]
