"""Table-name constants and status enums shared by persistence code."""

from enum import Enum


class Table:
    """Database table names."""

    PARTICIPANTS = "participants"
    PARTICIPANT_FORM = "participant_form"
    EVENTS = "events"
    MARKETS = "markets"
    BETS = "bets"
    SCHEMA_MIGRATIONS = "schema_migrations"


class EventType(str, Enum):
    QUIZ = "quiz"
    DUEL = "duel"


class EventStatus(str, Enum):
    """Lifecycle of a simulated event."""

    SCHEDULED = "scheduled"
    FINAL = "final"
    VOID = "void"


class BetMode(str, Enum):
    SINGLE = "single"
    MULTI = "multi"
    SYSTEM = "system"
