"""Deterministic simulators for virtual events.

This module provides the seeded PRNG core, the event id contract, participant
selection, the quiz and duel simulators and learned participant form.
Storage of outcomes lives in ``virtuals.simulation.persistence``.
"""

from virtuals.simulation.duel import DuelOutcome, simulate_duel
from virtuals.simulation.event_id import EventId, slugify_region
from virtuals.simulation.form import FormRecord, strength_snapshot, update_form
from virtuals.simulation.quiz import (
    QuizOutcome,
    QuizStats,
    RoundScore,
    SimulationContext,
    simulate_quiz,
    simulate_quiz_from_event_id,
)
from virtuals.simulation.rng import seeded_random
from virtuals.simulation.roster import DEFAULT_POOL, Participant, select_quiz_participants

__all__ = [
    "DEFAULT_POOL",
    "DuelOutcome",
    "EventId",
    "FormRecord",
    "Participant",
    "QuizOutcome",
    "QuizStats",
    "RoundScore",
    "SimulationContext",
    "seeded_random",
    "select_quiz_participants",
    "simulate_duel",
    "simulate_quiz",
    "simulate_quiz_from_event_id",
    "slugify_region",
    "strength_snapshot",
    "update_form",
]
