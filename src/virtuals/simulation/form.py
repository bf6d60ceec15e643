"""Learned participant form.

Form is updated from completed quiz outcomes and feeds back into the simulator
as a read-only strength snapshot taken at round start.
"""

from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Mapping

from virtuals.config import AppConfig, get_config
from virtuals.simulation.quiz import QuizOutcome
from virtuals.simulation.rng import clamp

DEFAULT_FORM = 1.0
DEFAULT_VOLATILITY = 1.0


@dataclass(frozen=True)
class FormRecord:
    name: str
    matches_played: int = 0
    wins: int = 0
    current_form: float = DEFAULT_FORM
    volatility_index: float = DEFAULT_VOLATILITY


def update_form(
    records: Mapping[str, FormRecord],
    outcome: QuizOutcome,
    config: AppConfig | None = None,
) -> dict[str, FormRecord]:
    """Apply one outcome to the form table.

    The winner gains ``form_learning_rate``, the others lose half of it, and
    every participant's volatility decays. Participants without a record
    start from the defaults.

    Returns:
        New mapping; ``records`` is not modified
    """
    config = config or get_config()
    updated = dict(records)

    for idx, name in enumerate(outcome.participants):
        record = updated.get(name) or FormRecord(name=name)
        won = idx == outcome.winner_index
        delta = config.form_learning_rate if won else -config.form_learning_rate / 2
        updated[name] = replace(
            record,
            matches_played=record.matches_played + 1,
            wins=record.wins + (1 if won else 0),
            current_form=clamp(record.current_form + delta, config.form_min, config.form_max),
            volatility_index=record.volatility_index * config.volatility_decay,
        )

    return updated


def strength_snapshot(records: Mapping[str, FormRecord]) -> Mapping[str, float]:
    """Read-only name -> form mapping consumed by the simulator."""
    return MappingProxyType({name: r.current_form for name, r in records.items()})
