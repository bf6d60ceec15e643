"""Per-selection verdicts.

Manual overrides always win over automatic interpretation. A selection that
neither path can interpret stays pending; it is never scored as a loss.
"""

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Mapping

from virtuals.errors import UnresolvableMarket
from virtuals.settlement.markets import Outcome, market_wins, normalize_market_name

logger = logging.getLogger(__name__)

VOID = "void"


class SelectionStatus(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    VOID = "void"

    @property
    def terminal(self) -> bool:
        return self is not SelectionStatus.PENDING


@dataclass(frozen=True)
class Leg:
    """One selection on a slip.

    ``stake`` is only meaningful for single-mode slips, where each leg is
    staked separately.
    """

    event_id: str
    market_name: str
    label: str
    odds: float
    stake: float = 0.0
    status: SelectionStatus = SelectionStatus.PENDING
    reason: str | None = None

    @property
    def effective_odds(self) -> float:
        """Odds used in payout products; void legs are stake-neutral."""
        return 1.0 if self.status is SelectionStatus.VOID else self.odds


def normalize_overrides(overrides: Mapping[str, str] | None) -> dict[str, str]:
    """Normalize override keys (market names) and values (labels or 'void')."""
    if not overrides:
        return {}
    return {normalize_market_name(k): normalize_market_name(v) for k, v in overrides.items()}


def void_leg(leg: Leg) -> Leg:
    """Mark a pending leg void; terminal legs are returned unchanged."""
    if leg.status.terminal:
        return leg
    return replace(leg, status=SelectionStatus.VOID, reason="event void")


def resolve_selection(
    leg: Leg,
    outcome: Outcome | None,
    overrides: Mapping[str, str] | None = None,
) -> Leg:
    """Compute a leg's verdict.

    Args:
        leg: Leg to resolve
        outcome: Finished outcome of the leg's event (None = not final yet)
        overrides: Operator table for this event, market name -> winning
            label or 'void'

    Returns:
        Leg with its new status; terminal legs are never re-evaluated
    """
    if leg.status.terminal:
        return leg

    manual = normalize_overrides(overrides).get(normalize_market_name(leg.market_name))
    if manual is not None:
        if manual == VOID:
            return replace(leg, status=SelectionStatus.VOID, reason="manual void")
        won = manual == normalize_market_name(leg.label)
        return replace(
            leg,
            status=SelectionStatus.WON if won else SelectionStatus.LOST,
            reason="manual override",
        )

    if outcome is None:
        return leg

    try:
        won = market_wins(outcome, leg.market_name, leg.label)
    except UnresolvableMarket as e:
        logger.warning(f"Leg {leg.event_id}/{leg.market_name}/{leg.label} left pending: {e}")
        return replace(leg, reason=str(e))

    return replace(leg, status=SelectionStatus.WON if won else SelectionStatus.LOST, reason=None)
