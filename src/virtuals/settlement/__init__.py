"""Market interpretation, per-leg verdicts and bet settlement."""

from virtuals.settlement.correlation import add_selection, driver_group
from virtuals.settlement.markets import MarketKind, interpret_market, market_wins, normalize_market_name
from virtuals.settlement.resolver import Leg, SelectionStatus, resolve_selection, void_leg
from virtuals.settlement.slips import (
    Bet,
    BetStatus,
    MultiBet,
    ResolvedBet,
    SingleBet,
    SystemBet,
    settle_bet,
    system_combinations,
)

__all__ = [
    "Bet",
    "BetStatus",
    "Leg",
    "MarketKind",
    "MultiBet",
    "ResolvedBet",
    "SelectionStatus",
    "SingleBet",
    "SystemBet",
    "add_selection",
    "driver_group",
    "interpret_market",
    "market_wins",
    "normalize_market_name",
    "resolve_selection",
    "settle_bet",
    "system_combinations",
    "void_leg",
]
