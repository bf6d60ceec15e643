"""Bets and payout aggregation.

Three bet modes form a tagged union. Settlement is re-entrant: a terminal bet
or leg is never re-evaluated and never paid twice.

Modes:
- single: every leg carries its own stake; winning returns are capped per event
- multi: one stake, every leg must win, tiered bonus on long accumulators
- system: one stake per combination, each combination settled as a multi
"""

import itertools
import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import ClassVar, Mapping, Union

from virtuals.config import AppConfig, get_config
from virtuals.settlement.markets import Outcome
from virtuals.settlement.resolver import Leg, SelectionStatus, resolve_selection, void_leg

logger = logging.getLogger(__name__)


class BetStatus(str, Enum):
    PENDING = "pending"
    WON = "won"
    LOST = "lost"
    VOID = "void"

    @property
    def terminal(self) -> bool:
        return self is not BetStatus.PENDING


@dataclass(frozen=True)
class SingleBet:
    bet_id: str
    user_id: str
    legs: tuple[Leg, ...]
    status: BetStatus = BetStatus.PENDING
    payout: float = 0.0

    mode: ClassVar[str] = "single"

    def __post_init__(self):
        if any(leg.stake <= 0 for leg in self.legs):
            raise ValueError(f"Single bet {self.bet_id}: every leg needs a positive stake")

    @property
    def total_stake(self) -> float:
        return sum(leg.stake for leg in self.legs)


@dataclass(frozen=True)
class MultiBet:
    bet_id: str
    user_id: str
    legs: tuple[Leg, ...]
    stake: float
    status: BetStatus = BetStatus.PENDING
    payout: float = 0.0

    mode: ClassVar[str] = "multi"

    def __post_init__(self):
        if self.stake <= 0:
            raise ValueError(f"Multi bet {self.bet_id}: stake must be positive, got {self.stake}")

    @property
    def total_stake(self) -> float:
        return self.stake


@dataclass(frozen=True)
class SystemBet:
    bet_id: str
    user_id: str
    legs: tuple[Leg, ...]
    stake_per_combination: float
    combinations: tuple[tuple[int, ...], ...] = field(default_factory=tuple)
    status: BetStatus = BetStatus.PENDING
    payout: float = 0.0

    mode: ClassVar[str] = "system"

    def __post_init__(self):
        if self.stake_per_combination <= 0:
            raise ValueError(f"System bet {self.bet_id}: stake must be positive, got {self.stake_per_combination}")
        if not self.combinations:
            raise ValueError(f"System bet {self.bet_id}: no combinations")
        for combo in self.combinations:
            if not combo:
                raise ValueError(f"System bet {self.bet_id}: empty combination")
            if any(not 0 <= i < len(self.legs) for i in combo):
                raise ValueError(f"System bet {self.bet_id}: combination {combo} out of range")

    @property
    def total_stake(self) -> float:
        return self.stake_per_combination * len(self.combinations)


Bet = Union[SingleBet, MultiBet, SystemBet]


@dataclass(frozen=True)
class ResolvedBet:
    """Result of one settlement pass.

    ``credit`` is what the ledger must pay for this pass. It is non-zero only
    when the bet moves from pending into a terminal state.
    """

    bet: Bet
    legs: tuple[Leg, ...]
    payout: float
    credit: float
    changed: bool


def system_combinations(n: int, k: int) -> tuple[tuple[int, ...], ...]:
    """All k-sized index combinations of n legs (e.g. a 2/3 system)."""
    if not 1 <= k <= n:
        raise ValueError(f"System size must satisfy 1 <= k <= n, got k={k}, n={n}")
    return tuple(itertools.combinations(range(n), k))


def multi_bonus_percent(winning_legs: int, config: AppConfig) -> float:
    """Highest bonus tier at or below ``winning_legs``; 0 below the minimum."""
    if winning_legs < config.multi_bonus_min_selections:
        return 0.0
    tiers = [legs for legs in config.multi_bonus_scaling if legs <= winning_legs]
    if not tiers:
        return 0.0
    return config.multi_bonus_scaling[max(tiers)]


def _resolve_legs(
    legs: tuple[Leg, ...],
    outcomes: Mapping[str, Outcome],
    void_events: frozenset[str] | set[str],
    overrides: Mapping[str, Mapping[str, str]],
) -> tuple[Leg, ...]:
    resolved = []
    for leg in legs:
        if leg.status.terminal:
            resolved.append(leg)
        elif leg.event_id in void_events:
            resolved.append(void_leg(leg))
        else:
            resolved.append(
                resolve_selection(leg, outcomes.get(leg.event_id), overrides.get(leg.event_id))
            )
    return tuple(resolved)


def _settle_single(legs: tuple[Leg, ...], config: AppConfig) -> tuple[BetStatus, float]:
    if not all(leg.status.terminal for leg in legs):
        return BetStatus.PENDING, 0.0

    wins_by_event: dict[str, float] = defaultdict(float)
    refunds = 0.0
    for leg in legs:
        if leg.status is SelectionStatus.WON:
            wins_by_event[leg.event_id] += leg.stake * leg.odds
        elif leg.status is SelectionStatus.VOID:
            refunds += leg.stake

    capped = 0.0
    for event_id, returns in wins_by_event.items():
        if returns > config.max_event_payout:
            logger.info(f"Single returns on {event_id} capped: {returns:.2f} -> {config.max_event_payout:.2f}")
        capped += min(returns, config.max_event_payout)

    payout = round(capped + refunds, 2)
    if wins_by_event:
        return BetStatus.WON, payout
    if all(leg.status is SelectionStatus.VOID for leg in legs):
        return BetStatus.VOID, payout
    return BetStatus.LOST, payout


def _combination_return(legs: tuple[Leg, ...], stake: float) -> float | None:
    """Return of one all-must-win combination; 0 if lost, None while undecided."""
    if any(leg.status is SelectionStatus.LOST for leg in legs):
        return 0.0
    if not all(leg.status.terminal for leg in legs):
        return None
    return stake * math.prod(leg.effective_odds for leg in legs)


def _settle_multi(legs: tuple[Leg, ...], stake: float, config: AppConfig) -> tuple[BetStatus, float]:
    base = _combination_return(legs, stake)
    if base is None:
        return BetStatus.PENDING, 0.0
    if base == 0.0:
        return BetStatus.LOST, 0.0
    if all(leg.status is SelectionStatus.VOID for leg in legs):
        return BetStatus.VOID, round(stake, 2)

    winning_legs = sum(1 for leg in legs if leg.status is SelectionStatus.WON)
    percent = multi_bonus_percent(winning_legs, config)
    bonus = min(base * percent / 100, config.multi_bonus_cap)
    return BetStatus.WON, round(base + bonus, 2)


def _settle_system(bet: SystemBet, legs: tuple[Leg, ...], config: AppConfig) -> tuple[BetStatus, float]:
    returns = [
        _combination_return(tuple(legs[i] for i in combo), bet.stake_per_combination)
        for combo in bet.combinations
    ]

    if all(r == 0.0 for r in returns):
        return BetStatus.LOST, 0.0
    if any(r is None for r in returns):
        return BetStatus.PENDING, 0.0

    cap = config.system_max_multiplier * bet.total_stake
    total = sum(returns)
    if total > cap:
        logger.info(f"System bet {bet.bet_id} payout capped: {total:.2f} -> {cap:.2f}")
        total = cap

    if all(leg.status is SelectionStatus.VOID for leg in legs):
        return BetStatus.VOID, round(total, 2)
    return BetStatus.WON, round(total, 2)


def settle_bet(
    bet: Bet,
    outcomes: Mapping[str, Outcome],
    void_events: frozenset[str] | set[str] = frozenset(),
    overrides: Mapping[str, Mapping[str, str]] | None = None,
    config: AppConfig | None = None,
) -> ResolvedBet:
    """Settle one bet against the outcomes available so far.

    Args:
        bet: Bet to settle
        outcomes: Finished outcomes keyed by event id
        void_events: Event ids whose pending legs are voided
        overrides: Operator tables keyed by event id, then market name
        config: Settlement constants (None = use global config)

    Returns:
        ResolvedBet; settling a terminal bet is a no-op with zero credit
    """
    if bet.status.terminal:
        logger.debug(f"Bet {bet.bet_id} already {bet.status.value}; nothing to settle")
        return ResolvedBet(bet=bet, legs=bet.legs, payout=bet.payout, credit=0.0, changed=False)

    config = config or get_config()
    legs = _resolve_legs(bet.legs, outcomes, void_events, overrides or {})

    if isinstance(bet, SingleBet):
        status, payout = _settle_single(legs, config)
    elif isinstance(bet, MultiBet):
        status, payout = _settle_multi(legs, bet.stake, config)
    elif isinstance(bet, SystemBet):
        status, payout = _settle_system(bet, legs, config)
    else:
        raise TypeError(f"Unsupported bet type: {type(bet).__name__}")

    changed = status is not bet.status or legs != bet.legs
    updated = replace(bet, legs=legs, status=status, payout=payout)
    credit = payout if status.terminal else 0.0

    if status.terminal:
        logger.info(f"Bet {bet.bet_id} ({bet.mode}) settled {status.value}, payout={payout:.2f}")

    return ResolvedBet(bet=updated, legs=legs, payout=payout, credit=credit, changed=changed)
