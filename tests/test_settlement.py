"""Tests for market interpretation, per-leg verdicts and bet settlement.

Tests acceptance criteria:
1. Table-driven market interpretation
2. Quiz and duel resolvers
3. Manual overrides and unresolvable selections
4. Accumulator arithmetic and bonus tiers
5. Void neutrality
6. Per-event cap on single returns
7. System bets
8. Idempotence
"""

import pytest

from conftest import make_duel_outcome, make_quiz_outcome
from virtuals.config import AppConfig
from virtuals.errors import UnresolvableMarket
from virtuals.settlement import (
    BetStatus,
    Leg,
    MarketKind,
    MultiBet,
    SelectionStatus,
    SingleBet,
    SystemBet,
    interpret_market,
    market_wins,
    resolve_selection,
    settle_bet,
    system_combinations,
)
from virtuals.settlement.slips import multi_bonus_percent

ALPHA = "Alpha Academy"
BRAVO = "Bravo College"
EVENTS = ("vmt-5-0-national", "vmt-5-1-national", "vmt-5-2-national")


@pytest.fixture
def outcomes():
    """Three finished events, all won by Alpha Academy."""
    return {event_id: make_quiz_outcome(event_id=event_id) for event_id in EVENTS}


def _winner_leg(event_id: str, odds: float, label: str = ALPHA, stake: float = 0.0) -> Leg:
    return Leg(event_id, "Match Winner", label, odds, stake=stake)


# ========== AC-1: Market interpretation ==========


class TestInterpretMarket:
    def test_round_indexed(self):
        assert interpret_market("Round 3 Winner") == (MarketKind.ROUND_WINNER, 3)
        assert interpret_market("Perfect Round 2") == (MarketKind.PERFECT_ROUND, 2)
        assert interpret_market("Perfect Round") == (MarketKind.PERFECT_ROUND, None)

    def test_normalization(self):
        assert interpret_market("  match   WINNER ") == (MarketKind.MATCH_WINNER, None)

    @pytest.mark.parametrize("name", ["Total Points Extra", "Winner of round 3", "Round 9 Winner", "Most Sixes"])
    def test_no_substring_dispatch(self, name):
        with pytest.raises(UnresolvableMarket):
            interpret_market(name)


# ========== AC-2: Resolvers ==========


class TestQuizResolvers:
    def test_total_points_over_under(self):
        """'Total Points' / 'Over 120.5': a total of 130 wins, 100 loses."""
        high = make_quiz_outcome(totals=(50, 40, 40))
        low = make_quiz_outcome(totals=(40, 30, 30))

        assert market_wins(high, "Total Points", "Over 120.5") is True
        assert market_wins(low, "Total Points", "Over 120.5") is False
        assert market_wins(low, "Total Points", "Under 120.5") is True

    def test_match_winner(self, quiz_outcome):
        assert market_wins(quiz_outcome, "Match Winner", ALPHA)
        assert not market_wins(quiz_outcome, "Match Winner", BRAVO)

    def test_winning_margin_bands(self):
        outcome = make_quiz_outcome(totals=(60, 45, 25))  # margin 15

        assert market_wins(outcome, "Winning Margin", "11-25")
        assert not market_wins(outcome, "Winning Margin", "1-10")
        assert not market_wins(outcome, "Winning Margin", "26+")

    def test_shared_round_top_has_no_winner(self):
        outcome = make_quiz_outcome(totals=(60, 60, 25))

        assert not market_wins(outcome, "Round 2 Winner", ALPHA)
        assert not market_wins(outcome, "Round 2 Winner", BRAVO)

    def test_props(self):
        outcome = make_quiz_outcome(lead_changes=3, comeback_win=True, highest_round_index=2)

        assert market_wins(outcome, "Lead Changes", "Over 2.5")
        assert market_wins(outcome, "Comeback Win", "Yes")
        assert market_wins(outcome, "Highest Scoring Round", "Round 3")
        assert market_wins(outcome, "Fastest Buzz", BRAVO)
        assert market_wins(outcome, "Perfect Round", "No")

    def test_bad_label_is_unresolvable(self, quiz_outcome):
        with pytest.raises(UnresolvableMarket):
            market_wins(quiz_outcome, "Match Winner", "Nobody")
        with pytest.raises(UnresolvableMarket):
            market_wins(quiz_outcome, "Total Points", "Lots")


class TestDuelResolvers:
    def test_winner_and_totals(self, duel_outcome):
        assert market_wins(duel_outcome, "Match Winner", "Michael")
        assert not market_wins(duel_outcome, "Match Winner", "Jaguar")
        assert market_wins(duel_outcome, "Total Match Score", "Over 550.5")
        assert market_wins(duel_outcome, "Total Triples", "Under 9.5")
        assert market_wins(duel_outcome, "Any Player Perfect Throw (180)", "No")
        assert market_wins(duel_outcome, "Late Surge", "Jaguar")

    def test_tie_loses_both_sides(self):
        tie = make_duel_outcome(total_a=300, total_b=300)

        assert not market_wins(tie, "Match Winner", "Michael")
        assert not market_wins(tie, "Match Winner", "Jaguar")

    def test_quiz_only_market_on_duel(self, duel_outcome):
        with pytest.raises(UnresolvableMarket):
            market_wins(duel_outcome, "Comeback Win", "Yes")


# ========== AC-3: Overrides and pending legs ==========


class TestResolveSelection:
    def test_override_wins_over_outcome(self, quiz_outcome):
        leg = _winner_leg(EVENTS[0], 2.0, label=BRAVO)
        resolved = resolve_selection(leg, quiz_outcome, {"  match WINNER": "bravo college"})
        assert resolved.status is SelectionStatus.WON

    def test_override_void(self, quiz_outcome):
        resolved = resolve_selection(_winner_leg(EVENTS[0], 2.0), quiz_outcome, {"Match Winner": "VOID"})

        assert resolved.status is SelectionStatus.VOID
        assert resolved.effective_odds == 1.0

    def test_unresolvable_stays_pending(self, quiz_outcome, caplog):
        leg = Leg(EVENTS[0], "Most Sixes", "Yes", 3.0)
        resolved = resolve_selection(leg, quiz_outcome)

        assert resolved.status is SelectionStatus.PENDING
        assert "Most Sixes" in resolved.reason
        assert "left pending" in caplog.text

    def test_no_outcome_stays_pending(self):
        leg = _winner_leg(EVENTS[0], 2.0)
        assert resolve_selection(leg, None) == leg

    def test_terminal_leg_not_reevaluated(self, quiz_outcome):
        leg = Leg(EVENTS[0], "Match Winner", ALPHA, 2.0, status=SelectionStatus.LOST)
        assert resolve_selection(leg, quiz_outcome, {"Match Winner": ALPHA}) is leg


# ========== AC-4: Accumulators ==========


class TestMultiBets:
    def test_accumulator_arithmetic(self, outcomes, config):
        """[2.00, 1.50, 3.00] at stake 10: 90.00 base plus the 5% three-leg bonus."""
        bet = MultiBet(
            "b1",
            "u1",
            tuple(_winner_leg(e, o) for e, o in zip(EVENTS, (2.00, 1.50, 3.00))),
            stake=10.0,
        )

        resolved = settle_bet(bet, outcomes, config=config)

        assert resolved.bet.status is BetStatus.WON
        assert resolved.payout == 94.50
        assert resolved.credit == 94.50
        assert resolved.changed

    def test_bonus_cap(self, outcomes):
        config = AppConfig(_env_file=None, multi_bonus_cap=1.0)
        bet = MultiBet("b1", "u1", tuple(_winner_leg(e, o) for e, o in zip(EVENTS, (2.0, 1.5, 3.0))), 10.0)

        assert settle_bet(bet, outcomes, config=config).payout == 91.00

    def test_bonus_tiers(self, config):
        assert multi_bonus_percent(2, config) == 0.0
        assert multi_bonus_percent(3, config) == 5.0
        assert multi_bonus_percent(7, config) == 15.0
        assert multi_bonus_percent(40, config) == 50.0

    def test_lost_as_soon_as_any_leg_loses(self, outcomes, config):
        legs = (
            _winner_leg(EVENTS[0], 2.0, label=BRAVO),
            _winner_leg("vmt-9-0-national", 2.0),  # not final yet
        )
        resolved = settle_bet(MultiBet("b1", "u1", legs, 10.0), outcomes, config=config)

        assert resolved.bet.status is BetStatus.LOST
        assert resolved.payout == 0.0
        assert resolved.legs[1].status is SelectionStatus.PENDING

    def test_pending_while_legs_open(self, outcomes, config):
        legs = (_winner_leg(EVENTS[0], 2.0), _winner_leg("vmt-9-0-national", 2.0))
        resolved = settle_bet(MultiBet("b1", "u1", legs, 10.0), outcomes, config=config)

        assert resolved.bet.status is BetStatus.PENDING
        assert resolved.credit == 0.0
        assert resolved.legs[0].status is SelectionStatus.WON


# ========== AC-5: Void neutrality ==========


class TestVoids:
    def test_void_leg_is_stake_neutral(self, outcomes, config):
        """A void leg plus a 2.50 winner at stake 10 returns 25.00."""
        legs = (_winner_leg(EVENTS[0], 4.0), _winner_leg(EVENTS[1], 2.50))
        resolved = settle_bet(
            MultiBet("b1", "u1", legs, 10.0), outcomes, void_events={EVENTS[0]}, config=config
        )

        assert resolved.bet.status is BetStatus.WON
        assert resolved.payout == 25.00
        assert resolved.legs[0].status is SelectionStatus.VOID

    def test_all_void_multi_refunds(self, outcomes, config):
        legs = (_winner_leg(EVENTS[0], 2.0), _winner_leg(EVENTS[1], 3.0))
        resolved = settle_bet(MultiBet("b1", "u1", legs, 10.0), outcomes, void_events=set(EVENTS), config=config)

        assert resolved.bet.status is BetStatus.VOID
        assert resolved.credit == 10.0

    def test_single_refunds_void_legs(self, outcomes, config):
        legs = (
            _winner_leg(EVENTS[0], 2.50, stake=10.0),
            _winner_leg(EVENTS[1], 2.0, stake=5.0),
            _winner_leg(EVENTS[2], 3.0, label=BRAVO, stake=5.0),
        )
        resolved = settle_bet(SingleBet("b1", "u1", legs), outcomes, void_events={EVENTS[1]}, config=config)

        assert resolved.bet.status is BetStatus.WON
        assert resolved.payout == 30.00

    def test_single_all_lost(self, outcomes, config):
        legs = (_winner_leg(EVENTS[0], 2.0, label=BRAVO, stake=10.0),)
        resolved = settle_bet(SingleBet("b1", "u1", legs), outcomes, config=config)

        assert resolved.bet.status is BetStatus.LOST
        assert resolved.credit == 0.0


# ========== AC-6: Per-event cap ==========


def test_per_event_cap(outcomes):
    """Two 2000 returns on one event under a 3000 cap pay 3000."""
    config = AppConfig(_env_file=None, max_event_payout=3000.0)
    legs = (
        _winner_leg(EVENTS[0], 2.0, stake=1000.0),
        Leg(EVENTS[0], "Total Points", "Over 100.5", 2.0, stake=1000.0),
    )

    resolved = settle_bet(SingleBet("b1", "u1", legs), outcomes, config=config)

    assert resolved.bet.status is BetStatus.WON
    assert resolved.payout == 3000.0


def test_cap_applies_per_event(outcomes):
    config = AppConfig(_env_file=None, max_event_payout=3000.0)
    legs = (
        _winner_leg(EVENTS[0], 2.0, stake=1000.0),
        _winner_leg(EVENTS[1], 2.0, stake=1000.0),
    )

    assert settle_bet(SingleBet("b1", "u1", legs), outcomes, config=config).payout == 4000.0


# ========== AC-7: System bets ==========


class TestSystemBets:
    def test_combinations_helper(self):
        assert system_combinations(3, 2) == ((0, 1), (0, 2), (1, 2))
        with pytest.raises(ValueError):
            system_combinations(3, 4)

    def test_two_from_three(self, outcomes, config):
        legs = (
            _winner_leg(EVENTS[0], 2.0),
            _winner_leg(EVENTS[1], 1.5),
            _winner_leg(EVENTS[2], 3.0, label=BRAVO),
        )
        bet = SystemBet("b1", "u1", legs, 10.0, system_combinations(3, 2))

        resolved = settle_bet(bet, outcomes, config=config)

        assert bet.total_stake == 30.0
        assert resolved.bet.status is BetStatus.WON
        assert resolved.payout == 30.0

    def test_system_cap(self, outcomes):
        config = AppConfig(_env_file=None, system_max_multiplier=2.0)
        legs = tuple(_winner_leg(e, o) for e, o in zip(EVENTS, (2.0, 1.5, 3.0)))
        bet = SystemBet("b1", "u1", legs, 10.0, system_combinations(3, 2))

        assert settle_bet(bet, outcomes, config=config).payout == 60.0

    def test_lost_when_every_combination_lost(self, outcomes, config):
        legs = (
            _winner_leg(EVENTS[0], 2.0, label=BRAVO),
            _winner_leg(EVENTS[1], 1.5, label=BRAVO),
            _winner_leg("vmt-9-0-national", 3.0),
        )
        bet = SystemBet("b1", "u1", legs, 10.0, system_combinations(3, 2))

        assert settle_bet(bet, outcomes, config=config).bet.status is BetStatus.LOST


# ========== AC-8: Idempotence ==========


class TestIdempotence:
    def test_settling_twice_pays_once(self, outcomes, config):
        bet = MultiBet("b1", "u1", tuple(_winner_leg(e, 2.0) for e in EVENTS[:2]), 10.0)

        first = settle_bet(bet, outcomes, config=config)
        second = settle_bet(first.bet, outcomes, config=config)

        assert first.credit == 40.0
        assert second.changed is False
        assert second.credit == 0.0
        assert second.payout == first.payout
        assert second.bet == first.bet

    def test_pending_pass_reports_no_change_when_nothing_moves(self, outcomes, config):
        legs = (Leg(EVENTS[0], "Most Sixes", "Yes", 3.0, stake=10.0),)
        first = settle_bet(SingleBet("b1", "u1", legs), outcomes, config=config)
        second = settle_bet(first.bet, outcomes, config=config)

        assert first.bet.status is BetStatus.PENDING
        assert first.credit == 0.0
        assert second.changed is False

    def test_partial_then_final(self, outcomes, config):
        legs = (_winner_leg(EVENTS[0], 2.0), _winner_leg("vmt-9-0-national", 2.0))
        bet = MultiBet("b1", "u1", legs, 10.0)

        partial = settle_bet(bet, outcomes, config=config)
        late = {**outcomes, "vmt-9-0-national": make_quiz_outcome(event_id="vmt-9-0-national")}
        final = settle_bet(partial.bet, late, config=config)

        assert partial.credit == 0.0
        assert final.bet.status is BetStatus.WON
        assert final.credit == 40.0


# ========== Preconditions ==========


class TestBetPreconditions:
    def test_single_needs_leg_stakes(self):
        with pytest.raises(ValueError, match="positive stake"):
            SingleBet("b1", "u1", (_winner_leg(EVENTS[0], 2.0),))

    def test_multi_needs_stake(self):
        with pytest.raises(ValueError, match="stake must be positive"):
            MultiBet("b1", "u1", (_winner_leg(EVENTS[0], 2.0),), 0.0)

    def test_system_combination_in_range(self):
        legs = tuple(_winner_leg(e, 2.0) for e in EVENTS[:2])
        with pytest.raises(ValueError, match="out of range"):
            SystemBet("b1", "u1", legs, 10.0, ((0, 2),))

    def test_system_needs_combinations(self):
        legs = tuple(_winner_leg(e, 2.0) for e in EVENTS[:2])
        with pytest.raises(ValueError, match="no combinations"):
            SystemBet("b1", "u1", legs, 10.0)
        with pytest.raises(ValueError, match="no combinations"):
            SystemBet("b1", "u1", legs, 10.0, ())

    def test_system_rejects_empty_combination(self):
        legs = tuple(_winner_leg(e, 2.0) for e in EVENTS[:2])
        with pytest.raises(ValueError, match="empty combination"):
            SystemBet("b1", "u1", legs, 10.0, ((),))
        with pytest.raises(ValueError, match="empty combination"):
            SystemBet("b1", "u1", legs, 10.0, ((0, 1), ()))
