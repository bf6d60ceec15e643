"""Tests for database-backed settlement.

Tests acceptance criteria:
1. Advisory lock per event (concurrent runs are skipped)
2. Bets settled with their ledger credit in one transaction
3. Terminal bets are never paid twice
4. A failing bet does not stop the batch
5. Void events refund, unknown events stay pending
6. Unstored events are replayed only once their round has passed
"""

import json
import logging
from unittest.mock import AsyncMock, patch

import pytest

from conftest import make_conn, make_pool, make_quiz_outcome
from virtuals.db.models import EventStatus
from virtuals.settlement import BetStatus, Leg, MultiBet, SelectionStatus, SingleBet, SystemBet
from virtuals.settlement.service import Ledger, bet_from_row, legs_to_json, settle_event, void_event
from virtuals.simulation.persistence import StoredEvent

EVENT = "vmt-5-0-national"


class RecordingLedger(Ledger):
    def __init__(self):
        self.credits = []

    async def credit(self, conn, user_id, amount, reference):
        self.credits.append((user_id, amount, reference))


def _bet_row(bet_id="b1", status="pending", mode="multi", legs=None, combinations=None):
    legs = legs or (
        Leg(EVENT, "Match Winner", "Alpha Academy", 2.0),
        Leg(EVENT, "Total Points", "Over 100.5", 1.5),
    )
    return {
        "bet_id": bet_id,
        "user_id": "u1",
        "mode": mode,
        "stake": 10.0,
        "combinations": json.dumps(combinations) if combinations is not None else None,
        "legs": legs_to_json(tuple(legs)),
        "status": status,
        "payout": 0.0,
    }


def _settling_conn(*rows):
    conn = make_conn()
    conn.fetchval.return_value = True
    conn.fetch.return_value = [{"bet_id": row["bet_id"]} for row in rows]
    conn.fetchrow.side_effect = list(rows)
    return conn


def _update_args(conn):
    """Positional args of the UPDATE on the bets table."""
    updates = [c.args for c in conn.execute.await_args_list if "UPDATE bets" in c.args[0]]
    assert len(updates) == 1
    return updates[0]


@pytest.fixture
def final_event():
    stored = StoredEvent(outcome=make_quiz_outcome(totals=(60, 45, 25)), status=EventStatus.FINAL)
    with patch("virtuals.settlement.service.load_event", AsyncMock(return_value=stored)) as mock_load:
        yield mock_load


# ========== AC-1: Advisory lock ==========


@pytest.mark.asyncio
async def test_skipped_when_lock_held():
    conn = make_conn()
    conn.fetchval.return_value = False

    settled = await settle_event(make_pool(conn), EVENT, RecordingLedger())

    assert settled == 0
    conn.fetch.assert_not_awaited()
    conn.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_lock_released_after_batch(final_event):
    conn = _settling_conn(_bet_row())

    await settle_event(make_pool(conn), EVENT, RecordingLedger())

    lock_sql, lock_key = conn.fetchval.await_args.args
    assert "pg_try_advisory_lock(hashtext($1))" in lock_sql
    assert lock_key == EVENT
    unlock = conn.execute.await_args_list[-1].args
    assert "pg_advisory_unlock" in unlock[0]
    assert unlock[1] == EVENT


# ========== AC-2: Settlement with ledger credit ==========


@pytest.mark.asyncio
async def test_multi_settled_and_credited(final_event):
    conn = _settling_conn(_bet_row())
    ledger = RecordingLedger()

    settled = await settle_event(make_pool(conn), EVENT, ledger)

    assert settled == 1
    assert ledger.credits == [("u1", 30.0, "b1")]

    bet_id, legs_json, status, payout, terminal = _update_args(conn)[1:]
    assert (bet_id, status, payout, terminal) == ("b1", "won", 30.0, True)
    assert [leg["status"] for leg in json.loads(legs_json)] == ["won", "won"]
    assert "FOR UPDATE" in conn.fetchrow.await_args.args[0]


@pytest.mark.asyncio
async def test_losing_bet_updated_without_credit(final_event):
    legs = (Leg(EVENT, "Match Winner", "Bravo College", 3.0),)
    conn = _settling_conn(_bet_row(legs=legs))
    ledger = RecordingLedger()

    assert await settle_event(make_pool(conn), EVENT, ledger) == 1
    assert ledger.credits == []
    assert _update_args(conn)[3] == "lost"


# ========== AC-3: Idempotence ==========


@pytest.mark.asyncio
async def test_terminal_row_not_paid_again(final_event):
    conn = _settling_conn(_bet_row(status="won"))
    ledger = RecordingLedger()

    assert await settle_event(make_pool(conn), EVENT, ledger) == 0
    assert ledger.credits == []
    assert not [c for c in conn.execute.await_args_list if "UPDATE bets" in c.args[0]]


# ========== AC-4: Failure isolation ==========


@pytest.mark.asyncio
async def test_failing_bet_does_not_stop_batch(final_event, caplog):
    conn = make_conn()
    conn.fetchval.return_value = True
    conn.fetch.return_value = [{"bet_id": "broken"}, {"bet_id": "b2"}]
    conn.fetchrow.side_effect = [RuntimeError("row lock timeout"), _bet_row(bet_id="b2")]
    ledger = RecordingLedger()

    settled = await settle_event(make_pool(conn), EVENT, ledger)

    assert settled == 1
    assert ledger.credits == [("u1", 30.0, "b2")]
    assert "Settlement failed for bet broken" in caplog.text


# ========== AC-5: Void and unknown events ==========


@pytest.mark.asyncio
async def test_void_event_refunds_multi():
    stored = StoredEvent(outcome=make_quiz_outcome(), status=EventStatus.VOID)
    conn = _settling_conn(_bet_row())
    ledger = RecordingLedger()

    with patch("virtuals.settlement.service.load_event", AsyncMock(return_value=stored)):
        await settle_event(make_pool(conn), EVENT, ledger)

    assert ledger.credits == [("u1", 10.0, "b1")]
    assert _update_args(conn)[3] == "void"


@pytest.mark.asyncio
async def test_override_applied_from_stored_event():
    stored = StoredEvent(
        outcome=make_quiz_outcome(),
        status=EventStatus.FINAL,
        overrides={"Match Winner": "Bravo College"},
    )
    legs = (Leg(EVENT, "Match Winner", "Bravo College", 3.0),)
    conn = _settling_conn(_bet_row(legs=legs))
    ledger = RecordingLedger()

    with patch("virtuals.settlement.service.load_event", AsyncMock(return_value=stored)):
        await settle_event(make_pool(conn), EVENT, ledger)

    assert ledger.credits == [("u1", 30.0, "b1")]


@pytest.mark.asyncio
async def test_scheduled_event_leaves_bet_pending():
    stored = StoredEvent(outcome=make_quiz_outcome(), status=EventStatus.SCHEDULED)
    conn = _settling_conn(_bet_row())

    with patch("virtuals.settlement.service.load_event", AsyncMock(return_value=stored)):
        settled = await settle_event(make_pool(conn), EVENT, RecordingLedger())

    assert settled == 0
    assert not [c for c in conn.execute.await_args_list if "UPDATE bets" in c.args[0]]


@pytest.mark.asyncio
async def test_underivable_event_stays_pending(caplog):
    legs = (Leg("not-an-event", "Match Winner", "Alpha Academy", 2.0),)
    conn = _settling_conn(_bet_row(legs=legs))

    with patch("virtuals.settlement.service.load_event", AsyncMock(return_value=None)):
        settled = await settle_event(make_pool(conn), "not-an-event", RecordingLedger())

    assert settled == 0
    assert "neither stored nor derivable" in caplog.text


@pytest.mark.asyncio
async def test_current_round_not_rederived(caplog):
    caplog.set_level(logging.INFO)
    conn = _settling_conn(_bet_row())

    with patch("virtuals.settlement.service.load_event", AsyncMock(return_value=None)), patch(
        "virtuals.settlement.service.current_round_slot", return_value=5
    ), patch("virtuals.settlement.service.rederive_outcome") as mock_rederive:
        settled = await settle_event(make_pool(conn), EVENT, RecordingLedger())

    assert settled == 0
    mock_rederive.assert_not_called()
    assert "not yet final" in caplog.text
    assert not [c for c in conn.execute.await_args_list if "UPDATE bets" in c.args[0]]


@pytest.mark.asyncio
async def test_unstored_duel_not_rederived():
    legs = (Leg("qdt-424242", "Match Winner", "Player A", 1.9),)
    conn = _settling_conn(_bet_row(legs=legs))

    with patch("virtuals.settlement.service.load_event", AsyncMock(return_value=None)), patch(
        "virtuals.settlement.service.current_round_slot", return_value=10**9
    ), patch("virtuals.settlement.service.rederive_outcome") as mock_rederive:
        settled = await settle_event(make_pool(conn), "qdt-424242", RecordingLedger())

    assert settled == 0
    mock_rederive.assert_not_called()


@pytest.mark.asyncio
async def test_past_round_rederived_and_settled():
    conn = _settling_conn(_bet_row())
    ledger = RecordingLedger()
    outcome = make_quiz_outcome(totals=(60, 45, 25))

    with patch("virtuals.settlement.service.load_event", AsyncMock(return_value=None)), patch(
        "virtuals.settlement.service.current_round_slot", return_value=6
    ), patch("virtuals.settlement.service.rederive_outcome", return_value=outcome) as mock_rederive:
        settled = await settle_event(make_pool(conn), EVENT, ledger)

    assert settled == 1
    assert mock_rederive.call_args.args[0] == EVENT
    assert ledger.credits == [("u1", 30.0, "b1")]


@pytest.mark.asyncio
async def test_void_event_marks_and_settles():
    conn = make_conn()
    pool = make_pool(conn)
    ledger = RecordingLedger()

    with patch("virtuals.settlement.service.set_event_status", AsyncMock()) as mock_status, patch(
        "virtuals.settlement.service.set_market_status", AsyncMock()
    ) as mock_markets, patch("virtuals.settlement.service.settle_event", AsyncMock(return_value=3)) as mock_settle:
        assert await void_event(pool, EVENT, ledger) == 3

    assert mock_status.await_args.args[1:] == (EVENT, EventStatus.VOID)
    mock_markets.assert_awaited_once()
    mock_settle.assert_awaited_once_with(pool, EVENT, ledger, None)


# ========== Row mapping ==========


class TestBetFromRow:
    def test_single(self):
        legs = (Leg(EVENT, "Match Winner", "Alpha Academy", 2.0, stake=5.0),)
        bet = bet_from_row(_bet_row(mode="single", legs=legs))

        assert isinstance(bet, SingleBet)
        assert bet.legs == legs
        assert bet.total_stake == 5.0

    def test_multi_keeps_leg_status(self):
        legs = (Leg(EVENT, "Match Winner", "Alpha Academy", 2.0, status=SelectionStatus.WON),)
        bet = bet_from_row(_bet_row(legs=legs))

        assert isinstance(bet, MultiBet)
        assert bet.legs[0].status is SelectionStatus.WON
        assert bet.status is BetStatus.PENDING

    def test_system(self):
        legs = tuple(Leg(f"vmt-5-{i}-national", "Match Winner", "Alpha Academy", 2.0) for i in range(3))
        bet = bet_from_row(_bet_row(mode="system", legs=legs, combinations=[[0, 1], [0, 2], [1, 2]]))

        assert isinstance(bet, SystemBet)
        assert bet.combinations == ((0, 1), (0, 2), (1, 2))
        assert bet.total_stake == 30.0
