"""Cron-compatible entry points for scheduled runs.

Provides callable functions for cron integration:
- round_run()
- settlement_run(ledger)

The current round slot is the number of whole round intervals since the
epoch, so every scheduler host derives the same slot.
"""

import asyncio
import logging

from virtuals.scheduler.pipeline import DEFAULT_ROUND_SIZE, run_round, settle_round
from virtuals.settlement.service import Ledger
from virtuals.simulation.event_id import current_round_slot

logger = logging.getLogger(__name__)


def round_run() -> None:
    """Entry point for building the upcoming round.

    Callable with no arguments for cron integration.
    """
    round_slot = current_round_slot() + 1
    logger.info(f"Cron: round_run triggered for round {round_slot}")
    asyncio.run(run_round(round_slot, DEFAULT_ROUND_SIZE))


def settlement_run(ledger: Ledger) -> None:
    """Entry point for settling the round that just finished.

    The ledger implementation is supplied by the hosting application.
    """
    round_slot = current_round_slot() - 1
    logger.info(f"Cron: settlement_run triggered for round {round_slot}")
    asyncio.run(settle_round(round_slot, DEFAULT_ROUND_SIZE, ledger))
