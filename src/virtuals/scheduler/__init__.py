"""Scheduler and orchestration pipeline.

This module orchestrates round runs:
- Building and persisting a round of priced events
- Settling a finished round and learning participant form
- Live repricing of open markets
"""

from virtuals.scheduler.pipeline import build_round, reprice_open_markets, run_round, settle_round

__all__ = ["build_round", "run_round", "settle_round", "reprice_open_markets"]
