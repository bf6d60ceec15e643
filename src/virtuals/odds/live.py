"""Live odds adjustment from observed stake distribution.

Only open markets are repriced. Locked and settled markets, outcomes and bets
are never touched.
"""

import logging
from dataclasses import replace
from typing import Mapping

from virtuals.config import AppConfig, get_config
from virtuals.odds.pricing import Market, MarketStatus
from virtuals.simulation.rng import clamp

logger = logging.getLogger(__name__)


def reprice_market(
    market: Market,
    stakes: Mapping[str, float],
    config: AppConfig | None = None,
) -> Market:
    """Blend modeled and stake-share probabilities and reprice.

    The model side comes from each selection's stored probability, never from
    its current odds, so repeated passes over the same stakes are stable.

    Args:
        market: Market to reprice
        stakes: Accumulated stake per selection_id (missing = 0)
        config: Live adjuster constants (None = use global config)

    Returns:
        Repriced copy of ``market``, or ``market`` itself when it is not open
        or carries no stake
    """
    if market.status != MarketStatus.OPEN:
        logger.debug(f"Skipping live reprice of {market.market_id}: status={market.status.value}")
        return market

    total_stake = sum(max(0.0, stakes.get(s.selection_id, 0.0)) for s in market.selections)
    if total_stake <= 0:
        return market

    config = config or get_config()
    weight = config.live_model_weight

    blended = [
        weight * s.probability + (1 - weight) * (max(0.0, stakes.get(s.selection_id, 0.0)) / total_stake)
        for s in market.selections
    ]

    # Renormalize the whole market to the target overround
    scale = (1 + config.live_target_margin) / sum(blended)
    selections = tuple(
        replace(
            s,
            odds=round(clamp(1 / (b * scale), config.live_min_odds, config.live_max_odds), 2)
            if b > 0
            else config.live_max_odds,
        )
        for s, b in zip(market.selections, blended)
    )

    logger.debug(f"Repriced {market.market_id} on total stake {total_stake:.2f}")
    return replace(market, selections=selections)
