"""Placement-time correlation guard.

At most one selection per outcome-driver group per event may sit on a slip.
Groups come from ``correlation_groups`` in config; a kind missing from the
table is its own group, and an uninterpretable market name is keyed by its
normalized name.
"""

import logging
from typing import Sequence

from virtuals.config import AppConfig, get_config
from virtuals.errors import UnresolvableMarket
from virtuals.settlement.markets import interpret_market, normalize_market_name
from virtuals.settlement.resolver import Leg

logger = logging.getLogger(__name__)


def driver_group(market_name: str, config: AppConfig | None = None) -> str:
    config = config or get_config()
    try:
        kind, _ = interpret_market(market_name)
    except UnresolvableMarket:
        return normalize_market_name(market_name)
    return config.correlation_groups.get(kind.value, kind.value)


def add_selection(
    legs: Sequence[Leg],
    new_leg: Leg,
    config: AppConfig | None = None,
) -> list[Leg]:
    """Append ``new_leg`` unless it correlates with a leg already on the slip.

    Returns:
        New list with the leg appended, or the original legs unchanged when
        the addition is rejected
    """
    config = config or get_config()
    group = driver_group(new_leg.market_name, config)

    for leg in legs:
        if leg.event_id == new_leg.event_id and driver_group(leg.market_name, config) == group:
            logger.debug(
                f"Rejected {new_leg.market_name!r}/{new_leg.label!r} on {new_leg.event_id}: "
                f"'{group}' already covered by {leg.market_name!r}"
            )
            return list(legs)

    return [*legs, new_leg]
