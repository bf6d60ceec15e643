"""Exception taxonomy shared by simulation, pricing and settlement."""


class VirtualsError(Exception):
    """Base class for domain errors."""


class UnresolvableMarket(VirtualsError):
    """A market or selection cannot be interpreted against an outcome.

    The affected leg stays pending until an operator override or later data
    resolves it. It is never scored as a loss.
    """

    def __init__(self, market_name: str, label: str | None = None, reason: str = ""):
        self.market_name = market_name
        self.label = label
        self.reason = reason
        detail = f" ({reason})" if reason else ""
        super().__init__(f"Cannot resolve market {market_name!r} selection {label!r}{detail}")


class InsufficientParticipants(VirtualsError):
    """Fewer than the required participants remain after every fallback."""

    def __init__(self, category: str, region: str | None, available: int, required: int = 3):
        self.category = category
        self.region = region
        self.available = available
        self.required = required
        super().__init__(
            f"Need {required} participants for {category} event "
            f"(region={region!r}), only {available} available after fallbacks"
        )


class TieExhausted(VirtualsError):
    """The bounded tie-break loop ended without a unique leader."""

    def __init__(
        self,
        totals: tuple[int, ...],
        iterations: int,
        added: tuple[int, ...] = (),
    ):
        self.totals = totals
        self.iterations = iterations
        self.added = added
        super().__init__(f"Tie unresolved after {iterations} iterations: {totals}")


class InvalidEventId(VirtualsError):
    """An event id string does not follow the event id contract."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Invalid event id: {event_id!r}")
