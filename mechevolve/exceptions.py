"""Custom exception hierarchy for mechevolve.

Every error carries a ``category`` from a small, stable set so the API
layer can answer without leaking internals.
"""


class EvolveError(Exception):
    """Base for all engine errors."""

    category = "transient-service"


class InvalidRequestError(EvolveError):
    """A change event or analysis is missing required fields."""

    category = "validation"


class AgentNotFoundError(EvolveError):
    """No agent with the given ID exists for the application."""

    category = "not-found"


class AgentStateError(EvolveError):
    """Invalid agent status transition."""

    category = "validation"


class CapacityLimitError(EvolveError):
    """An explicit operator change would exceed a tier population cap."""

    category = "capacity-limited"


class StoreError(EvolveError):
    """The persistence layer failed; the request may be retried."""


class ConcurrentUpdateError(StoreError):
    """An agent document kept changing underneath a compare-and-set update."""
