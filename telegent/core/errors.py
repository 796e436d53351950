"""
Telegent — Error Taxonomy

Only CapabilityError is absorbed inside a turn (converted into text by the
registry). Everything else aborts the turn with a generic apology.
Unparseable decision output is not an error at all: the parser returns None.
"""


class TelegentError(Exception):
    """Root of all agent errors."""


class TransientProviderError(TelegentError):
    """The completion service was unavailable, rate-limited, or rejected the call."""


class StorageError(TelegentError):
    """The durable store could not complete a read or write."""


class CapabilityError(TelegentError):
    """A capability handler raised or returned data the registry cannot use."""


class DuplicateCapability(TelegentError):
    """A capability with this name is already registered."""

    def __init__(self, name: str):
        super().__init__(f"Capability '{name}' is already registered")
        self.name = name


class UnknownCapability(TelegentError):
    """No capability with this name is registered."""

    def __init__(self, name: str):
        super().__init__(f"Capability '{name}' is not registered")
        self.name = name
