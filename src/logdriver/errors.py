"""Exception types for the log driver."""


class LogDriverError(Exception):
    """Base class for log driver errors."""
    pass


class ConfigurationError(LogDriverError):
    """
    Invalid controller configuration.

    These are collected on the controller's ``errors`` list instead of being
    raised; the controller keeps working as a simple (non-sending) instance.
    """
    pass


class KeyOwnershipError(ConfigurationError):
    """A second live sender tried to take a key that already has an owner."""

    def __init__(self, key: str, owner: object):
        self.key = key
        self.owner = owner
        super().__init__(
            f"Log key '{key}' is already owned by {owner!r}; "
            "only one sender may dispatch a key at a time"
        )
